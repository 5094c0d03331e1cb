# optimizer.py
import logging
import re
from dataclasses import replace
from typing import Optional, Dict, List, Tuple

from .constants import (
    DUPLICATE_WINDOW, AMOUNT_MERGE_WINDOW, DIRECTION_WINDOW, COMPRESSION_SENTINEL,
    TOKEN_SYMBOLS, TOKEN_TEXT_KEYWORDS, TOKEN_CLASS_KEYWORDS, TOKEN_MARKUP_KEYWORDS,
    TOKEN_ATTRIBUTE_KEYWORDS, FROM_CUES, TO_CUES, AMOUNT_PLACEHOLDER_KEYWORDS,
    AMOUNT_NAME_KEYWORDS, AMOUNT_CLASS_KEYWORDS, NUMERIC_INPUT_TYPES, NUMERIC_INPUT_MODES,
    SWAP_KEYWORDS, APPROVE_KEYWORDS, CONFIRM_KEYWORDS, ENDPOINT_PURPOSE_KEYWORDS,
    SELECTOR_ROLES, DEX_PROFILES, UNKNOWN_DEX,
)
from .models import (
    ActionKind, SwapActionKind, EndpointPurpose, RiskLevel, SwapComplexity,
    RecordedAction, Recording, SwapAction, SwapActionMetadata, ApiEndpoint,
    DexClassification, OptimizationSummary, OptimizedData,
)
from .utils import normalize_url, url_path, extract_params, sanitize_headers

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r'\b(' + '|'.join(TOKEN_SYMBOLS) + r')\b', re.IGNORECASE)
FROM_PATTERN = re.compile(r'\b(' + '|'.join(FROM_CUES) + r')\b')
TO_PATTERN = re.compile(r'\b(' + '|'.join(TO_CUES) + r')\b')


def _label(action: RecordedAction) -> str:
    element = action.element
    if element is None:
        return ''
    parts = (element.text, element.aria_label, element.placeholder, element.name)
    return ' '.join(part for part in parts if part).lower()


def _button_text(action: RecordedAction) -> str:
    element = action.element
    if element is None:
        return ''
    parts = (element.text, element.aria_label, element.value if element.tag in ('input', 'button') else None)
    return ' '.join(part for part in parts if part).lower()


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def is_token_selection(action: RecordedAction) -> bool:
    if action.kind != ActionKind.CLICK or action.element is None:
        return False
    element = action.element
    return (
        _contains_any((element.text or '').lower(), TOKEN_TEXT_KEYWORDS)
        or _contains_any(element.class_name, TOKEN_CLASS_KEYWORDS)
        or element.role == 'token-selector'
        or _contains_any(element.outer_html, TOKEN_MARKUP_KEYWORDS)
    )


def extract_token_info(action: RecordedAction) -> Optional[SwapActionMetadata]:
    element = action.element
    if element is None:
        return None
    match = TOKEN_PATTERN.search(element.text or '')
    if match:
        return SwapActionMetadata(token_symbol=match.group(1).upper(), token_address='0x0')
    for key, value in element.attributes.items():
        if value and _contains_any(key.lower(), TOKEN_ATTRIBUTE_KEYWORDS):
            return SwapActionMetadata(token_symbol=value[:6].upper(), token_address=value)
    match = TOKEN_PATTERN.search(element.outer_html)
    if match:
        return SwapActionMetadata(token_symbol=match.group(1).upper(), token_address='0x0')
    return None


def is_amount_field(action: RecordedAction) -> bool:
    if action.kind != ActionKind.INPUT:
        return False
    if action.is_amount_field:
        return True
    element = action.element
    if element is None:
        return False
    placeholder = (element.placeholder or '').lower()
    name = (element.name or '').lower()
    input_mode = (element.attributes.get('inputmode') or '').lower()
    return (
        _contains_any(placeholder, AMOUNT_PLACEHOLDER_KEYWORDS)
        or _contains_any(name, AMOUNT_NAME_KEYWORDS)
        or _contains_any(element.class_name, AMOUNT_CLASS_KEYWORDS)
        or (element.type or '').lower() in NUMERIC_INPUT_TYPES
        or input_mode in NUMERIC_INPUT_MODES
    )


def classify_button(action: RecordedAction) -> Optional[SwapActionKind]:
    """APPROVE, then CONFIRM, then CLICK_SWAP; the keyword sets overlap"""
    if action.kind != ActionKind.CLICK:
        return None
    text = _button_text(action)
    if not text:
        return None
    if _contains_any(text, APPROVE_KEYWORDS):
        return SwapActionKind.APPROVE
    if _contains_any(text, CONFIRM_KEYWORDS):
        return SwapActionKind.CONFIRM
    if _contains_any(text, SWAP_KEYWORDS):
        return SwapActionKind.CLICK_SWAP
    return None


def classify_endpoint(url: str) -> EndpointPurpose:
    path = url_path(url)
    for purpose, keywords in ENDPOINT_PURPOSE_KEYWORDS:
        if _contains_any(path, keywords):
            return EndpointPurpose(purpose)
    return EndpointPurpose.OTHER


def compression_ratio(original: int, optimized: int) -> float:
    if original == 0:
        return COMPRESSION_SENTINEL
    return 1 - optimized / original


class DataOptimizer:
    """Reduce a frozen Recording into a swap flow and endpoint table"""

    def __init__(self, recording: Recording):
        self.recording = recording

    def optimize(self) -> OptimizedData:
        unique, duplicates = self.remove_duplicates(self.recording.actions)
        flow = self.extract_swap_flow(unique)
        endpoints = self.extract_api_endpoints()
        selectors = self.extract_essential_selectors(flow)
        classification = self.classify_dex(endpoints)

        original = len(self.recording.actions)
        summary = OptimizationSummary(
            original_actions=original,
            optimized_actions=len(flow),
            duplicates_removed=duplicates,
            compression_ratio=compression_ratio(original, len(flow)),
            swap_detected=len(flow) > 0,
            dex_type=classification.dex_type,
            swap_complexity=classification.complexity,
            estimated_success_rate=classification.estimated_success_rate,
            risk_level=classification.risk_level,
        )
        logger.debug(f"Optimized {original} actions into {len(flow)} swap steps, "
                     f"{len(endpoints)} endpoints, dex {classification.dex_type}")
        return OptimizedData(
            swap_flow=flow,
            api_endpoints=endpoints,
            essential_selectors=selectors,
            wallet_actions=self.recording.wallet_actions,
            classification=classification,
            summary=summary,
        )

    def remove_duplicates(self, actions) -> Tuple[List[RecordedAction], int]:
        kept: List[RecordedAction] = []
        last_kept: Dict[Tuple[str, Optional[str]], int] = {}
        removed = 0
        for action in actions:
            key = (action.kind.value, action.selector or action.url or action.value)
            previous = last_kept.get(key)
            if previous is not None and action.timestamp - previous <= DUPLICATE_WINDOW:
                removed += 1
                continue
            last_kept[key] = action.timestamp
            kept.append(action)
        logger.debug(f"Removed {removed} duplicate actions")
        return kept, removed

    def extract_swap_flow(self, actions: List[RecordedAction]) -> Tuple[SwapAction, ...]:
        steps: List[SwapAction] = []
        selections = 0
        for index, action in enumerate(actions):
            if is_token_selection(action):
                token = extract_token_info(action)
                if token is not None:
                    kind = self._token_direction(actions, index, selections)
                    selections += 1
                    steps.append(SwapAction(
                        id=len(steps), action=kind, timestamp=action.timestamp,
                        value=token.token_symbol, selector=action.selector, metadata=token,
                    ))
                    continue

            if is_amount_field(action):
                pending = self._pending_amount(steps, action.timestamp)
                if pending is not None:
                    step = steps[pending]
                    steps[pending] = replace(
                        step, value=action.value,
                        metadata=replace(step.metadata or SwapActionMetadata(), amount=action.value),
                    )
                else:
                    steps.append(SwapAction(
                        id=len(steps), action=SwapActionKind.INPUT_AMOUNT, timestamp=action.timestamp,
                        value=action.value, selector=action.selector, metadata=self._amount_info(action),
                    ))
                continue

            kind = classify_button(action)
            if kind is not None:
                steps.append(SwapAction(id=len(steps), action=kind, timestamp=action.timestamp,
                                        selector=action.selector))

        ordered = sorted(steps, key=lambda step: step.timestamp)
        return tuple(replace(step, id=index) for index, step in enumerate(ordered))

    def _token_direction(self, actions: List[RecordedAction], index: int, selections: int) -> SwapActionKind:
        # nearest neighbour first, the clicked record itself included
        for distance in range(DIRECTION_WINDOW + 1):
            positions = (index - distance, index + distance) if distance else (index,)
            for position in positions:
                if 0 <= position < len(actions):
                    label = _label(actions[position])
                    if FROM_PATTERN.search(label):
                        return SwapActionKind.SELECT_FROM
                    if TO_PATTERN.search(label):
                        return SwapActionKind.SELECT_TO
        return SwapActionKind.SELECT_FROM if selections == 0 else SwapActionKind.SELECT_TO

    def _pending_amount(self, steps: List[SwapAction], timestamp: int) -> Optional[int]:
        for position in range(len(steps) - 1, -1, -1):
            step = steps[position]
            if step.action == SwapActionKind.INPUT_AMOUNT:
                if 0 <= timestamp - step.timestamp <= AMOUNT_MERGE_WINDOW:
                    return position
                return None
        return None

    def _amount_info(self, action: RecordedAction) -> SwapActionMetadata:
        price = slippage = None
        if action.element is not None:
            for key, value in action.element.attributes.items():
                lowered = key.lower()
                if 'price' in lowered or 'rate' in lowered:
                    price = value
                if 'slippage' in lowered or 'tolerance' in lowered:
                    slippage = value
        return SwapActionMetadata(amount=action.value or '0', price=price, slippage=slippage)

    def extract_api_endpoints(self) -> Tuple[ApiEndpoint, ...]:
        endpoints: Dict[Tuple[str, str], ApiEndpoint] = {}
        for request in self.recording.network_requests:
            url = normalize_url(request.url)
            key = (request.method.upper(), url)
            if key in endpoints:
                continue
            response = request.response
            endpoints[key] = ApiEndpoint(
                url=url,
                method=request.method.upper(),
                purpose=classify_endpoint(request.url),
                params=extract_params(request.url),
                headers=sanitize_headers(request.headers),
                response_pattern={
                    'has_response': response is not None,
                    'status_code': response.status if response else None,
                    'content_type': _header(response.headers, 'content-type') if response else None,
                },
            )
        return tuple(endpoints.values())

    def extract_essential_selectors(self, flow: Tuple[SwapAction, ...]) -> Dict[str, str]:
        roles = dict(SELECTOR_ROLES)
        selectors: Dict[str, str] = {}
        for step in flow:
            role = roles.get(step.action.value)
            if role and step.selector and role not in selectors:
                selectors[role] = step.selector
        return selectors

    def classify_dex(self, endpoints: Tuple[ApiEndpoint, ...]) -> DexClassification:
        session_url = self.recording.url.lower()
        api_urls = ' '.join(endpoint.url.lower() for endpoint in endpoints)
        for name, url_keywords, api_keywords, complexity, rate, risk in DEX_PROFILES:
            if _contains_any(session_url, url_keywords) or _contains_any(api_urls, api_keywords):
                return DexClassification(
                    dex_type=name,
                    complexity=SwapComplexity(complexity),
                    estimated_success_rate=rate,
                    risk_level=RiskLevel(risk),
                    matched=True,
                )
        return DexClassification(
            dex_type=UNKNOWN_DEX,
            complexity=SwapComplexity.SIMPLE,
            estimated_success_rate=0,
            risk_level=RiskLevel.LOW,
            matched=False,
        )


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def format_report(optimized: OptimizedData) -> str:
    summary = optimized.summary
    lines = [
        "Optimization complete",
        f"  Original actions:   {summary.original_actions}",
        f"  Optimized actions:  {summary.optimized_actions}",
        f"  Compression ratio:  {summary.compression_ratio * 100:.1f}%",
        f"  Duplicates removed: {summary.duplicates_removed}",
    ]
    if summary.swap_detected:
        lines += [
            "  Swap flow detected",
            f"  DEX (estimate):     {summary.dex_type}",
            f"  Complexity:         {summary.swap_complexity.value}",
            f"  Success rate guess: {summary.estimated_success_rate}%",
            f"  Risk level:         {summary.risk_level.value}",
        ]
    lines.append("Swap flow:")
    for step in optimized.swap_flow:
        lines.append(f"  {step.id + 1}. {step.action.value}{f' ({step.value})' if step.value else ''}")
        if step.metadata and (step.metadata.token_symbol or step.metadata.amount):
            lines.append(f"     token={step.metadata.token_symbol} amount={step.metadata.amount}")
    lines.append("API endpoints:")
    for endpoint in optimized.api_endpoints:
        lines.append(f"  [{endpoint.method}] {endpoint.purpose.value}: {endpoint.url}")
    lines.append("Essential selectors:")
    for role, selector in optimized.essential_selectors.items():
        lines.append(f"  {role}: {selector}")
    if optimized.wallet_actions:
        lines.append(f"Wallet calls: {len(optimized.wallet_actions)}")
    return '\n'.join(lines)
