# models.py
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Optional, Dict, Any, Tuple


class ActionKind(str, Enum):
    CLICK = 'click'
    INPUT = 'input'
    NAVIGATE = 'navigate'
    WALLET = 'wallet'
    WAIT = 'wait'
    SUBMIT = 'submit'


class SwapActionKind(str, Enum):
    SELECT_FROM = 'SELECT_FROM'
    SELECT_TO = 'SELECT_TO'
    INPUT_AMOUNT = 'INPUT_AMOUNT'
    CLICK_SWAP = 'CLICK_SWAP'
    APPROVE = 'APPROVE'
    CONFIRM = 'CONFIRM'


class EndpointPurpose(str, Enum):
    QUOTE = 'quote'
    SWAP = 'swap'
    APPROVE = 'approve'
    TOKEN_LIST = 'token_list'
    BALANCE = 'balance'
    GAS = 'gas'
    OTHER = 'other'


class RiskLevel(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class SwapComplexity(str, Enum):
    SIMPLE = 'simple'
    MEDIUM = 'medium'
    COMPLEX = 'complex'


class SessionState(str, Enum):
    IDLE = 'idle'
    PREPARING = 'preparing'
    RECORDING = 'recording'
    STOPPING = 'stopping'
    STOPPED = 'stopped'


class StopReason(str, Enum):
    OPERATOR = 'operator'
    ERROR_LIMIT = 'error_limit'
    PAGE_CLOSED = 'page_closed'


class WalletCapability(str, Enum):
    ABSENT = 'absent'
    PRESENT = 'present'
    FAILED = 'failed'


@dataclass(frozen=True)
class Coordinates:
    x: float
    y: float
    page_x: Optional[float] = None
    page_y: Optional[float] = None


@dataclass(frozen=True)
class ElementGeometry:
    top: float
    left: float
    width: float
    height: float


@dataclass(frozen=True)
class ElementSnapshot:
    """Element descriptor captured in the page at event time"""
    tag: str
    text: str = ''
    value: Optional[str] = None
    placeholder: Optional[str] = None
    type: Optional[str] = None
    class_name: str = ''
    id: str = ''
    name: Optional[str] = None
    role: Optional[str] = None
    aria_label: Optional[str] = None
    test_id: Optional[str] = None
    href: Optional[str] = None
    outer_html: str = ''
    attributes: Dict[str, str] = field(default_factory=dict)
    position: Optional[ElementGeometry] = None
    display: Optional[str] = None
    visibility: Optional[str] = None
    opacity: Optional[str] = None
    z_index: Optional[str] = None
    parents: Tuple[str, ...] = ()
    in_frame: bool = False
    frame_url: Optional[str] = None


@dataclass(frozen=True)
class RecordedAction:
    id: str
    kind: ActionKind
    timestamp: int
    selector: Optional[str] = None
    xpath: Optional[str] = None
    value: Optional[str] = None
    url: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    element: Optional[ElementSnapshot] = None
    form_data: Optional[Dict[str, Any]] = None
    wallet_method: Optional[str] = None
    wallet_params: Any = None
    is_swap_candidate: bool = False
    is_amount_field: bool = False


@dataclass(frozen=True)
class NetworkResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NetworkRequest:
    id: str
    timestamp: int
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    resource_type: Optional[str] = None
    response: Optional[NetworkResponse] = None


@dataclass(frozen=True)
class WalletAction:
    timestamp: int
    method: Optional[str] = None
    params: Any = None
    selector: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class FrameInfo:
    url: str
    is_main_frame: bool
    name: str = ''
    title: str = ''
    has_wallet: bool = False
    element_count: int = 0
    error: bool = False


@dataclass(frozen=True)
class WalletProbe:
    capability: WalletCapability
    is_metamask: bool = False
    chain_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ChainInfo:
    chain_id: str
    network: str
    gas_price: str = '0'
    block_time: int = 12
    native_symbol: str = 'ETH'
    native_decimals: int = 18


@dataclass(frozen=True)
class BalanceInfo:
    address: str
    native_balance: str
    native_balance_eth: str
    timestamp: int


@dataclass(frozen=True)
class SwapSettings:
    slippage: str
    gas_limit: str
    gas_price: str = 'auto'


@dataclass(frozen=True)
class Recording:
    id: str
    name: str
    url: str
    created_at: str
    duration: int
    actions: Tuple[RecordedAction, ...] = ()
    network_requests: Tuple[NetworkRequest, ...] = ()
    wallet_actions: Tuple[WalletAction, ...] = ()
    frames: Tuple[FrameInfo, ...] = ()
    has_wallet: bool = False
    chain_info: Optional[ChainInfo] = None
    balance_info: Optional[BalanceInfo] = None
    swap_settings: Optional[SwapSettings] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Recording':
        return cls(
            id=data['id'],
            name=data.get('name', ''),
            url=data['url'],
            created_at=data['created_at'],
            duration=data.get('duration', 0),
            actions=tuple(_action_from_dict(a) for a in data.get('actions', [])),
            network_requests=tuple(_request_from_dict(r) for r in data.get('network_requests', [])),
            wallet_actions=tuple(WalletAction(**w) for w in data.get('wallet_actions', [])),
            frames=tuple(FrameInfo(**f) for f in data.get('frames', [])),
            has_wallet=data.get('has_wallet', False),
            chain_info=_optional(ChainInfo, data.get('chain_info')),
            balance_info=_optional(BalanceInfo, data.get('balance_info')),
            swap_settings=_optional(SwapSettings, data.get('swap_settings')),
        )


@dataclass(frozen=True)
class SwapActionMetadata:
    token_symbol: Optional[str] = None
    token_address: Optional[str] = None
    amount: Optional[str] = None
    price: Optional[str] = None
    slippage: Optional[str] = None


@dataclass(frozen=True)
class SwapAction:
    id: int
    action: SwapActionKind
    timestamp: int
    value: Optional[str] = None
    selector: Optional[str] = None
    metadata: Optional[SwapActionMetadata] = None


@dataclass(frozen=True)
class ApiEndpoint:
    url: str
    method: str
    purpose: EndpointPurpose
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    response_pattern: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DexClassification:
    """Advisory guess at the venue; not a guarantee"""
    dex_type: str
    complexity: SwapComplexity
    estimated_success_rate: int
    risk_level: RiskLevel
    matched: bool


@dataclass(frozen=True)
class OptimizationSummary:
    original_actions: int
    optimized_actions: int
    duplicates_removed: int
    compression_ratio: float
    swap_detected: bool
    dex_type: str
    swap_complexity: SwapComplexity
    estimated_success_rate: int
    risk_level: RiskLevel


@dataclass(frozen=True)
class OptimizedData:
    swap_flow: Tuple[SwapAction, ...]
    api_endpoints: Tuple[ApiEndpoint, ...]
    essential_selectors: Dict[str, str]
    wallet_actions: Tuple[WalletAction, ...]
    classification: DexClassification
    summary: OptimizationSummary


def to_dict(obj: Any) -> Any:
    """Convert models into plain JSON/YAML-safe data"""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_dict(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(key): to_dict(value) for key, value in obj.items()}
    return obj


def _optional(cls, data: Optional[Dict[str, Any]]):
    return cls(**data) if data else None


def _element_from_dict(data: Dict[str, Any]) -> ElementSnapshot:
    values = dict(data)
    values['position'] = _optional(ElementGeometry, values.get('position'))
    values['parents'] = tuple(values.get('parents') or ())
    values['attributes'] = dict(values.get('attributes') or {})
    return ElementSnapshot(**values)


def _action_from_dict(data: Dict[str, Any]) -> RecordedAction:
    values = dict(data)
    values['kind'] = ActionKind(values['kind'])
    values['coordinates'] = _optional(Coordinates, values.get('coordinates'))
    if values.get('element'):
        values['element'] = _element_from_dict(values['element'])
    return RecordedAction(**values)


def _request_from_dict(data: Dict[str, Any]) -> NetworkRequest:
    values = dict(data)
    values['response'] = _optional(NetworkResponse, values.get('response'))
    return NetworkRequest(**values)
