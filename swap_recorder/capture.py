# capture.py
import logging
import uuid
from typing import Optional, Dict, Any, List

from playwright.async_api import Page, Frame, Error as PlaywrightError

from .constants import BINDING_NAME
from .dom_script import CAPTURE_SCRIPT
from .models import (
    ActionKind, RecordedAction, ElementSnapshot, ElementGeometry, Coordinates,
)
from .utils import now_ms

logger = logging.getLogger(__name__)


class ContextBuffer:
    """Raw action records emitted by one browsing context"""

    def __init__(self, frame: Optional[Frame] = None, url: str = ''):
        self.frame = frame
        self.url = url
        self.records: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self.records)

    def push(self, record: Dict[str, Any]):
        self.records.append(record)

    def drain(self) -> List[Dict[str, Any]]:
        drained, self.records = self.records, []
        return drained

    def count(self, kind: str) -> int:
        return sum(1 for record in self.records if record.get('type') == kind)

    def trim(self, threshold: int, keep: int) -> int:
        if len(self.records) <= threshold:
            return 0
        removed = len(self.records) - keep
        self.records = self.records[-keep:]
        return removed


class ActionCapture:
    def __init__(self, page: Page):
        self.page = page
        self.buffers: Dict[Frame, ContextBuffer] = {}
        self.installed = False

    async def install(self) -> int:
        if not self.installed:
            await self.page.expose_binding(BINDING_NAME, self._on_message)
            await self.page.add_init_script(CAPTURE_SCRIPT)
            self.installed = True
        return await self.inject_all()

    async def inject_all(self) -> int:
        injected = 0
        for frame in self.page.frames:
            self.register(frame)
            if await self.inject(frame):
                injected += 1
        logger.debug(f"Capture script active in {injected}/{len(self.page.frames)} frames")
        return injected

    async def inject(self, frame: Frame) -> bool:
        try:
            await frame.evaluate(CAPTURE_SCRIPT)
            return True
        except PlaywrightError as e:
            logger.debug(f"Could not instrument frame {frame.url}: {e}")
            return False

    def register(self, frame: Frame) -> ContextBuffer:
        buffer = self.buffers.get(frame)
        if buffer is None:
            buffer = ContextBuffer(frame, frame.url)
            self.buffers[frame] = buffer
        return buffer

    def main_buffer(self) -> ContextBuffer:
        return self.register(self.page.main_frame)

    def _on_message(self, source: Dict[str, Any], record: Dict[str, Any]):
        if not isinstance(record, dict):
            return
        frame = source.get('frame') if source else None
        buffer = self.register(frame) if frame is not None else self.main_buffer()
        buffer.push(record)

    def record_navigation(self, url: str):
        self.main_buffer().push({'type': 'navigate', 'timestamp': now_ms(), 'url': url})

    def total(self) -> int:
        return sum(len(buffer) for buffer in self.buffers.values())

    def count(self, kind: str) -> int:
        return sum(buffer.count(kind) for buffer in self.buffers.values())

    def drain_all(self) -> List[Dict[str, Any]]:
        records = []
        for buffer in self.buffers.values():
            records.extend(buffer.drain())
        return records

    def trim(self, threshold: int, keep: int) -> int:
        return sum(buffer.trim(threshold, keep) for buffer in self.buffers.values())


def _mapping(value) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _geometry(data: Optional[Dict[str, Any]]) -> Optional[ElementGeometry]:
    if not data or not isinstance(data, dict):
        return None
    return ElementGeometry(
        top=data.get('top', 0),
        left=data.get('left', 0),
        width=data.get('width', 0),
        height=data.get('height', 0),
    )


def parse_element(data: Optional[Dict[str, Any]]) -> Optional[ElementSnapshot]:
    if not data:
        return None
    computed = _mapping(data.get('computed'))
    frame_info = _mapping(data.get('frameInfo'))
    parents = data.get('parents')
    return ElementSnapshot(
        tag=data.get('tag', ''),
        text=data.get('text') or '',
        value=data.get('value'),
        placeholder=data.get('placeholder'),
        type=data.get('type'),
        class_name=data.get('className') or '',
        id=data.get('id') or '',
        name=data.get('name'),
        role=data.get('role'),
        aria_label=data.get('ariaLabel'),
        test_id=data.get('dataTestId'),
        href=data.get('href'),
        outer_html=data.get('outerHTML') or '',
        attributes=_mapping(data.get('attributes')),
        position=_geometry(data.get('position')),
        display=computed.get('display'),
        visibility=computed.get('visibility'),
        opacity=computed.get('opacity'),
        z_index=computed.get('zIndex'),
        parents=tuple(parents) if isinstance(parents, (list, tuple)) else (),
        in_frame=bool(frame_info.get('isInFrame', False)),
        frame_url=frame_info.get('frameUrl'),
    )


def record_timestamp(raw: Dict[str, Any]) -> Optional[int]:
    """Absolute timestamp of a page record, None when missing or not numeric"""
    value = raw.get('timestamp')
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_raw_action(raw: Dict[str, Any], start_ms: int, action_id: Optional[str] = None) -> Optional[RecordedAction]:
    """Convert one page record into a RecordedAction with a session-relative timestamp"""
    try:
        kind = ActionKind(raw.get('type'))
    except ValueError:
        logger.warning(f"Skipping record of unknown kind: {raw.get('type')!r}")
        return None

    timestamp = record_timestamp(raw)
    if timestamp is None:
        logger.warning(f"Skipping {kind.value} record with bad timestamp: {raw.get('timestamp')!r}")
        return None
    point = raw.get('coordinates')
    element = raw.get('element')
    if (point and not isinstance(point, dict)) or (element and not isinstance(element, dict)):
        logger.warning(f"Skipping malformed {kind.value} record")
        return None

    coordinates = None
    if point:
        coordinates = Coordinates(
            x=point.get('x', 0),
            y=point.get('y', 0),
            page_x=point.get('pageX'),
            page_y=point.get('pageY'),
        )

    return RecordedAction(
        id=action_id or str(uuid.uuid4()),
        kind=kind,
        timestamp=max(timestamp - start_ms, 0),
        selector=raw.get('selector'),
        xpath=raw.get('xpath'),
        value=raw.get('value'),
        url=raw.get('url'),
        coordinates=coordinates,
        element=parse_element(element),
        form_data=raw.get('formData'),
        wallet_method=raw.get('method'),
        wallet_params=raw.get('params'),
        is_swap_candidate=bool(raw.get('isSwapAction', False)),
        is_amount_field=bool(raw.get('isAmountInput', False)),
    )
