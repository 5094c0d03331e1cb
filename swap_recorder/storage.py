# storage.py
import json
import logging
import re
import uuid
from pathlib import Path
from typing import Optional, Dict, Any, List

import yaml

from .constants import RECORDINGS_DIR
from .exceptions import RecorderError
from .models import Recording, OptimizedData, to_dict
from .utils import now_ms

logger = logging.getLogger(__name__)

SUFFIXES = {'json': '.json', 'yaml': '.yaml'}


def _safe_name(name: str) -> str:
    return re.sub(r'[^\w.-]+', '_', name).strip('_') or 'recording'


class RecordingStore:
    """Recordings on disk as human readable JSON or YAML"""

    def __init__(self, directory: str = RECORDINGS_DIR, fmt: str = 'json'):
        if fmt not in SUFFIXES:
            raise RecorderError(f"Unsupported recording format: {fmt}")
        self.directory = Path(directory)
        self.fmt = fmt

    def _dump(self, data: Dict[str, Any], path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix in ('.yaml', '.yml'):
            text = yaml.safe_dump(data, allow_unicode=True, default_flow_style=False, sort_keys=False)
        else:
            text = json.dumps(data, ensure_ascii=False, indent=2)
        path.write_text(text, encoding='utf-8')

    def _load(self, path: Path) -> Dict[str, Any]:
        text = path.read_text(encoding='utf-8')
        if path.suffix in ('.yaml', '.yml'):
            return yaml.safe_load(text)
        return json.loads(text)

    def _resolve(self, identifier: str) -> Path:
        path = Path(identifier)
        if path.exists():
            return path
        return self.directory / identifier

    def save(self, recording: Recording, name: Optional[str] = None) -> str:
        identifier = f"{_safe_name(name or recording.name)}_{now_ms()}_{uuid.uuid4().hex[:8]}{SUFFIXES[self.fmt]}"
        path = self.directory / identifier
        self._dump(to_dict(recording), path)
        logger.info(f"Recording saved to {path}")
        return identifier

    def load(self, identifier: str) -> Recording:
        path = self._resolve(identifier)
        if not path.exists():
            raise RecorderError(f"Recording not found: {identifier}")
        try:
            return Recording.from_dict(self._load(path))
        except (KeyError, TypeError, ValueError, AttributeError, OSError, yaml.YAMLError) as e:
            raise RecorderError(f"Not a recording: {identifier} ({e!r})") from e

    def list(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(
            path.name for path in self.directory.iterdir()
            if path.is_file() and path.suffix in ('.json', '.yaml', '.yml')
        )

    def delete(self, identifier: str) -> bool:
        path = self._resolve(identifier)
        if not path.is_file():
            logger.warning(f"Nothing to delete for {identifier}")
            return False
        path.unlink()
        logger.info(f"Deleted recording {identifier}")
        return True

    def export_optimized(self, optimized: OptimizedData, recording: Recording,
                         filename: Optional[str] = None) -> Path:
        filename = filename or f"{_safe_name(recording.name)}_optimized_{now_ms()}_{uuid.uuid4().hex[:8]}{SUFFIXES[self.fmt]}"
        path = self.directory / 'optimized' / filename
        self._dump({
            'optimized': to_dict(optimized),
            'original': {
                'id': recording.id,
                'url': recording.url,
                'duration': recording.duration,
                'created_at': recording.created_at,
            },
        }, path)
        logger.info(f"Optimized data saved to {path}")
        return path
