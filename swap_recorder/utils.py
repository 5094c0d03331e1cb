# utils.py
import asyncio
import time
from typing import Dict, Optional
from urllib.parse import urlparse, parse_qsl

from .constants import (
    API_KEYWORDS, RESPONSE_KEYWORDS, MUTATING_METHODS, STATIC_ASSET_EXTENSIONS,
    STATIC_ASSET_MARKERS, IMPORTANT_HEADERS, SECRET_HEADERS, MASKED_VALUE,
)


def now_ms() -> int:
    return int(time.time() * 1000)


async def sleep_ms(ms: float):
    await asyncio.sleep(max(ms, 0) / 1000)


def normalize_url(url: str) -> str:
    """origin + path, without query, fragment or trailing slashes"""
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip('/')
    return url.split('#', 1)[0].split('?', 1)[0].rstrip('/')


def url_path(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return parsed.path.lower()
    return url.split('#', 1)[0].split('?', 1)[0].lower()


def extract_params(url: str) -> Dict[str, str]:
    query = urlparse(url).query
    return dict(parse_qsl(query, keep_blank_values=True)) if query else {}


def sanitize_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    if not headers:
        return {}
    sanitized = {}
    for key, value in headers.items():
        lowered = key.lower()
        if lowered not in IMPORTANT_HEADERS:
            continue
        sanitized[key] = MASKED_VALUE if lowered in SECRET_HEADERS else value
    return sanitized


def is_static_asset(url: str) -> bool:
    path = url_path(url)
    if path.endswith(STATIC_ASSET_EXTENSIONS):
        return True
    return any(marker in path for marker in STATIC_ASSET_MARKERS)


def is_relevant_request(url: str, method: str) -> bool:
    path = url_path(url)
    wanted = any(keyword in path for keyword in API_KEYWORDS) or method.upper() in MUTATING_METHODS
    return wanted and not is_static_asset(url)


def should_log_response(url: str) -> bool:
    path = url_path(url)
    return any(keyword in path for keyword in RESPONSE_KEYWORDS) and not is_static_asset(url)


def short_url(url: str, limit: int = 80) -> str:
    return url if len(url) <= limit else url[:limit] + '...'
