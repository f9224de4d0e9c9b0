"""
Security utilities: API key auth, rate limiting, prompt-input sanitisation.
"""

from __future__ import annotations

import re
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from pool_agent.core.config import Settings, get_settings

# ── Rate limiter (attached to FastAPI app in main.py) ───────
limiter = Limiter(key_func=get_remote_address)

# ── API Key authentication ──────────────────────────────────
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: Annotated[str | None, Security(_api_key_header)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    if not api_key or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API key",
        )
    return api_key


# ── Prompt input hygiene ────────────────────────────────────
_HTML_TAG = re.compile(r"</?[^>]+(>|$)")

_INJECTION_PATTERNS = [
    "SYSTEM:", "ASSISTANT:", "USER:", "```system",
    "<|im_start|>", "<|im_end|>", "<<SYS>>", "<</SYS>>",
]


def strip_html(text: str) -> str:
    """Drop HTML tags from post bodies (Truth Social returns rendered HTML)."""
    return _HTML_TAG.sub("", text or "").strip()


def sanitize_for_prompt(text: str) -> str:
    """Strip HTML and redact prompt-injection markers from third-party text."""
    sanitized = strip_html(text)
    for pattern in _INJECTION_PATTERNS:
        sanitized = sanitized.replace(pattern, "[REDACTED]")
    return sanitized
