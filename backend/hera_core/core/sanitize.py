"""Sanitization — telemetry redaction and display-string cleaning.

Invariants:
    - redact() never mutates its input; returns a deep copy with sensitive keys removed
    - Sensitive keys: email, permissions, passwords, secrets, tokens, api keys, billing, card, ssn
    - Email addresses embedded in free text are masked
    - clean_display() strips markup and script URLs from strings bound for the UI
"""

import re
from typing import Any, Mapping

_SENSITIVE_KEY = re.compile(
    r"(^email$|^permissions$|password|secret|token|api_?keys?|billing|credit_card|"
    r"card_number|^ssn$|social_security|authorization)",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_SCRIPT_URL = re.compile(r"javascript:", re.IGNORECASE)

REDACTED = "[redacted]"


def is_sensitive_key(key: str) -> bool:
    return bool(_SENSITIVE_KEY.search(str(key)))


def mask_emails(text: str) -> str:
    return EMAIL_PATTERN.sub(REDACTED, text)


def redact(value: Any) -> Any:
    """Deep-copy a structured payload without sensitive keys or embedded emails."""
    if isinstance(value, Mapping):
        return {
            key: redact(item)
            for key, item in value.items()
            if not is_sensitive_key(key)
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    if isinstance(value, str):
        return mask_emails(value)
    return value


def clean_display(value: Any) -> Any:
    """Strip markup from strings (recursively) before they are rendered by a client."""
    if isinstance(value, str):
        value = _SCRIPT_BLOCK.sub("", value)
        value = _SCRIPT_URL.sub("", value)
        value = _EVENT_HANDLER.sub("", value)
        return value.replace("<", "").replace(">", "")
    if isinstance(value, Mapping):
        return {key: clean_display(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [clean_display(item) for item in value]
    return value
