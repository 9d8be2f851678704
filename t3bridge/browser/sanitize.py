"""Keep access tokens and other secrets out of log output"""

import re
from typing import Dict, Iterable, Optional

REDACTED = "***REDACTED***"

SENSITIVE_HEADERS = {'authorization', 'cookie', 'set-cookie', 'x-api-key'}

# Token-shaped values that should never be logged even when not passed explicitly
_SECRET_PATTERNS = [
    (re.compile(r'(Bearer\s+)[A-Za-z0-9_\-\.=]+', re.IGNORECASE), r'\1' + REDACTED),
    (re.compile(r'((?:access_?token|auth_?token|token)\s*[:=]\s*[\'"]?)[A-Za-z0-9_\-\.]+', re.IGNORECASE),
     r'\1' + REDACTED),
]


def mask_secrets(text: str, secrets: Optional[Iterable[str]] = None) -> str:
    """
    Mask known secrets and token-shaped values in a string

    Args:
        text: Text that may contain secrets (URLs, log lines, page snippets)
        secrets: Literal secret values to mask wherever they appear

    Returns:
        Text with secrets replaced by a redaction marker
    """
    if not text:
        return text

    masked = text
    for secret in secrets or []:
        # Short values would mask ordinary words
        if secret and len(secret) >= 6:
            masked = masked.replace(secret, REDACTED)

    for pattern, replacement in _SECRET_PATTERNS:
        masked = pattern.sub(replacement, masked)

    return masked


def sanitize_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Copy of request headers with credential headers redacted"""
    return {
        name: (REDACTED if name.lower() in SENSITIVE_HEADERS else value)
        for name, value in headers.items()
    }
