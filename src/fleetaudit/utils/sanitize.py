"""Error message sanitization to prevent credential leakage into reports."""

from __future__ import annotations

import os
import re


def sanitize_error(message: str) -> str:
    """Sanitize error messages to prevent token and path leakage."""
    if not message:
        return message

    sanitized = message
    # Redact GitHub token patterns
    sanitized = re.sub(r"gh[pousr]_[A-Za-z0-9]{20,}", "[REDACTED_TOKEN]", sanitized)
    sanitized = re.sub(r"github_pat_[A-Za-z0-9_]{20,}", "[REDACTED_TOKEN]", sanitized)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)
    sanitized = re.sub(r"token\s+[A-Za-z0-9_]{20,}", "token [REDACTED]", sanitized)
    sanitized = re.sub(r"Authorization:\s*\S+", "Authorization: [REDACTED]", sanitized)

    # Redact user home paths
    home = os.environ.get("USERPROFILE") or os.environ.get("HOME") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    return sanitized
