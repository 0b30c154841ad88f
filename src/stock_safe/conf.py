"""
Settings for stock_safe.

Projects override the defaults with a ``STOCK_SAFE`` dict in Django settings:

    STOCK_SAFE = {
        "LOCK_TIMEOUT": 2.0,
        "RETRY_MAX_ATTEMPTS": 20,
    }

Django does not have to be configured: without settings the defaults apply,
which keeps the in-memory store usable in plain Python.
"""

from __future__ import annotations

import os
from typing import Any

DEFAULTS: dict[str, Any] = {
    # Seconds to wait for a named lock when the caller passes no timeout.
    "LOCK_TIMEOUT": 3.0,
    "RETRY_MAX_ATTEMPTS": 10,
    # Exponential backoff bounds, in seconds.
    "RETRY_BASE_DELAY": 0.01,
    "RETRY_MAX_DELAY": 0.5,
}


def get_setting(name: str) -> Any:
    """
    Return the configured value for `name`, falling back to `DEFAULTS`.

    Raises
    ------
    KeyError
        If `name` is not a known stock_safe setting.
    """
    if name not in DEFAULTS:
        raise KeyError(
            f"stock_safe: unknown setting '{name}'. Available: {sorted(DEFAULTS)}"
        )

    from django.conf import settings

    # settings.configured stays False until first access when settings come
    # from DJANGO_SETTINGS_MODULE.
    configured = settings.configured or bool(os.environ.get("DJANGO_SETTINGS_MODULE"))
    overrides = getattr(settings, "STOCK_SAFE", {}) if configured else {}
    return overrides.get(name, DEFAULTS[name])
