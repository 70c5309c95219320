"""
Per-principal fixed-window gate in front of the export sink.

Counters live in a ``limits`` storage backend (the same library Flask-Limiter
runs on). ``memory://`` keeps them process-local and lost on restart; point
``EXPORT_RATELIMIT_STORAGE_URI`` at Redis to share them across instances.
Each hit is a single atomic increment-or-reset inside the storage, so bursts
from one principal cannot undercount.
"""
from __future__ import annotations

import math
import time
from typing import Optional

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

DEFAULT_EXPORT_LIMIT = "5 per hour"
_NAMESPACE = "feedback-export"


class ExportRateLimiter:
    def __init__(self, storage_uri: str = "memory://", limit: str = DEFAULT_EXPORT_LIMIT):
        self.storage_uri = storage_uri
        self._item = parse(limit)
        self._storage = storage_from_string(storage_uri)
        self._strategy = FixedWindowRateLimiter(self._storage)

    @property
    def limit(self) -> str:
        return str(self._item)

    def allow(self, principal_id) -> bool:
        """Consume one slot; False once the window is used up."""
        return self._strategy.hit(self._item, _NAMESPACE, str(principal_id))

    def remaining(self, principal_id) -> int:
        return self._strategy.get_window_stats(self._item, _NAMESPACE, str(principal_id)).remaining

    def retry_after(self, principal_id) -> Optional[int]:
        reset_at = self._strategy.get_window_stats(self._item, _NAMESPACE, str(principal_id)).reset_time
        if not reset_at:
            return None
        return max(0, math.ceil(reset_at - time.time()))

    def reset(self, principal_id) -> None:
        self._strategy.clear(self._item, _NAMESPACE, str(principal_id))

    def reset_all(self) -> None:
        """Drop every counter in the backing storage (tests, ops)."""
        self._storage.reset()


def init_export_limiter(app) -> ExportRateLimiter:
    """Build the app-scoped limiter once; the lifecycle receives it by injection."""
    uri = app.config.get("EXPORT_RATELIMIT_STORAGE_URI") or app.config.get("RATELIMIT_STORAGE_URI") or "memory://"
    limiter = ExportRateLimiter(uri, app.config.get("EXPORT_RATE_LIMIT", DEFAULT_EXPORT_LIMIT))
    app.extensions["export_rate_limiter"] = limiter
    return limiter
