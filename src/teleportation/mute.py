"""
Mute gate for host notifications.

A muted session's notifications are not forwarded to the operator. Mute
status lives on the relay session record (``muted`` or ``meta.muted``) and
is cached per session for a short TTL. The gate fails open: when the relay
can't answer, a stale cached value is used if there is one, otherwise the
session counts as not muted.

Hook invocations are separate processes, so the cache can be persisted to
a small JSON file to be shared between them.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .protocols import RelayInterface

logger = logging.getLogger(__name__)


class MuteGate:
    """TTL-cached mute lookup: ``session_id -> (muted, timestamp)``."""

    def __init__(
        self,
        relay: Optional[RelayInterface],
        ttl: float = 60.0,
        clock: Callable[[], float] = time.time,
        cache_file: Optional[Path] = None,
    ):
        self.relay = relay
        self.ttl = ttl
        self.clock = clock
        self.cache_file = Path(cache_file) if cache_file else None
        self._cache: Dict[str, Tuple[bool, float]] = self._load()

    def is_muted(self, session_id: str) -> bool:
        if not session_id or self.relay is None:
            return False

        cached = self._cache.get(session_id)
        now = self.clock()
        if cached is not None and now - cached[1] < self.ttl:
            return cached[0]

        response = self.relay.get_session(session_id)
        if response.ok and isinstance(response.data, dict):
            session = response.data
            meta = session.get("meta") if isinstance(session.get("meta"), dict) else {}
            muted = session.get("muted") is True or meta.get("muted") is True
            self._cache[session_id] = (muted, now)
            self._save()
            return muted

        if response.status == 404:
            # Unknown session: not muted, and nothing worth caching
            return False

        logger.debug("Mute lookup for %s failed: %s", session_id, response.error)
        if cached is not None:
            return cached[0]
        return False

    def clear_mute_cache(self, session_id: str) -> None:
        if session_id and self._cache.pop(session_id, None) is not None:
            self._save()

    def clear_all_mute_cache(self) -> None:
        self._cache.clear()
        self._save()

    def cache_stats(self) -> dict:
        now = self.clock()
        return {
            "size": len(self._cache),
            "entries": [
                {"session_id": sid, "muted": muted, "age": now - ts}
                for sid, (muted, ts) in self._cache.items()
            ],
        }

    def _load(self) -> Dict[str, Tuple[bool, float]]:
        if self.cache_file is None or not self.cache_file.exists():
            return {}
        try:
            raw = json.loads(self.cache_file.read_text())
        except (OSError, ValueError):
            return {}
        if not isinstance(raw, dict):
            return {}
        cache = {}
        for sid, entry in raw.items():
            if (
                isinstance(entry, list) and len(entry) == 2
                and isinstance(entry[0], bool) and isinstance(entry[1], (int, float))
            ):
                cache[sid] = (entry[0], float(entry[1]))
        return cache

    def _save(self) -> None:
        if self.cache_file is None:
            return
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(json.dumps(
                {sid: [muted, ts] for sid, (muted, ts) in self._cache.items()}
            ))
        except OSError as e:
            logger.debug("Could not persist mute cache: %s", e)
