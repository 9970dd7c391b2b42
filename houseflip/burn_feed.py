"""
houseflip - Burn Feed

Read-only view over burns.json, written by the buyback keeper.
Each entry is a dict with at least an ISO-8601 "timestamp".
"""

import json
import logging
import math
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def parse_timestamp(value) -> Optional[float]:
    """ISO-8601 string -> unix seconds, None if unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


class BurnFeed:
    def __init__(self, burns_path, interval_sec: int = 150):
        self.burns_path = Path(burns_path)
        self.interval_sec = interval_sec

    def read(self) -> List[dict]:
        if not self.burns_path.exists():
            return []
        try:
            data = json.loads(self.burns_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            log.warning(f"Could not read burns from {self.burns_path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def latest(self, limit=DEFAULT_LIMIT, now: Optional[float] = None) -> dict:
        """
        Latest burns, newest first, plus the countdown to the next one.

        Returns:
            {
                "burns": [...],
                "next_burn_at": ISO timestamp or None,
                "seconds_remaining": int or None,
                "interval_seconds": ...
            }
        """
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = DEFAULT_LIMIT
        limit = max(0, min(limit, MAX_LIMIT))
        now = time.time() if now is None else now

        burns = self.read()
        latest = list(reversed(burns[-limit:])) if limit else []

        next_burn_at = None
        seconds_remaining = None
        last = burns[-1] if burns and isinstance(burns[-1], dict) else {}
        last_ts = parse_timestamp(last.get("timestamp"))
        if last_ts is not None:
            next_ts = last_ts + self.interval_sec
            next_burn_at = datetime.fromtimestamp(next_ts, tz=timezone.utc).isoformat()
            seconds_remaining = max(0, math.ceil(next_ts - now))

        return {
            "burns": latest,
            "next_burn_at": next_burn_at,
            "seconds_remaining": seconds_remaining,
            "interval_seconds": self.interval_sec,
        }
