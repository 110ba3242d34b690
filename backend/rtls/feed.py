# rtls/feed.py
# ------------------------------------------------------------
# Redis-backed update feed for the SSE stream.
#
# Storage model:
# - updates:stream -> capped list of JSON messages
#   {"type": "data_updated" | "alert_raised" | "admin_notice", "data": {...}}
# - updates:seq    -> sequence number of the newest message
#
# Readers track a sequence number rather than a list index: once
# the list is capped its length stops growing, but seq does not.
# ------------------------------------------------------------

from __future__ import annotations

import json
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Tuple

import structlog

from .models import Alert, to_json

logger = structlog.get_logger(__name__)

K_UPDATES = "updates:stream"      # list of JSON messages (SSE pulls from here)
K_UPDATES_SEQ = "updates:seq"     # sequence number of the newest message


def push_update(r, payload: Dict[str, Any], backlog: int = 500) -> None:
    """
    payload example:
      {"type": "data_updated", "data": {"devices": [...], "alerts": [...]}}
    """
    # seq + append + trim in one transaction so readers can map
    # sequence numbers onto list positions
    pipe = r.pipeline(transaction=True)
    pipe.incr(K_UPDATES_SEQ)
    pipe.rpush(K_UPDATES, json.dumps(payload))
    pipe.ltrim(K_UPDATES, -backlog, -1)
    pipe.execute()


def feed_position(r) -> int:
    """
    Sequence number of the newest message (0 when the feed is empty).
    """
    return int(r.get(K_UPDATES_SEQ) or 0)


def read_since(r, last_seq: int) -> Tuple[List[Dict[str, Any]], int]:
    """
    Return (messages, newest_seq) for messages after last_seq.
    Messages already trimmed away are skipped.
    """
    pipe = r.pipeline(transaction=True)
    pipe.get(K_UPDATES_SEQ)
    pipe.llen(K_UPDATES)
    seq_raw, length = pipe.execute()
    seq = int(seq_raw or 0)

    if seq < last_seq:
        # feed was reset underneath the reader; resync to "now"
        return [], seq
    count = min(seq - last_seq, length)
    if count <= 0:
        return [], seq
    return [json.loads(raw) for raw in r.lrange(K_UPDATES, -count, -1)], seq


def clear_feed(r) -> None:
    r.delete(K_UPDATES, K_UPDATES_SEQ)


class UpdateFeed:
    """
    Subscriber for RTLSService.on_data_updated.

    Alerts raised between two publishes are buffered (no I/O under
    the service lock) and flushed ahead of the next snapshot. The
    buffer keeps at most `backlog` alerts, the same cap as the feed.
    """

    def __init__(self, r, backlog: int = 500) -> None:
        self.r = r
        self.backlog = backlog
        self._pending: Deque[Dict[str, Any]] = deque(maxlen=backlog)
        self._lock = threading.Lock()

    def on_alert(self, alert: Alert) -> None:
        with self._lock:
            self._pending.append(to_json(alert))

    def __call__(self, snapshot: Dict[str, Any]) -> None:
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()

        for alert in pending:
            push_update(self.r, {"type": "alert_raised", "data": alert}, self.backlog)
        push_update(self.r, {"type": "data_updated", "data": snapshot}, self.backlog)
        logger.debug("feed_published", alerts=len(pending), devices=len(snapshot.get("devices", [])))
