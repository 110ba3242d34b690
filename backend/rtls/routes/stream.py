# rtls/routes/stream.py
# ------------------------------------------------------------
# Server-Sent Events (SSE) stream
#
# The simulator publishes into the Redis update feed (see
# rtls/feed.py). This endpoint replays new items to connected
# clients:
# - event: data_updated  data: {"devices": [...], "alerts": [...]}
# - event: alert_raised  data: <alert>
# - event: admin_notice  data: {...}
# ------------------------------------------------------------

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
import asyncio
import json
import time
from typing import AsyncGenerator

from ..redis_client import get_redis
from ..feed import feed_position, read_since

router = APIRouter(tags=["stream"])


def sse(event: str, data_obj) -> str:
    """
    Build an SSE message.

    Format:
        event: name
        data: json
    """
    return f"event: {event}\ndata: {json.dumps(data_obj)}\n\n"


@router.get("/api/stream")
def stream():
    """
    Live updates stream.

    Implementation notes:
    - Starts from "now" (does not replay history) to avoid huge bursts.
    - Sends a heartbeat periodically to keep connection alive.
    - Uses async sleep (does NOT block the server worker).
    """
    r = get_redis()
    last_seq = feed_position(r)  # start from "now"

    async def gen() -> AsyncGenerator[str, None]:
        nonlocal last_seq

        # initial hello + retry hint (client reconnect delay)
        yield "retry: 2000\n\n"
        yield sse("hello", {"ok": True, "ts": time.time()})

        heartbeat_every = 10  # seconds
        poll_every = 0.5      # seconds (light polling)

        last_heartbeat = time.time()

        while True:
            items, last_seq = read_since(r, last_seq)
            for payload in items:
                yield sse(payload.get("type", "update"), payload.get("data", {}))

            # heartbeat
            now = time.time()
            if now - last_heartbeat >= heartbeat_every:
                yield sse("heartbeat", {"t": now})
                last_heartbeat = now

            await asyncio.sleep(poll_every)

    headers = {
        # SSE must not be cached
        "Cache-Control": "no-cache",
        # keep TCP connection open
        "Connection": "keep-alive",
        # if behind nginx, prevents response buffering
        "X-Accel-Buffering": "no",
    }

    return StreamingResponse(gen(), media_type="text/event-stream", headers=headers)
