import json
from typing import Any

KEEPALIVE = ": ping\n\n"


def format_event(event: str, data: Any) -> str:
    """Encode one Server-Sent Events frame with a JSON payload."""
    body = json.dumps(data, ensure_ascii=True, separators=(",", ":"))
    return f"event: {event}\ndata: {body}\n\n"
