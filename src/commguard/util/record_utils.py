"""Small helpers shared by the datatypes and repositories."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string with microseconds.

    The fixed-width format sorts lexicographically in timestamp order, which
    the queue listing relies on.
    """
    return to_iso(utcnow())


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def dump_json(value: Any) -> str:
    return json.dumps(value if value is not None else {}, sort_keys=True)


def load_json(raw: str | None, default: Any = None) -> Any:
    if not raw:
        return {} if default is None else default
    return json.loads(raw)
