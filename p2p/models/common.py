"""Common types and helpers shared across models."""

import uuid
from datetime import UTC, datetime
from typing import TypeAlias

OrderId: TypeAlias = str
AdId: TypeAlias = str
ActorId: TypeAlias = str


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def new_order_id() -> OrderId:
    return str(uuid.uuid4())
