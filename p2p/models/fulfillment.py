"""Fulfillment outbox models."""

from dataclasses import dataclass, field
from enum import StrEnum


class OutboxStatus(StrEnum):
    PENDING = "pending"
    DELIVERED = "delivered"
    ABANDONED = "abandoned"


@dataclass(frozen=True)
class OutboxEntry:
    id: int
    order_id: str
    ad_id: str
    status: OutboxStatus
    attempts: int
    last_error: str

    @classmethod
    def from_row(cls, row: dict) -> "OutboxEntry":
        return cls(
            id=row["id"],
            order_id=row["order_id"],
            ad_id=row["ad_id"],
            status=OutboxStatus(row["status"]),
            attempts=row["attempts"],
            last_error=row["last_error"] or "",
        )


@dataclass
class ReconcileSummary:
    attempted: int = 0
    delivered: int = 0
    failed: int = 0
    abandoned: int = 0
    errors: list[str] = field(default_factory=list)
