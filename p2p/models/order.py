"""Order models."""

from dataclasses import dataclass
from enum import StrEnum


class OrderStatus(StrEnum):
    PENDING = "pending"
    MATCHED = "matched"
    PAID = "paid"
    RELEASED = "released"
    CANCELED = "canceled"
    DISPUTED = "disputed"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.RELEASED, OrderStatus.CANCELED, OrderStatus.DISPUTED}
)


class PartyRole(StrEnum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class Order:
    id: str
    ad_id: str
    token: str
    unit_price: float
    amount: float
    fiat_method: str
    buyer_id: str
    seller_id: str
    status: OrderStatus
    created_at: str
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "Order":
        return cls(
            id=row["id"],
            ad_id=row["ad_id"],
            token=row["token"],
            unit_price=row["unit_price"],
            amount=row["amount"],
            fiat_method=row["fiat_method"] or "",
            buyer_id=row["buyer_id"],
            seller_id=row["seller_id"],
            status=OrderStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "order_id": self.id,
            "ad_id": self.ad_id,
            "status": self.status.value,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "token": self.token,
            "unit_price": self.unit_price,
            "amount": self.amount,
            "fiat_method": self.fiat_method,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class OrderEvent:
    order_id: str
    event: str  # "created", "transition", "fulfillment_failed", ...
    from_status: str | None
    to_status: str | None
    actor: str
    detail: str = ""
