"""Ad catalog models, as seen by the order engine."""

from dataclasses import dataclass
from enum import StrEnum


class AdType(StrEnum):
    BUY = "buy"
    SELL = "sell"


class Token(StrEnum):
    BTC = "BTC"
    ETH = "ETH"
    USDT = "USDT"
    USDC = "USDC"


class AdStatus(StrEnum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"


@dataclass(frozen=True)
class AdSnapshot:
    """Terms of an ad at the moment it was read from the catalog."""

    id: str
    type: AdType
    token: Token
    price_usd: float
    amount: float
    payment_method: str
    posted_by: str
    price_inr: float | None = None
    status: AdStatus = AdStatus.ACTIVE

    @property
    def fulfilled(self) -> bool:
        return self.status == AdStatus.FULFILLED

    @classmethod
    def from_row(cls, row: dict) -> "AdSnapshot":
        return cls(
            id=str(row["id"]),
            type=AdType(row["type"]),
            token=Token(row["token"]),
            price_usd=float(row["price_usd"]),
            amount=float(row["amount"]),
            payment_method=row.get("payment_method") or "",
            posted_by=str(row.get("posted_by") or ""),
            price_inr=(
                float(row["price_inr"]) if row.get("price_inr") is not None else None
            ),
            status=AdStatus(row.get("status") or AdStatus.ACTIVE),
        )
