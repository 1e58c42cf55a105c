"""Pydantic v2 configuration schema with strict validation."""

from enum import StrEnum

from pydantic import BaseModel, Field


class CatalogBackend(StrEnum):
    SQLITE = "sqlite"      # ads table in the order database
    SUPABASE = "supabase"  # hosted ads table over PostgREST


class OrdersConfig(BaseModel):
    model_config = {"extra": "forbid"}

    allow_seller_mark_paid: bool = False
    conflict_retries: int = Field(default=3, ge=0, le=10)
    conflict_backoff_ms: int = Field(default=50, ge=0)


class CatalogConfig(BaseModel):
    model_config = {"extra": "forbid"}

    backend: CatalogBackend = CatalogBackend.SQLITE
    base_url: str = ""
    timeout_seconds: float = Field(default=15.0, gt=0.0)
    inr_per_usd: float = Field(default=83.0, gt=0.0)


class FulfillmentConfig(BaseModel):
    model_config = {"extra": "forbid"}

    max_attempts: int = Field(default=10, ge=1)
    batch_size: int = Field(default=50, ge=1)
    interval_seconds: int = Field(default=60, ge=1)


class EscrowConfig(BaseModel):
    model_config = {"extra": "forbid"}

    chain_id: int = 8453
    rpc_url: str = "https://mainnet.base.org"
    permit2_address: str = "0x000000000022D473030F116dDEE9F6B43aC78BA3"
    arbiter_address: str = "0xe58E4ee5da1eBCB16869F8672C96D13EE83bC182"
    fee_bps: int = Field(default=10, ge=0, le=10_000)
    allowance_ttl_days: int = Field(default=7, ge=1)
    receipt_timeout_seconds: float = Field(default=300.0, gt=0.0)
    poll_interval_seconds: float = Field(default=2.0, gt=0.0)
    tokens: dict[str, str] = {}


class P2PConfig(BaseModel):
    model_config = {"extra": "forbid"}

    orders: OrdersConfig = OrdersConfig()
    catalog: CatalogConfig = CatalogConfig()
    fulfillment: FulfillmentConfig = FulfillmentConfig()
    escrow: EscrowConfig = EscrowConfig()
