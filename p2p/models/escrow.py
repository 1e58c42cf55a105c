"""Escrow funding models."""

from dataclasses import dataclass, field
from enum import StrEnum


class FundingPhase(StrEnum):
    PREPARE = "prepare"
    BRIDGE_APPROVAL = "bridge_approval"    # token -> Permit2, unlimited
    ESCROW_ALLOWANCE = "escrow_allowance"  # Permit2 -> arbiter, scoped + expiring
    READY = "ready"


@dataclass(frozen=True)
class FundingProgress:
    phase: FundingPhase
    message: str


@dataclass(frozen=True)
class FundingResult:
    token_symbol: str
    token_address: str
    owner: str
    amount_raw: int
    expiration: int | None
    arbiter: str = ""
    fee_bps: int = 0
    bridge_tx: str | None = None
    escrow_tx: str | None = None
    skipped: list[FundingPhase] = field(default_factory=list)
