"""Escrow funding coordinator: two-phase Permit2 allowance setup.

Before an escrow arbiter can pull a seller's tokens, two allowances must be in
place:

1. token -> Permit2: a standing unlimited ERC-20 approval (one-time).
2. Permit2 -> arbiter: a scoped approval sized to the trade, expiring after
   ``allowance_ttl_days``.

Each phase re-reads the current allowance first and only sends a transaction
when it is short, so rerunning after a failure resumes where it stopped.
Nothing here touches the order store.
"""

import logging
import threading
import time
from collections.abc import Callable
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from p2p.config.schema import EscrowConfig
from p2p.errors import EscrowStepFailed, FundingCancelled
from p2p.escrow.abis import ERC20_ABI, MAX_UINT160, MAX_UINT256, PERMIT2_ABI
from p2p.models.escrow import FundingPhase, FundingProgress, FundingResult

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

ProgressCallback = Callable[[FundingProgress], None]


class EscrowFundingCoordinator:
    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        config: EscrowConfig,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.w3 = w3
        self.account = account
        self.owner = Web3.to_checksum_address(account.address)
        self.config = config
        self.progress = progress
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.permit2_address = Web3.to_checksum_address(config.permit2_address)
        self.arbiter_address = Web3.to_checksum_address(config.arbiter_address)

    def cancel(self) -> None:
        """Abort the flow at the next check (between calls or while waiting)."""
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fund(self, token_symbol: str, amount: Decimal | str) -> FundingResult:
        """Ensure the arbiter can pull ``amount`` of ``token_symbol`` from the owner."""
        phase = FundingPhase.PREPARE
        self._report(phase, "Preparing transaction…")

        symbol = token_symbol.upper()
        token_address = self._token_address(symbol)
        token = self.w3.eth.contract(address=token_address, abi=ERC20_ABI)
        permit2 = self.w3.eth.contract(address=self.permit2_address, abi=PERMIT2_ABI)

        decimals = self._call(phase, token.functions.decimals())
        amount_raw = self._parse_amount(amount, decimals)

        skipped: list[FundingPhase] = []

        # Phase A: token -> Permit2
        phase = FundingPhase.BRIDGE_APPROVAL
        self._report(phase, "Checking token allowance to Permit2…")
        current = self._call(
            phase, token.functions.allowance(self.owner, self.permit2_address)
        )
        bridge_tx = None
        if current < amount_raw:
            self._report(phase, "Approving Permit2 to move your tokens (one-time)…")
            bridge_tx = self._send(
                phase, token.functions.approve(self.permit2_address, MAX_UINT256)
            )
        else:
            skipped.append(phase)

        # Phase B: Permit2 -> arbiter
        phase = FundingPhase.ESCROW_ALLOWANCE
        self._report(phase, "Setting Permit2 allowance for escrow…")
        p2_amount, p2_expiration, _nonce = self._call(
            phase,
            permit2.functions.allowance(self.owner, token_address, self.arbiter_address),
        )
        now = int(self.clock())
        escrow_tx = None
        expiration: int | None = p2_expiration
        if p2_amount < amount_raw or p2_expiration <= now:
            expiration = now + self.config.allowance_ttl_days * SECONDS_PER_DAY
            escrow_tx = self._send(
                phase,
                permit2.functions.approve(
                    token_address, self.arbiter_address, amount_raw, expiration
                ),
            )
        else:
            skipped.append(phase)

        self._report(FundingPhase.READY, "Ready. Escrow can now pull funds via Permit2.")
        logger.info(
            "Escrow allowance ready: owner=%s token=%s amount=%d expires=%s",
            self.owner, symbol, amount_raw, expiration,
        )
        return FundingResult(
            token_symbol=symbol,
            token_address=token_address,
            owner=self.owner,
            amount_raw=amount_raw,
            expiration=expiration,
            arbiter=self.arbiter_address,
            fee_bps=self.config.fee_bps,
            bridge_tx=bridge_tx,
            escrow_tx=escrow_tx,
            skipped=skipped,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _report(self, phase: FundingPhase, message: str) -> None:
        self._check_cancelled(phase)
        logger.info("[%s] %s", phase, message)
        if self.progress is not None:
            self.progress(FundingProgress(phase=phase, message=message))

    def _check_cancelled(self, phase: FundingPhase) -> None:
        if self.cancel_event.is_set():
            raise FundingCancelled(phase.value)

    def _token_address(self, symbol: str) -> str:
        address = self.config.tokens.get(symbol)
        if not address:
            raise EscrowStepFailed(
                FundingPhase.PREPARE.value, f"Unsupported escrow token: {symbol}"
            )
        return Web3.to_checksum_address(address)

    @staticmethod
    def _parse_amount(amount: Decimal | str, decimals: int) -> int:
        try:
            value = Decimal(str(amount))
            if not value.is_finite():
                raise InvalidOperation(str(amount))
            raw = int(
                (value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
            )
        except (InvalidOperation, ValueError, OverflowError):
            raise EscrowStepFailed(
                FundingPhase.PREPARE.value, f"Enter a valid amount: {amount!r}"
            ) from None
        if raw <= 0:
            raise EscrowStepFailed(FundingPhase.PREPARE.value, "Enter a valid amount")
        if raw > MAX_UINT160:
            raise EscrowStepFailed(FundingPhase.PREPARE.value, "Amount exceeds uint160")
        return raw

    def _call(self, phase: FundingPhase, fn):
        self._check_cancelled(phase)
        try:
            return fn.call()
        except (Web3Exception, ValueError) as e:
            raise EscrowStepFailed(phase.value, str(e)) from e

    def _send(self, phase: FundingPhase, fn) -> str:
        """Sign, send and wait for one transaction. Returns its hash."""
        self._check_cancelled(phase)
        try:
            tx = fn.build_transaction({
                "from": self.owner,
                "nonce": self.w3.eth.get_transaction_count(self.owner, "pending"),
                "chainId": self.config.chain_id,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3Exception, ValueError) as e:
            raise EscrowStepFailed(phase.value, str(e)) from e

        tx_hex = Web3.to_hex(tx_hash)
        self._report(phase, f"Waiting for confirmation of {tx_hex}…")
        receipt = self._wait_for_receipt(phase, tx_hash)
        if receipt["status"] != 1:
            raise EscrowStepFailed(phase.value, f"Transaction {tx_hex} reverted")
        return tx_hex

    def _wait_for_receipt(self, phase: FundingPhase, tx_hash):
        """Poll for a receipt until mined, timed out, or cancelled."""
        deadline = time.monotonic() + self.config.receipt_timeout_seconds
        while True:
            self._check_cancelled(phase)
            try:
                return self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                pass
            except (Web3Exception, ValueError) as e:
                raise EscrowStepFailed(phase.value, str(e)) from e

            if time.monotonic() >= deadline:
                raise EscrowStepFailed(
                    phase.value,
                    f"Timed out after {self.config.receipt_timeout_seconds:.0f}s "
                    f"waiting for {Web3.to_hex(tx_hash)}",
                )
            # wait() returns early when cancel() is called
            self.cancel_event.wait(self.config.poll_interval_seconds)


def build_coordinator(
    config: EscrowConfig,
    private_key: str,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> EscrowFundingCoordinator:
    w3 = Web3(Web3.HTTPProvider(config.rpc_url))
    account = Account.from_key(private_key)
    return EscrowFundingCoordinator(
        w3, account, config, progress=progress, cancel_event=cancel_event
    )
