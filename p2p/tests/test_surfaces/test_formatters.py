"""Tests for order text, buttons and callback parsing."""

from p2p.errors import Forbidden, InvalidTransition
from p2p.models.escrow import FundingPhase, FundingResult
from p2p.models.order import Order, OrderStatus, PartyRole
from p2p.reporting.formatters import (
    format_error,
    format_funding_result,
    format_order_created,
    format_transition,
    order_keyboard,
    parse_order_callback,
)


def _order(status: OrderStatus = OrderStatus.PENDING) -> Order:
    return Order(
        id="o-42", ad_id="ad1", token="USDT", unit_price=1.01, amount=100.0,
        fiat_method="UPI", buyer_id="bob", seller_id="alice",
        status=status, created_at="2026-10-01T00:00:00+00:00",
    )


def _callbacks(order: Order) -> list[str]:
    return [b["callback_data"] for row in order_keyboard(order) for b in row]


class TestText:
    def test_created(self):
        text = format_order_created(_order(), PartyRole.BUYER, "bob")
        assert text.splitlines() == [
            "Order #o-42 created",
            "Buyer: @bob",
            "Token: USDT • Amount: 100 • Price: $1.01",
            "Payment: UPI",
            "Status: pending",
        ]

    def test_transition(self):
        assert format_transition(_order(OrderStatus.PAID)) == "Order #o-42 → paid"

    def test_errors_use_user_message(self):
        assert format_error(Forbidden("o-42", "mallory")) == "You are not a party in this order."
        assert (
            format_error(InvalidTransition("o-42", "released", "canceled"))
            == "Action not allowed for current status."
        )

    def test_funding_result(self):
        result = FundingResult(
            token_symbol="USDC", token_address="0xabc", owner="0xdef",
            amount_raw=5_000_000, expiration=123, arbiter="0xarb", fee_bps=10,
            escrow_tx="0x99",
            skipped=[FundingPhase.BRIDGE_APPROVAL],
        )
        text = format_funding_result(result)
        assert "Escrow allowance tx: 0x99" in text
        assert "Arbiter: 0xarb • Fee 0.10%" in text
        assert "Already in place: bridge_approval" in text
        assert "Permit2 approval tx" not in text


class TestKeyboard:
    def test_pending_actions(self):
        assert _callbacks(_order()) == [
            "order:paid:o-42", "order:cancel:o-42", "order:dispute:o-42",
        ]
        assert [len(row) for row in order_keyboard(_order())] == [2, 1]

    def test_paid_actions(self):
        assert _callbacks(_order(OrderStatus.PAID)) == [
            "order:release:o-42", "order:cancel:o-42", "order:dispute:o-42",
        ]

    def test_terminal_has_no_buttons(self):
        for status in (OrderStatus.RELEASED, OrderStatus.CANCELED, OrderStatus.DISPUTED):
            assert order_keyboard(_order(status)) == []


class TestParseCallback:
    def test_round_trip_from_keyboard(self):
        for data in _callbacks(_order()):
            parsed = parse_order_callback(data)
            assert parsed is not None
            assert parsed[1] == "o-42"

    def test_parse(self):
        assert parse_order_callback("order:release:abc") == (OrderStatus.RELEASED, "abc")

    def test_rejects_garbage(self):
        assert parse_order_callback("order:refund:abc") is None
        assert parse_order_callback("ad:paid:abc") is None
        assert parse_order_callback("order:paid:") is None
        assert parse_order_callback("order") is None
