"""Tests for identity normalization and linked-account expansion."""

import sqlite3

import pytest

from p2p.resolvers.identity import (
    IdentityResolver,
    IdentitySet,
    is_wallet_address,
    normalize_identity,
)
from p2p.storage import user_repo


class TestNormalize:
    def test_wallet_detection(self, alice_wallet: str):
        assert is_wallet_address(alice_wallet)
        assert not is_wallet_address("0x1234")
        assert not is_wallet_address("123456789")

    def test_wallets_lowercased(self, alice_wallet: str):
        assert normalize_identity(alice_wallet) == alice_wallet.lower()

    def test_telegram_ids_untouched(self):
        assert normalize_identity(" AliceTG ") == "AliceTG"


class TestIdentitySet:
    def test_matches_any_case(self, alice_wallet: str):
        ids = IdentitySet("alice", frozenset({"alice", alice_wallet.lower()}))
        assert ids.matches(alice_wallet.upper().replace("0X", "0x"))
        assert alice_wallet in ids
        assert "bob" not in ids
        assert not ids.matches(None)
        assert not ids.matches("")
        assert len(ids) == 2


class TestIdentityResolver:
    def test_unlinked_telegram_id(self, db: sqlite3.Connection):
        ids = IdentityResolver(db).canonicalize("bob")
        assert ids.primary == "bob"
        assert set(ids) == {"bob"}

    def test_telegram_expands_to_wallet(self, db: sqlite3.Connection, alice_wallet: str):
        user_repo.upsert_user(db, telegram_id="alice", wallet_address=alice_wallet)
        ids = IdentityResolver(db).canonicalize("alice")
        assert set(ids) == {"alice", alice_wallet.lower()}

    def test_wallet_expands_to_telegram(self, db: sqlite3.Connection, alice_wallet: str):
        user_repo.upsert_user(db, telegram_id="alice", wallet_address=alice_wallet)
        ids = IdentityResolver(db).canonicalize(alice_wallet.lower())
        assert "alice" in ids
        assert ids.matches(alice_wallet)

    def test_resolve_both_credentials(self, db: sqlite3.Connection, alice_wallet: str):
        ids = IdentityResolver(db).resolve(telegram_id="alice", wallet_address=alice_wallet)
        assert ids.primary == "alice"
        assert set(ids) == {"alice", alice_wallet.lower()}

    def test_resolve_requires_credential(self, db: sqlite3.Connection):
        with pytest.raises(ValueError):
            IdentityResolver(db).resolve()
