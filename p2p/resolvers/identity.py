"""Identity resolution: one actor, every id they may be stored under.

An actor can appear on an order as a Telegram id or as a wallet address, and a
wallet may be stored in any letter case. ``IdentitySet`` folds those variants
together so authorization is a single membership test.
"""

import re
import sqlite3
from dataclasses import dataclass

from p2p.storage import user_repo

_WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_wallet_address(value: str) -> bool:
    return bool(_WALLET_RE.match(value))


def normalize_identity(value: str) -> str:
    """Canonical comparison form: wallets lower-cased, everything else as-is."""
    value = str(value).strip()
    return value.lower() if is_wallet_address(value) else value


@dataclass(frozen=True)
class IdentitySet:
    primary: str
    identities: frozenset[str]

    def matches(self, stored_id: str | None) -> bool:
        if not stored_id:
            return False
        return normalize_identity(stored_id) in self.identities

    def __contains__(self, stored_id: object) -> bool:
        return isinstance(stored_id, str) and self.matches(stored_id)

    def __iter__(self):
        return iter(sorted(self.identities))

    def __len__(self) -> int:
        return len(self.identities)


class IdentityResolver:
    """Expands raw credentials through the linked-account table."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def canonicalize(self, raw_actor: str) -> IdentitySet:
        raw_actor = str(raw_actor).strip()
        if is_wallet_address(raw_actor):
            return self.resolve(wallet_address=raw_actor)
        return self.resolve(telegram_id=raw_actor)

    def resolve(
        self, telegram_id: str | None = None, wallet_address: str | None = None
    ) -> IdentitySet:
        if not telegram_id and not wallet_address:
            raise ValueError("telegram_id or wallet_address required")

        ids: set[str] = set()
        if wallet_address:
            ids.add(normalize_identity(wallet_address))
            for tg in user_repo.get_telegram_ids_for_wallet(self.conn, wallet_address):
                ids.add(normalize_identity(tg))
        if telegram_id:
            ids.add(normalize_identity(telegram_id))
            for wallet in user_repo.get_wallets_for_telegram_id(self.conn, str(telegram_id)):
                ids.add(normalize_identity(wallet))

        primary = str(telegram_id) if telegram_id else str(wallet_address)
        return IdentitySet(primary=primary.strip(), identities=frozenset(ids))
