"""Default escrow token table for Base mainnet."""

DEFAULT_ESCROW_TOKENS: dict[str, str] = {
    "USDT": "0xfde4C96c8593536E31F229EA8f37B2ADa2699bB2",
    "USDC": "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
}
