"""
Wallet Stream Utilities - Shared constants and helpers

This module provides:
- Solana mint / program constants
- Reference asset (SOL and its wrapped/staked forms) aliases
- Address validation
- Display helpers for keys, signatures and addresses
"""
from typing import Optional

# =============================================================================
# MINTS & PROGRAMS (Mainnet)
# =============================================================================

# Wrapped SOL mint, used as the reference asset identifier
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

LAMPORTS_PER_SOL = 1_000_000_000

# Programs that show up in account data but are never token mints
KNOWN_PROGRAM_IDS = frozenset({
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",   # SPL Token Program
    "11111111111111111111111111111111",              # System Program
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",  # Associated Token Program
    "ComputeBudget111111111111111111111111111111",   # Compute Budget Program
    "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb",   # Token 2022 Program
})

# =============================================================================
# SYMBOLS
# =============================================================================

# Native currency and its wrapped / staked variants (compared upper-cased)
REFERENCE_SYMBOLS = frozenset({
    "SOL", "WSOL", "CWSOL", "CSOL", "STSOL", "MSOL", "JITOSOL", "BSOL",
})

# Symbols returned when metadata could not be resolved (compared upper-cased)
PLACEHOLDER_SYMBOLS = frozenset({"UNKNOWN", "N/A", "UNK", "", "?", "-"})

# Substituted for every asset the batch endpoint did not resolve
UNKNOWN_SYMBOL = "N/A"

# =============================================================================
# HELPERS
# =============================================================================

BASE58_CHARS = frozenset("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def is_valid_solana_address(address: str) -> bool:
    """
    Check if string is a valid Solana address (base58, 32-44 chars).

    Args:
        address: Address string to validate

    Returns:
        True if valid Solana address format
    """
    if not address or not isinstance(address, str):
        return False

    if len(address) < 32 or len(address) > 44:
        return False

    return all(c in BASE58_CHARS for c in address)


def is_reference_symbol(symbol: Optional[str]) -> bool:
    """True for SOL, WSOL, mSOL, jitoSOL and the other SOL aliases."""
    if not symbol:
        return False
    return symbol.strip().upper() in REFERENCE_SYMBOLS


def is_placeholder_symbol(symbol: Optional[str]) -> bool:
    if symbol is None:
        return True
    return symbol.strip().upper() in PLACEHOLDER_SYMBOLS


def mask_key(key: Optional[str]) -> str:
    """Show only the first 8 characters of an API key."""
    if not key:
        return "<none>"
    return key[:8] + "..."


def shorten(value: Optional[str], chars: int = 8) -> str:
    """Shorten a signature or address for log lines: abcdefgh..."""
    if not value:
        return "<none>"
    if len(value) <= chars:
        return value
    return value[:chars] + "..."
