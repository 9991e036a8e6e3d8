"""
TRANSACTION FILTER

Final admission gate before an event is handed to the notifier.

A valid-looking non-SOL symbol admits immediately: a genuine memecoin
trade must never be suppressed by a blacklist hit elsewhere. Otherwise
reject on:
- blank / placeholder / SOL-alias symbols
- generic wallet labels ("Activity Detected", "Generic Transaction", ...)
- useless transaction types (account updates, system-only transactions)
- symbols shorter than 2 characters
- enhanced events without a mint address

The filter keeps no state, so the same event always gets the same answer.
"""

from typing import Dict, Optional, Tuple

from .models import ClassifiedEvent
from .stream_utils import PLACEHOLDER_SYMBOLS, REFERENCE_SYMBOLS


class TransactionFilter:
    """Stateless admit / reject decision for classified events."""

    BLACKLISTED_WALLET_NAMES = (
        'Activity', 'Activity Detected', 'Transaction Detected',
        'Account Update', 'Account Change', 'Unknown', 'Fallback', 'Generic Transaction',
    )

    BLACKLISTED_TRANSACTION_TYPES = frozenset({
        'fallback', 'account_change', 'system_transaction', 'generic_activity',
    })

    def __init__(self, config: Dict = None):
        self.config = config or {}
        self.blacklisted_tokens = frozenset(
            s.upper() for s in (PLACEHOLDER_SYMBOLS | REFERENCE_SYMBOLS)
        ) | frozenset(s.upper() for s in self.config.get('extra_blacklisted_tokens', ()))

    def should_show(self, event: ClassifiedEvent) -> bool:
        passed, _ = self.evaluate(event)
        return passed

    def evaluate(self, event: ClassifiedEvent) -> Tuple[bool, Optional[str]]:
        """
        Returns:
            (passed, reason) with reason None when admitted
        """
        if event is None:
            return False, "EMPTY_EVENT"

        symbol = (event.symbol or '').strip()

        # Memecoins first
        if len(symbol) >= 2 and not self.is_token_blacklisted(symbol):
            return True, None

        if self.is_token_blacklisted(symbol):
            return False, f"BLACKLISTED_TOKEN ({symbol or 'blank'})"

        if self.is_wallet_name_blacklisted(event.wallet):
            return False, f"GENERIC_WALLET ({event.wallet})"

        if event.event_type in self.BLACKLISTED_TRANSACTION_TYPES:
            return False, f"USELESS_TYPE ({event.event_type})"

        if event.tx_type and event.tx_type.lower() in self.BLACKLISTED_TRANSACTION_TYPES:
            return False, f"USELESS_TYPE ({event.tx_type})"

        if len(symbol) < 2:
            return False, f"SHORT_SYMBOL ({symbol})"

        if event.event_type == 'enhanced_transaction' and not event.asset_id:
            return False, "NO_MINT"

        return True, None

    def is_token_blacklisted(self, symbol: Optional[str]) -> bool:
        if not symbol:
            return True
        return symbol.strip().upper() in self.blacklisted_tokens

    def is_wallet_name_blacklisted(self, wallet_name: Optional[str]) -> bool:
        if not wallet_name:
            return False
        name = wallet_name.strip()
        return any(blacklisted in name for blacklisted in self.BLACKLISTED_WALLET_NAMES)
