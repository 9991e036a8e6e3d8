"""
BUY / SELL CLASSIFIER

Decides, for one swap transaction touching a watched wallet:
- whether the wallet bought or sold the non-SOL asset
- how much SOL was involved
- which non-SOL asset is the subject of the notification

Decision pipeline:
  swap kind? -> SOL transfers -> main (largest) SOL transfer
             -> direction + amount -> dust check -> primary asset
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Collection, Dict, List, Optional, Sequence, Tuple

from .amount_format import format_sol_amount
from .models import (
    AssetMetadata,
    ClassifiedEvent,
    DetailedTransaction,
    Direction,
    NormalizedAmount,
    WatchedAddressSet,
)
from .stream_utils import (
    KNOWN_PROGRAM_IDS,
    WRAPPED_SOL_MINT,
    is_placeholder_symbol,
    is_reference_symbol,
    shorten,
)

logger = logging.getLogger(__name__)


def is_swap(kind: Optional[str]) -> bool:
    """SWAP, or any kind tag mentioning a swap."""
    if not kind:
        return False
    return kind.upper() == 'SWAP' or 'swap' in kind.lower()


def transfer_direction(source: Optional[str], dest: Optional[str],
                       watched: Collection[str], tx_kind: Optional[str]) -> Direction:
    """
    Membership rule for a single transfer.

    receiving only -> BUY, sending only -> SELL,
    both -> SELL for swaps (the asset leaves the wallet),
    neither -> BUY.
    """
    is_sending = bool(source) and source in watched
    is_receiving = bool(dest) and dest in watched

    if is_receiving and not is_sending:
        return Direction.BUY
    if is_sending and not is_receiving:
        return Direction.SELL
    if is_sending and is_receiving and is_swap(tx_kind):
        return Direction.SELL

    # Ambiguous: nothing tells us which side the wallet is on
    return Direction.BUY


@dataclass(frozen=True)
class ReferenceFlow:
    """SOL side of a swap as seen from the watched wallet."""
    direction: Direction
    sol_amount: Decimal
    wallet: Optional[str]
    main_transfer: NormalizedAmount
    used_fallback: bool = False


class TransactionClassifier:
    """
    Classifies swaps of watched wallets.

    Holds a reference to the live watched-address set; it never mutates it.
    """

    def __init__(self, watched: WatchedAddressSet, config: Dict = None):
        self.watched = watched
        self.config = config or {}
        self.min_sol_amount = Decimal(str(self.config.get('min_sol_amount', 0.001)))

    def direction_for(self, source: Optional[str], dest: Optional[str],
                      tx_kind: Optional[str]) -> Direction:
        return transfer_direction(source, dest, self.watched, tx_kind)

    def resolve_flow(self, tx: DetailedTransaction,
                     amounts: Sequence[NormalizedAmount]) -> Tuple[Optional[ReferenceFlow], Optional[str]]:
        """
        Direction and SOL amount from the SOL transfers of a swap.

        Returns:
            (flow, None) on success, (None, reason) when the transaction
            must be dropped
        """
        if not is_swap(tx.kind):
            return None, f"NOT_SWAP ({tx.kind})"

        refs = [a for a in amounts if a.is_reference]
        if not refs:
            return None, "NO_SOL_TRANSFER"

        # Fees are much smaller than the swap leg
        main = max(refs, key=lambda a: abs(a.sol_amount))
        from_watched = bool(main.source_account) and main.source_account in self.watched
        to_watched = bool(main.dest_account) and main.dest_account in self.watched

        if from_watched or to_watched:
            sol_amount = abs(main.sol_amount)
            if from_watched and not to_watched:
                # Wallet paid SOL for the token
                direction, wallet = Direction.BUY, main.source_account
            else:
                # Wallet received SOL for the token
                direction, wallet = Direction.SELL, main.dest_account
            flow = ReferenceFlow(direction, sol_amount, wallet, main)
        else:
            flow = self._net_flow(tx, refs, main)

        logger.debug(
            f"[CLASSIFY] {shorten(tx.signature)} main SOL transfer {main.sol_amount} → "
            f"{flow.direction.value} {flow.sol_amount} (fallback={flow.used_fallback})"
        )

        if flow.sol_amount < self.min_sol_amount:
            return None, f"DUST ({flow.sol_amount} SOL)"

        return flow, None

    def _net_flow(self, tx: DetailedTransaction, refs: List[NormalizedAmount],
                  main: NormalizedAmount) -> ReferenceFlow:
        """Sum every SOL transfer when the main one has no watched endpoint."""
        total = Decimal(0)
        sent = Decimal(0)
        received = Decimal(0)
        wallet = None

        for transfer in refs:
            amount = abs(transfer.sol_amount)
            total += amount
            if transfer.source_account in self.watched:
                sent += amount
                wallet = wallet or transfer.source_account
            if transfer.dest_account in self.watched:
                received += amount
                wallet = wallet or transfer.dest_account

        if wallet is None and tx.fee_payer in self.watched:
            wallet = tx.fee_payer

        direction = Direction.BUY if sent > received else Direction.SELL
        return ReferenceFlow(direction, total, wallet, main, used_fallback=True)

    def select_primary_asset(self, asset_ids: Sequence[str],
                             metadata: Sequence[AssetMetadata]) -> Optional[Tuple[str, AssetMetadata]]:
        """
        First asset with a usable, non-SOL symbol.

        Args:
            asset_ids: Mints in extraction order
            metadata: Metadata aligned with asset_ids

        Returns:
            (mint, metadata) or None
        """
        for asset_id, meta in zip(asset_ids, metadata):
            if asset_id == WRAPPED_SOL_MINT or asset_id in KNOWN_PROGRAM_IDS or meta is None:
                continue
            symbol = (meta.symbol or '').strip()
            if len(symbol) < 2 or is_placeholder_symbol(symbol) or is_reference_symbol(symbol):
                continue
            return asset_id, meta
        return None

    def build_event(self, tx: DetailedTransaction, flow: ReferenceFlow,
                    asset_id: str, meta: AssetMetadata,
                    timestamp: Optional[str] = None) -> ClassifiedEvent:
        wallet = flow.wallet or self.watched.first() or ''
        return ClassifiedEvent(
            signature=tx.signature,
            wallet=wallet,
            symbol=meta.symbol.strip(),
            direction=flow.direction,
            sol_amount=flow.sol_amount,
            amount_text=format_sol_amount(flow.sol_amount),
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
            asset_id=asset_id,
            image_url=meta.image_url,
            tx_type=tx.kind,
        )
