"""
TRANSFER EXTRACTOR

Turns a DetailedTransaction into an ordered list of NormalizedAmount:

1. Token transfers (wrapped SOL included). Zero / missing amounts are
   skipped. Direction comes from the classifier's membership rule; for
   wrapped SOL it is inverted, because SOL arriving in the wallet means the
   other leg of the swap was sold.
2. Native SOL transfers, only when step 1 found no wrapped SOL. Amounts are
   lamports, direction from the sign.

Unparseable amounts are formatted as "N/A" rather than raising.
"""

import logging
from decimal import Decimal
from typing import List

from .amount_format import (
    format_sol_amount,
    format_token_amount,
    lamports_to_sol,
    parse_human_amount,
    parse_sol_amount,
)
from .classifier import TransactionClassifier
from .models import AssetTransfer, DetailedTransaction, Direction, NativeTransfer, NormalizedAmount
from .stream_utils import WRAPPED_SOL_MINT, shorten

logger = logging.getLogger(__name__)


def _is_zero(raw) -> bool:
    if raw is None or raw == '':
        return True
    text = str(raw).strip()
    if text in ('0', '0.0'):
        return True
    try:
        return Decimal(text) == 0
    except ArithmeticError:
        # Not numeric: keep it, it formats as N/A
        return False


class TransferExtractor:
    """Normalizes token and native transfers of one transaction."""

    def __init__(self, classifier: TransactionClassifier):
        self.classifier = classifier

    def extract(self, tx: DetailedTransaction) -> List[NormalizedAmount]:
        amounts: List[NormalizedAmount] = []

        for transfer in tx.asset_transfers:
            if _is_zero(transfer.raw_amount):
                continue
            amounts.append(self._from_asset_transfer(transfer, tx))

        has_reference = any(a.is_reference for a in amounts)
        if not has_reference:
            for native in tx.native_transfers:
                if native.amount == 0:
                    continue
                amounts.append(self._from_native_transfer(native))

        sol_count = sum(1 for a in amounts if a.is_reference)
        logger.debug(
            f"[EXTRACT] {shorten(tx.signature)}: {len(amounts)} amount(s), "
            f"{sol_count} SOL transfer(s)"
        )
        return amounts

    def _from_asset_transfer(self, transfer: AssetTransfer,
                             tx: DetailedTransaction) -> NormalizedAmount:
        is_reference = transfer.asset_id == WRAPPED_SOL_MINT
        direction = self.classifier.direction_for(
            transfer.source_account, transfer.dest_account, tx.kind
        )

        if is_reference:
            direction = direction.inverted()
            sol_amount = parse_sol_amount(transfer.raw_amount)
        else:
            sol_amount = Decimal(0)

        return NormalizedAmount(
            asset_id=transfer.asset_id,
            raw_amount=transfer.raw_amount,
            human_amount=parse_human_amount(transfer.raw_amount, transfer.precision_hint),
            formatted_amount=format_token_amount(transfer.raw_amount, transfer.precision_hint),
            sol_amount=sol_amount,
            direction=direction,
            is_reference=is_reference,
            source_account=transfer.source_account,
            dest_account=transfer.dest_account,
        )

    @staticmethod
    def _from_native_transfer(native: NativeTransfer) -> NormalizedAmount:
        sol_amount = lamports_to_sol(native.amount)
        return NormalizedAmount(
            asset_id=WRAPPED_SOL_MINT,
            raw_amount=native.amount,
            human_amount=sol_amount,
            formatted_amount=format_sol_amount(sol_amount),
            sol_amount=sol_amount,
            direction=Direction.BUY if native.amount > 0 else Direction.SELL,
            is_reference=True,
            source_account=native.source_account,
            dest_account=native.dest_account,
        )
