"""
Transaction Processor - one push notification in, at most one event out.

  signature
     ↓  HeliusClient.fetch_detailed_transaction   (queue + rotator)
  DetailedTransaction            → absent: degraded fallback event
     ↓  swap check
     ↓  TransferExtractor.extract
  NormalizedAmount[]
     ↓  TransactionClassifier.resolve_flow         (direction, SOL amount, dust)
     ↓  HeliusClient.fetch_asset_batch             (cache first)
     ↓  TransactionClassifier.select_primary_asset
  ClassifiedEvent
     ↓  TransactionFilter
  EventChannel.publish

Each push frame runs its own process() task; a slow enrichment for one
signature never blocks another.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from .amount_format import NOT_AVAILABLE
from .classifier import TransactionClassifier, is_swap
from .filters import TransactionFilter
from .handoff import EventChannel
from .helius_client import HeliusClient
from .models import ClassifiedEvent, WatchedAddressSet
from .stream_utils import shorten
from .transfer_extractor import TransferExtractor

logger = logging.getLogger(__name__)

FALLBACK_WALLET_LABEL = 'Transaction Detected'
FALLBACK_SYMBOL = 'Unknown'


class TransactionProcessor:
    """Runs the enrichment / classification pipeline for a signature."""

    def __init__(self, client: HeliusClient, extractor: TransferExtractor,
                 classifier: TransactionClassifier, tx_filter: TransactionFilter,
                 channel: EventChannel, watched: WatchedAddressSet, config: Dict = None):
        self.client = client
        self.extractor = extractor
        self.classifier = classifier
        self.filter = tx_filter
        self.channel = channel
        self.watched = watched
        self.config = config or {}
        self.fallback_events = self.config.get('fallback_events', True)

        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict:
        return {
            'received': 0,
            'processed': 0,
            'emitted': 0,
            'fallbacks': 0,
            'discarded': 0,
            'errors': 0,
            'dropped': defaultdict(int),
        }

    async def process(self, signature: str) -> Optional[ClassifiedEvent]:
        """
        Process one notified signature.

        Never raises: any unexpected failure is logged and degrades to the
        fallback event for this signature.

        Returns:
            The published event, if any
        """
        self.stats['received'] += 1
        logger.debug(f"📋 Processing transaction: {shorten(signature)}")
        try:
            return await self._process(signature)
        except Exception:
            self.stats['errors'] += 1
            logger.exception(f"❌ Error processing transaction {shorten(signature)}")
            return self._emit_fallback(signature)

    async def _process(self, signature: str) -> Optional[ClassifiedEvent]:
        tx = await self.client.fetch_detailed_transaction(signature)
        if not self._still_watching(signature):
            return None

        if tx is None:
            logger.warning(f"⚠️ Could not get enhanced transaction data for {shorten(signature)}")
            return self._emit_fallback(signature)

        self.stats['processed'] += 1

        if not is_swap(tx.kind):
            return self._drop(signature, f"NOT_SWAP ({tx.kind})")

        amounts = self.extractor.extract(tx)
        flow, reason = self.classifier.resolve_flow(tx, amounts)
        if flow is None:
            return self._drop(signature, reason)

        asset_ids = tx.asset_ids()
        if not asset_ids:
            return self._drop(signature, "NO_MINTS")

        metadata = await self.client.fetch_asset_batch(asset_ids)
        if not self._still_watching(signature):
            return None

        primary = self.classifier.select_primary_asset(asset_ids, metadata)
        if primary is None:
            return self._drop(signature, "NO_PRIMARY_ASSET")

        asset_id, meta = primary
        event = self.classifier.build_event(tx, flow, asset_id, meta)

        passed, reason = self.filter.evaluate(event)
        if not passed:
            return self._drop(signature, f"FILTERED {reason}")

        logger.info(
            f"✅ Transaction approved: {event.symbol} {event.direction.value} "
            f"{event.amount_text} ({shorten(event.wallet)})"
        )
        self.channel.publish(event)
        self.stats['emitted'] += 1
        return event

    def _still_watching(self, signature: str) -> bool:
        """Results arriving after the last wallet was removed are discarded."""
        if len(self.watched) == 0:
            self.stats['discarded'] += 1
            logger.debug(f"🚫 No wallets tracked anymore, discarding {shorten(signature)}")
            return False
        return True

    def _drop(self, signature: str, reason: Optional[str]) -> None:
        reason = reason or "UNKNOWN"
        self.stats['dropped'][reason.split(' ')[0]] += 1
        logger.debug(f"🚫 Dropped {shorten(signature)}: {reason}")
        return None

    def _emit_fallback(self, signature: str) -> Optional[ClassifiedEvent]:
        if not self.fallback_events or len(self.watched) == 0:
            return None

        event = ClassifiedEvent(
            signature=signature,
            wallet=FALLBACK_WALLET_LABEL,
            symbol=FALLBACK_SYMBOL,
            direction=None,
            sol_amount=Decimal(0),
            amount_text=f"{NOT_AVAILABLE} SOL",
            timestamp=datetime.now(timezone.utc).isoformat(),
            tx_type='UNKNOWN',
            event_type='basic_transaction',
            is_fallback=True,
        )
        logger.info(f"⚠️ Using fallback transaction data for {shorten(signature)}")
        self.channel.publish(event)
        self.stats['fallbacks'] += 1
        return event

    def get_stats(self) -> Dict:
        stats = dict(self.stats)
        stats['dropped'] = dict(self.stats['dropped'])
        return stats

    def reset_stats(self):
        self.stats = self._empty_stats()
