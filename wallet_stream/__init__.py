"""
WALLET STREAM MODULE

Real-time buy/sell notifications for watched Solana wallets.

GOAL:
- 0 API calls while no wallet is watched
- One notification per swap, with the right side (BUY / SELL) and SOL amount
- Stay under the Helius rate limits with a rotating key pool

Architecture:
  Helius push feed (logsSubscribe per wallet)
          ↓
  STREAM MANAGER (connect / subscribe / reconnect)
          ↓
  ENRICHMENT (enhanced transaction + asset batch, rate limited, cached)
          ↓
  CLASSIFIER + FILTER
          ↓
  EVENT CHANNEL (single downstream consumer)
"""

from .exceptions import ConfigurationError, PayloadError, WalletStreamError
from .models import ClassifiedEvent, Direction, WatchedAddressSet
from .key_rotator import KeyRotator
from .request_queue import RateLimitedQueue, UNAVAILABLE
from .cache import TokenMetadataCache
from .helius_client import HeliusClient
from .classifier import TransactionClassifier
from .transfer_extractor import TransferExtractor
from .filters import TransactionFilter
from .handoff import EventChannel
from .processor import TransactionProcessor
from .stream_manager import StreamManager, StreamState
from .service import WalletStream

__all__ = [
    'WalletStreamError',
    'ConfigurationError',
    'PayloadError',
    'ClassifiedEvent',
    'Direction',
    'WatchedAddressSet',
    'KeyRotator',
    'RateLimitedQueue',
    'UNAVAILABLE',
    'TokenMetadataCache',
    'HeliusClient',
    'TransactionClassifier',
    'TransferExtractor',
    'TransactionFilter',
    'EventChannel',
    'TransactionProcessor',
    'StreamManager',
    'StreamState',
    'WalletStream',
]
