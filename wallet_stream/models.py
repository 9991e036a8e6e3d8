"""
Wallet Stream Data Model

Records flowing through the pipeline:

  push frame -> DetailedTransaction -> NormalizedAmount[] -> ClassifiedEvent

Everything except WatchedAddressSet is immutable.
"""
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .exceptions import PayloadError


class Direction(Enum):
    BUY = "BUY"
    SELL = "SELL"

    def inverted(self) -> "Direction":
        return Direction.SELL if self is Direction.BUY else Direction.BUY


@dataclass(frozen=True)
class AssetTransfer:
    """One fungible-asset transfer inside a detailed transaction."""
    asset_id: str
    raw_amount: Any
    precision_hint: Any
    source_account: Optional[str]
    dest_account: Optional[str]

    @classmethod
    def from_helius(cls, data: Dict) -> "AssetTransfer":
        return cls(
            asset_id=data.get("mint") or "",
            raw_amount=data.get("tokenAmount"),
            precision_hint=data.get("tokenStandard"),
            source_account=data.get("fromUserAccount"),
            dest_account=data.get("toUserAccount"),
        )


@dataclass(frozen=True)
class NativeTransfer:
    """Native SOL movement, amount in lamports."""
    amount: int
    source_account: Optional[str]
    dest_account: Optional[str]

    @classmethod
    def from_helius(cls, data: Dict) -> "NativeTransfer":
        try:
            amount = int(data.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0
        return cls(
            amount=amount,
            source_account=data.get("fromUserAccount"),
            dest_account=data.get("toUserAccount"),
        )


@dataclass(frozen=True)
class DetailedTransaction:
    """
    Enhanced transaction as returned by the transaction-detail endpoint.

    Only the fields the pipeline reads are kept; the record lives for one
    processing cycle and is never persisted.
    """
    signature: str
    kind: str
    asset_transfers: Tuple[AssetTransfer, ...] = ()
    native_transfers: Tuple[NativeTransfer, ...] = ()
    account_mints: Tuple[str, ...] = ()
    fee_payer: Optional[str] = None
    timestamp: Optional[int] = None

    @classmethod
    def from_helius(cls, payload: Any, signature: str = "") -> "DetailedTransaction":
        """
        Build from a Helius enhanced transaction object.

        Args:
            payload: One element of the `/v0/transactions` response array
            signature: Signature the record was requested for (used when the
                payload does not echo it back)

        Raises:
            PayloadError: payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise PayloadError(f"expected transaction object, got {type(payload).__name__}")

        asset_transfers = tuple(
            AssetTransfer.from_helius(t)
            for t in (payload.get("tokenTransfers") or [])
            if isinstance(t, dict)
        )
        native_transfers = tuple(
            NativeTransfer.from_helius(n)
            for n in (payload.get("nativeTransfers") or [])
            if isinstance(n, dict)
        )
        account_mints = tuple(
            a["mint"]
            for a in (payload.get("accountData") or [])
            if isinstance(a, dict) and a.get("mint")
        )

        timestamp = payload.get("timestamp")
        return cls(
            signature=payload.get("signature") or signature,
            kind=str(payload.get("type") or "UNKNOWN"),
            asset_transfers=asset_transfers,
            native_transfers=native_transfers,
            account_mints=account_mints,
            fee_payer=payload.get("feePayer"),
            timestamp=timestamp if isinstance(timestamp, int) else None,
        )

    def asset_ids(self) -> List[str]:
        """Transfer mints followed by account-data mints, first-seen order."""
        seen: Dict[str, None] = {}
        for transfer in self.asset_transfers:
            if transfer.asset_id:
                seen.setdefault(transfer.asset_id, None)
        for mint in self.account_mints:
            seen.setdefault(mint, None)
        return list(seen)


@dataclass(frozen=True)
class NormalizedAmount:
    asset_id: str
    raw_amount: Any
    human_amount: Optional[Decimal]
    formatted_amount: str
    sol_amount: Decimal
    direction: Direction
    is_reference: bool
    source_account: Optional[str] = None
    dest_account: Optional[str] = None


@dataclass(frozen=True)
class AssetMetadata:
    """Token symbol and image; expires_at of 0 means never cached."""
    symbol: str
    image_url: Optional[str] = None
    expires_at: float = 0.0

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class ClassifiedEvent:
    """Terminal output of the pipeline, handed to the notification consumer once."""
    signature: str
    wallet: str
    symbol: str
    direction: Optional[Direction]
    sol_amount: Decimal
    amount_text: str
    timestamp: str
    asset_id: Optional[str] = None
    image_url: Optional[str] = None
    tx_type: str = "SWAP"
    event_type: str = "enhanced_transaction"
    is_fallback: bool = False

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["direction"] = self.direction.value if self.direction else None
        data["sol_amount"] = str(self.sol_amount)
        return data


@dataclass
class WatchedAddressSet:
    """
    Insertion-ordered set of watched wallet addresses.

    Mutated only through add / discard so the owner always knows whether
    membership actually changed.
    """
    _addresses: Dict[str, None] = field(default_factory=dict)

    def add(self, address: str) -> bool:
        if address in self._addresses:
            return False
        self._addresses[address] = None
        return True

    def discard(self, address: str) -> bool:
        if address not in self._addresses:
            return False
        del self._addresses[address]
        return True

    def first(self) -> Optional[str]:
        return next(iter(self._addresses), None)

    def snapshot(self) -> List[str]:
        return list(self._addresses)

    def __contains__(self, address: object) -> bool:
        return address in self._addresses

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._addresses))

    def __len__(self) -> int:
        return len(self._addresses)
