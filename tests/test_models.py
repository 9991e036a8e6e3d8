import pytest

from wallet_stream.exceptions import PayloadError
from wallet_stream.models import AssetMetadata, DetailedTransaction, Direction, WatchedAddressSet

from .helpers import BAR_MINT, FOO_MINT, OTHER_WALLET, POOL, SOL_MINT, WALLET, enhanced_tx, token_transfer


def test_detailed_transaction_rejects_non_objects():
    with pytest.raises(PayloadError):
        DetailedTransaction.from_helius(["not", "a", "dict"])
    with pytest.raises(ValueError):
        DetailedTransaction.from_helius(None)


def test_detailed_transaction_defaults():
    tx = DetailedTransaction.from_helius({}, signature="sig-x")
    assert tx.signature == "sig-x"
    assert tx.kind == "UNKNOWN"
    assert tx.asset_transfers == ()
    assert tx.asset_ids() == []


def test_asset_ids_transfer_mints_then_account_mints():
    tx = DetailedTransaction.from_helius(enhanced_tx(
        token_transfers=[
            token_transfer(SOL_MINT, 1.0, WALLET, POOL),
            token_transfer(FOO_MINT, 5.0, POOL, WALLET),
        ],
        account_mints=[FOO_MINT, BAR_MINT],
    ))
    assert tx.asset_ids() == [SOL_MINT, FOO_MINT, BAR_MINT]


def test_bad_native_amount_becomes_zero():
    tx = DetailedTransaction.from_helius(enhanced_tx(native_transfers=[{"amount": "lots"}]))
    assert tx.native_transfers[0].amount == 0


def test_watched_set_reports_membership_changes():
    watched = WatchedAddressSet()
    assert watched.add(WALLET)
    assert not watched.add(WALLET)
    assert watched.add(OTHER_WALLET)
    assert watched.snapshot() == [WALLET, OTHER_WALLET]
    assert watched.first() == WALLET

    assert watched.discard(WALLET)
    assert not watched.discard(WALLET)
    assert list(watched) == [OTHER_WALLET]
    assert len(watched) == 1


def test_direction_inversion_and_metadata_freshness():
    assert Direction.BUY.inverted() is Direction.SELL
    assert Direction.SELL.inverted() is Direction.BUY
    meta = AssetMetadata("FOO", expires_at=100.0)
    assert meta.is_fresh(99.9)
    assert not meta.is_fresh(100.0)
