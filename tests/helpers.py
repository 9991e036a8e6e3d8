"""
Test doubles and Helius payload builders for the wallet stream tests.

Nothing here touches the network: HTTP goes through a patched
HeliusClient._post_json and the push socket is a FakeWebSocket handed out
by FakeConnector.
"""
import asyncio
import json
from types import SimpleNamespace

import aiohttp

from wallet_stream.stream_utils import WRAPPED_SOL_MINT

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
POOL = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
FOO_MINT = "FooMint1111111111111111111111111111111111pump"
BAR_MINT = "BarMint1111111111111111111111111111111111pump"
BAZ_MINT = "BazMint1111111111111111111111111111111111pump"
SOL_MINT = WRAPPED_SOL_MINT
API_KEYS = ["key-alpha-000000", "key-bravo-111111", "key-charlie-2222"]


class FakeClock:
    """Manual clock; sleep() advances it instantly and records the delay."""

    def __init__(self, now: float = 1000.0):
        self.now = now
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ParkingClock(FakeClock):
    """
    FakeClock whose long sleeps never return.

    Keeps background timers (key rotation, cache sweep, stats summary)
    quiet while short delays (rate limit, reconnect) stay instant.
    """

    def __init__(self, now: float = 1000.0, park_after: float = 60.0):
        super().__init__(now)
        self.park_after = park_after
        self.parked = []

    async def sleep(self, seconds: float):
        if seconds >= self.park_after:
            self.parked.append(seconds)
            await asyncio.Event().wait()
        await super().sleep(seconds)


_CLOSE = object()


class FakeWebSocket:
    """Just enough of aiohttp.ClientWebSocketResponse for StreamManager."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self._inbox = asyncio.Queue()

    async def send_str(self, data: str):
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(json.loads(data))

    def push(self, payload):
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=text))

    def drop(self, code: int = 1006):
        """Simulate the upstream closing the socket."""
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(_CLOSE)

    async def close(self, code: int = 1000, message: bytes = b""):
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._inbox.put_nowait(_CLOSE)
        return True

    def exception(self):
        return None

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item

    def subscribed_wallets(self):
        return [m["params"][0]["mentions"][0] for m in self.sent if m.get("method") == "logsSubscribe"]


class FakeConnector:
    """ws_connect replacement; set `failures` to refuse the next N attempts."""

    def __init__(self):
        self.sockets = []
        self.urls = []
        self.failures = 0

    async def __call__(self, url: str):
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise aiohttp.ClientConnectionError("connection refused")
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


async def wait_until(predicate, attempts: int = 500):
    """Yield to the loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


# ========== HELIUS PAYLOAD BUILDERS ==========

def token_transfer(mint, amount, source, dest, standard="Fungible"):
    return {
        "mint": mint,
        "tokenAmount": amount,
        "tokenStandard": standard,
        "fromUserAccount": source,
        "toUserAccount": dest,
    }


def native_transfer(lamports, source, dest):
    return {"amount": lamports, "fromUserAccount": source, "toUserAccount": dest}


def enhanced_tx(signature="sig-1", kind="SWAP", token_transfers=(), native_transfers=(),
                account_mints=(), fee_payer=WALLET):
    return {
        "signature": signature,
        "type": kind,
        "timestamp": 1700000000,
        "feePayer": fee_payer,
        "tokenTransfers": list(token_transfers),
        "nativeTransfers": list(native_transfers),
        "accountData": [{"account": POOL, "mint": m} for m in account_mints],
    }


def das_asset(mint, symbol, image=None):
    return {
        "id": mint,
        "content": {
            "metadata": {"symbol": symbol, "name": symbol.title()},
            "links": {"image": image} if image else {},
        },
    }


def buy_foo_tx(signature="sig-buy"):
    """Watched wallet pays 2 SOL to the pool and receives FOO."""
    return enhanced_tx(
        signature=signature,
        token_transfers=[
            token_transfer(SOL_MINT, 2.0, WALLET, POOL),
            token_transfer(FOO_MINT, 1500000.0, POOL, WALLET),
        ],
    )


def logs_notification(signature, subscription=42):
    return {
        "jsonrpc": "2.0",
        "method": "logsNotification",
        "params": {
            "subscription": subscription,
            "result": {
                "context": {"slot": 123},
                "value": {"signature": signature, "err": None, "logs": []},
            },
        },
    }


class FakeHelius:
    """Routes patched _post_json calls by URL and records them."""

    def __init__(self):
        self.transactions = {}
        self.assets = {}
        self.calls = []
        self.fail_transactions = False

    async def post_json(self, url, body, params=None):
        self.calls.append((url, body, params))
        if "transactions" in body:
            if self.fail_transactions:
                return None
            return [self.transactions[s] for s in body["transactions"] if s in self.transactions]
        if body.get("method") == "getAssetBatch":
            return {
                "jsonrpc": "2.0",
                "id": body["id"],
                "result": [self.assets.get(i) for i in body["params"]["ids"]],
            }
        return None

    def asset_calls(self):
        return [c for c in self.calls if c[1].get("method") == "getAssetBatch"]

    def transaction_calls(self):
        return [c for c in self.calls if "transactions" in c[1]]
