"""
Console runner: watch wallets and print every admitted buy/sell.

    python -m wallet_stream.main --wallet <address> [--wallet <address> ...]
"""
import argparse
import asyncio
import signal
from typing import List, Optional

from colorama import Fore, Style, init

from .config import LOG_LEVEL, WATCHED_WALLETS, load_stream_config, parse_list
from .exceptions import ConfigurationError
from .log_utils import setup_logging
from .models import ClassifiedEvent, Direction
from .service import WalletStream

init(autoreset=True)


def print_event(event: ClassifiedEvent):
    """Console sink for classified events."""
    if event.is_fallback:
        print(f"{Fore.YELLOW}⚠️  {event.wallet}: {event.signature}")
        return

    color = Fore.GREEN if event.direction is Direction.BUY else Fore.RED
    print(f"\n{Fore.CYAN}{'=' * 50}")
    print(f"{color}{event.direction.value} {Fore.WHITE}{event.symbol}{Style.RESET_ALL}")
    print(f"{Fore.YELLOW}Wallet: {Fore.WHITE}{event.wallet}")
    print(f"{Fore.YELLOW}Amount: {Fore.WHITE}{event.amount_text}")
    print(f"{Fore.YELLOW}Token: {Fore.WHITE}{event.asset_id}")
    print(f"{Fore.YELLOW}Signature: {Fore.WHITE}{event.signature}")
    print(f"{Fore.YELLOW}Time: {Fore.WHITE}{event.timestamp}")
    print(f"{Fore.CYAN}{'=' * 50}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time Solana wallet buy/sell stream")
    parser.add_argument("--wallet", action="append", default=[],
                        help="Wallet address to watch (repeatable, adds to $WATCHED_WALLETS)")
    parser.add_argument("--config", default=None,
                        help="YAML config override file (default $WALLET_STREAM_CONFIG)")
    parser.add_argument("--log-level", default=LOG_LEVEL,
                        help="DEBUG, INFO, WARNING or ERROR")
    return parser


async def run(wallets: List[str], config_path: Optional[str] = None):
    config = load_stream_config(config_path)
    stream = WalletStream(config, handler=print_event)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still ends asyncio.run
            pass

    await stream.start()
    try:
        for wallet in wallets:
            if not await stream.add_address(wallet):
                print(f"{Fore.RED}❌ Invalid wallet address: {wallet}")

        if len(stream.watched) == 0:
            print(f"{Fore.YELLOW}No valid wallets to watch. Use --wallet or WATCHED_WALLETS.")
            return

        print(f"{Fore.GREEN}🚀 Watching {len(stream.watched)} wallet(s). Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        await stream.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    wallets = parse_list(WATCHED_WALLETS) + args.wallet
    try:
        asyncio.run(run(wallets, args.config))
    except ConfigurationError as e:
        print(f"{Fore.RED}❌ Configuration error: {e}")
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
