#!/usr/bin/env python3
"""
Round-up Trader CLI
===================

Provides:
- Setup of an encrypted seed phrase and trader settings
- Running round-up trading for a token pair (Ctrl+C stops after the current cycle)
- Listing executed round-ups
- Showing the current configuration

Usage:
    roundup-trader setup --rpc http://127.0.0.1:8545 --network rinkeby
    roundup-trader run --token-a 0x... --token-b 0x...
    roundup-trader history
    roundup-trader config
"""

import sys
import signal
import asyncio
import argparse
import getpass
from pathlib import Path
from typing import Optional

from aiohttp import ClientTimeout
from web3 import AsyncWeb3, AsyncHTTPProvider
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from . import __version__
from .config import Config, ConfigManager
from .gate import TradeStatus
from .host import ConsoleHost, JsonFileStateStore
from .rpc import CommandRouter
from .trader import RoundupTrader
from .utils import (
    RoundupError,
    setup_logging,
    format_address,
    format_units,
    mask_sensitive,
    validate_address,
)

console = Console()


def print_banner():
    """Print the CLI banner."""
    banner = f"""
    Round-up Trader v{__version__}
    ═══════════════════════════════════
    Uniswap V2 round-up automation
    """
    console.print(Panel(banner, style="bold cyan", box=box.DOUBLE))


def get_password(prompt: str = "Enter password: ") -> str:
    """Securely get password from user."""
    console.print(f"[yellow]{prompt}[/yellow]")
    password = getpass.getpass("> ")

    if len(password) < 8:
        console.print("[red]Password must be at least 8 characters[/red]")
        sys.exit(1)

    return password


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_web3(config: Config) -> AsyncWeb3:
    """Create the async Web3 client with the configured request timeout."""
    return AsyncWeb3(AsyncHTTPProvider(
        config.rpc_url,
        request_kwargs={"timeout": ClientTimeout(total=config.rpc_timeout_seconds)}
    ))


async def wait_for_connection(w3: AsyncWeb3, config: Config) -> None:
    """Check the RPC endpoint, retrying with exponential backoff."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, config.connect_retries)),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ConnectionError),
        reraise=True
    ):
        with attempt:
            if not await w3.is_connected():
                raise ConnectionError(f"Cannot reach RPC endpoint {config.rpc_url}")


async def run_trader(config: Config, mnemonic: str, token_a: str, token_b: str,
                     assume_yes: bool = False) -> str:
    """Connect, then execute round-up trading until stopped."""
    w3 = build_web3(config)
    host = ConsoleHost(
        mnemonic,
        state_store=JsonFileStateStore(config.state_file),
        console=console,
        assume_yes=assume_yes
    )
    trader = RoundupTrader(config, host, w3)
    router = CommandRouter(trader)

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def request_stop():
        if trader.gate.is_running:
            console.print("\n[yellow]Stop requested, finishing current cycle...[/yellow]")
            trader.stop()
        else:
            # Not monitoring yet: abandon connect, lookup or consent
            task.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, request_stop)
    except NotImplementedError:
        # Windows event loops do not support signal handlers
        pass

    try:
        await wait_for_connection(w3, config)
        return await router.dispatch("cli", "execute", {"tokenA": token_a, "tokenB": token_b})
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
        await w3.provider.disconnect()


def setup_command(args):
    """Handle setup command - store settings and encrypted seed phrase."""
    print_banner()
    manager = ConfigManager(Path(args.config))

    console.print("[yellow]Enter the wallet seed phrase (input hidden):[/yellow]")
    mnemonic = getpass.getpass("> ").strip()

    password = get_password("Create encryption password: ")
    console.print("[yellow]Confirm password:[/yellow]")
    if getpass.getpass("> ") != password:
        console.print("[red]Passwords don't match![/red]")
        sys.exit(1)

    config_data = Config().to_dict()
    config_data.update({
        "rpc_url": args.rpc,
        "required_network": args.network,
    })

    try:
        manager.create_config(config_data, mnemonic, password)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Configuration written to {args.config}[/green]")


def run_command(args):
    """Handle run command - execute round-up trading for a token pair."""
    print_banner()
    manager = ConfigManager(Path(args.config))
    config = manager.load_config()
    setup_logging(config.log_level, config.log_file)

    for label, address in (("token A", args.token_a), ("token B", args.token_b)):
        if not validate_address(address):
            console.print(f"[red]Invalid {label} address: {address}[/red]")
            sys.exit(1)

    password = args.password or get_password("Enter config password: ")
    try:
        mnemonic = manager.load_mnemonic(password)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(
        f"[cyan]Round-up trading {format_address(args.token_a)} → {format_address(args.token_b)} "
        f"on {config.required_network}[/cyan]"
    )

    try:
        result = asyncio.run(run_trader(config, mnemonic, args.token_a, args.token_b, args.yes))
    except (RoundupError, ConnectionError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)
    except asyncio.CancelledError:
        console.print("\n[yellow]Round-up trading cancelled by user[/yellow]")
        return

    if result == TradeStatus.OK.value:
        console.print("[green]✓ Round-up trading stopped[/green]")
    else:
        console.print("[red]✗ Round-up trading did not start[/red]")
        sys.exit(2)


def history_command(args):
    """Handle history command - list executed round-ups."""
    config = ConfigManager(Path(args.config)).load_config()
    logs = asyncio.run(JsonFileStateStore(config.state_file).get()).get("logs", [])

    if not logs:
        console.print("[dim]No round-ups executed yet[/dim]")
        return

    table = Table(title=f"Executed Round-ups ({len(logs)})", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("Pair", style="cyan")
    table.add_column("Spent", justify="right", style="red")
    table.add_column("Gained", justify="right", style="green")
    table.add_column("Block", justify="right")
    table.add_column("Swap TX")

    for entry in logs[-args.limit:] if args.limit > 0 else []:
        table.add_row(
            entry["timestamp"][:19],
            f"{entry['token_a']}/{entry['token_b']}",
            format_units(entry["spent"], args.decimals),
            format_units(entry["gained"], args.decimals),
            str(entry["block_number"]),
            format_address(entry["swap_tx"], 8),
        )

    console.print(table)


def config_command(args):
    """Handle config command - show settings without secrets."""
    config = ConfigManager(Path(args.config)).load_config()

    table = Table(title="Round-up Trader Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in config.to_dict().items():
        if key in ("encrypted_mnemonic", "salt") and value:
            value = mask_sensitive(str(value))
        table.add_row(key, str(value))

    console.print(table)


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        prog="roundup-trader",
        description="Round-up trading on Uniswap V2 pairs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Store seed phrase and settings
  roundup-trader setup --rpc http://127.0.0.1:8545 --network rinkeby

  # Round up token A into token B on every pool change
  roundup-trader run --token-a 0x... --token-b 0x...

  # Show executed round-ups
  roundup-trader history --limit 20
        """
    )
    parser.add_argument('--config', default='./roundup_config.yaml', help='Path to config file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    setup_parser = subparsers.add_parser('setup', help='Create config with encrypted seed phrase')
    setup_parser.add_argument('--rpc', default=Config.rpc_url, help='RPC endpoint URL')
    setup_parser.add_argument('--network', default=Config.required_network, help='Required network name')

    run_parser = subparsers.add_parser('run', help='Run round-up trading for a token pair')
    run_parser.add_argument('--token-a', required=True, help='Token to round up from')
    run_parser.add_argument('--token-b', required=True, help='Token to round up into')
    run_parser.add_argument('--password', help='Config password (or prompt)')
    run_parser.add_argument('-y', '--yes', action='store_true', help='Confirm account usage without prompting')

    history_parser = subparsers.add_parser('history', help='List executed round-ups')
    history_parser.add_argument('--limit', type=positive_int, default=50, help='Number of entries to show')
    history_parser.add_argument('--decimals', type=int, default=18, help='Token decimals for display')

    subparsers.add_parser('config', help='Show configuration')

    args = parser.parse_args(argv)

    try:
        if args.command == 'setup':
            setup_command(args)
        elif args.command == 'run':
            run_command(args)
        elif args.command == 'history':
            history_command(args)
        elif args.command == 'config':
            config_command(args)
        else:
            parser.print_help()
    except (RoundupError, ValueError, FileNotFoundError, ConnectionError) as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)


if __name__ == '__main__':
    main()
