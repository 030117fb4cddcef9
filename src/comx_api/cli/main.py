"""CLI for the comx RPC and module clients."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install

from comx_api.config import ModuleClientConfig
from comx_api.crypto import KeyPair, load_or_create_keypair, save_keypair
from comx_api.errors import ComxError
from comx_api.modules import ModuleClient
from comx_api.query_map import QueryMap
from comx_api.rpc import RpcClient
from comx_api.settings import Settings, load_settings

# Install rich traceback handler
install(show_locals=False)

app = typer.Typer(
    name="comx",
    help="Call a remote node over JSON-RPC and sign module requests",
    add_completion=False,
)

console = Console()

DEFAULT_KEY_FILE = Path.home() / ".comx" / "key"


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _parse_params(params: str | None) -> Any:
    if params is None:
        return None
    try:
        return json.loads(params)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid --params JSON:[/bold red] {e}")
        raise typer.Exit(code=1)


def _load_settings(config: Path | None) -> Settings:
    if config is None:
        return Settings()
    try:
        return load_settings(config)
    except ComxError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except ComxError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _output_json(value: Any) -> None:
    console.print_json(json.dumps(value, default=str))


@app.command()
def keygen(
    out: Path = typer.Option(DEFAULT_KEY_FILE, "--out", "-o", help="Private key file (created if missing)"),
    seed_phrase: str | None = typer.Option(None, "--seed-phrase", help="Create the key from a BIP39 mnemonic"),
) -> None:
    """Create or load an Ed25519 key pair and print its public key."""
    if seed_phrase is None:
        keypair = load_or_create_keypair(out)
    else:
        if out.exists():
            console.print(f"[bold red]Error:[/bold red] {out} already exists")
            raise typer.Exit(code=1)
        try:
            keypair = KeyPair.from_seed_phrase(seed_phrase)
        except ValueError as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=1)
        save_keypair(keypair, out)

    console.print(f"[bold cyan]Key file:[/bold cyan] {out}")
    console.print(f"[bold cyan]Public key:[/bold cyan] {keypair.public_key_hex}")
    console.print(f"[bold cyan]SS58 address:[/bold cyan] {keypair.ss58_address}")


@app.command()
def rpc(
    method: str = typer.Argument(..., help="RPC method name"),
    url: str | None = typer.Option(None, "--url", "-u", help="Node URL (overrides config)"),
    params: str | None = typer.Option(None, "--params", "-p", help="Parameters as JSON"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Make a single JSON-RPC call and print the result."""
    _configure_logging(debug)
    settings = _load_settings(config)
    rpc_config = settings.rpc if url is None else settings.rpc.model_copy(update={"url": url})
    parsed = _parse_params(params)

    async def run() -> Any:
        async with RpcClient(rpc_config) as client:
            return await client.request(method, parsed)

    _output_json(_run(run()))


@app.command()
def call(
    method: str = typer.Argument(..., help="Module method (endpoint) name"),
    target_key: str = typer.Argument(..., help="Address of the target module"),
    host: str | None = typer.Option(None, "--host", help="Module server host (overrides config)"),
    port: int | None = typer.Option(None, "--port", help="Module server port, 0 to omit"),
    key_file: Path = typer.Option(DEFAULT_KEY_FILE, "--key-file", "-k", help="Private key file"),
    params: str | None = typer.Option(None, "--params", "-p", help="Parameters as JSON"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Make a signed module call and print the response."""
    _configure_logging(debug)
    settings = _load_settings(config)
    overrides = {k: v for k, v in {"host": host, "port": port}.items() if v is not None}
    try:
        module_config = ModuleClientConfig(**{**settings.module.model_dump(), **overrides})
    except ComxError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    keypair = load_or_create_keypair(key_file)
    parsed = _parse_params(params)

    async def run() -> Any:
        client = ModuleClient(keypair, module_config, registry=settings.endpoint_registry())
        async with client:
            return await client.call(method, target_key, parsed)

    _output_json(_run(run()))


@app.command()
def balances(
    addresses: list[str] = typer.Argument(..., help="Addresses to query"),
    url: str | None = typer.Option(None, "--url", "-u", help="Node URL (overrides config)"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output"),
) -> None:
    """Fetch balances for several addresses in one batch."""
    _configure_logging(debug)
    settings = _load_settings(config)
    rpc_config = settings.rpc if url is None else settings.rpc.model_copy(update={"url": url})
    query_config = settings.query_map

    async def run() -> list[Any]:
        async with RpcClient(rpc_config) as client:
            return await QueryMap(client, query_config).get_balances(addresses)

    results = _run(run())

    table = Table(title="Balances", show_header=True, header_style="bold magenta")
    table.add_column("Address", style="cyan")
    table.add_column("Balance", style="green")
    for address, balance in zip(addresses, results, strict=True):
        table.add_row(address, json.dumps(balance, default=str))
    console.print(table)


@app.command()
def endpoints(
    config: Path = typer.Argument(..., help="Settings YAML file"),
) -> None:
    """List endpoints defined in a settings file."""
    settings = _load_settings(config)

    if not settings.endpoints:
        console.print("[yellow]No endpoints configured[/yellow]")
        return

    table = Table(title="Endpoints", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Access", style="yellow")
    table.add_column("Retries", style="green")
    table.add_column("Timeout")
    table.add_column("Rate limit")

    for endpoint in settings.endpoints:
        rate_limit = (
            f"{endpoint.rate_limit.max_requests}/{endpoint.rate_limit.window_seconds}s" if endpoint.rate_limit else "-"
        )
        table.add_row(
            endpoint.name,
            endpoint.path,
            endpoint.access_level.value,
            "yes" if endpoint.allow_retries else "no",
            f"{endpoint.timeout}s" if endpoint.timeout else "-",
            rate_limit,
        )

    console.print(table)


if __name__ == "__main__":
    app()
