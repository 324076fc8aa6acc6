"""
ShardVault Command Line Interface

CLI for publishing threshold-encrypted data and recovering it through the
participant nodes.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from shared.crypto_utils import KeyPair, ThresholdCrypto
from shared.errors import ShardVaultError, TaskTimeoutError, VerificationFailedError
from shared.models import PriceInfo
from shared.wallet import WalletSigner
from coordinator.config import DEFAULT_CONFIG_PATH, VaultConfig, load_config
from .sdk import ShardVaultClient

# Initialize Typer app
app = typer.Typer(
    name="shardvault",
    help="ShardVault - threshold-encrypted data sharing CLI",
    add_completion=False
)

# Rich console for pretty output
console = Console()

DEFAULT_KEY_PATH = Path.home() / ".shardvault" / "consumer.key"
DEFAULT_WALLET_PATH = Path.home() / ".shardvault" / "wallet.key"


def configure_logging(verbose: bool = False) -> None:
    """Configure structured logging for CLI runs."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if verbose else logging.WARNING,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_config(ctx: typer.Context) -> VaultConfig:
    """Load the deployment config, using the default file if present."""
    options = ctx.obj or {}
    config_path = options.get("config_path")
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH

    services = {k: v for k, v in options.get("services", {}).items() if v}
    try:
        return load_config(config_path, overrides={"services": services} if services else None)
    except (FileNotFoundError, ShardVaultError) as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)


def load_keypair(key_path: Path) -> KeyPair:
    if not key_path.exists():
        console.print(f"[red]✗ Key file not found: {key_path}[/red]")
        console.print("Run [bold]shardvault keygen[/bold] first.")
        raise typer.Exit(1)
    return KeyPair.load(key_path)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


@app.callback()
def main_options(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    directory_url: Optional[str] = typer.Option(None, "--directory-url", help="Node directory URL"),
    blob_store_url: Optional[str] = typer.Option(None, "--blob-store-url", help="Blob store URL"),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Metadata registry URL"),
    ledger_url: Optional[str] = typer.Option(None, "--ledger-url", help="Task ledger URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")
):
    """ShardVault - threshold-encrypted data sharing."""
    configure_logging(verbose)
    ctx.obj = {
        "config_path": config,
        "services": {
            "node_directory": directory_url,
            "blob_store": blob_store_url,
            "metadata_registry": registry_url,
            "task_ledger": ledger_url,
        },
    }


# =============================================================================
# Key Commands
# =============================================================================

@app.command()
def keygen(
    out: Path = typer.Option(DEFAULT_KEY_PATH, "--out", "-o", help="Where to write the consumer key"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing key")
):
    """Generate a consumer key pair."""
    if out.exists() and not force:
        console.print(f"[red]✗ Key already exists: {out}[/red] (use --force to replace it)")
        raise typer.Exit(1)

    keypair = ThresholdCrypto().keygen()
    keypair.save(out)

    console.print("[green]✓ Consumer key generated[/green]")
    console.print(f"  Key file: {out}")
    console.print(f"  Public key: {keypair.public_key_b64}")


# =============================================================================
# Data Commands
# =============================================================================

@app.command()
def upload(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="File to encrypt and publish"),
    tag: str = typer.Option("{}", "--tag", "-t", help="Data tag as JSON"),
    price: str = typer.Option("0", "--price", "-p", help="Data price"),
    symbol: Optional[str] = typer.Option(None, "--symbol", "-s", help="Price symbol"),
    wallet: Path = typer.Option(DEFAULT_WALLET_PATH, "--wallet", "-w", help="Wallet key file")
):
    """Encrypt a file and publish it."""
    if not file.exists():
        console.print(f"[red]✗ File not found: {file}[/red]")
        raise typer.Exit(1)

    try:
        data_tag = json.loads(tag)
    except json.JSONDecodeError as e:
        console.print(f"[red]✗ Invalid --tag JSON: {e}[/red]")
        raise typer.Exit(1)

    vault_config = get_config(ctx)
    signer = WalletSigner.load_or_generate(wallet)

    async def _upload():
        async with ShardVaultClient.from_config(vault_config, signer=signer) as vault:
            return await vault.upload_data(
                file.read_bytes(),
                data_tag,
                PriceInfo(price=price, symbol=symbol)
            )

    try:
        data_id = run_async(_upload())
    except ShardVaultError as e:
        console.print(f"[red]✗ Upload failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]✓ Data published[/green]")
    console.print(f"  Data ID: {data_id}")


@app.command()
def submit(
    ctx: typer.Context,
    data_id: str = typer.Argument(..., help="Data ID to request"),
    key: Path = typer.Option(DEFAULT_KEY_PATH, "--key", "-k", help="Consumer key file"),
    wallet: Path = typer.Option(DEFAULT_WALLET_PATH, "--wallet", "-w", help="Wallet key file")
):
    """Submit a re-encryption task for published data."""
    vault_config = get_config(ctx)
    keypair = load_keypair(key)
    signer = WalletSigner.load_or_generate(wallet)

    async def _submit():
        async with ShardVaultClient.from_config(vault_config, signer=signer) as vault:
            return await vault.submit_task(data_id, keypair.public_key_b64)

    try:
        task_id = run_async(_submit())
    except ShardVaultError as e:
        console.print(f"[red]✗ Submission failed: {e}[/red]")
        raise typer.Exit(1)

    console.print("[green]✓ Task submitted![/green]")
    console.print(f"  Task ID: {task_id}")
    console.print(f"\nGet the data with: shardvault result {task_id}")


def _write_result(plaintext: bytes, out: Optional[Path]) -> None:
    if out:
        out.write_bytes(plaintext)
        console.print(f"[green]✓ Recovered {len(plaintext)} bytes to {out}[/green]")
    else:
        console.print(plaintext.decode("utf-8", errors="replace"))


def _report_failure(e: ShardVaultError) -> None:
    if isinstance(e, TaskTimeoutError):
        console.print(f"[yellow]✗ {e}[/yellow]")
    elif isinstance(e, VerificationFailedError):
        console.print(f"[red]✗ Nodes reported a verification error: {e.payload}[/red]")
    else:
        console.print(f"[red]✗ Recovery failed: {e}[/red]")


@app.command()
def result(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task ID to wait for"),
    key: Path = typer.Option(DEFAULT_KEY_PATH, "--key", "-k", help="Consumer key file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write plaintext to file")
):
    """Wait for a task and decrypt its result."""
    vault_config = get_config(ctx)
    keypair = load_keypair(key)

    async def _result():
        async with ShardVaultClient.from_config(vault_config) as vault:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console
            ) as progress:
                progress.add_task("Waiting for nodes...", total=None)
                return await vault.get_result(task_id, keypair, timeout=timeout)

    try:
        plaintext = run_async(_result())
    except ShardVaultError as e:
        _report_failure(e)
        raise typer.Exit(1)

    _write_result(plaintext, out)


@app.command()
def fetch(
    ctx: typer.Context,
    data_id: str = typer.Argument(..., help="Data ID to request"),
    key: Path = typer.Option(DEFAULT_KEY_PATH, "--key", "-k", help="Consumer key file"),
    wallet: Path = typer.Option(DEFAULT_WALLET_PATH, "--wallet", "-w", help="Wallet key file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Seconds to wait"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write plaintext to file")
):
    """Submit a task and decrypt its result in one step."""
    vault_config = get_config(ctx)
    keypair = load_keypair(key)
    signer = WalletSigner.load_or_generate(wallet)

    async def _fetch():
        async with ShardVaultClient.from_config(vault_config, signer=signer) as vault:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console
            ) as progress:
                progress.add_task("Submitting task and waiting for nodes...", total=None)
                return await vault.submit_task_and_get_result(data_id, keypair, timeout=timeout)

    try:
        plaintext = run_async(_fetch())
    except ShardVaultError as e:
        _report_failure(e)
        raise typer.Exit(1)

    _write_result(plaintext, out)


# =============================================================================
# Information Commands
# =============================================================================

@app.command()
def nodes(ctx: typer.Context):
    """List participant nodes and their directory status."""
    vault_config = get_config(ctx)

    async def _nodes():
        async with ShardVaultClient.from_config(vault_config) as vault:
            return await vault.list_nodes()

    try:
        listed = {node.name: node.public_key for node in run_async(_nodes())}
    except ShardVaultError as e:
        console.print(f"[red]✗ Failed to list nodes: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Participants ({vault_config.threshold.t}-of-{vault_config.threshold.n})")
    table.add_column("#", justify="right")
    table.add_column("Node", style="cyan")
    table.add_column("Public Key")

    for position, name in enumerate(vault_config.node_names, 1):
        public_key = listed.get(name)
        key_display = public_key[:16] + "..." if public_key else "[red]missing[/red]"
        table.add_row(str(position), name, key_display)

    console.print(table)


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
