"""
catalogsync CLI - deploy model binaries and their catalog to blob storage.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import Config, DEFAULT_CONTAINER, DEFAULT_DATA_DIR, DEFAULT_PUBLISHER
from .errors import CatalogSyncError
from .fetcher import PackageFetcher
from .registry import DEFAULT_REGISTRY, ArtifactDescriptor, load_registry
from .resolver import ArtifactResolver
from .store import ContentStore, create_store
from .synchronizer import ArtifactOutcome, CatalogSynchronizer, SyncReport

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )
    # The Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.DEBUG if verbose else logging.WARNING)


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def _format_size(size_bytes: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}" if unit != "B" else f"{size_bytes} B"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


def _load_config(ctx: click.Context) -> Config:
    data_dir = ctx.obj.get("config_dir") if ctx.obj else None
    return Config.load(Path(data_dir) if data_dir else None)


def _apply_store_options(
    config: Config,
    storage_account: Optional[str],
    container: Optional[str],
    account_key: Optional[str] = None,
    connection_string: Optional[str] = None,
    local_dir: Optional[str] = None,
) -> None:
    """Let command-line flags override the config file."""
    if local_dir:
        config.store.backend = "local"
        config.store.local_root = local_dir
    elif storage_account:
        config.store.backend = "azure"
        config.store.account_name = storage_account
    if container:
        config.store.container = container
    if account_key:
        config.store.account_key = account_key
    if connection_string:
        config.store.connection_string = connection_string


def _resolve_registry(config: Config) -> Tuple[ArtifactDescriptor, ...]:
    if config.registry_file:
        return load_registry(Path(config.registry_file))
    return DEFAULT_REGISTRY


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config-dir', type=click.Path(file_okay=False), help='Configuration directory')
@click.pass_context
def main(ctx, verbose, config_dir):
    """Deploy ONNX models and their catalog to blob storage."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config_dir'] = config_dir
    setup_logging(verbose)


@main.command()
@click.option('--storage-account', '-s', help='Azure Storage account name')
@click.option('--container', '-c', help=f'Blob container name (default: {DEFAULT_CONTAINER})')
@click.option('--publisher', '-p', help=f'Publisher name for catalog (default: {DEFAULT_PUBLISHER})')
@click.option('--account-key', envvar='AZURE_STORAGE_KEY', help='Storage account key')
@click.option('--connection-string', envvar='AZURE_STORAGE_CONNECTION_STRING',
              help='Storage connection string')
@click.option('--local-dir', type=click.Path(file_okay=False),
              help='Write to a local directory instead of Azure')
@click.option('--registry', 'registry_file', type=click.Path(exists=True, dir_okay=False),
              help='YAML model table to use instead of the built-in one')
@click.option('--concurrency', type=click.IntRange(min=1), help='Models to transfer at once')
@click.option('--timeout', type=float, help='Per-transfer timeout in seconds')
@click.option('--strict/--no-strict', default=None,
              help='Exit non-zero when any model fails (default: only on catalog failure)')
@click.option('--create-container', is_flag=True,
              help='Create the container if it does not exist')
@click.pass_context
def deploy(
    ctx,
    storage_account: Optional[str],
    container: Optional[str],
    publisher: Optional[str],
    account_key: Optional[str],
    connection_string: Optional[str],
    local_dir: Optional[str],
    registry_file: Optional[str],
    concurrency: Optional[int],
    timeout: Optional[float],
    strict: Optional[bool],
    create_container: Optional[bool],
):
    """Download models, upload them, and publish catalog.json."""

    config = _load_config(ctx)
    _apply_store_options(
        config, storage_account, container,
        account_key=account_key,
        connection_string=connection_string,
        local_dir=local_dir,
    )
    if publisher:
        config.catalog.publisher = publisher
    if registry_file:
        config.registry_file = registry_file
    if concurrency:
        config.concurrency = concurrency
    if timeout:
        config.timeout = timeout
    if strict is not None:
        config.fail_on_partial = strict
    if create_container:
        config.store.create_container = True

    try:
        config.apply_env()
        config.validate()
        registry = _resolve_registry(config)
        store = create_store(config.store, timeout=config.timeout)
    except CatalogSyncError as e:
        raise click.ClickException(str(e))

    console.print("\n[bold green]=== YoloX Model Deployment ===[/bold green]\n")
    target = config.store.account_name or config.store.local_root or "(connection string)"
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Store", f"{config.store.backend}: {target}")
    table.add_row("Container", config.store.container)
    table.add_row("Publisher", config.catalog.publisher)
    table.add_row("Models", str(len(registry)))
    console.print(table)

    report = run_async(_run_sync(config, store, registry))

    _print_report(report, store)
    ctx.exit(report.exit_code(config.fail_on_partial))


async def _run_sync(
    config: Config,
    store: ContentStore,
    registry: Tuple[ArtifactDescriptor, ...],
) -> SyncReport:
    async with PackageFetcher(timeout=config.timeout) as fetcher:
        resolver = ArtifactResolver(fetcher, expected_extension=config.catalog.expected_extension)
        synchronizer = CatalogSynchronizer(store, resolver, config)
        synchronizer.on_artifact_start = _on_start
        synchronizer.on_artifact_complete = _on_complete
        try:
            return await synchronizer.sync(registry)
        finally:
            await store.close()


def _on_start(descriptor: ArtifactDescriptor) -> None:
    console.print(f"\n[green]Processing model: {descriptor.key}[/green]")
    console.print(f"  Filename: {descriptor.canonical_name}")
    console.print(f"  Execution Provider: {descriptor.capability_tag}")
    console.print(f"  File Type: {'zip' if descriptor.is_archive else 'onnx'}")


def _on_complete(outcome: ArtifactOutcome) -> None:
    if outcome.success:
        console.print(
            f"  [green]✓ Upload complete[/green] ({_format_size(outcome.size_bytes)})"
        )
    else:
        console.print(f"  [red]✗ {outcome.error_kind.value}:[/red] {outcome.message}")


def _print_report(report: SyncReport, store: ContentStore) -> None:
    console.print()
    table = Table(title="Deployment Results")
    table.add_column("Model", style="cyan")
    table.add_column("File")
    table.add_column("Execution Provider")
    table.add_column("Size", justify="right")
    table.add_column("Status")

    for outcome in report.outcomes:
        if outcome.success:
            status = "[green]uploaded[/green]"
            size = _format_size(outcome.size_bytes)
        else:
            status = f"[red]{outcome.error_kind.value}[/red]"
            size = "-"
        table.add_row(
            outcome.key, outcome.canonical_name, outcome.capability_tag, size, status
        )
    console.print(table)

    if report.manifest_published:
        console.print(Panel(
            f"{store.blob_url(report.catalog_name)}\n\n"
            f"{report.succeeded_count} of {len(report.outcomes)} models in catalog",
            title="[bold green]✓ Catalog uploaded[/bold green]",
        ))
        console.print("[yellow]Note: If using CDN, allow a few minutes for propagation.[/yellow]")
    else:
        console.print(Panel(
            report.manifest_error or "unknown error",
            title="[bold red]✗ Catalog upload failed[/bold red]",
        ))


@main.command('models')
@click.option('--registry', 'registry_file', type=click.Path(exists=True, dir_okay=False),
              help='YAML model table to use instead of the built-in one')
@click.pass_context
def list_models(ctx, registry_file: Optional[str]):
    """List the models that deploy will publish."""

    config = _load_config(ctx)
    if registry_file:
        config.registry_file = registry_file

    try:
        registry = _resolve_registry(config)
    except CatalogSyncError as e:
        raise click.ClickException(str(e))

    table = Table(title="Model Registry")
    table.add_column("Key", style="cyan")
    table.add_column("Catalog ID")
    table.add_column("File")
    table.add_column("Execution Provider")
    table.add_column("Type")

    for d in registry:
        table.add_row(
            d.key,
            f"{config.catalog.id_prefix}{d.key}",
            d.canonical_name,
            d.capability_tag,
            "zip" if d.is_archive else "onnx",
        )

    console.print(table)


@main.command()
@click.option('--storage-account', '-s', help='Azure Storage account name')
@click.option('--container', '-c', help='Blob container name')
@click.option('--account-key', envvar='AZURE_STORAGE_KEY', help='Storage account key')
@click.option('--connection-string', envvar='AZURE_STORAGE_CONNECTION_STRING',
              help='Storage connection string')
@click.option('--local-dir', type=click.Path(file_okay=False), help='Local store directory')
@click.pass_context
def status(
    ctx,
    storage_account: Optional[str],
    container: Optional[str],
    account_key: Optional[str],
    connection_string: Optional[str],
    local_dir: Optional[str],
):
    """Show which registry models are already in the store."""

    config = _load_config(ctx)
    _apply_store_options(
        config, storage_account, container,
        account_key=account_key,
        connection_string=connection_string,
        local_dir=local_dir,
    )

    try:
        config.apply_env()
        config.validate()
        registry = _resolve_registry(config)
        store = create_store(config.store, timeout=config.timeout)
        names = set(run_async(_list_store(store)))
    except CatalogSyncError as e:
        raise click.ClickException(str(e))

    table = Table(title=f"Container: {config.store.container}")
    table.add_column("Name", style="cyan")
    table.add_column("Present", justify="center")

    for d in registry:
        present = "[green]✓[/green]" if d.canonical_name in names else "[dim]-[/dim]"
        table.add_row(d.canonical_name, present)

    catalog_name = config.catalog.catalog_name
    present = "[green]✓[/green]" if catalog_name in names else "[dim]-[/dim]"
    table.add_row(catalog_name, present)

    console.print(table)


async def _list_store(store: ContentStore):
    try:
        return await store.list()
    finally:
        await store.close()


@main.command()
@click.option('--storage-account', '-s', help='Azure Storage account name')
@click.option('--container', '-c', default=DEFAULT_CONTAINER, help='Blob container name')
@click.option('--publisher', '-p', default=DEFAULT_PUBLISHER, help='Publisher name for catalog')
@click.option('--local-dir', type=click.Path(file_okay=False), help='Local store directory')
@click.option('--force', is_flag=True, help='Overwrite an existing configuration')
@click.pass_context
def init(
    ctx,
    storage_account: Optional[str],
    container: str,
    publisher: str,
    local_dir: Optional[str],
    force: bool,
):
    """Write a configuration file with deployment defaults."""

    data_dir = Path(ctx.obj['config_dir']) if ctx.obj.get('config_dir') else DEFAULT_DATA_DIR

    if Config.exists(data_dir) and not force:
        raise click.ClickException(
            f"Configuration already exists in {data_dir} (use --force to overwrite)"
        )

    config = Config(data_dir=data_dir)
    _apply_store_options(config, storage_account, container, local_dir=local_dir)
    config.catalog.publisher = publisher
    config.save()

    console.print(f"[green]✓ Configuration written to {config.config_path}[/green]")
    console.print("[dim]Credentials are read from AZURE_STORAGE_KEY or "
                  "AZURE_STORAGE_CONNECTION_STRING.[/dim]")


if __name__ == "__main__":
    main()
