"""CLI for the Azure spot pricing and eviction risk tool."""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .app_logging import setup_logging
from .config import find_config_file, get_config, load_config, reset_config, save_default_config
from .enrichment import create_orchestrator
from .errors import ConfigError, PricingError, SpotEvictionError
from .export import export_csv, render_table
from .pricing import build_pricing_table, fetch_price_records, join_eviction
from .schema import ScoreKey


console = Console()


def _prepare_config(config: Optional[Path], verbose: bool):
    """Load an explicit or discovered config file and set up logging."""
    setup_logging('DEBUG' if verbose else 'WARNING', dev_mode=verbose)

    config_path = config or find_config_file()
    if config_path:
        try:
            load_config(config_path)
            if verbose:
                console.print(f"Loaded config from: {config_path}")
        except ConfigError as e:
            if config:
                console.print(f"[red]Error:[/red] {e}")
                sys.exit(1)
            console.print(f"[yellow]Warning:[/yellow] {e}")
            reset_config()
    else:
        reset_config()

    return get_config()


def _run_enrichment(cfg, grouped: dict[str, list[str]], subscription_id: Optional[str], verbose: bool):
    def progress_callback(message: str):
        if verbose:
            console.print(f"  {message}")

    orchestrator = create_orchestrator(cfg, subscription_id, progress_callback)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Classifying eviction risk...", total=None)
        result = orchestrator.enrich(grouped)
        progress.update(task, description="Complete!")

    return result


@click.group()
@click.version_option(version="0.1.0", prog_name="spot-eviction")
def main():
    """Azure Spot Pricing and Eviction Risk.

    Compare spot and pay-as-you-go VM prices and classify how likely
    each SKU is to be evicted.
    """
    pass


@main.command(name='prices')
@click.option(
    '--region', '-r',
    multiple=True,
    required=True,
    help='Azure region (can specify multiple). E.g., --region eastus --region westeurope'
)
@click.option(
    '--sku', '-s',
    multiple=True,
    help='SKU glob pattern (can specify multiple). E.g., --sku "Standard_D*s_v5"'
)
@click.option(
    '--skip-eviction',
    is_flag=True,
    help='Do not query eviction risk; show N/A instead'
)
@click.option(
    '--out', '-o',
    type=click.Path(dir_okay=False, path_type=Path),
    help='Write results to a CSV file'
)
@click.option(
    '--config', '-c',
    type=click.Path(exists=True, path_type=Path),
    help='Path to configuration YAML file'
)
@click.option(
    '--subscription-id',
    type=str,
    envvar='AZURE_SUBSCRIPTION_ID',
    default=None,
    help='Azure subscription used for placement scores (or set AZURE_SUBSCRIPTION_ID)'
)
@click.option(
    '--verbose', '-v',
    is_flag=True,
    help='Show detailed progress and debug logging'
)
def prices_cmd(
    region: tuple,
    sku: tuple,
    skip_eviction: bool,
    out: Optional[Path],
    config: Optional[Path],
    subscription_id: Optional[str],
    verbose: bool,
):
    """Show spot prices, savings and eviction risk.

    Example:
        spot-eviction prices --region eastus --sku "Standard_D*s_v5" --out spot.csv
    """
    cfg = _prepare_config(config, verbose)
    if skip_eviction:
        cfg.enrichment.skip_enrichment = True

    records = []
    for name in region:
        try:
            records.extend(fetch_price_records(name, cfg.pricing))
        except PricingError as e:
            console.print(f"[yellow]Warning:[/yellow] {e}")

    rows = build_pricing_table(records, sku)
    if not rows:
        console.print("[red]No spot prices found.[/red] Try adjusting the --region or --sku filters.")
        sys.exit(1)

    grouped: dict[str, list[str]] = {}
    for row in rows:
        skus = grouped.setdefault(row.region, [])
        if row.sku not in skus:
            skus.append(row.sku)

    result = _run_enrichment(cfg, grouped, subscription_id, verbose)
    enriched = join_eviction(rows, result)

    render_table(enriched, console)
    console.print(f"\n{len(enriched)} row(s) across {len(grouped)} region(s)")

    if out:
        try:
            path = export_csv(enriched, out)
        except (SpotEvictionError, OSError) as e:
            console.print(f"[red]Error writing output:[/red] {e}")
            sys.exit(1)
        console.print(f"[green]✓[/green] Results written to {path}")


@main.command(name='eviction')
@click.option(
    '--region', '-r',
    multiple=True,
    required=True,
    help='Azure region (can specify multiple)'
)
@click.option(
    '--sku', '-s',
    multiple=True,
    required=True,
    help='Exact SKU name (can specify multiple). E.g., --sku Standard_D4s_v5'
)
@click.option(
    '--config', '-c',
    type=click.Path(exists=True, path_type=Path),
    help='Path to configuration YAML file'
)
@click.option(
    '--subscription-id',
    type=str,
    envvar='AZURE_SUBSCRIPTION_ID',
    default=None,
    help='Azure subscription used for placement scores (or set AZURE_SUBSCRIPTION_ID)'
)
@click.option(
    '--verbose', '-v',
    is_flag=True,
    help='Show detailed progress and debug logging'
)
def eviction_cmd(
    region: tuple,
    sku: tuple,
    config: Optional[Path],
    subscription_id: Optional[str],
    verbose: bool,
):
    """Classify eviction risk for SKUs without fetching prices.

    Example:
        spot-eviction eviction --region eastus --sku Standard_D4s_v5 --sku Standard_E8s_v5
    """
    cfg = _prepare_config(config, verbose)
    grouped = {name: list(dict.fromkeys(sku)) for name in region}

    result = _run_enrichment(cfg, grouped, subscription_id, verbose)

    table = Table(title="Eviction Risk")
    table.add_column("Region")
    table.add_column("SKU")
    table.add_column("Risk")
    table.add_column("Rate")
    table.add_column("Source")
    for name, skus in grouped.items():
        for sku_name in skus:
            classification = result[ScoreKey(region=name, sku=sku_name)]
            tier = classification.source_tier
            table.add_row(
                name,
                sku_name,
                classification.risk_label,
                classification.percent_bucket,
                tier.value if tier else "N/A",
            )
    console.print(table)


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="spot-eviction.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default configuration file.

    Example:
        spot-eviction init-config --out spot-eviction.yaml
    """
    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
    except OSError as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Config file created: {out}")
    console.print("\nThe tool will look for config in this order:")
    console.print("  1. SPOT_EVICTION_CONFIG environment variable")
    console.print("  2. ./spot-eviction.yaml (current directory)")
    console.print("  3. ~/.config/spot-eviction/config.yaml")


if __name__ == '__main__':
    main()
