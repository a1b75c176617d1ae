"""
Command-Line Interface for fincast.

Purpose
-------
Runs forecasts and manages configuration files without writing Python
code.

Commands
--------
- forecast: Run the forecast pipeline over a transaction file
- config: Create, display and validate configuration files
- scenarios: Validate scenario files
- info: Show version and dependency information

Example Usage
-------------
    # Forecast from a CSV history with two scenarios
    $ fincast forecast -t history.csv -s scenarios.json --seed 42 -o forecast.json

    # Heuristic insights, custom configuration
    $ fincast forecast -t history.json -c config.json --insights heuristic

    # Create and validate a configuration
    $ fincast config create config.json --template advanced
    $ fincast config validate config.json

    # Show version
    $ fincast --version
"""

from __future__ import annotations

import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import AppSettings, ForecastConfig
from .constants import DEFAULT_SEED, VERSION
from .exceptions import FincastError
from .utils import configure_logging

__version__ = VERSION

logger = logging.getLogger(__name__)


def _money(value: float) -> str:
    return f"${value:,.2f}"


@click.group()
@click.version_option(version=__version__, prog_name="fincast")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def main(ctx: click.Context, quiet: bool) -> None:
    """
    fincast - Transaction-based balance forecasting.

    Projects account balances over several horizons with Monte Carlo
    uncertainty, scenario adjustments and a back-tested quality score.

    Use 'fincast COMMAND --help' for command-specific help.
    """
    settings = AppSettings()
    configure_logging("WARNING" if quiet else ("DEBUG" if settings.debug else settings.log_level))
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["console"] = Console()
    ctx.obj["settings"] = settings


# ---------------------------------------------------------------------------
# forecast
# ---------------------------------------------------------------------------

def _insight_generator(mode: str, settings: AppSettings):
    from .insights import HeuristicInsightGenerator, OpenAIInsightGenerator

    if mode == "heuristic":
        return HeuristicInsightGenerator()
    if mode == "openai":
        return OpenAIInsightGenerator.from_settings(settings)
    return None


@main.command()
@click.option(
    "--transactions", "-t",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Transaction history (JSON or CSV)"
)
@click.option(
    "--scenarios", "-s",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Scenario descriptors (JSON)"
)
@click.option(
    "--config", "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Forecast configuration file (JSON)"
)
@click.option(
    "--output", "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the full result as JSON to this file"
)
@click.option(
    "--seed",
    type=int,
    default=None,
    is_flag=False,
    flag_value=DEFAULT_SEED,
    help=f"Random seed for reproducibility (bare --seed uses {DEFAULT_SEED})"
)
@click.option(
    "--insights",
    type=click.Choice(["none", "heuristic", "openai"]),
    default="none",
    help="Insight generator (default: none)"
)
@click.pass_context
def forecast(
    ctx: click.Context,
    transactions: Path,
    scenarios: Optional[Path],
    config: Optional[Path],
    output: Optional[Path],
    seed: Optional[int],
    insights: str,
) -> None:
    """
    Run the forecast pipeline.

    Loads a transaction history, projects balances for every configured
    horizon and prints a summary table.

    Example:
        fincast forecast -t history.csv -s scenarios.json --seed 42
    """
    console: Console = ctx.obj["console"]
    quiet = ctx.obj.get("quiet", False)

    from .pipeline import ForecastPipeline
    from .serialization import load_config, load_scenarios, load_transactions, save_forecast_result

    try:
        cfg = load_config(config) if config else ForecastConfig()
        if seed is not None:
            cfg = cfg.model_copy(update={"seed": seed})
        records = load_transactions(transactions)
        scenario_list = load_scenarios(scenarios) if scenarios else []
        generator = _insight_generator(insights, ctx.obj["settings"])
    except FincastError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not quiet:
        console.print(f"[bold blue]Forecasting from {len(records):,} records...[/bold blue]")

    result = ForecastPipeline(cfg, insight_generator=generator).run(records, scenarios=scenario_list)

    if output:
        save_forecast_result(result, output)
        if not quiet:
            click.echo(f"Results saved to {output}")

    if result.status == "fatal":
        for err in result.errors:
            click.echo(f"Error [{err.stage}]: {err.message}", err=True)
        sys.exit(1)

    if quiet:
        return

    table = Table(title="Balance Projections", show_header=True)
    table.add_column("Horizon", style="cyan")
    table.add_column("Projected", style="green", justify="right")
    table.add_column("p5", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("Confidence", justify="right")
    if result.scenario_projections:
        table.add_column("With scenarios", style="magenta", justify="right")
    adjusted = {p.horizon_months: p for p in result.scenario_projections}
    for p in result.projections:
        row = [
            f"{p.horizon_months} months",
            _money(p.projected_balance),
            _money(p.uncertainty.p5),
            _money(p.uncertainty.p95),
            f"{p.confidence:.0%}",
        ]
        if adjusted:
            row.append(_money(adjusted[p.horizon_months].projected_balance))
        table.add_row(*row)
    console.print(table)

    if result.quality is not None:
        q = result.quality
        console.print(
            f"Quality {q.overall:.2f} (data {q.data_quality:.2f}, patterns "
            f"{q.algorithmic_strength:.2f}, insights {q.ai_insight_quality:.2f}, "
            f"reliability {q.forecast_reliability:.2f})"
        )
    if result.advisory:
        console.print("[yellow]Advisory: treat these figures as estimates, not certainties.[/yellow]")
    for err in result.errors:
        console.print(f"[red]{err.stage}[/red]: {err.message}")
    for line in result.recommendations:
        console.print(f"- {line}")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

@main.group()
def config() -> None:
    """
    Configuration management commands.

    Create, display and validate forecast configuration files.
    """
    pass


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def config_validate(ctx: click.Context, config_file: Path) -> None:
    """
    Validate a configuration file.

    Example:
        fincast config validate config.json
    """
    console: Console = ctx.obj["console"]
    quiet = ctx.obj.get("quiet", False)

    from .serialization import load_config

    try:
        cfg = load_config(config_file)
    except FincastError as e:
        click.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)

    if not quiet:
        info = (
            "[bold]Configuration Valid[/bold]\n\n"
            f"[cyan]Horizons:[/cyan] {', '.join(str(h) for h in cfg.horizons)} months\n"
            f"[cyan]Monte Carlo:[/cyan] {cfg.n_sims:,} samples, seed {cfg.seed}\n"
            f"[cyan]Confidence:[/cyan] {cfg.confidence_level:.0%} ({cfg.critical_value_method})"
        )
        console.print(Panel(info, title="Configuration Summary", border_style="green"))


@config.command("show")
@click.argument("config_file", type=click.Path(exists=True, path_type=Path))
@click.option("--format", "-f", type=click.Choice(["json", "table"]), default="table")
@click.pass_context
def config_show(ctx: click.Context, config_file: Path, format: str) -> None:
    """
    Display configuration details, with defaults filled in.

    Example:
        fincast config show config.json --format json
    """
    console: Console = ctx.obj["console"]

    from .serialization import load_config

    try:
        cfg = load_config(config_file)
    except FincastError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    data = cfg.model_dump(mode="json")
    if format == "json":
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Forecast Configuration")
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


_TEMPLATES = {
    "basic": {"seed": DEFAULT_SEED},
    "advanced": {
        "horizons": [3, 6, 12, 24, 36],
        "n_sims": 2000,
        "seed": DEFAULT_SEED,
        "confidence_level": 0.95,
        "critical_value_method": "student_t",
        "backtest_periods": 6,
        "insight_timeout": 20.0,
        "parallel_monte_carlo": True,
    },
}


@config.command("create")
@click.argument("output_file", type=click.Path(path_type=Path))
@click.option("--template", "-t", type=click.Choice(["basic", "advanced"]), default="basic")
@click.pass_context
def config_create(ctx: click.Context, output_file: Path, template: str) -> None:
    """
    Create a new configuration file from a template.

    Example:
        fincast config create my_config.json --template advanced
    """
    quiet = ctx.obj.get("quiet", False)

    from .serialization import save_config

    if output_file.exists():
        click.echo(f"Error: {output_file} already exists", err=True)
        sys.exit(1)

    save_config(ForecastConfig(**_TEMPLATES[template]), output_file)
    if not quiet:
        click.echo(f"Created {template} configuration: {output_file}")


# ---------------------------------------------------------------------------
# scenarios
# ---------------------------------------------------------------------------

@main.group()
def scenarios() -> None:
    """Scenario file commands."""
    pass


@scenarios.command("validate")
@click.argument("scenario_file", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def scenarios_validate(ctx: click.Context, scenario_file: Path) -> None:
    """
    Check that every scenario descriptor in a file is usable.

    Example:
        fincast scenarios validate scenarios.json
    """
    console: Console = ctx.obj["console"]
    quiet = ctx.obj.get("quiet", False)

    from .scenario import build_scenario
    from .serialization import load_scenarios

    try:
        descriptors = load_scenarios(scenario_file)
    except FincastError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    failures = 0
    table = Table(title="Scenarios")
    table.add_column("#", justify="right")
    table.add_column("Scenario", style="cyan")
    table.add_column("Status")
    for i, descriptor in enumerate(descriptors, start=1):
        try:
            scenario = build_scenario(descriptor)
            table.add_row(str(i), scenario.label, "[green]ok[/green]")
        except FincastError as e:
            failures += 1
            table.add_row(str(i), str(descriptor), f"[red]{e}[/red]")

    if not quiet:
        console.print(table)
    if failures:
        click.echo(f"{failures} of {len(descriptors)} scenarios are invalid", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# info
# ---------------------------------------------------------------------------

@main.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """
    Display package and dependency information.
    """
    console: Console = ctx.obj["console"]

    info_lines = [
        f"fincast Version: {__version__}",
        f"Python: {sys.version.split()[0]}",
    ]
    for name in ("numpy", "pandas", "scipy", "pydantic", "pydantic-settings", "openai", "rich", "click"):
        try:
            info_lines.append(f"{name}: {package_version(name)}")
        except PackageNotFoundError:
            info_lines.append(f"{name}: not installed")

    console.print(Panel("\n".join(info_lines), title="System Information"))


if __name__ == "__main__":
    main()
