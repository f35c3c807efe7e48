"""
CLI interface for Cloudflare Cost Estimator.

Provides command-line access to the monthly usage and cost estimate.
"""

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cf_cost_estimator.analytics.fetchers import estimate_account_usage
from cf_cost_estimator.config.loader import load_credentials, load_pricing_config
from cf_cost_estimator.core.account import AccountUsageSummary
from cf_cost_estimator.core.errors import ConfigurationError
from cf_cost_estimator.core.metrics import ProductUsage
from cf_cost_estimator.core.pricing import DEFAULT_PRICING, PRODUCT_NAMES, PricingPolicy
from cf_cost_estimator.util.logging import setup_logging

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Cloudflare Cost Estimator CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Cloudflare Cost Estimator - Use --help to see available commands")


@app.command()
def status():
    """Check that Cloudflare credentials are configured."""
    credentials = load_credentials()
    if credentials.missing:
        console.print(f"[red]✗[/] Missing {', '.join(credentials.missing)}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Credentials configured for account {credentials.account_id}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def pricing(
    pricing_file: Optional[str] = typer.Option(
        None,
        "--pricing",
        "-p",
        help="YAML file with pricing overrides"
    )
):
    """Show the pricing table used for estimates."""
    try:
        policy = _load_pricing(pricing_file)
    except Exception as e:
        console.print(f"[red]Error loading pricing:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Pricing")
    table.add_column("Product")
    table.add_column("Dimension")
    table.add_column("Free limit", justify="right")
    table.add_column("Overage rate")
    for product, name in PRODUCT_NAMES.items():
        for dimension, rule in policy.get_pricing(product).rules.items():
            free_limit = f"{rule.free_limit:,.0f}" + ("/day" if rule.per_day else "")
            table.add_row(name, dimension, free_limit, rule.rate_label)
    console.print(table)
    console.print(f"Base fee: {_format_currency(policy.base_fee)}/month")


@app.command()
def summary(
    pricing_file: Optional[str] = typer.Option(
        None,
        "--pricing",
        "-p",
        help="YAML file with pricing overrides"
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Overall deadline in seconds; unfinished products are reported as cancelled"
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the summary as JSON"
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        "-s",
        help="Exit with error code if any product failed to load"
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (overridden by LOG_LEVEL)"
    ),
):
    """
    Estimate this month's Cloudflare bill.

    Reads CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN from the environment,
    fetches usage for every product and prices it against the free tiers.
    Products that fail to load are listed as errors; the rest are still shown.
    """
    setup_logging(log_level)
    try:
        policy = _load_pricing(pricing_file)
        credentials = load_credentials()
        result = asyncio.run(estimate_account_usage(credentials, policy, timeout=timeout))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/] {escape(str(e))}")
        console.print("\nSet the following environment variables:")
        console.print("  CLOUDFLARE_ACCOUNT_ID")
        console.print("  CLOUDFLARE_API_TOKEN\n")
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        console.print(f"[red]Error:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)

    if as_json:
        console.print_json(data=result.to_dict())
    else:
        _display_summary(result)

    if strict and result.errors:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


def _load_pricing(pricing_file: Optional[str]) -> PricingPolicy:
    if pricing_file is None:
        return DEFAULT_PRICING
    return load_pricing_config(pricing_file)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_quantity(value: float) -> str:
    if value == int(value):
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def _display_product(usage: ProductUsage) -> None:
    table = Table(title=usage.product, title_justify="left")
    table.add_column("Metric")
    table.add_column("Usage", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Overage", justify="right")
    table.add_column("Rate")
    for metric in usage.metrics:
        style = "red" if metric.percentage >= 100 else ("yellow" if metric.percentage >= 80 else None)
        table.add_row(
            metric.name,
            f"{_format_quantity(metric.current)} {metric.unit}",
            _format_quantity(metric.limit) if metric.limit > 0 else "pay-per-use",
            f"{metric.percentage:,.1f}%",
            _format_currency(metric.overage_cost),
            metric.rate or "",
            style=style,
        )
    console.print(table)
    if usage.unclassified_requests:
        console.print(f"[dim]{usage.unclassified_requests:,} requests with unrecognised operation types not counted[/]")


def _display_summary(result: AccountUsageSummary) -> None:
    """Display per-product usage, errors and the cost breakdown."""
    period = result.billing_period
    console.print("\n[bold]Cloudflare Usage Estimate[/bold]")
    console.print(f"Billing period: {period.start:%Y-%m-%d} to {period.end:%Y-%m-%d} (UTC, {period.days} days)")
    console.print("-" * 40)

    if result.errors:
        console.print("\n[bold red]Some services failed to load:[/]")
        for error in result.errors:
            console.print(f"  [red]•[/] {escape(error.service)}: {escape(error.message)}")

    for usage in result.products.values():
        if usage is not None:
            console.print()
            _display_product(usage)

    console.print("\n[bold]Cost Breakdown[/bold]")
    console.print(f"Workers Paid plan: {_format_currency(result.base_fee)}")
    for usage in result.products.values():
        if usage is not None and usage.total_overage_cost > 0:
            console.print(f"{usage.product} overage: {_format_currency(usage.total_overage_cost)}")
    console.print(f"Usage overage: {_format_currency(result.total_overage_cost)}")
    console.print(f"[bold]Total estimated cost: {_format_currency(result.total_estimated_cost)}[/bold]\n")


if __name__ == "__main__":
    app()
