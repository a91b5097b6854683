#!/usr/bin/env python3
"""
CLI for refund claims.

Usage:
    python -m src.refund.cli analyze --amount 250 --tax-rate 20
    python -m src.refund.cli demo --name "Office chair" --amount 250 --tax-rate 20
"""

import argparse
import asyncio
import logging
import sys

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..lifecycle import LifecycleCoordinator, build_coordinator
from ..utils.config import get_settings
from .analysis import RefundAnalysis, analyze, analyze_claim, summarize
from .schema import Claim, ErrorStatus, IdleStatus, PendingStatus, SuccessStatus

console = Console()

DEMO_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def status_markup(status) -> str:
    """Color a status for the console."""
    if isinstance(status, IdleStatus):
        return "[dim]idle[/dim]"
    if isinstance(status, PendingStatus):
        return f"[yellow]{status.message}[/yellow]"
    if isinstance(status, SuccessStatus):
        return f"[green]{status.message}[/green]"
    if isinstance(status, ErrorStatus):
        return f"[red]{status.message}[/red]"
    raise TypeError(f"Unknown status: {status!r}")


def make_analysis_table(analysis: RefundAnalysis, title: str = "Refund Analysis") -> Table:
    table = Table(title=title, box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Refund Amount", f"${analysis.refund_amount}")
    table.add_row("Tax Savings", f"${analysis.tax_savings}")
    table.add_row("Efficiency", f"{analysis.efficiency}%")
    table.add_row("Processing Time", f"{analysis.processing_time} days")
    table.add_row("Confidence", f"{analysis.confidence}%")
    return table


def make_claims_table(claims: list[Claim]) -> Table:
    """Create summary table of loaded claims."""
    table = Table(
        title="📋 Tax Refund Claims",
        box=box.ROUNDED,
        header_style="bold cyan",
        show_lines=True,
    )
    table.add_column("Business Key", style="bold")
    table.add_column("Name")
    table.add_column("Tax Rate", justify="right")
    table.add_column("Creator", style="dim")
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Amount", justify="right")
    table.add_column("Refund", justify="right")

    for claim in claims:
        if claim.is_verified:
            status = "[green]On-chain Verified[/green]"
            amount = f"${claim.decrypted_value}"
            refund = f"${analyze_claim(claim).refund_amount}"
        else:
            status = "[yellow]Ready for Verification[/yellow]"
            amount = "🔒 encrypted"
            refund = ""
        table.add_row(
            claim.business_key,
            claim.name,
            f"{claim.tax_rate_percent}%",
            claim.creator[:10] + "...",
            claim.created_datetime.strftime("%Y-%m-%d %H:%M"),
            status,
            amount,
            refund,
        )
    return table


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Encrypted tax refund claims',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Compute refund metrics for an amount
  python -m src.refund.cli analyze --amount 250 --tax-rate 20

  # Run create + decrypt-and-verify against the in-memory ledger
  python -m src.refund.cli demo --name "Office chair" --amount 250 --tax-rate 20
        """
    )
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    analyze_parser = subparsers.add_parser('analyze', help='Compute refund metrics')
    analyze_parser.add_argument('--amount', type=int, help='Claim amount (default: 100)')
    analyze_parser.add_argument('--tax-rate', type=int, help='Tax rate percent (default: 10)')

    demo_parser = subparsers.add_parser('demo', help='Run a claim lifecycle on the in-memory ledger')
    demo_parser.add_argument('--name', required=True, help='Receipt description')
    demo_parser.add_argument('--amount', required=True, help='Receipt amount (whole number)')
    demo_parser.add_argument('--tax-rate', required=True, help='Tax rate percent (1-50)')
    demo_parser.add_argument('--account', default=DEMO_ACCOUNT, help='Wallet address to submit from')

    return parser.parse_args(argv)


async def run_demo(coordinator: LifecycleCoordinator, args: argparse.Namespace) -> int:
    """Connect, create, verify, and print what happened."""
    await coordinator.connect(args.account)

    created = await coordinator.create_claim(args.name, args.amount, args.tax_rate)
    console.print(f"Create: {status_markup(coordinator.status.current)}")
    if not created.ok:
        return 1

    verified = await coordinator.decrypt_and_verify(created.business_key)
    console.print(f"Verify: {status_markup(coordinator.status.current)}")
    if not verified.ok:
        return 1

    console.print(make_claims_table(coordinator.store.list_all()))
    claim = coordinator.store.get(created.business_key)
    if claim is not None:
        console.print(make_analysis_table(analyze_claim(claim)))

    summary = summarize(coordinator.store.list_all(), recent_window_days=coordinator.settings.recent_window_days)
    console.print(Panel(
        f"Total Claims: {summary.total_claims}\n"
        f"Verified: {summary.verified_claims}/{summary.total_claims}\n"
        f"Avg Refund: ${summary.average_refund:.0f}\n"
        f"This week: +{summary.recent_claims}",
        title="Dashboard",
        box=box.ROUNDED,
    ))
    return 0


def main(argv=None):
    """Main CLI entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.command == 'analyze':
        console.print(make_analysis_table(analyze(args.amount, args.tax_rate)))
        return

    try:
        coordinator = build_coordinator(get_settings())
        exit_code = asyncio.run(run_demo(coordinator, args))
    except Exception as e:
        logger.error(f"Demo failed: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == '__main__':
    main()
