#!/usr/bin/env python3
import logging
import sys
from decimal import Decimal

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from tlh_rebalancer import (
    RebalanceEngineError,
    RebalanceMethod,
    RebalanceResult,
    SleeveAllocation,
    Trade,
    rebalance,
)
from tlh_rebalancer.loaders import RebalanceRequest, load_rebalance_request

logger = logging.getLogger(__name__)
console = Console()

METHOD_LABELS: dict[str, str] = {
    RebalanceMethod.ALLOCATION.value: "Allocation (sleeve targets)",
    RebalanceMethod.TLH_SWAP.value: "TLH swap (harvest losses only)",
    RebalanceMethod.TLH_REBALANCE.value: "TLH + rebalance",
    RebalanceMethod.INVEST_CASH.value: "Invest cash (no sells)",
}


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def sleeves_table(sleeves: list[SleeveAllocation], title: str) -> Table:
    """Build a Rich table showing current sleeve values against targets."""
    t = Table(title=title, box=box.ROUNDED, title_style="bold white")
    t.add_column("Sleeve", style="cyan")
    t.add_column("Securities", style="dim")
    t.add_column("Current", justify="right")
    t.add_column("Target", justify="right", style="green")
    t.add_column("Target %", justify="right", style="yellow")
    t.add_column("Drift", justify="right")

    for sleeve in sleeves:
        drift = sleeve.current_value - sleeve.target_value
        style = "green" if abs(drift) < Decimal("1") else ("red" if drift > 0 else "blue")
        t.add_row(
            sleeve.sleeve_id,
            ", ".join(sec.security_id for sec in sleeve.securities),
            f"${sleeve.current_value:,.2f}",
            f"${sleeve.target_value:,.2f}",
            f"{sleeve.target_pct:.1f}%",
            Text(f"{drift:+,.2f}", style=style),
        )
    return t


def trades_table(trades: list[Trade]) -> Table:
    """Build a Rich table showing proposed trades."""
    t = Table(title="Proposed Trades", box=box.ROUNDED, title_style="bold white")
    t.add_column("Action", no_wrap=True)
    t.add_column("Security", style="cyan")
    t.add_column("Account", style="dim")
    t.add_column("Qty", justify="right")
    t.add_column("Price", justify="right")
    t.add_column("Value", justify="right")

    buy_total = sell_total = Decimal(0)
    for trade in trades:
        style = "green" if trade.action == "BUY" else "red"
        if trade.action == "BUY":
            buy_total += trade.est_value
        else:
            sell_total -= trade.est_value
        t.add_row(
            Text(trade.action, style=f"bold {style}"),
            trade.security_id,
            trade.account_id,
            f"{trade.qty:,f}",
            f"${trade.est_price:,.2f}",
            f"${trade.est_value:,.2f}",
        )

    t.add_section()
    t.add_row(
        "",
        "[bold]Totals[/bold]",
        "",
        "",
        "",
        f"[green]+${buy_total:,.2f}[/green]  [red]-${sell_total:,.2f}[/red]",
    )
    return t


def result_table(result: RebalanceResult) -> Table:
    """Build a Rich table with per-sleeve trade totals and post-trade weights."""
    t = Table(title="After Rebalancing", box=box.ROUNDED, title_style="bold white")
    t.add_column("Sleeve", style="cyan")
    t.add_column("Traded qty", justify="right")
    t.add_column("Traded $", justify="right")
    t.add_column("Post %", justify="right", style="yellow")

    for summary in result.sleeves:
        t.add_row(
            summary.sleeve_id,
            f"{summary.trade_qty:,f}",
            f"${summary.trade_usd:,.2f}",
            f"{summary.post_pct}%",
        )

    t.add_section()
    holdings = ", ".join(f"{h.security_id}: {h.qty:f}" for h in result.post_holdings)
    t.add_row("[dim]Holdings[/dim]", "", "", f"[dim]{holdings}[/dim]")
    return t


def _pick_method(request: RebalanceRequest) -> str:
    console.print()
    for value, label in METHOD_LABELS.items():
        console.print(f"  [dim]{value:<14}[/dim] {label}")
    return Prompt.ask(
        "  Method", choices=list(METHOD_LABELS), default=request.method
    )


def _prompt_cash(request: RebalanceRequest) -> Decimal:
    default = str(request.cash_amount) if request.cash_amount else "0"
    return Decimal(Prompt.ask("  Cash to invest", default=default))


def run(request: RebalanceRequest) -> None:
    console.print(sleeves_table(request.sleeves, f"Portfolio {request.portfolio_id}"))

    while True:
        request.method = _pick_method(request)
        if request.method == RebalanceMethod.INVEST_CASH.value:
            request.cash_amount = _prompt_cash(request)

        console.print()
        try:
            result = rebalance(**request.as_kwargs())
        except RebalanceEngineError as e:
            console.print(f"[red]  {e.kind.value} error:[/red] {e}")
        else:
            if not result.trades:
                console.print("[green]  Already balanced, no trades needed.[/green]")
            else:
                console.print(trades_table(result.trades))
                console.print()
                console.print(result_table(result))

        console.print()
        if not Confirm.ask("  Try another method?", default=False):
            break


def main() -> None:
    """Entry point for the CLI application."""
    flags = ("-v", "--verbose")
    args = [a for a in sys.argv[1:] if a not in flags]
    configure_logging(verbose=any(a in flags for a in sys.argv[1:]))

    console.print()
    console.print(Panel("[bold]TLH Rebalancer[/bold] · preview trades", box=box.DOUBLE))
    console.print()

    path = args[0] if args else Prompt.ask("  Rebalance request (JSON file)")
    try:
        request = load_rebalance_request(path)
    except (OSError, ValueError) as e:
        logger.error("Could not load %s: %s", path, e)
        sys.exit(1)

    run(request)


if __name__ == "__main__":
    main()
