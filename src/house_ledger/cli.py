"""CLI for House Ledger using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import HouseLedgerError
from .models import (
    BalanceLine,
    CustomShare,
    CustomSplit,
    EqualSplit,
    ExpenseCategory,
    SplitRule,
    VerificationOutcome,
)
from .money import format_minor_units, to_minor_units
from .service import LedgerService

app = typer.Typer(
    name="house-ledger",
    help="Record shared household expenses, see who owes whom, and settle up",
)

console = Console()

MONTHS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]  # fmt: skip


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool) -> Iterator[LedgerService]:
    """Yield a service backed by the configured database, reporting errors."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield LedgerService(settings, db)
    except HouseLedgerError as e:
        console.print(f"\n[bold yellow]⚠️  {e}[/bold yellow]\n")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def format_money(minor: int, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: (85.02)
    Positive amounts have spaces:      85.02
    """
    formatted = format_minor_units(abs(minor))
    if minor < 0:
        return f"([red]{formatted}[/red])" if use_color else f"({formatted})"
    return f" [green]{formatted}[/green] " if use_color else f" {formatted} "


def parse_amount(raw: str, param_hint: str) -> int:
    """Convert a CLI amount to minor units, reporting bad input as a usage error."""
    try:
        return to_minor_units(raw)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint=param_hint) from e


def parse_split(split_between: list[str] | None, shares: list[str] | None) -> SplitRule:
    """Build a split rule from ``--split-between`` or ``--share member=amount``."""
    if shares:
        parsed = []
        for raw in shares:
            member, sep, amount = raw.partition("=")
            if not sep or not member or not amount:
                raise typer.BadParameter(
                    f"Share '{raw}' must look like member=amount", param_hint="--share"
                )
            parsed.append(
                CustomShare(member=member, amount=parse_amount(amount, "--share"))
            )
        return CustomSplit(shares=parsed)

    if not split_between:
        raise typer.BadParameter(
            "Give --split-between or --share", param_hint="--split-between"
        )
    return EqualSplit(participants=split_between)


@app.command("add-expense")
def add_expense(
    house: str = typer.Option(..., "--house", help="Household id"),
    payer: str = typer.Option(..., "--payer", help="Member who paid"),
    amount: str = typer.Option(..., "--amount", help="Amount, e.g. 300.00"),
    split_between: list[str] | None = typer.Option(
        None, "--split-between", "-s", help="Participant for an equal split"
    ),
    share: list[str] | None = typer.Option(
        None, "--share", help="Custom share as member=amount"
    ),
    description: str = typer.Option("", "--description", "-d"),
    category: ExpenseCategory = typer.Option(ExpenseCategory.OTHER, "--category"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a new shared expense."""
    split_rule = parse_split(split_between, share)
    amount_minor = parse_amount(amount, "--amount")
    with open_service(verbose) as service:
        expense = service.record_expense(
            household_id=house,
            payer=payer,
            amount=amount_minor,
            split_rule=split_rule,
            description=description,
            category=category,
        )
        console.print(
            f"\n[bold green]✓ Recorded expense {expense.id}[/bold green] "
            f"({format_minor_units(expense.amount)}, {split_rule.kind} split)\n"
        )


@app.command()
def expenses(
    house: str = typer.Option(..., "--house", help="Household id"),
    limit: int | None = typer.Option(None, "--limit", "-n", help="How many to show"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List the most recent expenses of a household."""
    with open_service(verbose) as service:
        recent = service.recent_expenses(house, limit)
        if not recent:
            console.print("[yellow]No expenses found.[/yellow]")
            return

        table = Table(title="Recent Expenses", header_style="bold magenta")
        table.add_column("ID", style="dim", width=12)
        table.add_column("Date")
        table.add_column("Description", style="cyan")
        table.add_column("Category", style="yellow")
        table.add_column("Paid By")
        table.add_column("Amount", justify="right")
        table.add_column("Status")

        for expense in recent:
            table.add_row(
                expense.id[:12],
                expense.created_at.date().isoformat(),
                expense.description,
                expense.category.value,
                expense.payer,
                format_money(expense.amount),
                expense.settlement.state.value,
            )
        console.print(table)


def _lines_table(title: str, lines: list[BalanceLine], heading: str) -> Table:
    table = Table(title=title, header_style="bold magenta")
    table.add_column(heading)
    table.add_column("Expense", style="dim", width=12)
    table.add_column("Description", style="cyan")
    table.add_column("Amount", justify="right")
    for line in lines:
        table.add_row(
            line.counterparty,
            line.expense_id[:12],
            line.description,
            format_money(line.amount),
        )
    return table


@app.command("delete-expense")
def delete_expense(
    expense_id: str = typer.Argument(..., help="Expense to delete"),
    actor: str = typer.Option(..., "--actor", help="Member deleting the expense"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete an unsettled expense you paid for."""
    with open_service(verbose) as service:
        service.delete_expense(expense_id, actor)
        console.print(f"\n[bold green]✓ Deleted expense {expense_id}[/bold green]\n")


@app.command()
def balance(
    house: str = typer.Option(..., "--house", help="Household id"),
    user: str = typer.Option(..., "--user", help="Member to compute balances for"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show what a member owes and is owed in a household."""
    with open_service(verbose) as service:
        view = service.balance_sheet(house, user)

        console.print(f"\n[bold]Balance for {user}:[/bold]")
        console.print(f"  You owe:         {format_money(-view.total_owed_by_user)}")
        console.print(f"  Others owe you:  {format_money(view.total_owed_to_user)}")
        console.print(f"  Net balance:     {format_money(view.net_balance)}\n")

        if view.you_owe:
            console.print(_lines_table("You Owe", view.you_owe, "Pay To"))
        if view.owed_to_you:
            console.print(_lines_table("Owed To You", view.owed_to_you, "From"))

        for warning in view.warnings:
            console.print(
                f"[yellow]⚠️  Skipped expense {warning.expense_id}: "
                f"{warning.reason}[/yellow]"
            )


@app.command()
def settle(
    expense_id: str = typer.Argument(..., help="Expense to mark settled"),
    actor: str = typer.Option(..., "--actor", help="Member settling the expense"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Mark an expense as settled."""
    with open_service(verbose) as service:
        result = service.settle_expense(expense_id, actor)
        settlement = result.expense.settlement
        if result.applied:
            console.print(
                f"\n[bold green]✓ Expense {expense_id} settled[/bold green]\n"
            )
        else:
            console.print(
                f"\n[yellow]Expense {expense_id} was already settled by "
                f"{settlement.settled_by} on {settlement.settled_at}[/yellow]\n"
            )


@app.command()
def summary(
    house: str = typer.Option(..., "--house", help="Household id"),
    year: int | None = typer.Option(None, "--year", help="Year (default: current)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show monthly spending totals for a household."""
    with open_service(verbose) as service:
        result = service.monthly_summary(house, year)

        table = Table(title=f"Monthly Summary {result.year}", header_style="bold")
        table.add_column("Month")
        table.add_column("Total", justify="right")
        for name, total in zip(MONTHS, result.months, strict=True):
            table.add_row(name, format_money(total, use_color=False))
        table.add_row("[bold]Year[/bold]", format_money(result.total))
        console.print(table)


@app.command()
def pay(
    expense_id: str = typer.Option(..., "--expense", help="Expense being paid off"),
    payer: str = typer.Option(..., "--payer", help="Member sending money"),
    payee: str = typer.Option(..., "--payee", help="Member receiving money"),
    amount: str = typer.Option(..., "--amount", help="Amount, e.g. 100.00"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a payment order for an outstanding share."""
    amount_minor = parse_amount(amount, "--amount")
    with open_service(verbose) as service:
        intent = service.create_payment_order(
            payer=payer,
            payee=payee,
            expense_id=expense_id,
            amount=amount_minor,
        )
        console.print(
            f"\n[bold green]✓ Payment order created[/bold green]\n"
            f"  Intent: {intent.id}\n"
            f"  Order:  {intent.order_id}\n"
            f"  Amount: {format_minor_units(intent.amount)}\n"
        )


@app.command("confirm-payment")
def confirm_payment(
    intent_id: str = typer.Argument(..., help="Payment intent id"),
    payment_id: str = typer.Option(..., "--payment-id", help="Provider payment id"),
    signature: str = typer.Option(..., "--signature", help="Provider signature"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Verify a payment confirmation and settle the linked expense."""
    with open_service(verbose) as service:
        result = service.confirm_payment(intent_id, payment_id, signature)

        if result.outcome == VerificationOutcome.VERIFIED:
            console.print("\n[bold green]✓ Payment verified[/bold green]")
            if result.expense is not None:
                state = "settled" if result.settlement_applied else "already settled"
                console.print(f"  Expense {result.expense.id}: {state}\n")
        elif result.outcome == VerificationOutcome.ALREADY_PROCESSED:
            console.print("\n[yellow]Payment was already processed.[/yellow]\n")
        else:
            console.print(f"\n[bold red]Payment rejected:[/bold red] {result.reason}\n")
            sys.exit(1)


if __name__ == "__main__":
    app()
