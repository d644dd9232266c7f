"""CLI commands for group balances, expenses and settlements."""

import logging
import sys
from decimal import Decimal

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..exceptions import SplitLedgerError
from ..models import BalanceSheet, Group, NewExpense, Split, User
from ..storage import create_repository
from .balances import format_amount, parse_amount, sheet_total, split_equally
from .service import LedgerService
from .ui import confirm_settlement, select_member_interactive

app = typer.Typer(
    name="ledger",
    help="Track group expenses, balances and settlements",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Downgrade httpx logging to DEBUG (network requests are too noisy at INFO)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def format_money(amount: Decimal, use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"($[red]{abs_amount:,.2f}[/red])"
        return f"(${abs_amount:,.2f})"
    if use_color:
        return f" [green]${abs_amount:,.2f}[/green] "
    return f" ${abs_amount:,.2f} "


def parse_split_option(raw: str) -> Split:
    """Parse a USER=AMOUNT option into a split."""
    user_id, sep, amount = raw.partition("=")
    if not sep or not user_id:
        raise typer.BadParameter(f"Expected USER=AMOUNT, got {raw!r}")
    return Split(user_id=user_id.strip(), amount=parse_amount(amount))


def display_balances(group: Group, sheet: BalanceSheet, members: list[User]):
    """Display group balances in a table."""
    names = {user.id: user.name for user in members}

    table = Table(
        title=f"Balances: {group.name}", show_header=True, header_style="bold magenta"
    )
    table.add_column("Member", style="cyan")
    table.add_column("ID", style="dim")
    table.add_column("Balance", justify="right", width=14)
    table.add_column("Status")

    for user_id, balance in sheet.items():
        if balance > 0:
            status = "is owed"
        elif balance < 0:
            status = "owes"
        else:
            status = "[dim]settled[/dim]"
        table.add_row(names.get(user_id, user_id), user_id, format_money(balance), status)

    console.print(table)

    total = sheet_total(sheet)
    if total == 0:
        console.print("  [green]✓ Balances sum to zero[/green]")
    else:
        console.print(f"  [red]✗ Balances sum to {format_amount(total)}[/red]")


@app.command()
def groups(
    user: str = typer.Option(..., "--user", "-u", help="User ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List the groups a user belongs to."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        repository = create_repository(settings)
        service = LedgerService(repository)

        user_groups = service.list_user_groups(user)
        if not user_groups:
            console.print("[yellow]No groups found.[/yellow]")
            return

        table = Table(title="Groups", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Members", justify="right")
        for group in user_groups:
            table.add_row(group.id, group.name, str(len(group.participants)))
        console.print(table)

    except SplitLedgerError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "repository" in locals():
            repository.close()


@app.command()
def balances(
    group_id: str = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show every member's balance in a group."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        repository = create_repository(settings)
        service = LedgerService(repository)

        group = service.get_group(group_id)
        sheet = service.get_balances(group_id)
        display_balances(group, sheet, service.list_members(group))

    except SplitLedgerError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "repository" in locals():
            repository.close()


@app.command()
def settle(
    group_id: str = typer.Argument(..., help="Group ID"),
    user: str = typer.Option(..., "--user", "-u", help="Your user ID"),
    counterparty: str | None = typer.Option(
        None, "--with", "-w", help="Settle with this member (default: settle up)"
    ),
    interactive: bool = typer.Option(
        False, "--interactive", "-i", help="Pick the member to settle with"
    ),
    method: str = typer.Option("cash", "--method", "-m", help="Payment method"),
    notes: str | None = typer.Option(None, "--notes", help="Optional note"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Suggest a settlement and record it.

    Without --with, suggests paying your biggest creditor (or being paid by
    your biggest debtor). With --with, suggests meeting that member halfway.
    """
    setup_logging(verbose)

    try:
        settings = load_settings()
        repository = create_repository(settings)
        service = LedgerService(repository)

        group = service.get_group(group_id)
        members = service.list_members(group)
        names = {member.id: member.name for member in members}

        if interactive and counterparty is None:
            sheet = service.get_balances(group_id)
            others = [member for member in members if member.id != user]
            counterparty = select_member_interactive(
                others, {uid: format_amount(b) for uid, b in sheet.items()}
            )
            if counterparty is None:
                console.print("[yellow]No member selected.[/yellow]")
                return

        suggestion = service.suggest_settlement(group_id, user, counterparty)
        if suggestion is None:
            console.print("[green]Nothing to settle.[/green]")
            return

        payer = names.get(suggestion.from_user_id, suggestion.from_user_id)
        payee = names.get(suggestion.to_user_id, suggestion.to_user_id)
        console.print(
            f"\n[bold]Suggested:[/bold] {payer} pays {payee} "
            f"{format_money(suggestion.amount)}"
        )

        if not yes and not confirm_settlement(suggestion, names):
            console.print("[yellow]Cancelled.[/yellow]")
            return

        settlement = service.settle(suggestion, group_id, method=method, notes=notes)
        console.print("\n[bold green]✓ Settlement recorded![/bold green]")
        console.print(f"[green]Settlement ID: {settlement.id}[/green]\n")

    except SplitLedgerError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "repository" in locals():
            repository.close()


@app.command("add-expense")
def add_expense(
    group_id: str = typer.Argument(..., help="Group ID"),
    paid_by: str = typer.Option(..., "--paid-by", "-p", help="Payer's user ID"),
    amount: str = typer.Option(..., "--amount", "-a", help="Amount, e.g. 42.50"),
    description: str = typer.Option(..., "--description", "-d", help="What it was"),
    category: str = typer.Option("general", "--category", "-c", help="Category"),
    split: list[str] | None = typer.Option(
        None,
        "--split",
        "-s",
        help="USER=AMOUNT share (repeatable; default: split equally)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Log an expense, split equally or by explicit shares."""
    setup_logging(verbose)

    try:
        settings = load_settings()
        repository = create_repository(settings)
        service = LedgerService(repository)

        total = parse_amount(amount)
        group = service.get_group(group_id)

        if split:
            splits = [parse_split_option(raw) for raw in split]
        else:
            shares = split_equally(total, group.participants)
            splits = [Split(user_id=uid, amount=share) for uid, share in shares.items()]

        expense = service.record_expense(
            NewExpense(
                group_id=group_id,
                description=description,
                amount=total,
                paid_by=paid_by,
                category=category,
                splits=splits,
            )
        )

        console.print("\n[bold green]✓ Expense recorded![/bold green]")
        console.print(f"[green]Expense ID: {expense.id}[/green]")
        for s in expense.splits:
            console.print(f"  {s.user_id}: {format_money(s.amount, use_color=False)}")

    except (SplitLedgerError, PydanticValidationError) as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if "repository" in locals():
            repository.close()
