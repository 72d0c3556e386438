"""Command-line interface for QuickLeads."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from quickleads.affiliate.commissions import commission_service
from quickleads.auth.credits import credit_service
from quickleads.auth.local import auth_service
from quickleads.errors import QuickLeadsError
from quickleads.logging_config import configure_logging, get_logger
from quickleads.orders.service import order_service
from quickleads.storage.db import db
from quickleads.storage.models import OrderStatus, Role

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="quickleads",
    help="QuickLeads - lead export storefront administration",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()


def _fail(error: QuickLeadsError) -> None:
    console.print(f"[bold red]✗[/bold red] {error}")
    raise typer.Exit(code=1)


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("grant-role")
def grant_role(
    email: Annotated[str, typer.Argument(help="Account email")],
    role: Annotated[Role, typer.Option("--role", "-r", help="Role to grant")] = Role.TEAM,
) -> None:
    """Give an account team or admin access."""
    try:
        user = auth_service.grant_role(email, role)
    except QuickLeadsError as e:
        _fail(e)
    logger.info("cli_role_granted", email=user.email, role=role.value)
    console.print(f"[bold green]✓[/bold green] {user.email} is now [bold]{role.value}[/bold]")


@app.command("assign-credits")
def assign_credits(
    email: Annotated[str, typer.Argument(help="Account email")],
    credits: Annotated[int, typer.Argument(help="Credits to grant")],
) -> None:
    """Grant free credits to an account."""
    try:
        user = credit_service.assign_credits_by_email(email, credits)
    except QuickLeadsError as e:
        _fail(e)
    console.print(
        f"[bold green]✓[/bold green] Added {credits:,} credits to {user.email} "
        f"(balance: [bold]{user.credits:,}[/bold])"
    )


@app.command("orders")
def list_orders(
    status: Annotated[OrderStatus | None, typer.Option("--status", "-s", help="Filter by status")] = None,
) -> None:
    """List orders, newest first."""
    orders = order_service.get_all_orders(status=status)

    if not orders:
        console.print("[yellow]No orders found[/yellow]")
        return

    table = Table(title="Orders")
    table.add_column("ID", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Credits", justify="right")
    table.add_column("Delivery email")
    table.add_column("Assigned to")
    table.add_column("Created At")

    for order in orders:
        table.add_row(
            str(order.id),
            order.status.value,
            f"{order.credits_used:,}",
            order.delivery_email,
            order.assigned_to or "-",
            order.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command("bills")
def monthly_bills() -> None:
    """Show pending affiliate commissions grouped into monthly bills."""
    bills = commission_service.get_monthly_bills()

    if not bills:
        console.print("[yellow]No pending commissions[/yellow]")
        return

    for bill in bills:
        table = Table(
            title=f"{bill.month_name} - pay by {bill.pay_by.isoformat()}",
            caption=f"Total ${bill.total_commissions} on ${bill.total_sales} sales "
            f"({bill.transaction_count} transactions)",
        )
        table.add_column("Affiliate", style="cyan")
        table.add_column("PayPal")
        table.add_column("Sales", justify="right")
        table.add_column("Commission", justify="right", style="green")
        table.add_column("Commission IDs")

        for affiliate in bill.affiliates.values():
            table.add_row(
                affiliate.affiliate_name or f"#{affiliate.affiliate_id}",
                affiliate.paypal_email or "[red]missing[/red]",
                f"${affiliate.total_sales}",
                f"${affiliate.total_commissions}",
                ", ".join(str(i) for i in affiliate.commission_ids),
            )

        console.print(table)


@app.command("mark-paid")
def mark_paid(
    commission_ids: Annotated[list[int], typer.Argument(help="Commission IDs to mark paid")],
    month: Annotated[str | None, typer.Option("--month", "-m", help="Payment month (YYYY-MM)")] = None,
) -> None:
    """Mark affiliate commissions as paid."""
    try:
        updated = commission_service.mark_commissions_paid(commission_ids, month)
    except QuickLeadsError as e:
        _fail(e)
    console.print(f"[bold green]✓[/bold green] Marked {updated} commission(s) as paid")


if __name__ == "__main__":
    app()
