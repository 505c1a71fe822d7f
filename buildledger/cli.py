"""buildledger CLI.

Commands:
- init: Create the data directory and empty collections (and tables when a database is configured)
- seed: Create the default branch admins if no users exist
- backend: Report which storage backend the health check selects
- stats: Record counts for one branch
- dashboard: Branch dashboard summary
- expenses: Full-expense rollup for one project
- balance: Earned vs paid for one employee
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from buildledger.config import AppConfig, get_config
from buildledger.core.logging import bind_branch, clear_branch, configure_logging
from buildledger.errors import BuildLedgerError
from buildledger.isolation import CountryClaim, ScopedStore, validate_country
from buildledger.models import UserRole
from buildledger.seed import initialize_collections, seed_default_admins, verify_admin_users
from buildledger.startup_validation import StartupValidationError, run_startup_validation
from buildledger.storage.store import RecordStore

app = typer.Typer(
    name="buildledger",
    help="buildledger - Branch-isolated storage and financial rollups",
    no_args_is_help=True,
)

console = Console()

COUNTRY_OPTION = typer.Option("egypt", "--country", "-c", help="Branch (egypt or libya)")


async def _open_store(config: AppConfig) -> RecordStore:
    store = RecordStore.from_config(config)
    await store.select_backend()
    return store


def _scoped(store: RecordStore, config: AppConfig, country: str) -> ScopedStore:
    claim = CountryClaim(validate_country(country), username="cli", role=UserRole.ADMIN)
    bind_branch(claim.country.value, user="cli")
    return ScopedStore(store, claim, config.payroll)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except (BuildLedgerError, StartupValidationError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        clear_branch()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    config = get_config()
    configure_logging("DEBUG" if verbose else config.log_level, config.log_format == "json")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing database tables first"),
):
    """Initialize storage: data directory, collection files and database tables."""
    config = get_config()
    console.print(f"[bold]Initializing storage:[/bold] {config.storage.data_dir}")

    async def _init():
        store = await _open_store(config)
        try:
            if drop and store.is_remote:
                from buildledger.db.connection import init_db

                console.print("[yellow]Dropping existing tables...[/yellow]")
                await init_db(store.remote.engine, drop=True)
            created = await initialize_collections(store)
            for name in created:
                console.print(f"  [green]+[/green] {name}")
        finally:
            await store.close()

    _run(_init())
    console.print("[bold green]✓[/bold green] Storage initialized")


@app.command()
def seed():
    """Create the default admin user for each branch (no-op when users exist)."""
    config = get_config()

    async def _seed():
        store = await _open_store(config)
        try:
            users = await seed_default_admins(store, config)
            if users:
                for user in users:
                    console.print(f"  [green]+[/green] {user.username} ({user.country.value})")
            else:
                console.print("[yellow]Users already exist, nothing seeded[/yellow]")
            missing = await verify_admin_users(store)
            if missing:
                console.print(f"[yellow]⚠[/yellow] No admin for: {', '.join(c.value for c in missing)}")
        finally:
            await store.close()

    _run(_seed())


@app.command()
def backend():
    """Run startup validation and show the selected storage backend."""
    config = get_config()

    async def _backend():
        store = await _open_store(config)
        try:
            await run_startup_validation(store, config)
            console.print(f"[bold]Backend:[/bold] {store.backend.name} (mode={config.storage.backend})")
        finally:
            await store.close()

    _run(_backend())


@app.command()
def stats(country: str = COUNTRY_OPTION):
    """Show record counts for a branch."""
    config = get_config()

    async def _stats():
        store = await _open_store(config)
        try:
            counts = await store.counts(validate_country(country))
        finally:
            await store.close()

        table = Table(title=f"Records ({country})")
        table.add_column("Kind", style="cyan")
        table.add_column("Count", justify="right", style="green")
        for kind, count in counts.items():
            table.add_row(kind, str(count))
        console.print(table)

    _run(_stats())


@app.command()
def dashboard(country: str = COUNTRY_OPTION):
    """Show the branch dashboard summary."""
    config = get_config()

    async def _dashboard():
        store = await _open_store(config)
        try:
            summary = await _scoped(store, config, country).dashboard()
        finally:
            await store.close()

        table = Table(title=f"Dashboard ({summary.country.value})")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right", style="green")
        for section, values in (
            ("overview", summary.overview),
            ("projects", summary.projects),
            ("sections", summary.sections),
            ("employees", summary.employees),
            ("inventory", summary.inventory),
            ("payments", summary.payments),
        ):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", f"{value:,.2f}" if isinstance(value, float) else str(value))
        console.print(table)

    _run(_dashboard())


@app.command()
def expenses(
    project_id: str = typer.Argument(..., help="Project ID"),
    country: str = COUNTRY_OPTION,
):
    """Show the full-expense rollup for a project."""
    config = get_config()

    async def _expenses():
        store = await _open_store(config)
        try:
            rollup = await _scoped(store, config, country).project_full_expenses(project_id)
        finally:
            await store.close()

        if rollup is None:
            console.print(f"[red]✗[/red] Project {project_id} not found in {country}")
            raise typer.Exit(code=1)

        table = Table(title=f"{rollup.project.name} (budget {rollup.project.budget:,.2f})")
        table.add_column("Component", style="cyan")
        table.add_column("Amount", justify="right", style="green")
        table.add_row("Direct spendings", f"{rollup.direct_spendings:,.2f}")
        table.add_row("Inventory", f"{rollup.inventory_costs:,.2f}")
        table.add_row("Payments", f"{rollup.payments_costs:,.2f}")
        table.add_row("Salaries (monthly est.)", f"{rollup.salary_costs:,.2f}")
        table.add_row("[bold]Total[/bold]", f"[bold]{rollup.total_expenses:,.2f}[/bold]")
        table.add_row("Remaining", f"{rollup.remaining_budget:,.2f}")
        table.add_row("Utilization %", f"{rollup.budget_utilization:.1f}")
        console.print(table)

    _run(_expenses())


@app.command()
def balance(
    employee_id: str = typer.Argument(..., help="Employee ID"),
    country: str = COUNTRY_OPTION,
):
    """Show earned, paid and outstanding amounts for an employee."""
    config = get_config()

    async def _balance():
        store = await _open_store(config)
        try:
            result = await _scoped(store, config, country).employee_balance(employee_id)
        finally:
            await store.close()

        if result is None:
            console.print(f"[red]✗[/red] Employee {employee_id} not found in {country}")
            raise typer.Exit(code=1)

        console.print(f"[bold]Earned:[/bold] {result.total_earned:,.2f}")
        console.print(f"[bold]Paid:[/bold] {result.total_paid_egp:,.2f} EGP + {result.total_paid_usd:,.2f} USD")
        console.print(f"[bold]Balance:[/bold] {result.balance:,.2f}")

    _run(_balance())


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
