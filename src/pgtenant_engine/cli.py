"""Typer CLI for PgTenant-Engine."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="pgtenant", help="PgTenant-Engine: PostgreSQL tenant database provisioner")
console = Console()


def _run_with_container(func, create_schema: bool = False):
    """Build the service container, run ``func(container)``, always close it."""
    from pgtenant_engine.common.config import get_settings
    from pgtenant_engine.common.logging import setup_logging
    from pgtenant_engine.deps import build_container

    settings = get_settings()
    setup_logging(settings.log_level)

    async def _main():
        container = build_container(settings)
        await container.start(create_schema=create_schema)
        try:
            return await func(container)
        finally:
            await container.close()

    return asyncio.run(_main())


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind host (default: PGTENANT_HOST)"),
    port: int = typer.Option(None, help="Bind port (default: PGTENANT_PORT)"),
):
    """Start the PgTenant-Engine API server."""
    import uvicorn
    from pgtenant_engine.app import create_app
    from pgtenant_engine.common.config import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting PgTenant-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(settings), host=host, port=port)


@app.command("init-db")
def init_db():
    """Create the metadata tables (development; use Alembic in production)."""

    async def _noop(container):
        return None

    _run_with_container(_noop, create_schema=True)
    console.print("[bold green]Metadata schema ready[/bold green]")


@app.command()
def recompile():
    """Regenerate the managed access-control region and reload the server."""
    from pgtenant_engine.common.exceptions import PgTenantError

    async def _recompile(container):
        return await container.compiler.recompile()

    try:
        result = _run_with_container(_recompile)
    except PgTenantError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)

    state = "updated" if result.changed else "unchanged"
    console.print(
        f"[bold green]Reloaded[/bold green] — {result.path} {state}, "
        f"{result.tenants} tenant(s), {result.rules} rule(s)"
    )


@app.command("show-rules")
def show_rules():
    """Print the rules currently installed in the managed region."""
    from pgtenant_engine.common.exceptions import PgTenantError

    async def _rules(container):
        return await container.compiler.installed_rules()

    try:
        rules = _run_with_container(_rules)
    except PgTenantError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(1)

    table = Table("mode", "database", "role", "address", "method")
    for rule in rules:
        table.add_row(rule.mode, rule.database, rule.role, rule.address, rule.method)
    console.print(table)


@app.command()
def health(
    url: str = typer.Option("http://localhost:2600", help="Server URL"),
):
    """Check PgTenant-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
