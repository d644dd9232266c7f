"""CLI for SplitLedger."""

import typer
import uvicorn

from .api import create_app
from .config import load_settings
from .ledger.cli import app as ledger_app
from .ledger.cli import setup_logging
from .storage import create_repository

app = typer.Typer(
    name="splitledger",
    help="Shared expenses, group balances and settlements",
)

app.add_typer(ledger_app, name="ledger", help="Balances, expenses and settlements")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", help="Port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the REST API server."""
    setup_logging(verbose)

    settings = load_settings()
    api = create_app(create_repository(settings))
    uvicorn.run(
        api,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level="debug" if verbose else "info",
    )


if __name__ == "__main__":
    app()
