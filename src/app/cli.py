"""
Scout CLI

Typer-powered command line for one-off searches, the region table, cookie
snapshot imports and running the HTTP API.
"""

import asyncio
import json
from pathlib import Path

import typer

from .core.config import settings
from .core.logger import setup_logging
from .schemas.search import SearchRequest
from .services.scout.cookie_store import CookieStore
from .services.scout.engine import scout_search
from .services.scout.exceptions import ScoutException
from .services.scout.regions import get_country_list

app = typer.Typer(help="Resilient search result extraction", no_args_is_help=True)
cookies_app = typer.Typer(help="Manage stored cookie snapshots.", no_args_is_help=True)
app.add_typer(cookies_app, name="cookies")


def _print_json(payload: dict | list) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command("search")
def search_command(
    query: str = typer.Argument(..., help="Search query."),
    region: str | None = typer.Option(
        None,
        "--region",
        "-r",
        help="2-letter country code, or 'auto'. Defaults to geo lookup.",
    ),
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        min=1,
        max=10,
        help="Maximum number of results.",
    ),
    raw_html: bool = typer.Option(
        False,
        "--raw-html",
        help="Include the fetched page HTML in the output.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging on stderr.",
    ),
) -> None:
    """Run a single search and print the JSON response."""
    setup_logging(level="DEBUG" if verbose else "WARNING", fmt=settings.LOG_FORMAT.value)

    try:
        request = SearchRequest(query=query, region=region, limit=limit, include_raw_html=raw_html)
        response = asyncio.run(scout_search(request, settings))
    except ScoutException as e:
        _print_json({"success": False, "error": e.to_error_detail()})
        raise typer.Exit(code=1)
    except ValueError as e:
        _print_json({"success": False, "error": {"kind": "InvalidQuery", "message": str(e), "retryable": False}})
        raise typer.Exit(code=2)

    _print_json(response.model_dump())


@app.command("countries")
def countries_command() -> None:
    """List the supported regions."""
    for country in get_country_list():
        typer.echo(f"{country['code']}  {country['name']}")


@cookies_app.command("import")
def import_cookies_command(
    export: Path = typer.Argument(..., help="Cookie export JSON (EditThisCookie or a bare list)."),
    domain: str = typer.Option("google.com", "--domain", "-d", help="Search domain the cookies belong to."),
    directory: Path = typer.Option(
        Path(settings.SCOUT_COOKIE_DIR),
        "--dir",
        help="Cookie snapshot directory.",
    ),
) -> None:
    """Import a browser cookie export as the newest snapshot for a domain."""
    setup_logging(level="INFO", fmt=settings.LOG_FORMAT.value)

    try:
        path = CookieStore(directory).import_snapshot(export, domain)
    except (OSError, ValueError) as e:
        typer.echo(f"Cookie import failed: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(str(path))


@app.command("serve")
def serve_command(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from .main import create_app

    uvicorn.run(create_app(), host=host, port=port, log_config=None)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
