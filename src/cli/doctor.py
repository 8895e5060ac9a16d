"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import httpx
import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from cli.state import CliState
from core.config import AppSettings, get_session_file, write_user_env_vars
from core.services.tenant_resolver import SELECTED_TENANT_KEY

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_api(settings: AppSettings, transport: httpx.AsyncBaseTransport | None) -> tuple[bool, str]:
    """Reachability of the API origin; any HTTP status counts as reachable."""

    try:
        async with build_async_client(settings, transport=transport) as client:
            response = await client.get("/api/auth/user")
    except httpx.HTTPError as exc:
        return False, str(exc) or type(exc).__name__
    content_type = response.headers.get("content-type", "")
    if "html" in content_type:
        return True, f"HTTP {response.status_code} (HTML: check base_url points at the API)"
    return True, f"HTTP {response.status_code}"


@app.command()
def run(ctx: typer.Context) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    state: CliState = ctx.obj
    settings = state.get_settings()

    table = Table(title="carelog doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("API base_url", "OK", settings.base_url)
    table.add_row("Environment", "OK", settings.environment)
    if settings.debug_requests and not settings.verbose_requests:
        table.add_row("Request logging", "IGNORED", "debug_requests has no effect in production")
    else:
        table.add_row("Request logging", "ON" if settings.verbose_requests else "OFF", "")
    table.add_row("Session file", "OK", str(get_session_file(settings)))

    tenant = state.get_storage().get_item(SELECTED_TENANT_KEY)
    table.add_row("Selected tenant", "OK" if tenant else "NONE", tenant or "host environment")

    # Connectivity
    ok_http, detail_http = asyncio.run(_check_api(settings, state.transport))
    table.add_row("API connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)

    if not ok_http:
        _console.print("\n[yellow]Note:[/yellow] run `carelog doctor setup` to point the CLI at your server.")
        raise typer.Exit(code=1)


@app.command()
def setup() -> None:
    """Interactive setup (stores config in the user config .env)."""

    base_url = typer.prompt("API base URL", default="http://localhost:5000", show_default=True).strip()
    environment = typer.prompt("Environment", default="development", show_default=True).strip()

    if not base_url.startswith(("http://", "https://")):
        raise typer.BadParameter("base URL must start with http:// or https://")

    env_path = write_user_env_vars(
        {
            "CARELOG_BASE_URL": base_url.rstrip("/"),
            "CARELOG_ENVIRONMENT": environment or "development",
        }
    )

    _console.print(f"[green]Saved config to:[/green] {env_path}")
