"""Línea de comandos de carelog.

Por qué un CLI sobre la capa de sincronización:
- Recorre la misma resolución de tenant, cache y escrituras optimistas que una
  página, un comando a la vez.
- La sesión (tenant elegido, cookies) vive en un JSON, así invocaciones
  seguidas se comportan como una misma pestaña.
"""

from __future__ import annotations

import asyncio
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console

from adapters.client import CareClient
from adapters.json_exporter import export_json
from adapters.records import (
    AuthRepository,
    MasterSettingsRepository,
    MealsMedicationGrid,
    ResidentRepository,
    StaffNoticesRepository,
    TenantRepository,
)
from adapters.records.staff_notices import filter_notices
from cli import doctor
from cli.logging_setup import configure_logging
from cli.state import CliState
from cli.ui_components import (
    build_notices_table,
    build_residents_table,
    build_session_panel,
    build_settings_table,
    build_tenants_table,
    print_banner,
)
from core.domain.errors import CareLogError

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, add_completion=False, help="Tenant-aware care record client.")
tenant_app = typer.Typer(no_args_is_help=True, help="Active tenant selection.")
auth_app = typer.Typer(no_args_is_help=True, help="Sign in, sign out, switch tenant.")
residents_app = typer.Typer(no_args_is_help=True, help="Residents.")
notices_app = typer.Typer(no_args_is_help=True, help="Staff notices.")
settings_app = typer.Typer(no_args_is_help=True, help="Master settings.")
meals_app = typer.Typer(no_args_is_help=True, help="Meals and medication records.")

app.add_typer(tenant_app, name="tenant")
app.add_typer(auth_app, name="auth")
app.add_typer(residents_app, name="residents")
app.add_typer(notices_app, name="notices")
app.add_typer(settings_app, name="settings")
app.add_typer(meals_app, name="meals")
app.add_typer(doctor.app, name="doctor")

_console = Console()


class MoveDirection(str, Enum):
    up = "up"
    down = "down"


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Verbose logging (DEBUG level)."),
    banner: bool = typer.Option(False, "--banner", help="Print the banner first."),
) -> None:
    if ctx.obj is None:
        ctx.obj = CliState()
    ctx.obj.debug = debug
    configure_logging(debug=debug)
    if banner:
        print_banner(_console)


def _run(ctx: typer.Context, action: Callable[[CareClient], Awaitable[T]]) -> T:
    """Corre `action` con un cliente nuevo; los errores de la librería salen con código 1."""

    state: CliState = ctx.obj

    async def go() -> T:
        async with state.build_client() as client:
            return await action(client)

    try:
        return asyncio.run(go())
    except CareLogError as exc:
        _console.print(f"[red]Error:[/red] {exc.message}")
        raise typer.Exit(code=1) from exc


# -- tenant ----------------------------------------------------------------


@tenant_app.command("show")
def tenant_show(ctx: typer.Context) -> None:
    """Print the tenant every request is currently scoped to."""

    async def action(client: CareClient) -> str | None:
        return client.tenant_id

    tenant_id = _run(ctx, action)
    _console.print(tenant_id or "(host environment)")


@tenant_app.command("use")
def tenant_use(ctx: typer.Context, tenant_id: str = typer.Argument(..., help="Tenant identifier.")) -> None:
    """Select a tenant, as if navigating to /tenant/<id>/."""

    async def action(client: CareClient) -> str | None:
        return client.navigate(f"/tenant/{tenant_id}/")

    _console.print(f"[green]Tenant selected:[/green] {_run(ctx, action)}")


@tenant_app.command("clear")
def tenant_clear(ctx: typer.Context) -> None:
    """Forget the selected tenant (back to the host environment)."""

    async def action(client: CareClient) -> None:
        client.resolver.forget()

    _run(ctx, action)
    _console.print("Tenant selection cleared.")


@tenant_app.command("path")
def tenant_path(ctx: typer.Context, path: str = typer.Argument(..., help="Route such as /residents.")) -> None:
    """Show the tenant-scoped form of a route."""

    async def action(client: CareClient) -> str:
        return client.resolver.path_for(path)

    _console.print(_run(ctx, action))


@tenant_app.command("list")
def tenant_list(ctx: typer.Context) -> None:
    async def action(client: CareClient):
        return await TenantRepository(client).list()

    _console.print(build_tenants_table(_run(ctx, action)))


# -- auth ------------------------------------------------------------------


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    staff_id: str = typer.Option(..., "--staff-id", prompt=True, help="Staff login id."),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
) -> None:
    """Staff login inside the selected tenant."""

    async def action(client: CareClient):
        return await AuthRepository(client).staff_login(staff_id, password)

    user = _run(ctx, action)
    _console.print(f"[green]Signed in as[/green] {user.display_name}")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    async def action(client: CareClient) -> str:
        return await AuthRepository(client).logout()

    redirect = _run(ctx, action)
    _console.print(f"Signed out. Next page: {redirect}")


@auth_app.command("whoami")
def auth_whoami(ctx: typer.Context) -> None:
    async def action(client: CareClient):
        return await AuthRepository(client).session(), client.tenant_id

    session, tenant_id = _run(ctx, action)
    _console.print(build_session_panel(session, tenant_id))


@auth_app.command("switch")
def auth_switch(ctx: typer.Context, tenant_id: str = typer.Argument(...)) -> None:
    """Switch the server-side session to another tenant the user may access."""

    async def action(client: CareClient) -> None:
        await AuthRepository(client).switch_tenant(tenant_id)
        client.navigate(f"/tenant/{tenant_id}/")

    _run(ctx, action)
    _console.print(f"[green]Switched to[/green] {tenant_id}")


# -- residents -------------------------------------------------------------


@residents_app.command("list")
def residents_list(
    ctx: typer.Context,
    floor: str = typer.Option("全階", "--floor", help="Floor filter (1, 1F, 1階 or 全階)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write JSON here instead of a table."),
) -> None:
    async def action(client: CareClient):
        return await ResidentRepository(client).list(floor)

    residents = _run(ctx, action)
    if output is not None:
        path = export_json(payload=residents, output_path=output)
        _console.print(f"[green]Wrote {len(residents)} resident(s) to[/green] {path}")
        return
    _console.print(build_residents_table(residents))


# -- notices ---------------------------------------------------------------


@notices_app.command("list")
def notices_list(
    ctx: typer.Context,
    on_date: Optional[str] = typer.Option(None, "--date", help="YYYY-MM-DD (default: today)."),
    job_role: str = typer.Option("全体", "--job-role"),
    floor: str = typer.Option("全階", "--floor"),
) -> None:
    """Notices visible on a date; unread ones are marked."""

    day = date.fromisoformat(on_date) if on_date else date.today()

    async def action(client: CareClient):
        repo = StaffNoticesRepository(client)
        notices = filter_notices(await repo.list(), on_date=day, job_role=job_role, floor=floor)
        await repo.read_statuses(notices)
        session = await AuthRepository(client).session()
        staff_id = session.user.id if session.user else None
        if staff_id is None:
            return notices, None
        return notices, (lambda notice_id: repo.is_unread(notice_id, staff_id))

    notices, is_unread = _run(ctx, action)
    _console.print(build_notices_table(notices, is_unread=is_unread))


@notices_app.command("unread")
def notices_unread(ctx: typer.Context) -> None:
    async def action(client: CareClient) -> int:
        return await StaffNoticesRepository(client).unread_count()

    _console.print(str(_run(ctx, action)))


@notices_app.command("read")
def notices_read(
    ctx: typer.Context,
    notice_id: str = typer.Argument(...),
    unread: bool = typer.Option(False, "--unread", help="Mark as unread instead."),
) -> None:
    async def action(client: CareClient) -> None:
        session = await AuthRepository(client).session()
        if session.user is None:
            raise CareLogError("Sign in first (carelog auth login).")
        repo = StaffNoticesRepository(client)
        await repo.read_status(notice_id)
        if unread:
            await repo.mark_unread(notice_id, session.user.id)
        else:
            await repo.mark_read(notice_id, session.user.id)

    _run(ctx, action)
    _console.print("Marked as unread." if unread else "Marked as read.")


# -- master settings -------------------------------------------------------


@settings_app.command("categories")
def settings_categories(ctx: typer.Context) -> None:
    async def action(client: CareClient):
        return await MasterSettingsRepository(client).categories()

    for category in _run(ctx, action):
        _console.print(f"{category.get('categoryKey', '')}\t{category.get('categoryName', '')}")


@settings_app.command("list")
def settings_list(ctx: typer.Context, category: str = typer.Argument(...)) -> None:
    async def action(client: CareClient):
        return await MasterSettingsRepository(client).settings(category)

    _console.print(build_settings_table(category, _run(ctx, action)))


@settings_app.command("move")
def settings_move(
    ctx: typer.Context,
    category: str = typer.Argument(...),
    index: int = typer.Argument(..., help="Current position (0-based)."),
    direction: MoveDirection = typer.Argument(...),
) -> None:
    """Move one setting up or down; the order is saved as a batch."""

    async def action(client: CareClient):
        repo = MasterSettingsRepository(client)
        await repo.settings(category)
        await repo.move_item(category, index, direction.value)
        return client.cache.get_data(repo.settings_key(category)) or []

    _console.print(build_settings_table(category, _run(ctx, action)))


# -- meals -----------------------------------------------------------------


@meals_app.command("set")
def meals_set(
    ctx: typer.Context,
    resident_id: str = typer.Argument(...),
    field: str = typer.Argument(..., help="main, side, water, supplement, staffName or notes."),
    value: str = typer.Argument(..., help="Cell value; `empty` clears it."),
    record_date: Optional[str] = typer.Option(None, "--date", help="YYYY-MM-DD (default: today)."),
    meal_time: str = typer.Option("朝", "--meal-time"),
    floor: str = typer.Option("全階", "--floor"),
) -> None:
    """Edit one cell of the meals grid."""

    day = record_date or date.today().isoformat()

    async def action(client: CareClient):
        grid = MealsMedicationGrid(client)
        await grid.load(recordDate=day, mealTime=meal_time, floor=floor)
        return await grid.set_cell(resident_id, field, value, record_date=day, meal_time=meal_time, floor=floor)

    saved = _run(ctx, action)
    record_id = saved.get("id") if isinstance(saved, dict) else None
    _console.print(f"[green]Saved[/green] {record_id or ''}".rstrip())


def run() -> None:
    app()
