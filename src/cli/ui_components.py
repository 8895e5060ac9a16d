"""Tablas y paneles Rich del CLI.

Por qué aparte:
- Los comandos devuelven datos; cómo se dibujan en la terminal se decide aquí.
- Residentes, avisos y configuración comparten el mismo estilo de tabla.
"""

from __future__ import annotations

from typing import Any, Callable

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import AuthSession, Tenant


def print_banner(console: Console) -> None:
    title = Text("carelog", style="bold cyan")
    subtitle = Text("Tenant-aware care record sync", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_session_panel(session: AuthSession, tenant_id: str | None) -> Panel:
    body = Text()
    if session.user is None:
        body.append("Not signed in\n", style="yellow")
    else:
        body.append(f"{session.user.display_name}\n", style="bold")
        body.append(f"Login: {session.auth_type}\n")
        if session.user.role:
            body.append(f"Role: {session.user.role}\n")
    body.append(f"Tenant: {tenant_id or '(host environment)'}", style="dim")
    return Panel(body, title="Session", border_style="green")


def build_tenants_table(tenants: list[Tenant]) -> Table:
    table = Table(title="Tenants")
    table.add_column("Tenant", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Status", style="green")
    for tenant in tenants:
        table.add_row(tenant.tenant_id, tenant.tenant_name, tenant.status or "")
    return table


def build_residents_table(residents: list[dict[str, Any]]) -> Table:
    table = Table(title="Residents")
    table.add_column("Room", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Floor", style="magenta")
    for resident in residents:
        table.add_row(
            str(resident.get("roomNumber") or ""),
            str(resident.get("name") or ""),
            str(resident.get("floor") or ""),
        )
    return table


def build_notices_table(
    notices: list[dict[str, Any]],
    *,
    is_unread: Callable[[str], bool] | None = None,
) -> Table:
    table = Table(title="Staff notices")
    table.add_column("", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Period", style="cyan")
    table.add_column("Target", style="magenta")
    table.add_column("Content", style="white")
    for notice in notices:
        notice_id = str(notice.get("id") or "")
        marker = "●" if is_unread is not None and is_unread(notice_id) else ""
        period = f"{str(notice.get('startDate') or '')[:10]} - {str(notice.get('endDate') or '')[:10]}"
        target = f"{notice.get('targetJobRole') or '全体'} / {notice.get('targetFloor') or '全階'}"
        table.add_row(marker, notice_id, period, target, str(notice.get("content") or ""))
    return table


def build_settings_table(category: str, settings: list[dict[str, Any]]) -> Table:
    table = Table(title=f"Master settings: {category}")
    table.add_column("#", style="dim", no_wrap=True)
    table.add_column("Value", style="cyan")
    table.add_column("Label", style="white")
    table.add_column("Active", style="green")
    for index, item in enumerate(settings):
        table.add_row(
            str(index),
            str(item.get("value") or ""),
            str(item.get("label") or ""),
            "yes" if item.get("isActive", True) else "no",
        )
    return table
