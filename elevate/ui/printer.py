from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from elevate.models.request import AccessRequest, RequestStatus
from elevate.core.workflow import ReconcileResult


# ---------- Helpers ----------

def _iso_utc_from_epoch_seconds(epoch_seconds: Optional[float]) -> str:
    """UTC ISO 8601, second precision, with Z suffix."""
    if epoch_seconds is None:
        return "-"
    return (
        datetime.fromtimestamp(float(epoch_seconds), tz=timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


def _fmt_seconds(seconds: Optional[float]) -> str:
    if seconds is None:
        return "-"
    s = max(0, int(round(seconds)))
    if s < 60:
        return f"{s}s"
    minutes, s = divmod(s, 60)
    if minutes < 60:
        return f"{minutes}m{s:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"


def _status_style(status: Optional[RequestStatus]) -> str:
    if status is RequestStatus.READY:
        return "bold green"
    if status in (RequestStatus.DENIED, RequestStatus.ERROR):
        return "bold red"
    if status is RequestStatus.EXPIRED:
        return "dim"
    return "bold yellow"


def _binding_label(req: AccessRequest) -> str:
    # A Pending pass creates the binding but only the next pass records it
    if req.status is RequestStatus.PENDING and not req.grant_ref:
        return "[dim]requested, recorded as Ready on the next pass[/dim]"
    return req.grant_ref or "-"


def _next_step(result: Optional[ReconcileResult]) -> str:
    if result is None:
        return "-"
    if result.requeue_after is not None:
        return f"re-evaluate in {_fmt_seconds(result.requeue_after)}"
    if result.requeue:
        return "re-evaluate now"
    return "done"


def _divider(console: Console, title: Optional[str] = None) -> None:
    """
    Subtle section divider that adapts to terminal width.
    Example:
      ─────── REQUEST ─────────────────────────────
    """
    width = console.size.width if console.is_terminal else 80
    width = max(40, width)

    if title:
        label = f" {title.strip().upper()} "
        left = "─" * 6
        remaining = max(0, width - len(left) - len(label))
        console.print(f"[dim]{left}{label}{'─' * remaining}[/dim]")
    else:
        console.print(f"[dim]{'─' * width}[/dim]")


# ---------- UI ----------

def print_banner(console: Console) -> None:
    console.print("ELEVATE", style="bold green")
    console.print("temporary privilege escalation", style="bold cyan")
    console.print("")


def print_request_status(
    req: AccessRequest,
    result: Optional[ReconcileResult] = None,
    *,
    artifact_path: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """
    CLI view of one AccessRequest:
    - Consistent UTC ISO timestamps (second precision, Z suffix)
    - Status rendered as a table with its reason
    - What the scheduler will do next, when a reconcile result is given
    """
    console = console or Console(highlight=False)

    print_banner(console)

    status_label = req.status.value if req.status else "Unset"
    style = _status_style(req.status)

    # TIMESTAMPS
    _divider(console, "UTC")
    console.print(f"[green]Created At:[/green] [dim]{_iso_utc_from_epoch_seconds(req.created_at or None)}[/dim]")
    console.print(f"[green]Requested Expiry:[/green] [dim]{_iso_utc_from_epoch_seconds(req.requested_expiry)}[/dim]")
    console.print(f"[green]Effective Expiry:[/green] [dim]{_iso_utc_from_epoch_seconds(req.effective_expiry)}[/dim]\n")

    # REQUEST
    _divider(console, "REQUEST")
    console.print(f" • Name:       [yellow]{req.name}[/yellow] [dim]({req.uid or '-'})[/dim]")
    console.print(f" • User:       [yellow]{req.principal or '-'}[/yellow]")
    console.print(f" • Role:       [yellow]{req.target_role or '-'}[/yellow]")
    console.print(f" • Reason:     [yellow]{req.reason or '-'}[/yellow]\n")

    # STATUS
    _divider(console, "STATUS")
    table = Table(
        box=box.SQUARE if console.is_terminal else box.SIMPLE,
        show_header=True,
        header_style="bold white",
        border_style="dim",
        expand=True,
    )
    table.add_column("STATUS", justify="center", ratio=1, no_wrap=True)
    table.add_column("BINDING", ratio=3, no_wrap=False)
    table.add_column("NEXT", justify="center", ratio=2, no_wrap=True)
    table.add_column("REASON", ratio=4, no_wrap=False)

    table.add_row(
        f"[{style}]{status_label}[/{style}]",
        _binding_label(req),
        _next_step(result),
        req.status_reason or "-",
    )
    console.print(table)
    console.print("")

    if artifact_path:
        _divider(console, "ARTIFACT")
        console.print(f"[dim]Audit Artifact saved to:[/dim] [cyan]{artifact_path}[/cyan]\n")
