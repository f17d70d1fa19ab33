"""CLI interface using Typer."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from weighttrend.config import get_settings
from weighttrend.db import get_db
from weighttrend.output.response import CommandResponse, error_response, success_response
from weighttrend.tracking.dates import is_valid_time_zone, parse_local_date, resolve_today
from weighttrend.tracking.materialize import TrendMaterializer
from weighttrend.tracking.models import UserProfile
from weighttrend.tracking.queries import UserQueries, WeightQueries
from weighttrend.tracking.units import grams_to_display, normalize_unit, parse_weight_to_grams

app = typer.Typer(
    help="Weight logging with a Kalman-filtered trend",
    no_args_is_help=True,
)
console = Console()

# Subcommand groups
user_app = typer.Typer(help="Manage the user profile (unit, time zone)")
weight_app = typer.Typer(help="Log and list weigh-ins")
trend_app = typer.Typer(help="Inspect and recompute the weight trend")

app.add_typer(user_app, name="user")
app.add_typer(weight_app, name="weight")
app.add_typer(trend_app, name="trend")


# ============================================================================
# Helpers
# ============================================================================


def emit(response: CommandResponse) -> None:
    """Print a JSON envelope on stdout."""
    print(response.to_json())


def ensure_tables() -> None:
    """Ensure tables exist (idempotent)."""
    get_db().initialize_schema()


def get_materializer(ctx: typer.Context) -> TrendMaterializer:
    """Return the materializer built at startup for this invocation."""
    return ctx.obj["materializer"]


def require_profile(
    conn, user_id: Optional[int], command: str, json_output: bool
) -> UserProfile:
    """Load the requested (or default) profile, exiting with an error if absent."""
    profile = UserQueries.get_user(conn, user_id) if user_id else UserQueries.get_default_user(conn)
    if profile is None:
        suggestion = "Create a profile first: weighttrend user create --unit kg"
        if json_output:
            emit(error_response(command, "No user profile found", [suggestion]))
        else:
            console.print("[red]No user profile found[/red]")
            console.print(suggestion)
        raise typer.Exit(1)
    return profile


def store_failure(command: str, error: sqlite3.Error, json_output: bool) -> NoReturn:
    """Report a database error raised by the trend store and exit."""
    message = f"Trend store error: {error}"
    suggestion = "Stale rows are recomputed on the next trend read; retry the command"
    if json_output:
        emit(error_response(command, message, [suggestion]))
    else:
        console.print(f"[red]{message}[/red]")
        console.print(suggestion)
    raise typer.Exit(1)


def parse_date_option(value: Optional[str], command: str, json_output: bool) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_local_date(value)
    except ValueError as e:
        if json_output:
            emit(error_response(command, str(e)))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging and build the shared trend materializer."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()
    ctx.obj = {
        "materializer": TrendMaterializer(
            get_db(),
            config=settings.trend,
            default_time_zone=settings.defaults.time_zone,
        )
    }


# Callbacks for sub-apps to auto-create tables on first use
@user_app.callback()
def user_callback() -> None:
    """Ensure tables exist before any user command."""
    ensure_tables()


@weight_app.callback()
def weight_callback() -> None:
    """Ensure tables exist before any weight command."""
    ensure_tables()


@trend_app.callback()
def trend_callback() -> None:
    """Ensure tables exist before any trend command."""
    ensure_tables()


# ============================================================================
# User Profile Commands
# ============================================================================


@user_app.command("create")
def user_create(
    unit: str = typer.Option("kg", "--unit", help="Display unit (kg/lb)"),
    time_zone: Optional[str] = typer.Option(
        None, "--tz", help="IANA time zone (e.g. Europe/Berlin)"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Create a user profile."""
    try:
        profile = UserProfile(user_id=None, weight_unit=normalize_unit(unit), time_zone=time_zone)
    except ValueError as e:
        if json_output:
            emit(error_response("user create", str(e)))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    warnings = []
    if time_zone and not is_valid_time_zone(time_zone):
        warnings.append(f"Unknown time zone '{time_zone}'; 'today' will be resolved in UTC")

    with get_db().get_connection() as conn:
        user_id = UserQueries.create_user(conn, profile)

    if json_output:
        emit(success_response(
            "user create",
            data={"user_id": user_id, "weight_unit": profile.weight_unit, "time_zone": time_zone},
            warnings=warnings,
            human_summary=f"Created user profile (ID: {user_id})",
        ))
    else:
        console.print(f"[green]Created user profile (ID: {user_id})[/green]")
        for warning in warnings:
            console.print(f"[yellow]{warning}[/yellow]")


@user_app.command("show")
def user_show(
    user_id: Optional[int] = typer.Option(None, "--id", help="User ID (default: first user)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show user profile."""
    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "user show", json_output)

    if json_output:
        emit(success_response(
            "user show",
            data={
                "user_id": profile.user_id,
                "weight_unit": profile.weight_unit,
                "time_zone": profile.time_zone,
            },
            human_summary=f"User {profile.user_id}: {profile.weight_unit}, {profile.time_zone or 'UTC'}",
        ))
    else:
        console.print(f"[bold]User Profile (ID: {profile.user_id})[/bold]")
        console.print(f"  Unit: {profile.weight_unit}")
        console.print(f"  Time zone: {profile.time_zone or '(default)'}")


@user_app.command("update")
def user_update(
    user_id: Optional[int] = typer.Option(None, "--id", help="User ID (default: first user)"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Update display unit"),
    time_zone: Optional[str] = typer.Option(None, "--tz", help="Update time zone"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Update user profile."""
    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "user update", json_output)

        try:
            if unit is not None:
                profile.weight_unit = normalize_unit(unit)
        except ValueError as e:
            if json_output:
                emit(error_response("user update", str(e)))
            else:
                console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        if time_zone is not None:
            profile.time_zone = time_zone or None

        UserQueries.update_user(conn, profile)

    if json_output:
        emit(success_response(
            "user update",
            data={"user_id": profile.user_id},
            human_summary="Profile updated",
        ))
    else:
        console.print("[green]Profile updated[/green]")


# ============================================================================
# Weight Commands
# ============================================================================


@weight_app.command("add")
def weight_add(
    ctx: typer.Context,
    weight: float = typer.Argument(..., help="Weight in the profile unit"),
    date_str: Optional[str] = typer.Option(
        None, "--date", "-d", help="Date (YYYY-MM-DD, default: today)"
    ),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Optional notes"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID (default: first user)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Add a weigh-in and refresh the materialized trend."""
    materializer = get_materializer(ctx)
    measured_at = parse_date_option(date_str, "weight add", json_output)

    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "weight add", json_output)
        if measured_at is None:
            measured_at = resolve_today(profile.time_zone or materializer.default_time_zone)

        try:
            grams = parse_weight_to_grams(weight, profile.weight_unit)
        except ValueError as e:
            if json_output:
                emit(error_response("weight add", str(e)))
            else:
                console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        entry = WeightQueries.add_weight(conn, profile.user_id, grams, measured_at, notes)  # type: ignore

    refreshed = materializer.refresh_best_effort(profile.user_id)  # type: ignore
    warnings = [] if refreshed else ["Trend refresh failed; it will be recomputed on next read"]
    display = grams_to_display(entry.weight_grams, profile.weight_unit)

    if json_output:
        emit(success_response(
            "weight add",
            data={
                "weight": display,
                "unit": profile.weight_unit,
                "measured_at": entry.measured_at.isoformat(),
                "trend_refreshed": refreshed,
            },
            warnings=warnings,
            human_summary=f"Logged {display:.1f} {profile.weight_unit} on {entry.measured_at}",
        ))
    else:
        console.print(f"[green]Logged:[/green] {display:.1f} {profile.weight_unit} on {entry.measured_at}")
        for warning in warnings:
            console.print(f"[yellow]{warning}[/yellow]")


@weight_app.command("delete")
def weight_delete(
    ctx: typer.Context,
    date_str: str = typer.Argument(..., help="Date of the weigh-in (YYYY-MM-DD)"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Delete a weigh-in and refresh the materialized trend."""
    measured_at = parse_date_option(date_str, "weight delete", json_output)

    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "weight delete", json_output)
        removed = WeightQueries.delete_weight(conn, profile.user_id, measured_at)  # type: ignore

    if not removed:
        if json_output:
            emit(error_response("weight delete", f"No weigh-in on {measured_at}"))
        else:
            console.print(f"[yellow]No weigh-in on {measured_at}[/yellow]")
        raise typer.Exit(1)

    refreshed = get_materializer(ctx).refresh_best_effort(profile.user_id)  # type: ignore

    if json_output:
        emit(success_response(
            "weight delete",
            data={"measured_at": measured_at.isoformat(), "trend_refreshed": refreshed},  # type: ignore
            human_summary=f"Deleted weigh-in on {measured_at}",
        ))
    else:
        console.print(f"[green]Deleted weigh-in on {measured_at}[/green]")


@weight_app.command("list")
def weight_list(
    ctx: typer.Context,
    days: int = typer.Option(30, "--days", "-d", min=1, help="Number of days to show"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List recent weigh-ins with their trend."""
    materializer = get_materializer(ctx)
    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "weight list", json_output)

    window = materializer.window_for(profile.user_id)  # type: ignore
    start = window.today - timedelta(days=days - 1)
    try:
        payload = materializer.get_trend(profile.user_id, start=start, end=window.today)  # type: ignore
    except sqlite3.Error as e:
        store_failure("weight list", e, json_output)
    points = payload["points"]
    unit = payload["meta"]["unit"]

    if json_output:
        emit(success_response(
            "weight list",
            data={"unit": unit, "entries": points},
            human_summary=f"{len(points)} entries over {days} days",
        ))
        return

    if not points:
        console.print("No weight entries found")
        return

    table = Table(title=f"Weight History (last {days} days, {unit})")
    table.add_column("Date", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Trend", justify="right", style="blue")
    table.add_column("", justify="right")

    prev_trend = None
    for point in points:
        delta = ""
        if prev_trend is not None:
            delta = f"{point['trend_weight'] - prev_trend:+.1f}"
        prev_trend = point["trend_weight"]

        table.add_row(
            point["date"],
            f"{point['weight']:.1f}",
            f"{point['trend_weight']:.1f}",
            delta,
        )

    console.print(table)


# ============================================================================
# Trend Commands
# ============================================================================


@trend_app.command("show")
def trend_show(
    ctx: typer.Context,
    start_str: Optional[str] = typer.Option(None, "--start", help="First date (YYYY-MM-DD)"),
    end_str: Optional[str] = typer.Option(None, "--end", help="Last date (YYYY-MM-DD)"),
    unit: Optional[str] = typer.Option(None, "--unit", help="Output unit (kg/lb)"),
    time_zone: Optional[str] = typer.Option(None, "--tz", help="Time zone for 'today'"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the trend with 95% bands, weekly rate and volatility."""
    start = parse_date_option(start_str, "trend show", json_output)
    end = parse_date_option(end_str, "trend show", json_output)

    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "trend show", json_output)

    try:
        output_unit = normalize_unit(unit) if unit else None
    except ValueError as e:
        if json_output:
            emit(error_response("trend show", str(e)))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    try:
        payload = get_materializer(ctx).get_trend(
            profile.user_id, start=start, end=end, output_unit=output_unit, time_zone=time_zone  # type: ignore
        )
    except sqlite3.Error as e:
        store_failure("trend show", e, json_output)
    meta = payload["meta"]

    if json_output:
        emit(success_response(
            "trend show",
            data=payload,
            human_summary=f"{meta['weekly_rate']:+.2f} {meta['unit']}/week, volatility {meta['volatility']}",
        ))
        return

    if not payload["points"]:
        console.print("No weight entries found")
        return

    table = Table(title=f"Weight Trend ({meta['unit']})")
    table.add_column("Date", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Trend", justify="right", style="blue")
    table.add_column("95% band", justify="right")

    for point in payload["points"]:
        table.add_row(
            point["date"],
            f"{point['weight']:.1f}",
            f"{point['trend_weight']:.1f}",
            f"{point['trend_ci_lower']:.1f} - {point['trend_ci_upper']:.1f}",
        )

    console.print(table)
    console.print(f"[bold]Weekly rate:[/bold] {meta['weekly_rate']:+.2f} {meta['unit']}/week")
    console.print(f"[bold]Volatility:[/bold] {meta['volatility']}")
    console.print(f"{meta['total_points']} points over {meta['total_span_days']} days")


@trend_app.command("recompute")
def trend_recompute(
    ctx: typer.Context,
    time_zone: Optional[str] = typer.Option(None, "--tz", help="Time zone for 'today'"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Recompute the materialized trend for the active horizon."""
    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "trend recompute", json_output)

    try:
        written = get_materializer(ctx).recompute(profile.user_id, time_zone)  # type: ignore
    except sqlite3.Error as e:
        store_failure("trend recompute", e, json_output)

    if json_output:
        emit(success_response(
            "trend recompute",
            data={"rows_written": written},
            human_summary=f"Recomputed {written} trend rows",
        ))
    else:
        console.print(f"[green]Recomputed {written} trend rows[/green]")


@trend_app.command("status")
def trend_status(
    ctx: typer.Context,
    time_zone: Optional[str] = typer.Option(None, "--tz", help="Time zone for 'today'"),
    user_id: Optional[int] = typer.Option(None, "--user", help="User ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show how many active-horizon trend rows are fresh, stale or missing."""
    with get_db().get_connection() as conn:
        profile = require_profile(conn, user_id, "trend status", json_output)

    try:
        status = get_materializer(ctx).status(profile.user_id, time_zone)  # type: ignore
    except sqlite3.Error as e:
        store_failure("trend status", e, json_output)

    if json_output:
        emit(success_response(
            "trend status",
            data={
                "today": status.window.today.isoformat(),
                "active_start": status.window.active_start.isoformat(),
                "model_start": status.window.model_start.isoformat(),
                "fresh": status.fresh,
                "stale": status.stale,
                "missing": status.missing,
                "needs_recompute": status.needs_recompute,
            },
            human_summary=f"{status.fresh} fresh, {status.stale} stale, {status.missing} missing",
        ))
    else:
        console.print(
            f"[bold]Active horizon:[/bold] {status.window.active_start} .. {status.window.today}"
            f" (warmup from {status.window.model_start})"
        )
        console.print(f"  Fresh: {status.fresh}")
        console.print(f"  Stale: {status.stale}")
        console.print(f"  Missing: {status.missing}")
        if status.needs_recompute:
            console.print("[yellow]Trend will be recomputed on next read[/yellow]")


if __name__ == "__main__":
    app()
