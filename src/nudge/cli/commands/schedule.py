"""Schedule management commands.

These commands open the configured store through a scheduler that loads
state without firing anything. A running server re-reads each job before
firing it and polls the store every ``scheduler.poll_interval`` seconds,
so cancels take effect at once and new jobs are armed within a poll.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import click
import typer

from nudge.cli.console import (
    confirm_or_cancel,
    console,
    create_table,
    dim,
    error,
    success,
    warning,
)
from nudge.scheduling.errors import SchedulingError
from nudge.scheduling.types import NotificationPayload, Priority, RecurrenceKind

if TYPE_CHECKING:
    from nudge.scheduling.scheduler import Scheduler
    from nudge.scheduling.types import Job, RecurrenceRule

ACTIONS = ("list", "history", "add", "send", "cancel", "pause", "resume", "prune")

WEEKDAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _format_countdown(next_fire: datetime | None, now: datetime | None = None) -> str:
    """Format a countdown string for the next fire time."""
    if next_fire is None:
        return "[dim]-[/dim]"

    now = now or datetime.now(UTC)
    if next_fire <= now:
        return "[green]now[/green]"

    delta = next_fire - now
    total_seconds = int(delta.total_seconds())

    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours = total_minutes // 60
    minutes = total_minutes % 60
    if hours < 24:
        if minutes:
            return f"in {hours}h {minutes}m"
        return f"in {hours}h"

    days = hours // 24
    hours = hours % 24
    if hours:
        return f"in {days}d {hours}h"
    return f"in {days}d"


def _describe_rule(rule: "RecurrenceRule") -> str:
    """Human-readable summary of a recurrence rule."""
    n = rule.interval
    if rule.kind == RecurrenceKind.DAILY:
        text = "daily" if n == 1 else f"every {n} days"
    elif rule.kind == RecurrenceKind.WEEKLY:
        text = "weekly" if n == 1 else f"every {n} weeks"
        if rule.anchor_day_of_week is not None:
            text += f" on {WEEKDAY_NAMES[rule.anchor_day_of_week].title()}"
    elif rule.kind == RecurrenceKind.MONTHLY:
        text = "monthly" if n == 1 else f"every {n} months"
        if rule.anchor_day_of_month is not None:
            text += f" on day {rule.anchor_day_of_month}"
    else:
        text = f"every {n}ms"
    if rule.end_time is not None:
        text += f" until {rule.end_time.isoformat()[:16]}"
    return text


def _parse_time(value: str) -> datetime:
    """Parse an ISO-8601 time. Times without an offset are local time."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        error(f"Invalid time: {value} (expected ISO-8601, e.g. 2026-03-01T09:00)")
        raise typer.Exit(1) from None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed.astimezone(UTC)


def _parse_clock(value: str) -> tuple[int, int]:
    """Parse HH:MM."""
    try:
        hour_text, minute_text = value.split(":", 1)
        return int(hour_text), int(minute_text)
    except ValueError:
        error(f"Invalid time of day: {value} (expected HH:MM)")
        raise typer.Exit(1) from None


def _parse_weekday(value: str) -> int:
    """Parse a weekday as 0-6 (Monday first) or a day name."""
    if value.isdigit():
        return int(value)
    prefix = value.strip().lower()[:3]
    if prefix in WEEKDAY_NAMES:
        return WEEKDAY_NAMES.index(prefix)
    error(f"Invalid weekday: {value}")
    raise typer.Exit(1)


@asynccontextmanager
async def _open_scheduler(config_path: Path | None) -> AsyncIterator["Scheduler"]:
    from nudge.config import load_config_or_default
    from nudge.runtime import bootstrap_runtime

    config = load_config_or_default(config_path)
    runtime = await bootstrap_runtime(config, recover=False)
    try:
        yield runtime.scheduler
    finally:
        await runtime.aclose()


def register(app: typer.Typer) -> None:
    """Register the schedule command."""

    @app.command()
    def schedule(
        action: Annotated[
            str | None,
            typer.Argument(help=f"Action: {', '.join(ACTIONS)}"),
        ] = None,
        job_id: Annotated[
            str | None,
            typer.Option("--id", "-i", help="Job ID (8-char hex)"),
        ] = None,
        config: Annotated[
            Path | None,
            typer.Option("--config", "-c", help="Path to configuration file"),
        ] = None,
        title: Annotated[
            str | None, typer.Option("--title", "-t", help="Notification title")
        ] = None,
        message: Annotated[
            str | None, typer.Option("--message", "-m", help="Notification body")
        ] = None,
        destination: Annotated[
            str | None,
            typer.Option("--to", "-d", help="Destination name or webhook URL"),
        ] = None,
        priority: Annotated[
            Priority, typer.Option("--priority", help="Delivery priority")
        ] = Priority.MEDIUM,
        at: Annotated[
            str | None,
            typer.Option("--at", help="First fire time (ISO-8601)"),
        ] = None,
        every: Annotated[
            RecurrenceKind | None,
            typer.Option("--every", help="Repeat unit"),
        ] = None,
        interval: Annotated[
            int,
            typer.Option(
                "--interval", help="Repeat every N units (milliseconds for custom)"
            ),
        ] = 1,
        until: Annotated[
            str | None,
            typer.Option("--until", help="Stop repeating after this time (ISO-8601)"),
        ] = None,
        daily_at: Annotated[
            str | None,
            typer.Option("--daily-at", help="Repeat every day at HH:MM"),
        ] = None,
        weekly_on: Annotated[
            str | None,
            typer.Option("--weekly-on", help="Repeat weekly on a day (mon or 0-6)"),
        ] = None,
        monthly_on: Annotated[
            int | None,
            typer.Option("--monthly-on", help="Repeat monthly on a day (1-31)"),
        ] = None,
        at_time: Annotated[
            str | None,
            typer.Option("--at-time", help="Time of day for --weekly-on/--monthly-on"),
        ] = None,
        utc_offset: Annotated[
            int,
            typer.Option(
                "--utc-offset", help="Minutes from UTC for wall-clock schedules"
            ),
        ] = 0,
        limit: Annotated[
            int, typer.Option("--limit", "-n", help="History entries to show")
        ] = 20,
        force: Annotated[
            bool,
            typer.Option("--force", "-f", help="Skip confirmation"),
        ] = False,
    ) -> None:
        """Manage scheduled notifications.

        Examples:
            nudge schedule list
            nudge schedule add -t Standup -m "Join now" -d team --daily-at 09:30
            nudge schedule add -t Rent -m Pay -d me --monthly-on 31 --at-time 08:00
            nudge schedule send -t Deploy -m "Done" -d ops
            nudge schedule pause --id a1b2c3d4
            nudge schedule history -n 10
        """
        if action is None:
            ctx = click.get_current_context()
            click.echo(ctx.get_help())
            raise typer.Exit(0)

        if action not in ACTIONS:
            error(f"Unknown action: {action}")
            console.print(f"Valid actions: {', '.join(ACTIONS)}")
            raise typer.Exit(1)

        if action in ("cancel", "pause", "resume") and job_id is None:
            error(f"--id is required for {action}")
            raise typer.Exit(1)

        if action in ("add", "send"):
            missing = [
                flag
                for flag, value in (
                    ("--title", title),
                    ("--message", message),
                    ("--to", destination),
                )
                if not value
            ]
            if missing:
                error(f"{', '.join(missing)} required for {action}")
                raise typer.Exit(1)

        async def run() -> None:
            async with _open_scheduler(config) as scheduler:
                if action == "list":
                    _schedule_list(scheduler)
                elif action == "history":
                    _schedule_history(scheduler, limit)
                elif action == "add":
                    await _schedule_add(
                        scheduler,
                        _build_payload(title, message, destination, priority),
                        _build_schedule(
                            at=at,
                            every=every,
                            interval=interval,
                            until=until,
                            daily_at=daily_at,
                            weekly_on=weekly_on,
                            monthly_on=monthly_on,
                            at_time=at_time,
                            utc_offset=utc_offset,
                        ),
                    )
                elif action == "send":
                    await _schedule_send(
                        scheduler,
                        _build_payload(title, message, destination, priority),
                    )
                elif action == "prune":
                    await _schedule_prune(scheduler, force)
                else:
                    assert job_id is not None
                    await _schedule_transition(scheduler, action, job_id)

        try:
            asyncio.run(run())
        except SchedulingError as e:
            error(str(e))
            raise typer.Exit(1) from None
        except (FileNotFoundError, ValueError) as e:
            # Missing or invalid config file
            error(f"Error loading config: {e}")
            raise typer.Exit(1) from None


def _build_payload(
    title: str | None,
    message: str | None,
    destination: str | None,
    priority: Priority,
) -> NotificationPayload:
    assert title and message and destination
    return NotificationPayload(
        title=title, message=message, destination=destination, priority=priority
    )


def _build_schedule(
    *,
    at: str | None,
    every: RecurrenceKind | None,
    interval: int,
    until: str | None,
    daily_at: str | None,
    weekly_on: str | None,
    monthly_on: int | None,
    at_time: str | None,
    utc_offset: int,
) -> tuple[datetime, "RecurrenceRule | None"]:
    """Turn CLI options into a first fire time and optional rule."""
    from nudge.scheduling import helpers
    from nudge.scheduling.types import RecurrenceRule

    end_time = _parse_time(until) if until else None
    wall_clock = [x for x in (daily_at, weekly_on, monthly_on) if x is not None]
    if len(wall_clock) > 1:
        error("Use only one of --daily-at, --weekly-on, --monthly-on")
        raise typer.Exit(1)

    if daily_at is not None:
        hour, minute = _parse_clock(daily_at)
        return helpers.daily_at(
            hour, minute, utc_offset_minutes=utc_offset, end_time=end_time
        )

    if weekly_on is not None or monthly_on is not None:
        if at_time is None:
            error("--at-time is required with --weekly-on/--monthly-on")
            raise typer.Exit(1)
        hour, minute = _parse_clock(at_time)
        if weekly_on is not None:
            return helpers.weekly_on(
                _parse_weekday(weekly_on),
                hour,
                minute,
                utc_offset_minutes=utc_offset,
                end_time=end_time,
            )
        assert monthly_on is not None
        return helpers.monthly_on(
            monthly_on, hour, minute, utc_offset_minutes=utc_offset, end_time=end_time
        )

    if at is None:
        error("--at is required (or use --daily-at/--weekly-on/--monthly-on)")
        raise typer.Exit(1)
    first_fire_time = _parse_time(at)

    if every is None:
        return first_fire_time, None
    rule = RecurrenceRule(
        kind=every,
        interval=interval,
        end_time=end_time,
        utc_offset_minutes=utc_offset,
    )
    return first_fire_time, rule


def _schedule_list(scheduler: "Scheduler") -> None:
    """List all scheduled notifications."""
    jobs = scheduler.list_jobs()
    if not jobs:
        warning("No scheduled notifications found")
        return

    table = create_table(
        None,
        [
            ("ID", "dim"),
            ("Title", ""),
            ("Destination", ""),
            ("Schedule", ""),
            ("Next Fire", ""),
            ("Status", ""),
        ],
    )
    now = scheduler.clock.now()
    for job in jobs:
        title = job.payload.title
        if len(title) > 40:
            title = title[:40] + "..."
        table.add_row(
            job.id,
            title,
            job.payload.destination,
            _describe_schedule(job),
            _format_countdown(job.next_fire_time, now) if job.active else "",
            "[green]active[/green]" if job.active else "[dim]inactive[/dim]",
        )

    console.print(table)
    dim(f"Total: {len(jobs)} notification(s)")


def _describe_schedule(job: "Job") -> str:
    if job.recurrence is not None:
        return _describe_rule(job.recurrence)
    return f"once at {job.first_fire_time.isoformat()[:16]}"


def _schedule_history(scheduler: "Scheduler", limit: int) -> None:
    """Show recent delivery attempts."""
    entries = scheduler.history(limit)
    if not entries:
        warning("No deliveries recorded")
        return

    table = create_table(
        None,
        [
            ("Fired At", "dim"),
            ("Job", ""),
            ("Destination", ""),
            ("Result", ""),
            ("Detail", ""),
        ],
    )
    for entry in entries:
        result = "[green]sent[/green]" if entry.success else "[red]failed[/red]"
        detail = entry.delivery_id if entry.success else entry.error_detail
        table.add_row(
            entry.fired_at.isoformat()[:19],
            entry.job_id or "[dim]immediate[/dim]",
            entry.destination_echo,
            result,
            detail or "",
        )
    console.print(table)


async def _schedule_add(
    scheduler: "Scheduler",
    payload: NotificationPayload,
    schedule: tuple[datetime, "RecurrenceRule | None"],
) -> None:
    first_fire_time, rule = schedule
    job_id = await scheduler.submit(payload, first_fire_time, rule)
    success(f"Scheduled {job_id}")
    dim(f"First fire: {first_fire_time.isoformat()}")
    if rule is not None:
        dim(f"Repeats: {_describe_rule(rule)}")


async def _schedule_send(
    scheduler: "Scheduler", payload: NotificationPayload
) -> None:
    result = await scheduler.dispatch_now(payload)
    if result.success:
        success(f"Sent (delivery {result.delivery_id})")
    else:
        error(f"Delivery failed: {result.error}")
        raise typer.Exit(1)


async def _schedule_transition(
    scheduler: "Scheduler", action: str, job_id: str
) -> None:
    operation = {
        "cancel": scheduler.cancel,
        "pause": scheduler.pause,
        "resume": scheduler.resume,
    }[action]
    if not await operation(job_id):
        error(f"No notification found with ID {job_id}")
        raise typer.Exit(1)
    past = {"cancel": "Cancelled", "pause": "Paused", "resume": "Resumed"}[action]
    success(f"{past} {job_id}")


async def _schedule_prune(scheduler: "Scheduler", force: bool) -> None:
    inactive = [job for job in scheduler.list_jobs() if not job.active]
    if not inactive:
        warning("No inactive notifications to prune")
        return
    prompt = f"Delete {len(inactive)} inactive notification(s)?"
    if not confirm_or_cancel(prompt, force):
        return
    removed = await scheduler.prune_inactive()
    success(f"Pruned {removed} notification(s)")
