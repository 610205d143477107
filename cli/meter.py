#!/usr/bin/env python3
"""meter — track consulting hours and generate invoices."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable

from meter.invoice import day_range, generate_invoice, month_range, period_label
from meter.messages import AcknowledgePomodoro, Tick
from meter.models import DEFAULT_DESCRIPTION, Entry, utcnow
from meter.notify import DesktopNotifier
from meter.pomodoro import PomodoroState, format_remaining
from meter.render import RenderError
from meter.session import Session
from meter.store import Store, StoreError
from meter.workspace import Config, INVOICE_FORMATS, data_root, load_config, setup_logging

logger = logging.getLogger("meter.cli")


# ── Formatting ────────────────────────────────────────────────


def format_entry(entry: Entry, tz) -> str:
    status = "running" if entry.is_running else ("billed" if entry.billed else "pending")
    started = entry.start.astimezone(tz).strftime("%Y-%m-%d %H:%M") if entry.start else "?"
    return (
        f"[{entry.id}] {entry.project} | {entry.description} | {started} | "
        f"{entry.hours():.2f} hrs | {status}"
    )


def parse_day(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r} (expected YYYY-MM-DD)")


# ── Commands ──────────────────────────────────────────────────


def cmd_start(args, store: Store, config: Config, notifier) -> int:
    project = args.project.strip()
    if not project:
        raise ValueError("Project name must not be empty")
    active = store.get_active_entry()
    if active is not None:
        raise ValueError(f"A timer is already running for '{active.project}'. Stop it first.")
    entry = store.start_timer(project, args.desc or DEFAULT_DESCRIPTION)
    notifier.emit("on_timer_start", entry.to_dict())
    print(f"Started timer for project '{project}'")
    return 0


def cmd_stop(args, store: Store, config: Config, notifier) -> int:
    entry = store.stop_active_timer()
    if entry is None:
        raise ValueError("No running timer")
    notifier.emit("on_timer_stop", entry.to_dict())
    print(f"Stopped timer for project '{entry.project}', duration {entry.hours():.2f} hrs")
    return 0


def cmd_add(args, store: Store, config: Config, notifier) -> int:
    project = args.project.strip()
    if not project:
        raise ValueError("Project name must not be empty")
    if args.duration <= 0:
        raise ValueError("Duration must be a positive number of hours")
    end = utcnow()
    start = end - timedelta(seconds=round(args.duration * 3600))
    store.add_entry(project, args.desc, start, end)
    print(f"Added manual entry for project '{project}', duration {args.duration:.2f} hrs")
    return 0


def cmd_list(args, store: Store, config: Config, notifier) -> int:
    if args.all:
        entries = store.list_entries()
    else:
        entries = store.list_entries(billed=args.billed)
    if args.json:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return 0
    if not entries:
        print("No entries.")
        return 0
    for e in entries:
        print(format_entry(e, config.tz))
    return 0


def cmd_bill(args, store: Store, config: Config, notifier) -> int:
    if args.id is None:
        count = store.mark_all_billed()
        print(f"Marked {count} pending entries as billed")
        return 0
    if not store.mark_billed(args.id):
        entry = store.get_entry(args.id)
        if entry is None:
            raise ValueError(f"Entry {args.id} not found")
        raise ValueError(f"Entry {args.id} is still running")
    print(f"Marked entry {args.id} as billed")
    return 0


def cmd_unbill(args, store: Store, config: Config, notifier) -> int:
    if args.id is None:
        count = store.unmark_all_billed()
        print(f"Marked {count} billed entries as unbilled")
        return 0
    if not store.unmark_billed(args.id):
        raise ValueError(f"Entry {args.id} not found")
    print(f"Marked entry {args.id} as unbilled")
    return 0


def invoice_bounds(args, now: datetime) -> tuple[datetime, datetime]:
    if args.date_from or args.date_to:
        if not (args.date_from and args.date_to):
            raise ValueError("--from and --to must be given together")
        if args.date_to < args.date_from:
            raise ValueError("--to must not be before --from")
        return day_range(args.date_from, args.date_to)
    month = args.month or now.month
    year = args.year or now.year
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {month}")
    return month_range(year, month)


def cmd_invoice(args, store: Store, config: Config, notifier) -> int:
    now = utcnow()
    start, end = invoice_bounds(args, now)
    client = None
    if args.client is not None:
        client = store.get_client(args.client)
        if client is None:
            raise ValueError(f"Client {args.client} not found")

    entries = store.list_entries_in_range(start, end, billed=True)
    record, summary = generate_invoice(
        store,
        entries,
        config.invoices_path,
        args.format or config.invoice_format,
        client=client,
        now=now,
        period=period_label(start, end),
        tz=config.tz,
    )
    notifier.emit("post_invoice", record.to_dict())
    if not summary.lines:
        print("No billed entries in this period; wrote an empty invoice.")
    print(f"Invoice #{record.invoice_number} written to {record.file_path}")
    print(f"Total hours: {summary.total_hours:.2f}  Total due: {summary.total:.2f}")
    return 0


def cmd_rate(args, store: Store, config: Config, notifier) -> int:
    if args.rate is None and args.currency is None:
        project = store.get_project(args.project)
        if project is None:
            raise ValueError(f"Project '{args.project}' not found")
        print(f"{project.name}: {project.formatted_rate() or 'no rate set'}")
        return 0
    if args.rate is not None and args.rate < 0:
        raise ValueError("Rate must not be negative")
    current = store.get_project(args.project)
    rate = args.rate if args.rate is not None else (current.rate if current else None)
    project = store.set_project_rate(args.project, rate, args.currency)
    print(f"{project.name}: {project.formatted_rate() or 'no rate set'}")
    return 0


def cmd_projects(args, store: Store, config: Config, notifier) -> int:
    projects = store.list_projects()
    if not projects:
        print("No projects.")
    for p in projects:
        print(f"[{p.id}] {p.name} | {p.formatted_rate() or 'no rate'}")
    return 0


def cmd_clients(args, store: Store, config: Config, notifier) -> int:
    clients = store.list_clients()
    if not clients:
        print("No clients.")
    for c in clients:
        contact = f" ({c.contact_person})" if c.contact_person else ""
        print(f"[{c.id}] {c.name}{contact}{' | ' + c.email if c.email else ''}")
    return 0


def cmd_pomodoro(args, store: Store, config: Config, notifier) -> int:
    pomo = store.get_pomodoro_config()
    if args.on:
        pomo.enabled = True
    elif args.off:
        pomo.enabled = False
    for name, value in (
        ("work_duration", args.work),
        ("short_break", args.short),
        ("long_break", args.long),
        ("cycles_before_long", args.cycles),
    ):
        if value is None:
            continue
        if value <= 0:
            raise ValueError(f"--{name.split('_')[0]} must be a positive integer")
        setattr(pomo, name, value)
    store.set_pomodoro_config(pomo)
    print(
        f"Pomodoro {'enabled' if pomo.enabled else 'disabled'}: "
        f"work {pomo.work_duration} min, short break {pomo.short_break} min, "
        f"long break {pomo.long_break} min every {pomo.cycles_before_long} cycles"
    )
    return 0


def cmd_tui(args, store: Store, config: Config, notifier) -> int:
    from cli.tui import MeterApp

    session = Session.from_config(store, config, notifier)
    MeterApp(session, tick_seconds=config.tick_seconds).run()
    return 0


def run_watch(
    session: Session,
    tick_seconds: float,
    max_ticks: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
    out=None,
) -> int:
    """Headless session loop: ticks, Pomodoro transitions, status lines on out.

    Prompts that need an operator are acknowledged automatically.
    """
    out = out or sys.stdout
    last_status = None
    ticks = 0
    while session.running and (max_ticks is None or ticks < max_ticks):
        session.dispatch(Tick())
        if session.pomodoro.state in (PomodoroState.WORK_COMPLETE, PomodoroState.BREAK_COMPLETE):
            if session.status:
                print(session.status, file=out)
            session.dispatch(AcknowledgePomodoro())
        if session.status != last_status and session.status:
            print(session.status, file=out)
            out.flush()
        last_status = session.status
        ticks += 1
        sleep(tick_seconds)
    return 0


def cmd_watch(args, store: Store, config: Config, notifier) -> int:
    session = Session.from_config(store, config, notifier)
    active = session.active_entry
    if active is not None:
        print(f"Watching '{active.project}' ({format_remaining(session.elapsed_seconds())} elapsed)")
    else:
        print("Watching for timers (Ctrl+C to quit)")
    try:
        return run_watch(session, config.tick_seconds)
    except KeyboardInterrupt:
        return 0


# ── Parser ────────────────────────────────────────────────────


COMMANDS = {
    "start": cmd_start,
    "stop": cmd_stop,
    "add": cmd_add,
    "list": cmd_list,
    "bill": cmd_bill,
    "unbill": cmd_unbill,
    "invoice": cmd_invoice,
    "rate": cmd_rate,
    "projects": cmd_projects,
    "clients": cmd_clients,
    "pomodoro": cmd_pomodoro,
    "tui": cmd_tui,
    "watch": cmd_watch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="meter", description="Track consulting hours and generate invoices")
    parser.add_argument("-v", "--verbose", action="store_true", help="log to stderr as well")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("start", help="start a timer for a project")
    p.add_argument("-p", "--project", required=True)
    p.add_argument("-d", "--desc", default=DEFAULT_DESCRIPTION)

    sub.add_parser("stop", help="stop the running timer")

    p = sub.add_parser("add", help="add a manual entry ending now")
    p.add_argument("-p", "--project", required=True)
    p.add_argument("-d", "--desc", required=True)
    p.add_argument("--duration", type=float, required=True, help="duration in hours (e.g. 1.5)")

    p = sub.add_parser("list", help="list entries (unbilled by default)")
    group = p.add_mutually_exclusive_group()
    group.add_argument("-b", "--billed", action="store_true", help="billed entries only")
    group.add_argument("-a", "--all", action="store_true", help="every entry")
    p.add_argument("--json", action="store_true")

    for name, help_text in (("bill", "mark entries billed"), ("unbill", "mark entries unbilled")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--id", type=int, help="single entry (default: all)")

    p = sub.add_parser("invoice", help="generate an invoice from billed entries")
    p.add_argument("-m", "--month", type=int)
    p.add_argument("-y", "--year", type=int)
    p.add_argument("--from", dest="date_from", type=parse_day)
    p.add_argument("--to", dest="date_to", type=parse_day)
    p.add_argument("--format", choices=sorted(INVOICE_FORMATS))
    p.add_argument("--client", type=int, help="client id for the Bill To block")

    p = sub.add_parser("rate", help="show or set a project's hourly rate")
    p.add_argument("project")
    p.add_argument("rate", nargs="?", type=float)
    p.add_argument("--currency")

    sub.add_parser("projects", help="list projects and rates")
    sub.add_parser("clients", help="list clients")

    p = sub.add_parser("pomodoro", help="show or change Pomodoro settings")
    toggle = p.add_mutually_exclusive_group()
    toggle.add_argument("--on", action="store_true")
    toggle.add_argument("--off", action="store_true")
    p.add_argument("--work", type=int, help="work interval (minutes)")
    p.add_argument("--short", type=int, help="short break (minutes)")
    p.add_argument("--long", type=int, help="long break (minutes)")
    p.add_argument("--cycles", type=int, help="work intervals before a long break")

    sub.add_parser("tui", help="launch the interactive terminal UI")
    sub.add_parser("watch", help="run the Pomodoro loop headless")
    return parser


def main(argv: list[str] | None = None, root: Path | None = None) -> int:
    args = build_parser().parse_args(argv)
    if root is None:
        root = data_root()
    config = load_config(root)
    setup_logging(root, config.log_level, console=args.verbose)
    notifier = DesktopNotifier(root, enabled=config.notifications)

    try:
        with Store(config.db_path) as store:
            return COMMANDS[args.command](args, store, config, notifier)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (StoreError, RenderError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
