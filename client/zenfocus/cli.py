from __future__ import annotations

import argparse
import getpass
import logging
import threading
from datetime import datetime

from pydantic import ValidationError

from .app import ZenFocusApp
from .config import load_config
from .events import SessionExpired, SyncFailed, Ticked, TimerCompleted
from .models import Settings, Theme, TimerMode
from .timer import format_time

MODE_LABELS = {
    TimerMode.FOCUS: "Focus",
    TimerMode.SHORT_BREAK: "Short Break",
    TimerMode.LONG_BREAK: "Long Break",
}


def _say(message: str) -> None:
    print(f"[zenfocus] {message}")


def _validation_message(e: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())


def cmd_run(app: ZenFocusApp, args: argparse.Namespace) -> int:
    done = threading.Event()
    remaining_periods = [args.periods]

    def on_event(event: object) -> None:
        if isinstance(event, Ticked):
            print(f"\r{MODE_LABELS[event.mode]:<12} {format_time(event.remaining_seconds)}", end="", flush=True)
        elif isinstance(event, TimerCompleted):
            print()
            _say(f"{MODE_LABELS[event.mode]} complete ({format_time(event.duration_seconds)})")
            remaining_periods[0] -= 1
            if remaining_periods[0] <= 0:
                done.set()
        elif isinstance(event, SyncFailed):
            logging.getLogger(__name__).debug(f"sync failed: {event.operation}: {event.error}")
        elif isinstance(event, SessionExpired):
            _say("Session expired; continuing as guest")

    app.events.subscribe(on_event)
    if args.mode:
        app.timer.switch_mode(TimerMode(args.mode))

    while True:
        _say(f"{MODE_LABELS[app.timer.mode]} started: {format_time(app.timer.remaining_seconds)}")
        app.timer.start()
        try:
            # Completion pauses the machine; wait for it or for the period budget to run out
            while app.timer.is_running and not done.is_set():
                done.wait(0.2)
        except KeyboardInterrupt:
            app.timer.pause()
            print()
            _say(f"Paused at {format_time(app.timer.remaining_seconds)}")
            return 130
        if done.is_set():
            break

    p = app.progress()
    _say(f"Today: {format_time(p.focus_seconds)} focused, {p.percent:.0f}% of goal")
    return 0


def cmd_status(app: ZenFocusApp, args: argparse.Namespace) -> int:
    user = app.auth.user
    who = f"{user.name or user.email} <{user.email}>" if user else "guest"
    s = app.settings
    p = app.progress()
    _say(f"Account:  {who} ({app.auth.state.value})")
    _say(f"Durations: focus {s.focusDuration}m, short {s.shortBreakDuration}m, long {s.longBreakDuration}m")
    _say(f"Today:    {p.sessions} sessions, {p.focus_seconds // 60}m of {s.dailyGoalHours:g}h ({p.percent:.0f}%)")
    _say(f"Theme:    {app.theme.value}")
    return 0


def cmd_history(app: ZenFocusApp, args: argparse.Namespace) -> int:
    history = app.ledger.history
    if args.limit:
        history = history[-args.limit:]
    if not history:
        _say("No sessions yet")
        return 0
    for s in history:
        when = datetime.fromtimestamp(s.completedAt / 1000).strftime("%b %d %H:%M")
        print(f"{when}  {MODE_LABELS[s.mode]:<12} {s.duration // 60}m")
    return 0


def cmd_settings(app: ZenFocusApp, args: argparse.Namespace) -> int:
    changes = {
        "focusDuration": args.focus,
        "shortBreakDuration": args.short,
        "longBreakDuration": args.long,
        "dailyGoalHours": args.goal,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if changes:
        try:
            settings = Settings.model_validate({**app.settings.model_dump(), **changes})
        except ValidationError as e:
            _say(f"Invalid settings: {_validation_message(e)}")
            return 2
        app.update_settings(settings)
    for key, value in app.settings.model_dump().items():
        print(f"{key}: {value:g}")
    return 0


def cmd_tasks(app: ZenFocusApp, args: argparse.Namespace) -> int:
    try:
        if args.action == "add":
            task = app.add_task(" ".join(args.text))
            _say(f"Added {task.id}")
        elif args.action == "done":
            if app.toggle_task(args.text[0]) is None:
                _say("No such task")
                return 1
        elif args.action == "rename":
            if app.rename_task(args.text[0], " ".join(args.text[1:])) is None:
                _say("No such task")
                return 1
        elif args.action == "rm":
            app.delete_task(args.text[0])
    except (ValidationError, ValueError, IndexError) as e:
        _say(f"Invalid task: {e}")
        return 2

    for t in app.tasks:
        mark = "x" if t.completed else " "
        print(f"[{mark}] {t.id}  {t.title}")
    return 0


def cmd_theme(app: ZenFocusApp, args: argparse.Namespace) -> int:
    if args.name:
        app.set_theme(Theme(args.name))
    _say(f"Theme: {app.theme.value}")
    return 0


def cmd_login(app: ZenFocusApp, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    result = app.login(args.email, password)
    if not result.success:
        _say(f"Login failed: {result.error}")
        return 1
    _say(f"Signed in as {args.email}")
    return 0


def cmd_register(app: ZenFocusApp, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    result = app.register(args.email, password, args.name or "")
    if not result.success:
        _say(f"Registration failed: {result.error}")
        return 1
    _say(f"Account created for {args.email}")
    return 0


def cmd_logout(app: ZenFocusApp, args: argparse.Namespace) -> int:
    app.logout()
    _say("Signed out; data stays on this device")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zenfocus", description="ZenFocus focus timer")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run the timer in this terminal")
    run.add_argument("--mode", choices=[m.value for m in TimerMode], help="Period to start with")
    run.add_argument("--periods", type=int, default=1, help="Stop after this many completed periods")
    run.set_defaults(func=cmd_run)

    sub.add_parser("status", help="Account, settings and today's progress").set_defaults(func=cmd_status)

    history = sub.add_parser("history", help="Completed sessions")
    history.add_argument("--limit", type=int, default=0)
    history.set_defaults(func=cmd_history)

    settings = sub.add_parser("settings", help="Show or change durations and daily goal")
    settings.add_argument("--focus", type=int, help="Focus minutes")
    settings.add_argument("--short", type=int, help="Short break minutes")
    settings.add_argument("--long", type=int, help="Long break minutes")
    settings.add_argument("--goal", type=float, help="Daily goal hours")
    settings.set_defaults(func=cmd_settings)

    tasks = sub.add_parser("tasks", help="To-do list")
    tasks.add_argument("action", nargs="?", choices=["list", "add", "done", "rename", "rm"], default="list")
    tasks.add_argument("text", nargs="*")
    tasks.set_defaults(func=cmd_tasks)

    theme = sub.add_parser("theme", help="Show or set the theme")
    theme.add_argument("name", nargs="?", choices=[t.value for t in Theme])
    theme.set_defaults(func=cmd_theme)

    for name, func in (("login", cmd_login), ("register", cmd_register)):
        p = sub.add_parser(name, help=f"{name.capitalize()} to sync across devices")
        p.add_argument("--email", required=True)
        p.add_argument("--password")
        if name == "register":
            p.add_argument("--name")
        p.set_defaults(func=func)

    sub.add_parser("logout", help="Forget the stored credential").set_defaults(func=cmd_logout)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config()
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = ZenFocusApp(cfg)
    app.start()
    try:
        return args.func(app, args)
    finally:
        app.close()
