from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
import time

from .errors import ActionscribeError, SessionNotFound
from .models import ActionRecord, RecordingMode, RecordingState
from .session_store import SessionStore
from .settings import CONFIG_DIR, load_settings

_MISSING_BROWSER_ERROR_HINTS = (
    "executable doesn't exist",
    "executable does not exist",
    "download new browsers",
    "playwright install",
    "could not find browser",
)


def _is_missing_browser_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(hint in message for hint in _MISSING_BROWSER_ERROR_HINTS)


def _build_logger(log_dir: Path | None = None) -> logging.Logger:
    logger = logging.getLogger("actionscribe")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    logger.propagate = False
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    stream_level = logging.WARNING
    try:
        target = log_dir or CONFIG_DIR
        target.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target / "recorder.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError:
        # No log file; stderr carries everything.
        stream_level = logging.INFO
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(stream_level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)
    return logger


def _status(message: str) -> None:
    print(f"[actionscribe] {message}", file=sys.stderr)


def _describe(record: ActionRecord) -> str:
    target = record.selectors.best.value if record.selectors else record.notes
    value = f" = {record.value!r}" if record.value else ""
    return f"{record.action_type} {target}{value}"


def _page_metadata(page, width: int, height: int) -> dict:
    return {
        "viewport": {"width": width, "height": height},
        "userAgent": str(page.evaluate("() => navigator.userAgent") or ""),
    }


def _store(args: argparse.Namespace) -> SessionStore:
    return SessionStore(Path(args.store).expanduser() if args.store else None)


def _record(args: argparse.Namespace) -> int:
    from playwright.sync_api import sync_playwright

    from .browser_bridge import PlaywrightCaptureHost
    from .recorder import RecordingStateMachine

    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    mode = RecordingMode(args.mode) if args.mode else settings.recording_mode
    store = _store(args)
    width, height = args.viewport

    try:
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(headless=args.headless)
            context = browser.new_context(viewport={"width": width, "height": height})
            page = context.new_page()
            page.goto(args.url)

            host = PlaywrightCaptureHost(page)
            machine = RecordingStateMachine(
                host=host,
                persistence=store,
                settings=settings,
                on_capture=lambda record: _status(_describe(record)),
                on_status=_status,
                on_highlight=host.show_highlight,
            )
            host.on_visibility_hidden = machine.on_visibility_hidden
            host.on_before_unload = machine.on_before_unload

            machine.start(mode, name=args.name, url=args.url, metadata=_page_metadata(page, width, height))
            _status(f"Recording {args.url} in {mode.value} mode. Press Ctrl+C to stop.")
            deadline = time.monotonic() + args.duration if args.duration else None
            try:
                while not page.is_closed():
                    if deadline is not None and time.monotonic() >= deadline:
                        break
                    page.wait_for_timeout(100)
                    machine.tick(time.monotonic())
            except KeyboardInterrupt:
                _status("Interrupted.")
            finally:
                if machine.state is not RecordingState.INACTIVE:
                    machine.stop()
                session = machine.current_session()
                if session is not None:
                    print(session.id)
                browser.close()
    except Exception as exc:
        if _is_missing_browser_error(exc):
            _status("Chromium is not installed. Run `playwright install chromium` first.")
            return 2
        raise
    return 0


def _sessions(args: argparse.Namespace) -> int:
    for summary in _store(args).list_sessions():
        ended = summary.end_time or "open"
        print(f"{summary.id}\t{summary.name}\t{summary.action_count} actions\t{summary.start_time} -> {ended}")
    return 0


def _show(args: argparse.Namespace) -> int:
    session = _store(args).load(args.session_id)
    print(json.dumps(session.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _delete(args: argparse.Namespace) -> int:
    _store(args).delete(args.session_id)
    _status(f"Deleted {args.session_id}.")
    return 0


def _viewport(raw: str) -> tuple[int, int]:
    try:
        width, height = (int(part) for part in raw.lower().split("x", 1))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {raw!r}") from exc
    return width, height


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="actionscribe", description="Record browser interactions as replayable actions.")
    parser.add_argument("--store", help="Directory holding the session database (default ~/.actionscribe).")
    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Open a page and record interactions.")
    record.add_argument("url")
    record.add_argument("--mode", choices=[mode.value for mode in RecordingMode])
    record.add_argument("--name")
    record.add_argument("--config", help="Settings file (default ~/.actionscribe/config.json).")
    record.add_argument("--duration", type=float, default=0.0, help="Stop after this many seconds.")
    record.add_argument("--viewport", type=_viewport, default=(1280, 720))
    record.add_argument("--headless", action="store_true")
    record.set_defaults(handler=_record)

    sessions = commands.add_parser("sessions", help="List stored sessions.")
    sessions.set_defaults(handler=_sessions)

    show = commands.add_parser("show", help="Print a stored session as JSON.")
    show.add_argument("session_id")
    show.set_defaults(handler=_show)

    delete = commands.add_parser("delete", help="Delete a stored session.")
    delete.add_argument("session_id")
    delete.set_defaults(handler=_delete)
    return parser


def main(argv: list[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "actionscribe requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    args = build_parser().parse_args(argv)
    _build_logger()
    try:
        return int(args.handler(args))
    except SessionNotFound as exc:
        _status(str(exc))
        return 1
    except ActionscribeError as exc:
        logging.getLogger("actionscribe").exception("Command failed: %s", exc)
        _status(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
