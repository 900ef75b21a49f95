from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from meter.config import Settings
from meter.gemini import GeminiError
from meter.image import ImageError
from meter.logging import get_logger
from state.local_store import InvalidBackupFormat

from . import handler


LOG = get_logger("cli")


class _StderrProgress:
    """Progress observer that echoes status lines to stderr."""

    def update(self, status: str) -> None:
        print(status, file=sys.stderr, flush=True)


def _positive(value: str) -> float:
    try:
        f = float(value)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from ex
    if f <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return f


def _cmd_onboard(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    handler.run_onboard(store, ns.steps, ns.api_key)
    print(f"Season allowance set to {ns.steps:g} steps")
    return 0


def _cmd_settings(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    state = handler.run_settings(store, steps=ns.steps, api_key=ns.api_key)
    print(f"Allowed steps: {state.allowed_steps:g}")
    if state.readings:
        print(f"Season limit: {state.season_limit:g}")
    print(f"API key: {'set' if state.credential else 'not set'}")
    return 0


def _cmd_capture(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    state, result = handler.run_capture(store, settings, ns.photo, progress=_StderrProgress())
    print(f"Reading {result.reading:g} (model {result.model_used}); consumption {state.readings[-1].consumption:g}")
    return 0


def _cmd_add(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    state = handler.run_add(store, ns.value)
    print(f"Reading {ns.value:g} recorded; consumption {state.readings[-1].consumption:g}")
    return 0


def _cmd_dashboard(ns: argparse.Namespace, settings: Settings) -> int:  # noqa: ARG001
    store = handler.open_store(settings)
    _, text = handler.run_dashboard(store)
    print(text)
    return 0


def _cmd_export(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    out = handler.run_export(store, ns.dir)
    print(f"Backup written to {out}")
    return 0


def _cmd_import(ns: argparse.Namespace, settings: Settings) -> int:
    store = handler.open_store(settings)
    state = handler.run_import(store, ns.file)
    print(f"Imported {len(state.readings)} reading(s)")
    return 0


def _cmd_reset(ns: argparse.Namespace, settings: Settings) -> int:
    if not ns.yes:
        print("Refusing to delete all data without --yes", file=sys.stderr)
        return 1
    handler.run_reset(handler.open_store(settings))
    print("All data deleted")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meter-steps",
        description="Track electricity meter readings against a seasonal allowance.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("onboard", help="Set the season allowance")
    p.add_argument("--steps", type=_positive, required=True)
    p.add_argument("--api-key", help="Gemini API key")
    p.set_defaults(func=_cmd_onboard)

    p = sub.add_parser("settings", help="Change the allowance or API key")
    p.add_argument("--steps", type=_positive)
    p.add_argument("--api-key")
    p.set_defaults(func=_cmd_settings)

    p = sub.add_parser("capture", help="Read the meter from a photo and record it")
    p.add_argument("photo", type=Path)
    p.set_defaults(func=_cmd_capture)

    p = sub.add_parser("add", help="Record a reading typed in by hand")
    p.add_argument("value", type=float)
    p.set_defaults(func=_cmd_add)

    p = sub.add_parser("dashboard", help="Show progress, averages and trend")
    p.set_defaults(func=_cmd_dashboard)

    p = sub.add_parser("export", help="Write a JSON backup")
    p.add_argument("--dir", type=Path, default=Path("."))
    p.set_defaults(func=_cmd_export)

    p = sub.add_parser("import", help="Replace all data with a JSON backup")
    p.add_argument("file", type=Path)
    p.set_defaults(func=_cmd_import)

    p = sub.add_parser("reset", help="Delete all data")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=_cmd_reset)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    try:
        settings = Settings.from_env()
        return ns.func(ns, settings)
    except (GeminiError, ImageError, InvalidBackupFormat, handler.NotOnboarded) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except (RuntimeError, ValueError, OSError) as exc:
        LOG.error(f"{ns.command} failed: {exc}")
        return 1
