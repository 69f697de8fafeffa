"""Command-line entry point: serve the mirror or run single sync passes."""

from __future__ import annotations

import argparse
import logging
import os
import socket
import sys
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Final, Sequence

from .app import VideoMirror
from .config import ConfigError, load_config
from .errors import MirrorError
from .logging_utils import log_event

LOGGER = logging.getLogger(__name__)
_RUN_GUARD: Final[threading.Lock] = threading.Lock()
_IS_RUNNING = False


@dataclass(frozen=True, slots=True)
class RunContext:
    """Captures immutable metadata for a single invocation."""

    trace_id: str
    instance_id: str
    wall_clock_ns: int

    @property
    def started_at_iso(self) -> str:
        seconds = self.wall_clock_ns / 1_000_000_000
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")

    def fields(self) -> dict[str, Any]:
        return {"trace_id": self.trace_id, "instance_id": self.instance_id, "started_at": self.started_at_iso}


def _build_run_context() -> RunContext:
    return RunContext(
        trace_id=os.getenv("VIDEOMIRROR_TRACE_ID") or uuid.uuid4().hex,
        instance_id=os.getenv("VIDEOMIRROR_INSTANCE_ID") or socket.gethostname(),
        wall_clock_ns=time.time_ns(),
    )


def _acquire_run_guard() -> bool:
    """Refuse a second serve loop in the same process."""
    global _IS_RUNNING
    with _RUN_GUARD:
        if _IS_RUNNING:
            return False
        _IS_RUNNING = True
        return True


def _release_run_guard() -> None:
    global _IS_RUNNING
    with _RUN_GUARD:
        _IS_RUNNING = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="videomirror", description="Mirror a remote video catalog locally")
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the sync loops and the read API")
    serve.add_argument("--no-api", action="store_true", help="Run the sync loops only")

    sub.add_parser("sync-catalog", help="Run one incremental catalog pass")

    views = sub.add_parser("sync-views", help="Run one view-count reconciliation pass")
    views.add_argument("video_ids", nargs="*", help="Limit the lookup to these remote ids")

    sub.add_parser("token", help="Exchange client credentials once and report expiry")
    return parser


def _serve(app: VideoMirror, context: RunContext, serve_api: bool) -> int:
    if not _acquire_run_guard():
        log_event(LOGGER, logging.INFO, "mirror.already_running", **context.fields())
        return 1
    start_ns = time.perf_counter_ns()
    try:
        app.start(serve_api=serve_api)
    except KeyboardInterrupt:
        log_event(LOGGER, logging.WARNING, "mirror.interrupted", signal="SIGINT", **context.fields())
    finally:
        _release_run_guard()
    runtime_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
    log_event(LOGGER, logging.INFO, "mirror.run_completed", duration_ms=round(runtime_ms, 2), **context.fields())
    return 0


def run(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    context = _build_run_context()

    try:
        config = load_config(args.env_file)
    except ConfigError as exc:
        print(f"videomirror: {exc}", file=sys.stderr)
        return 2

    app = VideoMirror(config)
    try:
        if args.command == "serve":
            return _serve(app, context, serve_api=not args.no_api)
        try:
            if args.command == "sync-catalog":
                inserted = app.sync_catalog_once()
                print(f"inserted {inserted} new video(s)")
            elif args.command == "sync-views":
                updated = app.sync_views_once(args.video_ids or None)
                print(f"updated views for {updated} video(s)")
            elif args.command == "token":
                credential = app.credentials.bootstrap()
                print(f"{credential.token_type} token valid until {credential.expires_at.isoformat()}")
        finally:
            app.close()
    except MirrorError as exc:
        error_fields = {"error_type": type(exc).__name__, "error_message": str(exc)}
        log_event(LOGGER, logging.CRITICAL, "mirror.run_failed", command=args.command, **error_fields, **context.fields())
        return 1
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
