"""Command-line entry point: `wod-sync sync|fetch|export|status|auth|serve`."""
import argparse
import getpass
import json
import logging
import signal
import sys
import threading
from datetime import date
from typing import List, Optional

import requests
import uvicorn

from wod_sync_api.clients.base import AuthError
from wod_sync_api.clients.garmin import GarminClient
from wod_sync_api.clients.strava import StravaClient
from wod_sync_api.config import settings
from wod_sync_api.models import SyncSummary
from wod_sync_api.services.description_formatter import DescriptionFormatter
from wod_sync_api.services.sync_runner import SyncRunner

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def _add_window_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--days", type=int, help=f"Days back from today (default: {settings.DEFAULT_DAYS})")
    parser.add_argument("--from", dest="start", type=_iso_date, help="Start date, YYYY-MM-DD")
    parser.add_argument("--to", dest="end", type=_iso_date, help="End date, YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wod-sync", description="Sync AimHarder workouts to Strava and Garmin Connect")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Upload new workouts")
    _add_window_args(sync)
    sync.add_argument("--platform", choices=["strava", "garmin", "all"], help="Destination (default: WOD_SYNC_PLATFORMS)")
    sync.add_argument("--force", action="store_true", help="Upload even if already synced")
    sync.add_argument("--dry-run", action="store_true", help="Write TCX files and show what would be uploaded")

    fetch = commands.add_parser("fetch", help="Print workouts without uploading")
    _add_window_args(fetch)

    export = commands.add_parser("export", help="Write TCX files only")
    _add_window_args(export)
    export.add_argument("-o", "--output", help=f"Output directory (default: {settings.TCX_DIR})")

    commands.add_parser("status", help="Show sync history and authorization state")

    auth = commands.add_parser("auth", help="Authorize a destination platform")
    auth.add_argument("platform", choices=["strava", "garmin"])
    auth.add_argument("--code", help="Strava authorization code from the redirect URL")

    serve = commands.add_parser("serve", help="Run the webhook server")
    serve.add_argument("--host", default=settings.WEBHOOK_HOST)
    serve.add_argument("--port", type=int, default=settings.WEBHOOK_PORT)

    return parser


def print_summary(summary: SyncSummary) -> None:
    print()
    print(summary.message)
    if summary.previews:
        for preview in summary.previews:
            print(f"  {preview.start_date:%Y-%m-%d %H:%M}  {preview.name}  [{preview.type}]  {preview.elapsed_time}")
            print(f"    {preview.tcx_file}")
    for key, error in summary.failures.items():
        print(f"  ❌ {key}: {error}")
    print(f"Fetched {summary.fetched}, uploaded {summary.uploaded}, skipped {summary.skipped}, errors {summary.errors}")
    if summary.cancelled:
        print("Cancelled before all workouts were processed")
    if summary.duration:
        print(f"Took {summary.duration}")


def cmd_sync(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    missing = settings.validate_source()
    if missing:
        print(f"Missing configuration: {', '.join(missing)}", file=sys.stderr)
        return 1
    options = runner.build_options(
        days=args.days,
        start=args.start,
        end=args.end,
        platform=args.platform,
        force=args.force,
        dry_run=args.dry_run,
    )
    settings.ensure_directories()
    summary = runner.run(options, cancel_event)
    print_summary(summary)
    if summary.cancelled:
        return 130
    return 0 if summary.success else 1


def cmd_fetch(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    options = runner.build_options(days=args.days, start=args.start, end=args.end)
    workouts = runner.fetch_workouts(options.start, options.end, cancel_event)
    if not workouts:
        print("No workouts found in date range")
        return 0
    for workout in workouts:
        print(DescriptionFormatter.format_details(workout))
    print(f"{len(workouts)} workouts")
    return 0


def cmd_export(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    options = runner.build_options(days=args.days, start=args.start, end=args.end)
    if args.output:
        options.tcx_dir = args.output
    files = runner.export(options)
    for path in files.values():
        print(path)
    print(f"Wrote {len(files)} TCX files to {options.tcx_dir}")
    return 0


def cmd_status(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    print(json.dumps(runner.status(), indent=2))
    return 0


def cmd_auth(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    if args.platform == "garmin":
        client = GarminClient(
            settings.GARMIN_EMAIL or input("Garmin email: "),
            settings.GARMIN_PASSWORD or getpass.getpass("Garmin password: "),
            settings.GARMIN_DIR,
        )
        client.login()
        print(f"Garmin session saved to {settings.GARMIN_DIR}")
        return 0

    missing = settings.validate_strava()
    if missing:
        print(f"Missing configuration: {', '.join(missing)}", file=sys.stderr)
        return 1
    client = StravaClient(settings.STRAVA_CLIENT_ID, settings.STRAVA_CLIENT_SECRET, settings.TOKENS_FILE)
    if not args.code:
        print("Open this URL, approve access, then rerun with --code <code from the redirect URL>:")
        print(client.authorization_url(settings.STRAVA_REDIRECT_URI))
        return 0
    client.exchange_code(args.code)
    print(f"Strava tokens saved to {settings.TOKENS_FILE}")
    return 0


def cmd_serve(args, runner: SyncRunner, cancel_event: threading.Event) -> int:
    uvicorn.run("wod_sync_api.main:app", host=args.host, port=args.port, log_level=settings.LOG_LEVEL.lower())
    return 0


COMMANDS = {
    "sync": cmd_sync,
    "fetch": cmd_fetch,
    "export": cmd_export,
    "status": cmd_status,
    "auth": cmd_auth,
    "serve": cmd_serve,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cancel_event = threading.Event()

    def _interrupt(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        print("\nStopping after the current upload (Ctrl-C again to abort)", file=sys.stderr)
        cancel_event.set()

    if args.command != "serve":
        signal.signal(signal.SIGINT, _interrupt)

    try:
        return COMMANDS[args.command](args, SyncRunner(), cancel_event)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except AuthError as e:
        print(f"Authentication failed: {e}", file=sys.stderr)
        return 1
    except requests.RequestException as e:
        print(f"Network error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
