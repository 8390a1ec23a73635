#!/usr/bin/env python3
"""
UI Studio - Command line entry point

Usage:
    studio history SESSION              # Remote autosave log, newest first
    studio stats SESSION                # Save statistics for a session
    studio restore SESSION              # List restore candidates
    studio restore SESSION --apply 1 --code index.html --styles style.css
    studio cleanup SESSION --keep 100   # Apply retention to the remote log
    studio diff old.html new.html       # Line diff of two files
    studio sync                         # Replay saves queued while offline
    studio watch SESSION --code index.html --styles style.css
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from studio.config import StudioConfig
from studio.connectivity import ConnectivityMonitor
from studio.diff_engine import compute_diff, DiffRenderer
from studio.editor import FileEditor, InMemoryEditor
from studio.engine import StudioEngine
from studio.exceptions import StudioError
from studio.local_store import LocalStore
from studio.models import ChangeKind, SaveStatus
from studio.remote import RemoteAutosaveClient
from studio.logging_config import setup_logging


STATUS_STYLES = {
    SaveStatus.IDLE: "dim",
    SaveStatus.PENDING: "yellow",
    SaveStatus.SAVING: "cyan",
    SaveStatus.SAVED: "green",
    SaveStatus.ERROR: "red",
    SaveStatus.OFFLINE: "magenta",
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="studio",
        description="UI Studio - versioned autosave, history and recovery for editor sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  studio history demo-session --limit 20       Show the 20 newest autosaves
  studio restore demo-session                  List what can be recovered
  studio restore demo-session --apply 1 \\
      --code index.html --styles style.css     Write the newest candidate to disk
  studio watch demo-session \\
      --code index.html --styles style.css     Autosave the files while you edit
  studio sync                                  Push saves made while offline

Environment:
  STUDIO_API_URL, STUDIO_AUTH_TOKEN, STUDIO_AUTOSAVE_DELAY, STUDIO_LOG_LEVEL, ...
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    history_parser = subparsers.add_parser("history", help="Show the remote autosave log")
    history_parser.add_argument("session_id")
    history_parser.add_argument("--limit", type=int, default=10)
    history_parser.add_argument("--offset", type=int, default=0)

    stats_parser = subparsers.add_parser("stats", help="Show save statistics")
    stats_parser.add_argument("session_id")

    cleanup_parser = subparsers.add_parser("cleanup", help="Apply retention to the remote log")
    cleanup_parser.add_argument("session_id")
    cleanup_parser.add_argument("--keep", type=int, default=100, help="Entries to keep (default: 100)")
    cleanup_parser.add_argument("--local", action="store_true",
                                help="Also remove the session's local copies")

    restore_parser = subparsers.add_parser("restore", help="List or apply restore candidates")
    restore_parser.add_argument("session_id")
    restore_parser.add_argument("--apply", type=int, metavar="N",
                                help="Apply candidate N (1 = newest)")
    restore_parser.add_argument("--code", type=str, help="Markup file to write")
    restore_parser.add_argument("--styles", type=str, help="Style file to write")

    diff_parser = subparsers.add_parser("diff", help="Line diff of two files")
    diff_parser.add_argument("old_file")
    diff_parser.add_argument("new_file")

    subparsers.add_parser("sync", help="Replay saves queued while offline")

    watch_parser = subparsers.add_parser("watch", help="Autosave files while they are edited")
    watch_parser.add_argument("session_id")
    watch_parser.add_argument("--code", type=str, required=True, help="Markup file")
    watch_parser.add_argument("--styles", type=str, required=True, help="Style file")
    watch_parser.add_argument("--messages", type=str, help="Chat messages JSON file")
    watch_parser.add_argument("--interval", type=float, default=0.5,
                              help="Polling interval in seconds (default: 0.5)")

    parser.add_argument(
        "--server-url",
        type=str,
        help="Backend API URL (default: http://localhost:8000/api/v1)"
    )
    parser.add_argument("--token", type=str, help="Bearer token for the backend")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--store-dir", type=str, help="Local store directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")

    return parser


def build_config(args: argparse.Namespace) -> StudioConfig:
    config = StudioConfig.load_default()
    if args.config:
        config.load_from_file(args.config)
    if args.server_url:
        config.api_base_url = args.server_url
    if args.token:
        config.auth_token = args.token
    if args.store_dir:
        config.local_store_dir = str(Path(args.store_dir).expanduser().resolve())
    if args.verbose:
        config.log_level = "DEBUG"
    return config


# ==================== COMMANDS ====================

async def show_history(config: StudioConfig, console: Console, args) -> int:
    async with RemoteAutosaveClient(config) as remote:
        page = await remote.autosave_history(args.session_id, limit=args.limit, offset=args.offset)

    table = Table(title=f"Autosaves for {args.session_id} ({page.total} total)")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Saved at", style="cyan")
    table.add_column("Trigger")
    table.add_column("Description")
    table.add_column("Code", justify="right")
    table.add_column("Styles", justify="right")

    for position, snapshot in enumerate(page.snapshots, start=page.offset + 1):
        table.add_row(
            str(position),
            snapshot.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            snapshot.trigger.value,
            snapshot.description,
            str(snapshot.code_length),
            str(snapshot.styles_length)
        )
    console.print(table)
    if page.has_more:
        console.print(f"[dim]More entries: --offset {page.offset + len(page.snapshots)}[/dim]")
    return 0


async def show_stats(config: StudioConfig, console: Console, args) -> int:
    async with RemoteAutosaveClient(config) as remote:
        stats = await remote.stats(args.session_id)

    table = Table(title=f"Save statistics for {args.session_id}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    for key in ("totalSaves", "autoSaves", "manualSaves", "firstSave", "lastSave",
                "averageCodeLength", "averageStylesLength"):
        table.add_row(key, str(stats.get(key, "-")))
    for trigger, count in sorted((stats.get("triggerCounts") or {}).items()):
        table.add_row(f"trigger: {trigger}", str(count))
    console.print(table)
    return 0


async def run_cleanup(config: StudioConfig, console: Console, args) -> int:
    async with RemoteAutosaveClient(config) as remote:
        result = await remote.cleanup(args.session_id, keep_count=args.keep)
    console.print(f"[green]✓[/green] Removed {result.get('deletedCount', 0)} remote autosave(s)")

    if args.local:
        store = LocalStore(Path(config.local_store_dir))
        removed = await store.cleanup_session(args.session_id)
        console.print(f"[green]✓[/green] Removed {removed} local key(s)")
    return 0


async def run_restore(config: StudioConfig, console: Console, args) -> int:
    if args.apply is not None and not (args.code and args.styles):
        console.print("[red]--apply needs --code and --styles[/red]")
        return 2

    if args.apply is not None:
        editor = FileEditor(args.session_id, Path(args.code), Path(args.styles))
    else:
        editor = InMemoryEditor(args.session_id)

    async with StudioEngine(config, editor) as engine:
        candidates = await engine.check_for_recoverable_sessions(args.session_id)
        if not candidates:
            console.print(f"[yellow]Nothing to restore for {args.session_id}[/yellow]")
            return 0

        if args.apply is None:
            table = Table(title=f"Restore candidates for {args.session_id}")
            table.add_column("#", style="dim", justify="right")
            table.add_column("Saved at", style="cyan")
            table.add_column("Source")
            table.add_column("Description")
            table.add_column("Code", justify="right")
            for position, candidate in enumerate(candidates, start=1):
                table.add_row(
                    str(position),
                    candidate.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                    candidate.source.value,
                    candidate.snapshot.description,
                    str(candidate.snapshot.code_length)
                )
            console.print(table)
            return 0

        if not 1 <= args.apply <= len(candidates):
            console.print(f"[red]No candidate {args.apply} (1-{len(candidates)})[/red]")
            return 1

        candidate = candidates[args.apply - 1]
        outcome = await engine.apply_restore_candidate(candidate)
        console.print(
            f"[green]✓[/green] Restored {candidate.source.value} version from "
            f"{candidate.timestamp.strftime('%Y-%m-%d %H:%M:%S')}"
            + (f" ([dim]{outcome.value}[/dim])" if outcome else "")
        )
    return 0


def run_diff(console: Console, args) -> int:
    old_text = Path(args.old_file).read_text(encoding="utf-8")
    new_text = Path(args.new_file).read_text(encoding="utf-8")
    DiffRenderer(console).show(compute_diff(old_text, new_text), args.new_file)
    return 0


async def run_sync(config: StudioConfig, console: Console, args) -> int:
    # Unknown until the first probe
    connectivity = ConnectivityMonitor(config, online=False)
    async with StudioEngine(config, InMemoryEditor(), connectivity=connectivity) as engine:
        if not engine.pending_count:
            console.print("[dim]No queued saves[/dim]")
            return 0
        report = await engine.sync_now()

    if not engine.connectivity.is_online:
        console.print(f"[yellow]Backend unreachable; {report.remaining} save(s) still queued[/yellow]")
        return 1
    console.print(
        f"[green]✓[/green] Replayed {report.persisted}/{report.attempted} save(s), "
        f"{report.remaining} remaining"
    )
    return 0 if report.remaining == 0 else 1


async def run_watch(config: StudioConfig, console: Console, args) -> int:
    editor = FileEditor(
        args.session_id,
        Path(args.code),
        Path(args.styles),
        Path(args.messages) if args.messages else None
    )

    engine = StudioEngine(config, editor)
    await engine.start(probe=True)
    try:
        def show_status(status: SaveStatus) -> None:
            style = STATUS_STYLES.get(status, "white")
            console.print(f"[{style}]● {status.value}[/{style}]")

        engine.scheduler.on_status_change(show_status)

        report = await engine.open_session()
        if report and report.offered:
            newest = report.candidates[0]
            console.print(
                f"[yellow]Found {len(report.candidates)} recoverable version(s); newest from "
                f"{newest.timestamp.strftime('%Y-%m-%d %H:%M:%S')} ({newest.source.value})[/yellow]"
            )
            console.print(f"[dim]Apply with: studio restore {args.session_id} --apply 1 "
                          f"--code {args.code} --styles {args.styles}[/dim]")

        console.print(f"[green]Watching[/green] {args.code} and {args.styles} "
                      f"(autosave after {config.autosave_delay:.0f}s idle, Ctrl+C to stop)")

        marker = editor.modified_marker()
        try:
            while True:
                await asyncio.sleep(args.interval)
                current = editor.modified_marker()
                if current != marker:
                    marker = current
                    engine.schedule_autosave(ChangeKind.CODE)
        except asyncio.CancelledError:
            pass

        console.print("[dim]Saving before exit...[/dim]")
    finally:
        await engine.close()
    return 0


async def dispatch(config: StudioConfig, console: Console, args) -> int:
    if args.command == "history":
        return await show_history(config, console, args)
    if args.command == "stats":
        return await show_stats(config, console, args)
    if args.command == "cleanup":
        return await run_cleanup(config, console, args)
    if args.command == "restore":
        return await run_restore(config, console, args)
    if args.command == "sync":
        return await run_sync(config, console, args)
    if args.command == "watch":
        return await run_watch(config, console, args)
    return run_diff(console, args)


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    console = Console()
    config = build_config(args)
    setup_logging(config.log_level, config.log_file, config.json_logging)

    try:
        sys.exit(asyncio.run(dispatch(config, console, args)))

    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")
        sys.exit(0)
    except StudioError as e:
        console.print(f"\n[red]✗ {e.message}[/red]")
        sys.exit(1)
    except FileNotFoundError as e:
        console.print(f"\n[red]✗ {e}[/red]")
        sys.exit(1)
    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            console.print(f"\n[red]✗ Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
