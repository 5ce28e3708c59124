"""Sync commands for the Kanjou CLI: local-to-Supabase synchronization."""

import json
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kanjou import Kanjou

logger = logging.getLogger(__name__)


def _print_report(report, as_json: bool) -> None:
    if as_json:
        print(
            json.dumps(
                {
                    "success": report.success,
                    "synced": report.synced,
                    "total": report.total,
                    "skipped": report.skipped,
                    "message": report.message,
                    "error": report.error,
                },
                indent=2,
            )
        )
        return

    if report.skipped:
        icon = "✓" if report.success else "⏸"
        print(f"{icon} Sync skipped: {report.skipped}")
    elif report.success:
        print(f"✓ Sync complete: {report.message or f'{report.synced} records'}")
    else:
        print(f"✗ Sync failed: {report.error}")


def cmd_sync(args, k: "Kanjou"):
    """Handle sync subcommands."""
    action = getattr(args, "sync_action", None) or "run"

    if action == "run":
        report = k.sync()
        _print_report(report, args.json)
        return 0 if report.success else 1

    if action == "status":
        status = k.sync_status()
        if args.json:
            print(json.dumps(status, indent=2, default=str))
        else:
            print("Sync Status")
            print("=" * 50)
            remote_icon = "🟢" if status["remote_enabled"] else "🔴"
            print(f"{remote_icon} Remote: {'enabled' if status['remote_enabled'] else 'disabled'}")
            print(f"   Auto-sync: {'on' if status['enabled'] else 'off'}")
            print(f"   Local records: {status['local_records']}")
            print(f"   Last sync: {status['last_sync_time'] or 'never'}")
            if status["error"]:
                print(f"   Last error: {status['error']}")
        return 0

    if action in ("enable", "disable"):
        k.synchronizer.set_enabled(action == "enable")
        print(f"✓ Auto-sync {action}d")
        return 0

    if action == "watch":
        scheduler = k.scheduler()
        if not scheduler.start():
            print("✗ Remote is not configured (or local-only mode is on); nothing to watch")
            return 1
        print(f"Auto-sync running every {scheduler.interval:g}s. Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()
        return 0

    raise ValueError(f"Unknown sync action: {action}")
