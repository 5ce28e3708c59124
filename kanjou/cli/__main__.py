"""
Kanjou CLI - command-line interface for the emotional diary client.

Usage:
    kanjou user set USERNAME
    kanjou diary add DATE EMOTION EVENT REALIZATION [--self-esteem N] [--worthlessness N]
    kanjou diary list [--json]
    kanjou sync [run|status|enable|disable|watch]
    kanjou consent record|push|pull|list
    kanjou backup export [--output-dir DIR]
    kanjou backup restore PATH [--yes]
    kanjou cleanup [--remote-keywords]
    kanjou connection
"""

import argparse
import json
import logging
import re
import sys

from kanjou import Kanjou
from kanjou.cli.commands.backup import cmd_backup
from kanjou.cli.commands.consent import cmd_consent
from kanjou.cli.commands.sync import cmd_sync
from kanjou.config import get_settings
from kanjou.logging_config import setup_logging
from kanjou.types import KanjouError

logger = logging.getLogger(__name__)


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def cmd_user(args, k: Kanjou):
    """Set or show the current username."""
    if args.user_action == "set":
        k.set_username(validate_input(args.username, "username", 100))
        print(f"✓ Current user set to {k.username}")
    else:
        user = k.synchronizer.initialize_user() if args.resolve else None
        if args.json:
            print(
                json.dumps(
                    {"username": k.username, "remote_id": user.id if user else None}, indent=2
                )
            )
        else:
            print(f"User: {k.username or '(not set)'}")
            if user:
                print(f"   Remote id: {user.id}")
    return 0


def cmd_diary(args, k: Kanjou):
    """Add or list diary entries."""
    if args.diary_action == "add":
        record = k.add_diary(
            date=validate_input(args.date, "date", 32),
            emotion=validate_input(args.emotion, "emotion", 100),
            event=validate_input(args.event, "event", 5000),
            realization=validate_input(args.realization, "realization", 5000),
            self_esteem_score=args.self_esteem,
            worthlessness_score=args.worthlessness,
        )
        print(f"✓ Diary entry saved: {record.id[:8]}...")
        return 0

    records = k.list_diaries()
    if args.limit:
        records = records[: args.limit]
    if args.json:
        print(json.dumps([r.to_local_dict() for r in records], indent=2, ensure_ascii=False))
    else:
        if not records:
            print("No diary entries.")
        for r in records:
            print(f"{r.date}  [{r.emotion}]  {r.event}")
            print(f"   self-esteem {r.self_esteem_score} / worthlessness {r.worthlessness_score}")
    return 0


def cmd_cleanup(args, k: Kanjou):
    """Remove sample/test diary entries."""
    report = k.cleanup_test_data(include_remote_keyword_match=args.remote_keywords)
    if args.json:
        print(
            json.dumps(
                {
                    "local_removed": report.local_removed,
                    "remote_removed": report.remote_removed,
                    "success": report.success,
                },
                indent=2,
            )
        )
    elif report.success:
        print(f"✓ Removed {report.local_removed} local and {report.remote_removed} remote entries")
    else:
        print("✗ Cleanup failed")
    return 0 if report.success else 1


def cmd_connection(args, k: Kanjou):
    """Check the Supabase connection."""
    health = k.gateway.check_connection()
    if args.json:
        print(json.dumps(health, indent=2))
    elif health["healthy"]:
        print(f"🟢 Connected ({health['latency_ms']} ms)")
    else:
        print(f"🔴 Not connected: {health['error']}")
    return 0 if health["healthy"] else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kanjou",
        description="Offline-first emotional diary client",
    )
    parser.add_argument("--json", "-j", action="store_true", help="Output JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at INFO level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # user
    p_user = subparsers.add_parser("user", help="Current user")
    user_sub = p_user.add_subparsers(dest="user_action", required=True)
    user_set = user_sub.add_parser("set", help="Set the current username")
    user_set.add_argument("username")
    user_show = user_sub.add_parser("show", help="Show the current username")
    user_show.add_argument("--resolve", action="store_true", help="Resolve the remote user id")

    # diary
    p_diary = subparsers.add_parser("diary", help="Diary entries")
    diary_sub = p_diary.add_subparsers(dest="diary_action", required=True)
    diary_add = diary_sub.add_parser("add", help="Add a diary entry")
    diary_add.add_argument("date", help="Entry date (YYYY-MM-DD)")
    diary_add.add_argument("emotion")
    diary_add.add_argument("event")
    diary_add.add_argument("realization")
    diary_add.add_argument("--self-esteem", dest="self_esteem", type=int, default=50)
    diary_add.add_argument("--worthlessness", type=int, default=50)
    diary_list = diary_sub.add_parser("list", help="List diary entries")
    diary_list.add_argument("--limit", "-n", type=int, default=0)

    # sync
    p_sync = subparsers.add_parser("sync", help="Synchronize with Supabase")
    p_sync.add_argument(
        "sync_action",
        nargs="?",
        default="run",
        choices=["run", "status", "enable", "disable", "watch"],
    )

    # consent
    p_consent = subparsers.add_parser("consent", help="Consent history")
    consent_sub = p_consent.add_subparsers(dest="consent_action", required=True)
    consent_record = consent_sub.add_parser("record", help="Record a consent event")
    consent_record.add_argument("--username", default=None)
    consent_record.add_argument("--decline", action="store_true", help="Record a refusal")
    consent_record.add_argument("--ip", default="unknown")
    consent_record.add_argument("--user-agent", dest="user_agent", default="kanjou-cli")
    consent_sub.add_parser("push", help="Push local consent history")
    consent_sub.add_parser("pull", help="Replace local consent history with the remote one")
    consent_sub.add_parser("list", help="List local consent history")

    # backup
    p_backup = subparsers.add_parser("backup", help="Full backup and restore")
    backup_sub = p_backup.add_subparsers(dest="backup_action", required=True)
    backup_export = backup_sub.add_parser("export", help="Write a full backup file")
    backup_export.add_argument("--output-dir", "-o", dest="output_dir", default=".")
    backup_export.add_argument("--creator", default=None)
    backup_restore = backup_sub.add_parser("restore", help="Restore from a backup file")
    backup_restore.add_argument("path")
    backup_restore.add_argument("--yes", "-y", action="store_true", help="Do not ask")
    backup_restore.add_argument(
        "--remote", action="store_true", help="Also write remote data back (not supported)"
    )

    # cleanup
    p_cleanup = subparsers.add_parser("cleanup", help="Remove sample/test diary entries")
    p_cleanup.add_argument(
        "--remote-keywords",
        dest="remote_keywords",
        action="store_true",
        help="Also delete remote rows matching the test keywords",
    )

    # connection
    subparsers.add_parser("connection", help="Check the Supabase connection")

    return parser


COMMANDS = {
    "user": cmd_user,
    "diary": cmd_diary,
    "sync": cmd_sync,
    "consent": cmd_consent,
    "backup": cmd_backup,
    "cleanup": cmd_cleanup,
    "connection": cmd_connection,
}


def main(argv=None, k: Kanjou = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings() if k is None else k.settings
    setup_logging("INFO" if args.verbose else settings.log_level)

    try:
        if k is None:
            k = Kanjou(settings=settings)
    except (ValueError, TypeError, OSError) as e:
        logger.error(f"Failed to initialize Kanjou: {e}")
        return 1

    try:
        return COMMANDS[args.command](args, k) or 0
    except (ValueError, TypeError, OSError, KanjouError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
