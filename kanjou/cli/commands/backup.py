"""Backup and restore commands for the Kanjou CLI."""

import json
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kanjou import Kanjou


def cmd_backup(args, k: "Kanjou"):
    """Handle backup subcommands."""
    if args.backup_action == "export":
        document = k.export_backup(creator=args.creator)
        path = k.backup.write_backup_file(document, Path(args.output_dir))
        if args.json:
            print(json.dumps({"path": str(path), "metadata": document["metadata"]}, indent=2))
        else:
            remote = document["supabaseData"]
            print(f"✓ Backup written to {path}")
            print(f"   Local keys: {len(document['localStorage'])}")
            print(f"   Remote relations: {len(remote) if remote is not None else 'not included'}")
        return 0

    if args.backup_action == "restore":
        document = k.backup.load_backup_file(Path(args.path))
        if not args.yes:
            answer = input("Restoring overwrites all local data. Continue? [y/N] ")
            if answer.strip().lower() not in ("y", "yes"):
                print("Restore cancelled")
                return 1
        report = k.restore_backup(document, restore_remote=args.remote)
        if args.json:
            print(
                json.dumps(
                    {
                        "restored_keys": report.restored_keys,
                        "preserved_keys": report.preserved_keys,
                        "remote_rows_skipped": report.remote_rows_skipped,
                    },
                    indent=2,
                )
            )
        else:
            print(f"✓ Restored {len(report.restored_keys)} local keys")
            if report.preserved_keys:
                print(f"   Kept current: {', '.join(report.preserved_keys)}")
            for table, count in sorted(report.remote_rows_skipped.items()):
                print(f"   Not restored remotely: {table} ({count} rows)")
        return 0

    raise ValueError(f"Unknown backup action: {args.backup_action}")
