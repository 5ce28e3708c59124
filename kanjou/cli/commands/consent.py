"""Consent history commands for the Kanjou CLI."""

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kanjou import Kanjou


def cmd_consent(args, k: "Kanjou"):
    """Handle consent subcommands."""
    if args.consent_action == "record":
        username = args.username or k.username
        if not username:
            raise ValueError("No username given and no current user set")
        result = k.consent.record_consent(
            username,
            consent_given=not args.decline,
            ip_address=args.ip,
            user_agent=args.user_agent,
        )
    elif args.consent_action == "push":
        result = k.consent.sync_to_remote()
    elif args.consent_action == "pull":
        result = k.consent.sync_to_local()
    elif args.consent_action == "list":
        histories = [h.to_dict() for h in k.consent.history()]
        if args.json:
            print(json.dumps(histories, indent=2, ensure_ascii=False))
        else:
            for h in histories:
                mark = "✓" if h["consent_given"] else "✗"
                print(f"{mark} {h['consent_date']}  {h['line_username']}")
        return 0
    else:
        raise ValueError(f"Unknown consent action: {args.consent_action}")

    if args.json:
        print(
            json.dumps(
                {
                    "ok": result.ok,
                    "value": result.value,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                    "error": result.error,
                },
                indent=2,
                default=str,
                ensure_ascii=False,
            )
        )
    elif result.ok:
        print(f"✓ consent {args.consent_action} done")
    else:
        print(f"✗ consent {args.consent_action} failed: {result.error}")
    return 0 if result.ok else 1
