"""
StateLab — Command Line Interface

Drive work orders from a shell against the configured database.

Usage:
    python -m statelab.cli create "Fix pump" --description "Bay 3"
    python -m statelab.cli transition <id> SUBMIT [--notes ...] [--expected-version N]
    python -m statelab.cli show <id>
    python -m statelab.cli list [--state DRAFT]
    python -m statelab.cli history <id>
    python -m statelab.cli stats
    python -m statelab.cli verify <id>
    python -m statelab.cli serve [--host 0.0.0.0] [--port 8080]
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from statelab.config_loader import load_config
from statelab.exceptions import (
    ConcurrencyConflict,
    InvalidOperationError,
    NotFoundError,
)
from statelab.logging import configure_logging
from statelab.service import WorkOrderService, build_service

# Exit codes per error category
EXIT_NOT_FOUND = 2
EXIT_INVALID = 3
EXIT_CONFLICT = 4


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_create(args, service: WorkOrderService):
    wo = service.create(args.title, args.description)
    _print_json(wo.to_dict())


def cmd_transition(args, service: WorkOrderService):
    wo = service.transition(
        args.id, args.action,
        notes=args.notes,
        expected_version=args.expected_version,
    )
    _print_json(wo.to_dict())


def cmd_show(args, service: WorkOrderService):
    _print_json(service.get_by_id(args.id).to_dict())


def cmd_list(args, service: WorkOrderService):
    work_orders = service.list_by_state(args.state)
    for wo in work_orders:
        print(f"{wo.id}  {wo.state.value:10s} v{wo.version:<4d} {wo.title}")
    print(f"\n{len(work_orders)} work order(s)", file=sys.stderr)


def cmd_history(args, service: WorkOrderService):
    for e in service.get_history(args.id):
        frm = e.from_state.value if e.from_state else "-"
        line = f"{e.occurred_at:.3f}  {e.action:10s} {frm:>10s} → {e.to_state.value}"
        if e.notes:
            line += f"  ({e.notes})"
        print(line)


def cmd_stats(args, service: WorkOrderService):
    _print_json(service.get_dashboard_stats().to_dict())


def cmd_verify(args, service: WorkOrderService):
    ok, message = service.verify_history(args.id)
    print(message)
    return 0 if ok else 1


def cmd_serve(args, config):
    import uvicorn
    from api.server import create_app

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=args.host or config.get("api.host", "127.0.0.1"),
        port=args.port or config.get("api.port", 8080),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statelab",
        description="Work order lifecycle tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env", default=None, help="Config profile (default: SL_ENV or dev)")
    parser.add_argument("--root", default=".", help="Project root holding statelab.yaml")
    subs = parser.add_subparsers(dest="command")

    create_p = subs.add_parser("create", help="Create a work order in DRAFT")
    create_p.add_argument("title")
    create_p.add_argument("--description", default="")

    tr_p = subs.add_parser("transition", help="Apply an action to a work order")
    tr_p.add_argument("id")
    tr_p.add_argument("action", help="SUBMIT, APPROVE, REJECT, COMPLETE or REVISE")
    tr_p.add_argument("--notes", default=None)
    tr_p.add_argument("--expected-version", type=int, default=None)

    show_p = subs.add_parser("show", help="Show one work order")
    show_p.add_argument("id")

    list_p = subs.add_parser("list", help="List work orders")
    list_p.add_argument("--state", default=None)

    hist_p = subs.add_parser("history", help="Show audit history, newest first")
    hist_p.add_argument("id")

    subs.add_parser("stats", help="Show dashboard statistics")

    verify_p = subs.add_parser("verify", help="Verify the audit hash chain")
    verify_p.add_argument("id")

    serve_p = subs.add_parser("serve", help="Run the HTTP API")
    serve_p.add_argument("--host", default=None)
    serve_p.add_argument("--port", type=int, default=None)

    return parser


_COMMANDS = {
    "create": cmd_create,
    "transition": cmd_transition,
    "show": cmd_show,
    "list": cmd_list,
    "history": cmd_history,
    "stats": cmd_stats,
    "verify": cmd_verify,
}


def main(argv: list[str] | None = None, service: WorkOrderService | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    config = load_config(env=args.env or os.environ.get("SL_ENV", "dev"), project_root=args.root)
    configure_logging(level=config.get("logging.level", "INFO"))

    if args.command == "serve":
        cmd_serve(args, config)
        return 0

    if service is None:
        service = build_service(config)
    try:
        code = _COMMANDS[args.command](args, service)
    except NotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND
    except InvalidOperationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except ConcurrencyConflict as e:
        print(f"Conflict: {e}. Re-read the work order and retry.", file=sys.stderr)
        return EXIT_CONFLICT
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return code or 0


if __name__ == "__main__":
    sys.exit(main())
