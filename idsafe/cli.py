import argparse
import logging
from pathlib import Path
from typing import Any, Callable

from . import config
from .db import list_events
from .engine import ApprovalEngine
from .errors import IdSafeError
from .identity import IdentityRecord
from .storage import StateStore, load_genesis
from .utils import text_to_digest


def _digest_arg(args: argparse.Namespace) -> str:
    if args.text is not None:
        return text_to_digest(args.text)
    return args.hash


def _mutate(op: Callable[[ApprovalEngine], Any]) -> Any:
    store = StateStore()
    try:
        with store.locked():
            return op(store.open_engine())
    except (IdSafeError, FileNotFoundError) as exc:
        raise SystemExit(str(exc))


def _read_engine() -> ApprovalEngine:
    try:
        return ApprovalEngine.from_snapshot(StateStore().load())
    except FileNotFoundError as exc:
        raise SystemExit(str(exc))


def _print_record(record: IdentityRecord) -> None:
    print(f"subject:    {record.subject}")
    print(f"data_hash:  {record.data_hash}")
    print(f"approvers:  {', '.join(sorted(record.approvers)) or '(none)'}")
    print(f"registered: {record.registered}")
    print(f"state:      {record.state.value}")


def handle_init(args: argparse.Namespace) -> None:
    store = StateStore()
    try:
        if args.genesis:
            genesis = load_genesis(Path(args.genesis))
            admin, validators, threshold = genesis["admin"], genesis["validators"], genesis["threshold"]
        else:
            if not args.admin or not args.validators or args.threshold is None:
                raise SystemExit("init needs --genesis FILE or --admin, --validators and --threshold")
            admin, validators, threshold = args.admin, args.validators, args.threshold
        with store.locked():
            engine = store.initialise(admin, validators, threshold)
    except (ValueError, FileExistsError) as exc:
        raise SystemExit(str(exc))

    print(f"Initialised registry at {store.path}")
    print(f"  admin:      {engine.admin()}")
    print(f"  validators: {', '.join(engine.validators())}")
    print(f"  threshold:  {engine.approval_threshold()}")


def handle_register(args: argparse.Namespace) -> None:
    record = _mutate(lambda e: e.register_identity(args.caller, args.subject, _digest_arg(args)))
    print(f"Registered {record.subject}; approvals: {len(record.approvers)}")
    print(f"  data_hash: {record.data_hash}")


def handle_approve(args: argparse.Namespace) -> None:
    record = _mutate(lambda e: e.approve_identity(args.caller, args.subject))
    print(f"Approvals for {record.subject}: {len(record.approvers)}")
    print(f"State: {record.state.value}")


def handle_store_hash(args: argparse.Namespace) -> None:
    record = _mutate(lambda e: e.store_identity_hash(args.caller, args.subject, _digest_arg(args)))
    print(f"Stored hash for {record.subject}: {record.data_hash}")
    print(f"State: {record.state.value}")


def handle_revoke(args: argparse.Namespace) -> None:
    record = _mutate(lambda e: e.revoke_identity(args.caller, args.subject))
    print(f"Revoked {record.subject}")


def handle_show(args: argparse.Namespace) -> None:
    engine = _read_engine()
    record = engine.get_record(args.subject)
    if record is None:
        print(f"No identity record for {args.subject}")
        return
    _print_record(record)


def handle_list(_: argparse.Namespace) -> None:
    records = _read_engine().list_records()
    if not records:
        print("No identities recorded.")
        return
    for r in records:
        print(f"{r.subject} [{r.state.value}] approvals={len(r.approvers)} hash={r.data_hash}")


def handle_status(_: argparse.Namespace) -> None:
    engine = _read_engine()
    print(f"admin:      {engine.admin()}")
    print(f"threshold:  {engine.approval_threshold()}")
    print(f"validators: {', '.join(engine.validators()) or '(none)'}")


def handle_is_validator(args: argparse.Namespace) -> None:
    print("yes" if _read_engine().is_validator(args.id) else "no")


def handle_change_admin(args: argparse.Namespace) -> None:
    _mutate(lambda e: e.change_admin(args.caller, args.new_admin))
    print(f"Admin is now {args.new_admin.strip().lower()}")


def handle_add_validator(args: argparse.Namespace) -> None:
    added = _mutate(lambda e: e.add_validator(args.caller, args.id))
    print(f"Added validator {args.id}" if added else f"{args.id} is already a validator")


def handle_remove_validator(args: argparse.Namespace) -> None:
    _mutate(lambda e: e.remove_validator(args.caller, args.id))
    print(f"Removed validator {args.id}")


def handle_change_threshold(args: argparse.Namespace) -> None:
    _mutate(lambda e: e.change_threshold(args.caller, args.threshold))
    print(f"Approval threshold is now {args.threshold}")


def handle_audit(args: argparse.Namespace) -> None:
    events = list_events(limit=args.limit)
    if not events:
        print("No audit events.")
        return
    for ev in events:
        print(f"{ev['timestamp']} {ev['event']} subject={ev['subject']} actor={ev['actor']} data={ev['data']}")


def _add_caller(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--as", dest="caller", required=True, help="Identifier of the caller")


def _add_digest(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--hash", help="32-byte digest as 0x-prefixed hex")
    group.add_argument("--text", help="Short text encoded as a zero-padded digest")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IDSafe identity registry CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log registry activity")
    sub = parser.add_subparsers(dest="command")

    init = sub.add_parser("init", help="Create the registry (admin, validators, threshold)")
    init.add_argument("--genesis", help=f"Genesis YAML file (see {config.EXAMPLE_GENESIS_FILE.name})")
    init.add_argument("--admin", help="Administrator identifier")
    init.add_argument("--validators", nargs="*", default=[], help="Validator (NGO) identifiers")
    init.add_argument("--threshold", type=int, help="Approvals required for registration")
    init.set_defaults(func=handle_init)

    register = sub.add_parser("register", help="Register a subject's data hash")
    register.add_argument("subject")
    _add_digest(register)
    _add_caller(register)
    register.set_defaults(func=handle_register)

    approve = sub.add_parser("approve", help="Approve a registered subject")
    approve.add_argument("subject")
    _add_caller(approve)
    approve.set_defaults(func=handle_approve)

    store_hash = sub.add_parser("store-hash", help="Replace a subject's data hash")
    store_hash.add_argument("subject")
    _add_digest(store_hash)
    _add_caller(store_hash)
    store_hash.set_defaults(func=handle_store_hash)

    revoke = sub.add_parser("revoke", help="Revoke a subject's registration (admin)")
    revoke.add_argument("subject")
    _add_caller(revoke)
    revoke.set_defaults(func=handle_revoke)

    show = sub.add_parser("show", help="Show a subject's identity record")
    show.add_argument("subject")
    show.set_defaults(func=handle_show)

    list_cmd = sub.add_parser("list", help="List identity records")
    list_cmd.set_defaults(func=handle_list)

    status = sub.add_parser("status", help="Show admin, threshold and validators")
    status.set_defaults(func=handle_status)

    is_validator = sub.add_parser("is-validator", help="Check validator membership")
    is_validator.add_argument("id")
    is_validator.set_defaults(func=handle_is_validator)

    change_admin = sub.add_parser("change-admin", help="Transfer the admin role")
    change_admin.add_argument("new_admin")
    _add_caller(change_admin)
    change_admin.set_defaults(func=handle_change_admin)

    add_validator = sub.add_parser("add-validator", help="Add a validator (admin)")
    add_validator.add_argument("id")
    _add_caller(add_validator)
    add_validator.set_defaults(func=handle_add_validator)

    remove_validator = sub.add_parser("remove-validator", help="Remove a validator (admin)")
    remove_validator.add_argument("id")
    _add_caller(remove_validator)
    remove_validator.set_defaults(func=handle_remove_validator)

    change_threshold = sub.add_parser("change-threshold", help="Set the approval threshold (admin)")
    change_threshold.add_argument("threshold", type=int)
    _add_caller(change_threshold)
    change_threshold.set_defaults(func=handle_change_threshold)

    audit_cmd = sub.add_parser("audit", help="Show recent audit events")
    audit_cmd.add_argument("--limit", type=int, default=50, help="Number of events to show")
    audit_cmd.set_defaults(func=handle_audit)

    return parser


def main(argv=None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
