"""
coreBOS CLI - Opinionated command-line interface.

This layer provides the user-facing CLI commands, using the SDK layer
for all operations. It handles:
- Argument parsing and credentials from the environment / .env
- Login before and logout after every command
- TTY detection for human vs machine output
- JSON output for piping/automation
"""

import argparse
import json
import logging
import os
import sys
from typing import Any

from dotenv import load_dotenv

from corebos_cli.core.client import CLIError, ValidationError
from corebos_cli.core.types import Record
from corebos_cli.sdk import CoreBOSClient

logger = logging.getLogger(__name__)

# =============================================================================
# Output Helpers
# =============================================================================


HUMAN_LIMIT = 20  # Default limit for human-readable output
COLUMN_WIDTH = 20


def is_tty() -> bool:
    """Check if stdout is a TTY (human) or pipe (machine)."""
    return sys.stdout.isatty()


def json_output(data: Any, pretty: bool = False) -> None:
    """Print JSON output."""
    indent = 2 if pretty or is_tty() else None
    print(json.dumps(data, indent=indent, default=str))


def error_output(error: CLIError) -> None:
    """Print error and exit."""
    json_output(error.to_dict())
    sys.exit(1)


def success_output(data: Any) -> None:
    """Print success output."""
    json_output(data)


def table_output(
    headers: list[str],
    rows: list[list[str]],
    widths: list[int],
) -> None:
    """Print a formatted table for human output."""
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(header_line)
    print("-" * len(header_line))

    for row in rows:
        print("  ".join(str(v)[:w].ljust(w) for v, w in zip(row, widths)))


def record_output(record: Record) -> None:
    """Print a record as field/value lines or JSON."""
    if is_tty():
        width = max((len(name) for name in record.fields), default=0)
        for name, value in record.fields.items():
            print(f"{name.ljust(width)}  {value}")
    else:
        success_output(record.fields)


def parse_json_arg(value: str, flag: str) -> Any:
    """Parse a JSON argument, reading stdin when the value is '-'."""
    try:
        if value == "-":
            return json.load(sys.stdin)
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {flag}: {e}")


def parse_fields(args: argparse.Namespace) -> dict[str, Any]:
    """Parse the --fields JSON object."""
    fields = parse_json_arg(args.fields, "--fields")
    if not isinstance(fields, dict):
        raise ValidationError("--fields must be a JSON object")
    return fields


def parse_params(values: list[str] | None) -> list[tuple[str, str]]:
    """Parse repeated name=value options, keeping their order."""
    params = []
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise ValidationError(f"Invalid parameter '{item}', expected name=value")
        params.append((name, value))
    return params


def env_flag(name: str) -> bool:
    """Read a boolean environment variable."""
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# CLI Commands
# =============================================================================


def cmd_login(client: CoreBOSClient, _args: argparse.Namespace) -> None:
    """Show the session obtained with the configured credentials."""
    session = client.session
    success_output(
        {
            "url": client.url,
            "username": session.service_user,
            "user_id": session.user_id,
            "session_id": session.session_id,
            "expire_time": session.expire_time,
        }
    )


def cmd_query(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Run a query."""
    try:
        result = client.records.query(args.query)

        if is_tty():
            if not result.records:
                print("No records found.")
                return

            limit = args.limit if args.limit is not None else HUMAN_LIMIT
            columns = [result.columns[i] for i in sorted(result.columns)]
            table_output(
                columns,
                [[r.get(c, "") for c in columns] for r in result.records[:limit]],
                [COLUMN_WIDTH] * len(columns),
            )

            if len(result.records) > limit:
                print(f"\nShowing {limit} of {len(result.records)} records")
        else:
            success_output(
                {
                    "data": [r.fields for r in result.records],
                    "columns": [result.columns[i] for i in sorted(result.columns)],
                    "total_count": len(result.records),
                }
            )
    except CLIError as e:
        error_output(e)


def cmd_types(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """List accessible modules."""
    try:
        module_types = client.modules.list_types(args.field_type)

        if is_tty():
            if not module_types.types:
                print("No modules found.")
                return
            for name in module_types.types:
                label = module_types.information.get(name, {}).get("label", "")
                print(f"{name.ljust(30)}  {label}")
        else:
            success_output({"data": module_types.types, "information": module_types.information})
    except CLIError as e:
        error_output(e)


def cmd_describe(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Describe a module."""
    try:
        description = client.modules.describe(args.module)

        if is_tty():
            print(f"Module: {description.name} ({description.label})")
            print(f"ID prefix: {description.id_prefix or ''}")
            permissions = [
                name
                for name, allowed in (
                    ("create", description.createable),
                    ("update", description.updateable),
                    ("delete", description.deleteable),
                    ("retrieve", description.retrieveable),
                )
                if allowed
            ]
            print(f"Permissions: {', '.join(permissions) or 'none'}")
            if description.fields:
                print()
                table_output(
                    ["Name", "Label", "Type", "Mandatory"],
                    [
                        [f.name, f.label, f.type.get("name", ""), "yes" if f.mandatory else ""]
                        for f in description.fields
                    ],
                    [30, 30, 15, 9],
                )
        else:
            success_output(description.raw)
    except CLIError as e:
        error_output(e)


def cmd_retrieve(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Retrieve a record."""
    try:
        record_output(client.records.retrieve(args.record_id))
    except CLIError as e:
        error_output(e)


def cmd_create(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Create a record."""
    try:
        record = client.records.create(args.module, parse_fields(args))
        success_output({"id": record.id, "message": f"{args.module} record created"})
    except CLIError as e:
        error_output(e)


def cmd_update(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Update a record with all its mandatory fields."""
    try:
        record_output(client.records.update(args.module, parse_fields(args)))
    except CLIError as e:
        error_output(e)


def cmd_revise(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Update some fields of a record."""
    try:
        record_output(client.records.revise(args.module, parse_fields(args)))
    except CLIError as e:
        error_output(e)


def cmd_delete(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Delete a record."""
    try:
        client.records.delete(args.record_id)
        success_output({"success": True, "message": f"Record {args.record_id} deleted"})
    except CLIError as e:
        error_output(e)


def cmd_related(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """List related records."""
    try:
        query_parameters = parse_json_arg(args.params, "--params") if args.params else None
        records = client.records.get_related(
            args.record_id,
            args.module,
            args.related_module,
            query_parameters,
        )

        if is_tty():
            if not records:
                print("No related records found.")
                return
            table_output(
                ["ID", "Fields"],
                [[r.id or "", len(r.fields)] for r in records],
                [20, 10],
            )
        else:
            success_output({"data": [r.fields for r in records], "total_count": len(records)})
    except CLIError as e:
        error_output(e)


def cmd_relate(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Relate a record with other records."""
    try:
        related = client.records.set_related(args.record_id, args.with_ids)
        success_output({"success": related})
    except CLIError as e:
        error_output(e)


def cmd_invoke(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Invoke a web service method by name."""
    try:
        result = client.service.invoke(args.operation, parse_params(args.param), args.method)
        success_output(result)
    except CLIError as e:
        error_output(e)


def cmd_login_page(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Print the login page HTML."""
    try:
        print(client.service.login_page(args.template, args.language, args.csrf))
    except CLIError as e:
        error_output(e)


# =============================================================================
# Session Handling
# =============================================================================


def connect(client: CoreBOSClient, args: argparse.Namespace) -> None:
    """Log in with the credentials from flags or environment."""
    username = args.username or os.environ.get("COREBOS_USERNAME")
    access_key = args.access_key or os.environ.get("COREBOS_ACCESS_KEY")
    if not username or not access_key:
        raise ValidationError("Credentials required. Set COREBOS_USERNAME and COREBOS_ACCESS_KEY env vars")
    use_password = args.password or env_flag("COREBOS_USE_PASSWORD")
    client.auth.login(username, access_key, use_password=use_password)


def disconnect(client: CoreBOSClient) -> None:
    """Log out, reporting but not failing on errors."""
    if not client.session.is_authenticated:
        return
    try:
        client.auth.logout()
    except CLIError as e:
        logger.warning("Logout failed: %s", e)


# =============================================================================
# Main CLI
# =============================================================================


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="corebos",
        description="coreBOS CLI - Command-line interface for the coreBOS web service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Credentials:
  COREBOS_URL, COREBOS_USERNAME, COREBOS_ACCESS_KEY (also read from .env)
  COREBOS_USE_PASSWORD=1 sends COREBOS_ACCESS_KEY as a plain password

Output Modes:
  TTY (human):  Pretty tables, limited rows
  Pipe (LLM):   Full JSON

Examples:
  corebos query "select firstname, lastname from Contacts limit 10"
  corebos describe Accounts
  corebos create Contacts --fields '{"lastname": "Doe"}'
  corebos invoke getPortalUserInfo --method GET
""",
    )
    parser.add_argument("--url", "-u", help="coreBOS base URL (overrides COREBOS_URL)")
    parser.add_argument("--username", help="User name (overrides COREBOS_USERNAME)")
    parser.add_argument("--access-key", help="Access key or password (overrides COREBOS_ACCESS_KEY)")
    parser.add_argument("--password", action="store_true", help="Treat the access key as a plain password")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default 10)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log requests to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    login = subparsers.add_parser("login", help="Check credentials and show the session")
    login.set_defaults(func=cmd_login)

    query = subparsers.add_parser("query", help="Run a query")
    query.add_argument("query", help="Query text, e.g. 'select * from Contacts'")
    query.add_argument("--limit", "-l", type=int, help="Max rows shown (TTY only)")
    query.set_defaults(func=cmd_query)

    types = subparsers.add_parser("types", help="List accessible modules")
    types.add_argument(
        "--field-type",
        "-t",
        action="append",
        help="Only modules with a field of this type (repeatable)",
    )
    types.set_defaults(func=cmd_types)

    describe = subparsers.add_parser("describe", help="Describe a module")
    describe.add_argument("module", help="Module name")
    describe.set_defaults(func=cmd_describe)

    retrieve = subparsers.add_parser("retrieve", help="Retrieve a record")
    retrieve.add_argument("record_id", help="Web service record ID (e.g. 12x34)")
    retrieve.set_defaults(func=cmd_retrieve)

    for name, func, help_text in (
        ("create", cmd_create, "Create a record"),
        ("update", cmd_update, "Update a record (all mandatory fields)"),
        ("revise", cmd_revise, "Update some fields of a record"),
    ):
        save = subparsers.add_parser(name, help=help_text)
        save.add_argument("module", help="Module name")
        save.add_argument("--fields", "-f", required=True, help="JSON object with field values (or - for stdin)")
        save.set_defaults(func=func)

    delete = subparsers.add_parser("delete", help="Delete a record")
    delete.add_argument("record_id", help="Web service record ID")
    delete.set_defaults(func=cmd_delete)

    related = subparsers.add_parser("related", help="List related records")
    related.add_argument("record_id", help="Web service record ID")
    related.add_argument("module", help="Module of the record")
    related.add_argument("related_module", help="Module of the related records")
    related.add_argument("--params", "-p", help="JSON object with query parameters (or - for stdin)")
    related.set_defaults(func=cmd_related)

    relate = subparsers.add_parser("relate", help="Relate a record with other records")
    relate.add_argument("record_id", help="Record to relate")
    relate.add_argument("with_ids", nargs="+", help="Records to relate it with")
    relate.set_defaults(func=cmd_relate)

    invoke = subparsers.add_parser("invoke", help="Invoke a web service method by name")
    invoke.add_argument("operation", help="Method name")
    invoke.add_argument("--param", "-p", action="append", help="Parameter as name=value (repeatable)")
    invoke.add_argument("--method", "-m", default="POST", type=str.upper, choices=["GET", "POST"])
    invoke.set_defaults(func=cmd_invoke)

    login_page = subparsers.add_parser("login-page", help="Print the login page HTML")
    login_page.add_argument("--template", default="", help="Login page template")
    login_page.add_argument("--language", default="", help="Language code")
    login_page.add_argument("--csrf", default="", help="CSRF token")
    login_page.set_defaults(func=cmd_login_page)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        client = CoreBOSClient(url=args.url, timeout=args.timeout)
        connect(client, args)
    except CLIError as e:
        error_output(e)

    try:
        args.func(client, args)
    finally:
        disconnect(client)


if __name__ == "__main__":
    main()
