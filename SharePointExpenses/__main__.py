"""Command line inspection of the configured SharePoint lists.

Usage::

    python -m SharePointExpenses fields gastos
    python -m SharePointExpenses check --strict
    python -m SharePointExpenses signin
    python -m SharePointExpenses signout
"""
import argparse
import logging
import sys
from typing import List, Optional

from .core import session as session_module
from .core.auth import auth_manager
from .core.schema import EntityKind
from .status import status


def _session() -> session_module.Session:
    if not auth_manager.is_authenticated():
        auth_manager.sign_in()
    return session_module.start_session()


def cmd_fields(args: argparse.Namespace) -> int:
    kind = EntityKind(args.entity)
    s = _session()
    name = s.list_name(kind)
    list_id = s.metadata.resolve_list_id(name)

    print(f'{name} ({list_id})')
    for column in s.columns.list_columns(list_id):
        flags = ''.join((' required' if column.required else '', ' read-only' if column.read_only else ''))
        print(f'  {column.display_name:<32} {column.name:<32} {column.type}{flags}')

    print()
    mapping = s.validate_schema(kinds=[kind])[kind]
    for field, column in mapping.items():
        print(f'  {field:<28} -> {column.name if column else "MISSING"}')
    return 0 if all(mapping.values()) else 1


def cmd_check(args: argparse.Namespace) -> int:
    s = _session()
    result = s.validate_schema(strict=args.strict)

    code = 0
    for kind, mapping in result.items():
        if not mapping:
            print(f'{s.list_name(kind)}: list not found')
            code = 1
            continue
        required = {spec.name for spec in s.field_specs(kind) if spec.required}
        unmapped = [field for field, column in mapping.items() if column is None]
        missing = [field for field in unmapped if field in required]
        optional = [field for field in unmapped if field not in required]

        line = f'{s.list_name(kind)}: {"ok" if not missing else "missing " + ", ".join(missing)}'
        if optional:
            line += f' (optional not found: {", ".join(optional)})'
        print(line)
        code = code or int(bool(missing))
    return code


def cmd_signin(args: argparse.Namespace) -> int:
    print(f'Signed in as {auth_manager.sign_in()}')
    return 0


def cmd_signout(args: argparse.Namespace) -> int:
    session_module.sign_out()
    print('Signed out')
    return 0


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='SharePointExpenses', description=__doc__.splitlines()[0])
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug messages.')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('fields', help='List the columns of an entity list and how fields map onto them.')
    p.add_argument('entity', choices=[k.value for k in EntityKind])
    p.set_defaults(func=cmd_fields)

    p = sub.add_parser('check', help='Validate the field mapping of every list.')
    p.add_argument('--strict', action='store_true', help='Stop at the first list missing a required column.')
    p.set_defaults(func=cmd_check)

    p = sub.add_parser('signin', help='Sign in to Microsoft 365.')
    p.set_defaults(func=cmd_signin)

    p = sub.add_parser('signout', help='Forget the signed-in account.')
    p.set_defaults(func=cmd_signout)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = get_parser().parse_args(argv)

    from .log import log
    log.setup_logging(enable_qt_handler=False, log_level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return args.func(args)
    except status.BaseStatusException as ex:
        print(f'Error: {ex}', file=sys.stderr)
        return 2
    finally:
        session_module.end_session()


if __name__ == '__main__':
    sys.exit(main())
