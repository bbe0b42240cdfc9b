"""
main.py
-------
Command-line entry point for the copay program store.

Usage:
    python main.py init-db
    python main.py show <program_id>
    python main.py load <raw_card.json>
    python main.py replace <program.json>
    python main.py delete <program_id>

Exit status is 0 on success, 1 when the program is absent and 2 when
the operation failed.
"""

import argparse
import json
import sys

from db.connection import close_pool, init_pool
from db.errors import StorageError
from db.init_db import create_tables
from models.program import CopayProgram
from services.program_service import (
    InvalidProgramDataError,
    ProgramService,
    ProgramServiceError,
    UnknownProgramError,
)
from utils.logger import get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_FAILED = 2


def _read_json(path: str):
    """Load a JSON document, reporting unreadable files as invalid input."""
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as e:
        raise InvalidProgramDataError(f"Could not read {path}: {e.strerror}") from e
    except ValueError as e:
        raise InvalidProgramDataError(f"{path} is not valid JSON.") from e


def cmd_init_db(args, service: ProgramService) -> int:
    create_tables()
    return EXIT_OK


def cmd_show(args, service: ProgramService) -> int:
    program = service.get_program(args.program_id)
    if program is None:
        print(f"Program {args.program_id} not found.", file=sys.stderr)
        return EXIT_NOT_FOUND
    print(json.dumps(program, indent=2, ensure_ascii=False))
    return EXIT_OK


def cmd_load(args, service: ProgramService) -> int:
    program = service.ingest(_read_json(args.path))
    print(program.program_id)
    return EXIT_OK


def cmd_replace(args, service: ProgramService) -> int:
    data = _read_json(args.path)
    try:
        program = CopayProgram.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidProgramDataError(f"Malformed program document: {e}") from e
    try:
        service.replace_program(program)
    except UnknownProgramError as e:
        print(str(e), file=sys.stderr)
        return EXIT_NOT_FOUND
    return EXIT_OK


def cmd_delete(args, service: ProgramService) -> int:
    if not service.remove_program(args.program_id):
        print(f"Program {args.program_id} not found.", file=sys.stderr)
        return EXIT_NOT_FOUND
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Copay program store")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables if missing").set_defaults(func=cmd_init_db)

    show = sub.add_parser("show", help="print a program as JSON")
    show.add_argument("program_id", type=int)
    show.set_defaults(func=cmd_show)

    load = sub.add_parser("load", help="ingest a raw copay-card JSON record")
    load.add_argument("path")
    load.set_defaults(func=cmd_load)

    replace = sub.add_parser("replace", help="replace a program from a JSON document")
    replace.add_argument("path")
    replace.set_defaults(func=cmd_replace)

    delete = sub.add_parser("delete", help="delete a program and its children")
    delete.add_argument("program_id", type=int)
    delete.set_defaults(func=cmd_delete)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run one command and return the exit status."""
    args = build_parser().parse_args(argv)
    logger.info(f"Running command '{args.command}'")

    try:
        init_pool()
        return args.func(args, ProgramService())
    except ProgramServiceError as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILED
    except StorageError:
        print("Operation failed.", file=sys.stderr)
        return EXIT_FAILED
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
