# lmtdb/cli.py
"""lmtinit: create, delete and list per-filesystem LMT databases.

    lmtinit -l                      list file systems in the database
    lmtinit -a scratch              create the database for 'scratch'
    lmtinit -d scratch -u admin     remove it, connecting as 'admin'
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from lmtdb.config import ConfigError, LmtConfig, init_config
from lmtdb.postgres import DbAdminError, DbAdminTemplate, PostgresDbAdmin, check_fsname

lg = logging.getLogger("lmtdb.cli")

PROG = "lmtinit"
EXIT_OK = 0
EXIT_USAGE = 1
EXIT_DB = 2

AdminFactory = Callable[[LmtConfig, Optional[str], Optional[str]], DbAdminTemplate]


def setup_basic_stream_logging():
    # stdout carries the -l listing, so log records go to stderr
    logging.basicConfig(
        format="%(levelname)s:%(name)s: %(message)s",
        level=logging.INFO,
        stream=sys.stderr,
    )


class UsageError(Exception):
    pass


class LmtArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = LmtArgumentParser(
        prog=PROG,
        description="Create, delete and list per-filesystem LMT databases.",
    )
    parser.add_argument("-a", "--add", metavar="FS", help="create database for file system")
    parser.add_argument("-d", "--delete", metavar="FS", help="remove database for file system")
    parser.add_argument("-l", "--list", action="store_true", help="list file systems in database")
    parser.add_argument(
        "-c", "--config-file", metavar="FILE", type=Path, help="use an alternate config file"
    )
    parser.add_argument(
        "-s", "--schema-file", metavar="FILE", type=Path, help="use an alternate schema file"
    )
    parser.add_argument("-u", "--user", metavar="USER", help="connect to the db with USER")
    parser.add_argument("-p", "--password", metavar="PASS", help="connect to the db with PASS")
    parser.add_argument(
        "-y", "--yes", action="store_true", help="do not ask before removing a database"
    )
    parser.add_argument(
        "--init-config",
        metavar="FILE",
        type=Path,
        help="write a starter config file with the current settings and exit",
    )
    return parser


def usage_text(config: Optional[LmtConfig] = None) -> str:
    u = config.rw_user if config else None
    p = "***" if config and config.rw_password else None
    return (
        f"Usage: {PROG} [OPTIONS]\n"
        "  -a,--add FS            create database for file system\n"
        "  -d,--delete FS         remove database for file system\n"
        "  -l,--list              list file systems in database\n"
        "  -c,--config-file FILE  use an alternate config file\n"
        "  -s,--schema-file FILE  use an alternate schema file\n"
        f"  -u,--user=USER         connect to the db with USER (default: {u or '<nil>'})\n"
        f"  -p,--password=PASS     connect to the db with PASS (default: {p or '<nil>'})\n"
        "  -y,--yes               do not ask before removing a database\n"
        "  --init-config FILE     write a starter config file and exit\n"
    )


def usage(config: Optional[LmtConfig] = None, message: Optional[str] = None) -> int:
    if message:
        print(f"{PROG}: {message}", file=sys.stderr)
    print(usage_text(config), end="", file=sys.stderr)
    return EXIT_USAGE


def resolve_credentials(
    config: LmtConfig, action: str, user: Optional[str], password: Optional[str]
) -> Tuple[Optional[str], Optional[str]]:
    """Fill in whichever of user/password was not given on the command line.

    Listing only reads, so it falls back to the read-only account; add and
    delete fall back to the read-write account.
    """
    if action == "list":
        default_user, default_password = config.ro_user, config.ro_password
    else:
        default_user, default_password = config.rw_user, config.rw_password
    return (
        user if user is not None else default_user,
        password if password is not None else default_password,
    )


def strip_prefix(name: str) -> str:
    """'filesystem_scratch' -> 'scratch'; names without '_' are returned as is."""
    _, sep, rest = name.partition("_")
    return rest if sep else name


def run_list(admin: DbAdminTemplate) -> int:
    for name in admin.list_filesystems():
        print(strip_prefix(name))
    return EXIT_OK


def run_delete(admin: DbAdminTemplate, fsname: str, assume_yes: bool = False) -> int:
    check_fsname(fsname)
    if not assume_yes:
        lg.warning(f"WARNING: This will PERMANENTLY DELETE the database for '{fsname}'.")
        lg.warning("All connections will be terminated.")
        try:
            choice = input("Type 'yes' to proceed: ")
        except EOFError:
            choice = ""
        if choice.lower() != "yes":
            lg.info("Operation cancelled.")
            return EXIT_OK
    admin.drop_filesystem(fsname)
    return EXIT_OK


def run_add(admin: DbAdminTemplate, fsname: str, schema_file: Optional[Path] = None) -> int:
    admin.create_filesystem(fsname, schema_file)
    return EXIT_OK


def run_init_config(config: LmtConfig, filepath: Path) -> int:
    """Initialize the configuration file via CLI command"""
    if filepath.exists():
        lg.warning(f"Configuration file '{filepath}' already exists. Skipping initialization.")
        return EXIT_OK
    lg.info(f"Initializing configuration file at '{filepath}'...")
    try:
        config.write(filepath)
    except OSError as e:
        print(f"{PROG}: {e}", file=sys.stderr)
        return EXIT_USAGE
    return EXIT_OK


def main(
    argv: Optional[List[str]] = None,
    admin_factory: AdminFactory = PostgresDbAdmin.from_config,
) -> int:
    try:
        args, extra = build_parser().parse_known_args(argv)
    except UsageError as e:
        return usage(message=str(e))

    try:
        config = init_config(True, args.config_file)
    except ConfigError:
        return EXIT_USAGE
    config.debug = True
    logging.getLogger("lmtdb").setLevel(logging.DEBUG)
    if extra:
        return usage(config, f"unrecognized arguments: {' '.join(extra)}")

    actions = [
        name
        for name, chosen in (
            ("add", args.add is not None),
            ("delete", args.delete is not None),
            ("list", args.list),
        )
        if chosen
    ]
    if args.init_config is not None:
        if actions:
            return usage(config, "--init-config cannot be combined with -a, -d or -l.")
        return run_init_config(config, args.init_config)
    if not actions:
        return usage(config)
    if len(actions) > 1:
        return usage(config, "Use only one of -a, -d, and -l options.")
    action = actions[0]

    user, password = resolve_credentials(config, action, args.user, args.password)
    lg.debug(f"Running '{action}' as user '{user}'.")

    try:
        with admin_factory(config, user, password) as admin:
            if action == "list":
                return run_list(admin)
            elif action == "delete":
                return run_delete(admin, args.delete, assume_yes=args.yes)
            else:
                return run_add(admin, args.add, args.schema_file)
    except ValueError as e:
        print(f"{PROG}: {e}", file=sys.stderr)
        return EXIT_USAGE
    except DbAdminError as e:
        print(f"{PROG}: {e}", file=sys.stderr)
        return EXIT_DB


def run():
    setup_basic_stream_logging()
    sys.exit(main())


if __name__ == "__main__":
    run()
