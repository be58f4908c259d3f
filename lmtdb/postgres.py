# lmtdb/postgres.py
"""PostgreSQL admin layer for per-filesystem LMT databases.
- Lists the filesystem databases known to the server.
- Creates a filesystem database and loads its schema.
- Drops a filesystem database, terminating open sessions first.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Dict, List, Optional, Self

import psycopg
from psycopg import sql

from lmtdb.config import LmtConfig

lg = logging.getLogger("lmtdb.postgres")

DB_PREFIX = "filesystem"
FSNAME_TOKEN = "FSNAME"
FSNAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,47}")
SCHEMA_FILE = "create_schema.sql"


class DbAdminError(RuntimeError):
    """Base class for failures reported by the admin layer."""


class DbConnectError(DbAdminError):
    pass


class DbListError(DbAdminError):
    pass


class FilesystemExistsError(DbAdminError):
    pass


class FilesystemNotFoundError(DbAdminError):
    pass


class SchemaError(DbAdminError):
    pass


@dataclass
class DbConnectionParam:
    host: Optional[str] = field(default=None)
    port: Optional[int] = field(default=None)
    user: Optional[str] = field(default=None)
    password: Optional[str] = field(default=None, repr=False)
    dbname: str = field(default="postgres")

    def __post_init__(self):
        if not self.user:
            raise ValueError("Username is missing in the connection details.")

    @classmethod
    def from_config(
        cls,
        config: LmtConfig,
        user: Optional[str],
        password: Optional[str],
        dbname: str = "postgres",
    ) -> Self:
        return cls(
            host=config.host,
            port=config.port,
            user=user,
            password=password,
            dbname=dbname,
        )

    def kwargs(self, dbname: Optional[str] = None) -> Dict[str, object]:
        params: Dict[str, object] = {"dbname": dbname or self.dbname, "user": self.user}
        if self.host:
            params["host"] = self.host
        if self.port:
            params["port"] = self.port
        if self.password:
            params["password"] = self.password
        return params

    def describe(self, dbname: Optional[str] = None) -> str:
        """Log-safe rendering, e.g. 'lwatchadmin:***@localhost:5432/postgres'."""
        auth = f"{self.user}:***" if self.password else self.user
        host = self.host or "<socket>"
        port = f":{self.port}" if self.port else ""
        return f"{auth}@{host}{port}/{dbname or self.dbname}"


def check_fsname(fsname: str) -> str:
    if not fsname or not FSNAME_RE.fullmatch(fsname):
        raise ValueError(f"Invalid file system name: {fsname!r}")
    return fsname


def database_name(fsname: str) -> str:
    """Name of the database that holds the data for ``fsname``."""
    return f"{DB_PREFIX}_{check_fsname(fsname)}"


def load_schema(fsname: str, schema_file: Optional[Path] = None) -> str:
    """Read a schema script and fill in the file system name.

    Every occurrence of FSNAME in the script is replaced by ``fsname``.
    Without ``schema_file`` the schema shipped with the package is used.
    """
    check_fsname(fsname)
    try:
        if schema_file is None:
            text = (
                (resources.files("lmtdb") / "sql" / SCHEMA_FILE)
                .read_text(encoding="utf-8")
            )
        else:
            text = Path(schema_file).read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"Cannot read schema file {schema_file}: {e}") from e
    if not text.strip():
        raise SchemaError(f"Schema file {schema_file} is empty")
    return text.replace(FSNAME_TOKEN, fsname)


class DbAdminTemplate(ABC):
    """Operations the lmtinit command needs from a database server."""

    @abstractmethod
    def list_filesystems(self) -> List[str]:
        """Return the names of all filesystem databases, prefix included."""
        raise NotImplementedError()

    @abstractmethod
    def create_filesystem(self, fsname: str, schema_file: Optional[Path] = None):
        raise NotImplementedError()

    @abstractmethod
    def drop_filesystem(self, fsname: str):
        raise NotImplementedError()

    def close(self):
        pass

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc):
        self.close()


class PostgresDbAdmin(DbAdminTemplate):
    def __init__(self, params: DbConnectionParam):
        self.params = params
        self.conn: Optional[psycopg.Connection] = None

    @classmethod
    def from_config(
        cls, config: LmtConfig, user: Optional[str], password: Optional[str]
    ) -> Self:
        return cls(DbConnectionParam.from_config(config, user, password))

    def connect(self) -> Self:
        if self.conn is not None:
            return self
        lg.info(f"Connecting to PostgreSQL ({self.params.describe()})...")
        try:
            # CREATE/DROP DATABASE cannot run inside a transaction block
            self.conn = psycopg.connect(**self.params.kwargs(), autocommit=True)
        except psycopg.Error as e:
            lg.error(f"Failed to connect to PostgreSQL: {e}")
            raise DbConnectError(
                f"Cannot connect to {self.params.describe()}: {e}"
            ) from e
        lg.debug("Connected to PostgreSQL.")
        return self

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def _execute(self, query, params: tuple = None, fetch: bool = False):
        self.connect()
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            if fetch:
                return cur.fetchall()

    def database_exists(self, db_name: str) -> bool:
        res = self._execute(
            "SELECT 1 FROM pg_database WHERE datname = %s", (db_name,), fetch=True
        )
        return bool(res)

    def list_filesystems(self) -> List[str]:
        try:
            rows = self._execute(
                "SELECT datname FROM pg_database WHERE datname LIKE %s ORDER BY datname",
                (DB_PREFIX + r"\_%",),
                fetch=True,
            )
        except psycopg.Error as e:
            lg.error(f"Query failed: {e}")
            raise DbListError(f"Cannot list file system databases: {e}") from e
        names = [row[0] for row in rows]
        lg.debug(f"Found {len(names)} file system database(s).")
        return names

    def create_filesystem(self, fsname: str, schema_file: Optional[Path] = None):
        db_name = database_name(fsname)
        script = load_schema(fsname, schema_file)
        try:
            if self.database_exists(db_name):
                raise FilesystemExistsError(
                    f"Database '{db_name}' for file system '{fsname}' already exists."
                )
            lg.info(f"Creating database '{db_name}'...")
            self._execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))
        except psycopg.Error as e:
            lg.error(f"Failed to create database '{db_name}': {e}")
            raise DbAdminError(f"Cannot create database '{db_name}': {e}") from e

        lg.info(f"Loading schema into '{db_name}'...")
        try:
            with psycopg.connect(**self.params.kwargs(db_name)) as db_conn:
                with db_conn.transaction():
                    db_conn.execute(sql.SQL(script))
        except psycopg.Error as e:
            lg.error(f"Failed to load schema into '{db_name}': {e}")
            try:
                self._drop(db_name)
            except psycopg.Error as drop_error:
                lg.error(f"Could not remove partial database '{db_name}': {drop_error}")
            raise SchemaError(f"Schema load failed for '{db_name}': {e}") from e
        lg.info(f"Database '{db_name}' created successfully.")

    def drop_filesystem(self, fsname: str):
        db_name = database_name(fsname)
        try:
            if not self.database_exists(db_name):
                raise FilesystemNotFoundError(
                    f"No database found for file system '{fsname}'."
                )
            self._drop(db_name)
        except psycopg.Error as e:
            lg.error(f"Failed to drop database '{db_name}': {e}")
            raise DbAdminError(f"Cannot drop database '{db_name}': {e}") from e
        lg.info(f"Database '{db_name}' dropped successfully.")

    def _drop(self, db_name: str):
        lg.info(f"Dropping database '{db_name}'...")
        # FORCE drop by terminating connections first
        self._execute(
            sql.SQL("""
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = {}
                AND pid <> pg_backend_pid();
            """).format(sql.Literal(db_name))
        )
        self._execute(sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(db_name)))
