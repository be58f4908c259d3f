# lmtdb/config.py
"""Configuration store for the LMT database tools.

Holds the database connection parameters (read-only and read-write
credentials, host, port) plus the debug flag. Values come from a TOML file
read with tomlkit; anything the file leaves out keeps its built-in default.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Self

import tomlkit
from tomlkit.exceptions import TOMLKitError

lg = logging.getLogger("lmtdb.config")

CONFIG_FILE = Path("/etc/lmt/lmt.toml")
CONFIG_ENV = "LMT_CONFIG_FILE"

# table -> key -> accepted type
_SCHEMA = {
    "db": {
        "host": str,
        "port": int,
        "ro_user": str,
        "ro_password": str,
        "rw_user": str,
        "rw_password": str,
    },
    "core": {
        "debug": bool,
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be read or is invalid."""


@dataclass
class LmtConfig:
    ro_user: Optional[str] = field(default="lwatchclient")
    ro_password: Optional[str] = field(default=None)
    rw_user: Optional[str] = field(default="lwatchadmin")
    rw_password: Optional[str] = field(default=None)
    host: Optional[str] = field(default="localhost")
    port: int = field(default=5432)
    debug: bool = field(default=False)
    source: Optional[Path] = field(default=None, compare=False)

    def __post_init__(self):
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ConfigError(f"port must be an integer, got {self.port!r}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port {self.port} is out of range")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], source: Optional[Path] = None) -> Self:
        """Build a config from a parsed TOML document.

        Empty strings are treated as unset so that a starter file with
        ``ro_password = ""`` behaves like one without the key.
        """
        kwargs: Dict[str, Any] = {}
        for table, value in data.items():
            if table not in _SCHEMA:
                raise ConfigError(f"Error in config: unknown table [{table}]")
            if not isinstance(value, dict):
                raise ConfigError(f"Error in config: [{table}] must be a table")
            for key, item in value.items():
                expected = _SCHEMA[table].get(key)
                if expected is None:
                    raise ConfigError(f"Error in config: unknown key '{table}.{key}'")
                # bool is an int subclass; keep port strictly integral
                if not isinstance(item, expected) or (
                    expected is int and isinstance(item, bool)
                ):
                    raise ConfigError(
                        f"Error in config: '{table}.{key}' must be {expected.__name__}"
                    )
                if expected is str:
                    item = str(item) or None
                elif expected is int:
                    item = int(item)
                else:
                    item = bool(item)
                kwargs[key] = item
        return cls(source=source, **kwargs)

    def to_mapping(self) -> Dict[str, Any]:
        values = asdict(self)
        values.pop("source")
        doc: Dict[str, Any] = {}
        for table, keys in _SCHEMA.items():
            doc[table] = {
                key: values[key] if values[key] is not None else ""
                for key in keys
            }
        return doc

    def write(self, filepath: Path) -> None:
        """Writes the current values as TOML using tomlkit.dump()."""
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                tomlkit.dump(self.to_mapping(), f)
            lg.info(f"Configuration written to '{filepath}'.")
        except OSError as e:
            lg.error(f"Error writing configuration file: {e}")
            raise


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    return Path(env) if env else CONFIG_FILE


def load_config(filepath: Path) -> Dict[str, Any]:
    """
    Reads configuration using tomlkit.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            config = tomlkit.load(f)
    except OSError as e:
        raise ConfigError(f"File read error in {filepath}: {e}") from e
    except (TOMLKitError, UnicodeDecodeError) as e:
        raise ConfigError(f"Parse error in {filepath}: {e}") from e
    lg.debug(f"Configuration loaded from '{filepath}'.")
    return config.unwrap()


def init_config(verbose: bool, path: Optional[os.PathLike] = None) -> LmtConfig:
    """Create the configuration for this process.

    An explicit ``path`` must exist. Without one, the default file is read
    when present and the built-in defaults are used otherwise. With
    ``verbose`` set, failures are logged before ConfigError propagates.
    """
    filepath = Path(path) if path is not None else default_config_path()
    try:
        if path is None and not filepath.exists():
            lg.debug(f"'{filepath}' not found, using built-in defaults.")
            data: Dict[str, Any] = {}
            filepath = None
        else:
            data = load_config(filepath)
        return LmtConfig.from_mapping(data, source=filepath)
    except ConfigError as e:
        if verbose:
            lg.error(str(e))
        raise
