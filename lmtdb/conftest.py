import pytest

from lmtdb.postgres import (
    DbAdminTemplate,
    DbListError,
    FilesystemExistsError,
    FilesystemNotFoundError,
    database_name,
)


CONFIG_TEXT = """\
[db]
host = "dbhost"
port = 3306
ro_user = "reader"
ro_password = "rpass"
rw_user = "writer"
rw_password = "wpass"

[core]
debug = false
"""


@pytest.fixture(autouse=True)
def no_system_config(tmp_path, monkeypatch):
    monkeypatch.setenv("LMT_CONFIG_FILE", str(tmp_path / "missing.toml"))


@pytest.fixture
def config_file(tmp_path):
    file_path = tmp_path / "lmt.toml"
    file_path.write_text(CONFIG_TEXT)
    yield file_path


class FakeAdmin(DbAdminTemplate):
    def __init__(self, config, user, password, names=(), fail_list=False):
        self.config = config
        self.user = user
        self.password = password
        self.names = list(names)
        self.fail_list = fail_list
        self.created = []
        self.dropped = []
        self.closed = False

    def list_filesystems(self):
        if self.fail_list:
            raise DbListError("Cannot list file system databases: connection reset")
        return list(self.names)

    def create_filesystem(self, fsname, schema_file=None):
        db_name = database_name(fsname)
        if db_name in self.names:
            raise FilesystemExistsError(f"Database '{db_name}' already exists.")
        self.names.append(db_name)
        self.created.append((fsname, schema_file))

    def drop_filesystem(self, fsname):
        db_name = database_name(fsname)
        if db_name not in self.names:
            raise FilesystemNotFoundError(f"No database found for file system '{fsname}'.")
        self.names.remove(db_name)
        self.dropped.append(fsname)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_admin():
    """Returns (factory, instances); instances collects every admin built."""
    instances = []
    options = {}

    def factory(config, user, password):
        admin = FakeAdmin(config, user, password, **options)
        instances.append(admin)
        return admin

    factory.options = options
    yield factory, instances
