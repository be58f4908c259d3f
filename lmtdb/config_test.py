import logging
from pathlib import Path

import pytest

from lmtdb.config import ConfigError, LmtConfig, init_config


class TestInitConfig:
    def test_defaults_without_config_file(self):
        config = init_config(False)
        assert config == LmtConfig()
        assert config.ro_user == "lwatchclient"
        assert config.rw_user == "lwatchadmin"
        assert config.ro_password is None
        assert config.host == "localhost"
        assert config.port == 5432
        assert config.debug is False
        assert config.source is None

    def test_loads_values_from_file(self, config_file):
        config = init_config(False, config_file)
        assert config.host == "dbhost"
        assert config.port == 3306
        assert (config.ro_user, config.ro_password) == ("reader", "rpass")
        assert (config.rw_user, config.rw_password) == ("writer", "wpass")
        assert config.debug is False
        assert config.source == config_file

    def test_default_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("LMT_CONFIG_FILE", str(config_file))
        config = init_config(False)
        assert config.rw_user == "writer"

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "partial.toml"
        path.write_text('[db]\nrw_password = "secret"\n')
        config = init_config(False, path)
        assert config.rw_password == "secret"
        assert config.rw_user == "lwatchadmin"
        assert config.port == 5432

    def test_empty_string_means_unset(self, tmp_path):
        path = tmp_path / "empty.toml"
        path.write_text('[db]\nro_password = ""\n')
        assert init_config(False, path).ro_password is None

    def test_explicit_missing_file_fails(self, tmp_path):
        with pytest.raises(ConfigError):
            init_config(False, tmp_path / "nope.toml")

    def test_non_utf8_file_fails(self, tmp_path):
        path = tmp_path / "latin1.toml"
        path.write_bytes(b'[db]\nhost = "\xff\xfe"\n')
        with pytest.raises(ConfigError, match="Parse error"):
            init_config(False, path)

    def test_malformed_file_fails(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[db\nhost = \n")
        with pytest.raises(ConfigError, match="Parse error"):
            init_config(False, path)

    @pytest.mark.parametrize(
        "text",
        [
            '[db]\nport = "5432"\n',
            "[db]\nport = true\n",
            "[db]\nport = 70000\n",
            "[db]\nhost = 12\n",
            '[core]\ndebug = "yes"\n',
            '[db]\nhostname = "x"\n',
            '[mysql]\nhost = "x"\n',
            'db = "x"\n',
        ],
    )
    def test_invalid_values_fail(self, tmp_path, text):
        path = tmp_path / "invalid.toml"
        path.write_text(text)
        with pytest.raises(ConfigError):
            init_config(False, path)

    def test_verbose_logs_failure(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="lmtdb.config"):
            with pytest.raises(ConfigError):
                init_config(True, tmp_path / "nope.toml")
        assert "nope.toml" in caplog.text

    def test_quiet_does_not_log_failure(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="lmtdb.config"):
            with pytest.raises(ConfigError):
                init_config(False, tmp_path / "nope.toml")
        assert caplog.text == ""


class TestLmtConfig:
    @pytest.mark.parametrize(
        "field_name, value",
        [
            ("ro_user", "ro"),
            ("ro_password", "ro-secret"),
            ("rw_user", "rw"),
            ("rw_password", "rw-secret"),
            ("host", "db.example.org"),
            ("port", 15432),
            ("debug", True),
        ],
    )
    def test_set_then_get(self, field_name, value):
        config = init_config(False)
        setattr(config, field_name, value)
        assert getattr(config, field_name) == value
        setattr(config, field_name, value)
        assert getattr(config, field_name) == value

    def test_rejects_bad_port(self):
        with pytest.raises(ConfigError):
            LmtConfig(port=0)
        with pytest.raises(ConfigError):
            LmtConfig(port="5432")

    def test_write_and_reload(self, tmp_path):
        config = LmtConfig(host="db1", port=6543, rw_password="pw", debug=True)
        path = Path(tmp_path, "out.toml")
        config.write(path)
        reloaded = init_config(False, path)
        assert reloaded == config
        assert reloaded.ro_password is None
