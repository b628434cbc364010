"""Test connection options and validation."""

import pytest

from warren.adapters.amqp import AMQPAdapter
from warren.adapters.null import NullAdapter
from warren.connection import Connection
from warren.errors import InvalidConnectionDetails, NoConnectionDetails


class TestConnectionValidation:
    """Required fields are checked by the adapter."""

    @pytest.mark.parametrize(
        ("missing", "message"),
        [
            ("user", "User not specified"),
            ("pass", "Pass not specified"),
            ("vhost", "Vhost not specified"),
        ],
    )
    def test_amqp_adapter_requires_field(self, options, missing, message):
        del options[missing]

        with pytest.raises(InvalidConnectionDetails, match=f"^{message}$") as exc_info:
            Connection(options, adapter=AMQPAdapter())

        assert exc_info.value.details == {"option": missing}

    def test_valid_options_pass(self, options):
        conn = Connection(options, adapter=AMQPAdapter())
        assert conn.options["user"] == "tester"

    def test_null_adapter_accepts_anything(self):
        conn = Connection({}, adapter=NullAdapter())
        assert dict(conn.options) == {}

    def test_no_adapter_skips_validation(self):
        conn = Connection({"host": "localhost"})
        assert conn.options["host"] == "localhost"

    def test_adapter_without_checker_is_accepted(self, options):
        assert Connection(options).validate(object()) is True


class TestConnectionOptions:
    def test_keys_normalized_to_str(self):
        class Key:
            def __str__(self):
                return "user"

        conn = Connection({Key(): "bob"})
        assert conn.options == {"user": "bob"}

    def test_options_are_read_only(self, options):
        conn = Connection(options)
        with pytest.raises(TypeError):
            conn.options["user"] = "mallory"

    def test_later_changes_to_source_do_not_leak(self, options):
        conn = Connection(options)
        options["user"] = "changed"
        assert conn.options["user"] == "tester"

    def test_repr_hides_password(self, options):
        assert "password" not in repr(Connection(options))

    def test_equality_by_options(self, options):
        assert Connection(options) == Connection(dict(options))
        assert Connection(options) != Connection({})


class TestQueueName:
    def test_returns_default_queue(self, options):
        conn = Connection(dict(options, default_queue="jobs"))
        assert conn.queue_name() == "jobs"

    def test_missing_default_queue_raises(self, options):
        with pytest.raises(InvalidConnectionDetails, match="Missing a default queue name."):
            Connection(options).queue_name()


class TestFromConfig:
    def test_selects_environment_section(self, options):
        config = {"development": options, "production": dict(options, host="prod")}

        conn = Connection.from_config(config, env="production")

        assert conn.options["host"] == "prod"

    def test_uses_warren_env(self, options, monkeypatch):
        monkeypatch.setenv("WARREN_ENV", "test")
        conn = Connection.from_config({"test": dict(options, host="testhost")})
        assert conn.options["host"] == "testhost"

    def test_defaults_to_development(self, options):
        conn = Connection.from_config({"development": options})
        assert conn.options["user"] == "tester"

    def test_common_section_merged_underneath(self):
        config = {
            "common": {"host": "shared", "vhost": "/", "user": "base"},
            "development": {"user": "dev", "pass": "secret"},
        }

        conn = Connection.from_config(config, adapter=AMQPAdapter())

        assert conn.options == {"host": "shared", "vhost": "/", "user": "dev", "pass": "secret"}

    def test_missing_environment_raises(self, options):
        with pytest.raises(InvalidConnectionDetails, match="staging"):
            Connection.from_config({"development": options}, env="staging")

    def test_validates_with_adapter(self):
        with pytest.raises(InvalidConnectionDetails, match="Pass not specified"):
            Connection.from_config({"development": {"user": "u", "vhost": "/"}}, adapter=AMQPAdapter())


class TestFromFile:
    def test_loads_yaml_file(self, tmp_path):
        path = tmp_path / "warren.yml"
        path.write_text("development:\n  user: u\n  pass: p\n  vhost: /\n  default_queue: q\n")

        conn = Connection.from_file(path, adapter=AMQPAdapter())

        assert conn.queue_name() == "q"

    def test_env_overrides_applied(self, tmp_path, monkeypatch):
        path = tmp_path / "warren.yml"
        path.write_text("development:\n  host: localhost\n  user: u\n  pass: p\n  vhost: /\n")
        monkeypatch.setenv("WARREN_HOST", "rabbit.internal")
        monkeypatch.setenv("WARREN_PORT", "5673")

        conn = Connection.from_file(path)

        assert conn.options["host"] == "rabbit.internal"
        assert conn.options["port"] == 5673

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(NoConnectionDetails):
            Connection.from_file(tmp_path / "absent.yml")

    def test_empty_file_raises(self, tmp_path):
        path = tmp_path / "warren.yml"
        path.write_text("")
        with pytest.raises(NoConnectionDetails):
            Connection.from_file(path)
