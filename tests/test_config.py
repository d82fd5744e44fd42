"""
Brief: Tests for bidns.config schema validation and typed config building.

Inputs:
  - None

Outputs:
  - None
"""

import pytest

from bidns.config.config_parser import BidnsConfig, build_config, load_config
from bidns.config.config_schema import get_default_schema_path, validate_config


def test_default_schema_path_exists():
    assert get_default_schema_path().is_file()


def test_empty_config_gets_defaults():
    """
    Brief: An empty mapping produces the built-in defaults.

    Inputs:
      - None

    Outputs:
      - None: Asserts listen, upstream, cache and route defaults
    """
    cfg = build_config({})
    assert isinstance(cfg, BidnsConfig)
    assert cfg.listen.endpoint("udp") == ("127.0.0.1", 53)
    assert cfg.listen.udp.enabled is True
    assert cfg.listen.tcp.enabled is False
    assert (cfg.upstreams.local.host, cfg.upstreams.local.port) == ("114.114.114.114", 53)
    assert (cfg.upstreams.remote.host, cfg.upstreams.remote.port) == ("127.0.0.1", 5300)
    assert cfg.timeout_ms == 2000
    assert cfg.cache.default_ttl == 120
    assert cfg.cache.max_entries == 0
    assert cfg.route_table.path.endswith("chnroutes.txt")
    assert cfg.route_table.always_check_overflow is False


def test_listener_overrides_fall_back_to_listen_section():
    cfg = build_config(
        {
            "listen": {
                "host": "0.0.0.0",
                "port": 5353,
                "tcp": {"enabled": True, "port": 5354},
            }
        }
    )
    assert cfg.listen.endpoint("udp") == ("0.0.0.0", 5353)
    assert cfg.listen.endpoint("tcp") == ("0.0.0.0", 5354)


@pytest.mark.parametrize(
    "bad",
    [
        {"unknown": 1},
        {"listen": {"port": 70000}},
        {"upstreams": {"local": {"port": 53}}},
        {"upstreams": {"remote": {"host": "8.8.8.8", "transport": "doh"}}},
        {"cache": {"default_ttl": -1}},
        {"logging": {"level": "loud"}},
    ],
)
def test_schema_rejects_invalid_config(bad):
    with pytest.raises(ValueError) as excinfo:
        build_config(bad, config_path="bad.yaml")
    assert "Invalid configuration in bad.yaml" in str(excinfo.value)


def test_validate_config_rejects_non_mapping():
    with pytest.raises(ValueError, match="top level must be a mapping"):
        validate_config(["not", "a", "mapping"])


def test_syslog_accepts_bool_or_mapping():
    validate_config({"logging": {"syslog": True}})
    validate_config({"logging": {"syslog": {"address": "/dev/log", "facility": "daemon"}}})


def test_load_config_resolves_route_path_relative_to_file(tmp_path):
    """
    Brief: A relative route_table.path is anchored at the config file directory.

    Inputs:
      - tmp_path: pytest temporary directory

    Outputs:
      - None: Asserts the resolved absolute route path
    """
    conf = tmp_path / "config.yaml"
    conf.write_text(
        "route_table:\n  path: routes/chn.txt\nupstreams:\n  remote:\n    host: 10.0.0.53\n"
    )
    cfg = load_config(str(conf))
    assert cfg.route_table.path == str(tmp_path / "routes" / "chn.txt")
    assert cfg.upstreams.remote.host == "10.0.0.53"
    assert cfg.upstreams.remote.port == 53


def test_load_config_empty_file_is_defaults(tmp_path):
    conf = tmp_path / "config.yaml"
    conf.write_text("")
    assert load_config(str(conf)).timeout_ms == 2000


def test_load_config_invalid_yaml_raises_value_error(tmp_path):
    conf = tmp_path / "config.yaml"
    conf.write_text("listen: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_config(str(conf))


def test_load_config_missing_file_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        load_config(str(tmp_path / "nope.yaml"))


def test_logging_section_is_typed():
    cfg = build_config(
        {"logging": {"level": "warn", "syslog": {"facility": "daemon"}}}
    )
    assert cfg.logging.level == "warn"
    assert cfg.logging.stderr is True
    assert cfg.logging.file is None
    assert cfg.logging.syslog.address == "/dev/log"
    assert cfg.logging.syslog.facility == "daemon"
    assert build_config({}).logging.syslog is False
