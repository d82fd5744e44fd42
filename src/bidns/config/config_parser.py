"""Configuration parsing and normalization helpers for BIDNS.

Brief:
  This module contains the configuration-parsing utilities that are used by the
  CLI entrypoint. It centralizes:
    - reading YAML config files
    - JSON Schema validation
    - typed pydantic models with the runtime defaults
    - path normalization for the route table

Inputs:
  - YAML config dicts and paths

Outputs:
  - BidnsConfig instances
"""

from __future__ import annotations

import os
from typing import Any, Dict, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .config_schema import validate_config


class ListenerConfig(BaseModel):
    """Brief: Per-transport listener toggle with optional host/port override.

    Inputs:
      - enabled: Whether the listener is started.
      - host: Listen address; falls back to listen.host when omitted.
      - port: Listen port; falls back to listen.port when omitted.

    Outputs:
      - ListenerConfig instance.
    """

    enabled: bool = True
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=0, le=65535)


class ListenConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=53, ge=0, le=65535)
    udp: ListenerConfig = Field(default_factory=ListenerConfig)
    tcp: ListenerConfig = Field(
        default_factory=lambda: ListenerConfig(enabled=False)
    )

    def endpoint(self, name: str) -> tuple[str, int]:
        """Return the effective (host, port) for the 'udp' or 'tcp' listener."""
        sub: ListenerConfig = getattr(self, name)
        host = sub.host or self.host
        port = sub.port if sub.port is not None else self.port
        return host, int(port)


class UpstreamTarget(BaseModel):
    """Brief: Single upstream resolver endpoint.

    Inputs:
      - host: Upstream DNS host.
      - port: Upstream DNS port.
      - transport: 'udp' or 'tcp'.

    Outputs:
      - UpstreamTarget instance with normalized types.
    """

    host: str
    port: int = Field(default=53, ge=1, le=65535)
    transport: Literal["udp", "tcp"] = "udp"


class UpstreamsConfig(BaseModel):
    local: UpstreamTarget = Field(
        default_factory=lambda: UpstreamTarget(host="114.114.114.114", port=53)
    )
    remote: UpstreamTarget = Field(
        default_factory=lambda: UpstreamTarget(host="127.0.0.1", port=5300)
    )


class RouteTableConfig(BaseModel):
    path: str = "chnroutes.txt"
    always_check_overflow: bool = False


class CacheConfig(BaseModel):
    default_ttl: int = Field(default=120, ge=0)
    max_entries: int = Field(default=0, ge=0)


class SyslogConfig(BaseModel):
    address: str = "/dev/log"
    facility: str = "USER"


class LoggingConfig(BaseModel):
    """Brief: Log level and sinks.

    Inputs:
      - level: debug, info, warn(ing), error or crit(ical).
      - stderr: Log to stderr.
      - file: Optional log file path (parent directories are created).
      - syslog: True for /dev/log with facility USER, or a SyslogConfig.

    Outputs:
      - LoggingConfig instance consumed by init_logging().
    """

    level: Literal[
        "debug", "info", "warn", "warning", "error", "crit", "critical"
    ] = "info"
    stderr: bool = True
    file: Optional[str] = None
    syslog: Union[bool, SyslogConfig] = False


class BidnsConfig(BaseModel):
    """Brief: Typed top-level configuration.

    Inputs:
      - Keyword arguments mirroring the YAML document.

    Outputs:
      - BidnsConfig with defaults filled in for omitted sections.
    """

    listen: ListenConfig = Field(default_factory=ListenConfig)
    upstreams: UpstreamsConfig = Field(default_factory=UpstreamsConfig)
    timeout_ms: int = Field(default=2000, ge=1)
    route_table: RouteTableConfig = Field(default_factory=RouteTableConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def build_config(
    cfg: Dict[str, Any], *, config_path: Optional[str] = None
) -> BidnsConfig:
    """Brief: Validate a parsed mapping and build a BidnsConfig.

    Inputs:
      - cfg: Mapping loaded from YAML.
      - config_path: Optional path of the source file. A relative
        route_table.path is resolved against this file's directory.

    Outputs:
      - BidnsConfig.

    Raises:
      - ValueError when schema or model validation fails.

    Example:
      >>> build_config({"cache": {"default_ttl": 60}}).cache.default_ttl
      60
    """

    validate_config(cfg, config_path=config_path)
    try:
        config = BidnsConfig(**cfg)
    except ValidationError as exc:
        raise ValueError(
            f"Invalid configuration in {config_path or '<config dict>'}: {exc}"
        ) from exc

    route_path = os.path.expanduser(config.route_table.path)
    if config_path and not os.path.isabs(route_path):
        base_dir = os.path.dirname(os.path.abspath(config_path))
        route_path = os.path.join(base_dir, route_path)
    config.route_table.path = route_path
    return config


def load_config(config_path: str) -> BidnsConfig:
    """Brief: Read, schema-validate and type a YAML config file.

    Inputs:
      - config_path: Path to YAML config file.

    Outputs:
      - BidnsConfig.

    Raises:
      - OSError when the file cannot be read.
      - ValueError when the file is not valid YAML or fails validation.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
    return build_config(cfg, config_path=config_path)
