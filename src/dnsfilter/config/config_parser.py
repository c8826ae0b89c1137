"""Configuration parsing and normalization helpers for dnsfilter.

Brief:
  This module turns a YAML (or JSON) configuration file into the typed
  DNSFilterConfig model used by the CLI entrypoint. It centralizes:
    - reading the config file
    - JSON Schema validation (via config_schema.validate_config)
    - typed deserialization with pydantic, including defaults
    - dropping unusable forwarder/filter entries and substituting the built-in
      forwarder list when none survive
    - building the FilterSet and ForwarderPool consumed by the pipeline

Inputs:
  - YAML config dicts and paths

Outputs:
  - DNSFilterConfig instances, FilterSet and ForwarderPool objects
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Literal, Optional

import yaml
from dnslib import QTYPE
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic import model_validator

from ..filters import ALL_QTYPES, FilterRule, FilterSet
from ..servers.forwarder import ForwarderEndpoint, ForwarderPool
from .config_schema import validate_config

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1234
DEFAULT_TIMEOUT_MS = 2000
DEFAULT_LOGFILE = "filter-dns.log"

# Shortest plausible values; anything shorter is treated as a typo and skipped.
MIN_FORWARDER_HOST_LEN = len("8.8.8.8")
MIN_FILTER_HOST_LEN = len("a.io")

WILDCARD_TYPE = "ALL"

# Hurricane Electric, OpenNIC (x4), FreeDNS (x2), Google (x2).
DEFAULT_FORWARDERS: tuple[ForwarderEndpoint, ...] = (
    ForwarderEndpoint("74.82.42.42", 53, "udp"),
    ForwarderEndpoint("107.150.40.234", 53, "udp"),
    ForwarderEndpoint("162.211.64.20", 53, "udp"),
    ForwarderEndpoint("50.116.23.211", 53, "udp"),
    ForwarderEndpoint("50.116.40.226", 53, "udp"),
    ForwarderEndpoint("37.235.1.174", 53, "udp"),
    ForwarderEndpoint("37.235.1.177", 53, "udp"),
    ForwarderEndpoint("8.8.8.8", 53, "udp"),
    ForwarderEndpoint("8.8.4.4", 53, "udp"),
)


class ConfigError(ValueError):
    """Brief: Fatal configuration problem detected before serving starts."""

    pass


class ForwarderConfig(BaseModel):
    """Brief: Typed configuration for one upstream resolver entry.

    Inputs:
      - host: Resolver address. Entries without one (or with one shorter than
        "8.8.8.8") are skipped.
      - port: Resolver port (default 53).
      - protocol: "udp" (default) or "tcp".

    Outputs:
      - ForwarderConfig instance.
    """

    model_config = ConfigDict(extra="ignore")

    host: Optional[str] = None
    port: int = Field(default=53, ge=1, le=65535)
    protocol: Literal["udp", "tcp"] = "udp"

    def is_usable(self) -> bool:
        return self.host is not None and len(self.host) >= MIN_FORWARDER_HOST_LEN

    def to_endpoint(self) -> ForwarderEndpoint:
        return ForwarderEndpoint(str(self.host), self.port, self.protocol)


class FilterConfig(BaseModel):
    """Brief: Typed configuration for one block rule.

    Inputs:
      - host: Domain pattern. Entries without one (or with one shorter than
        "a.io") are skipped.
      - type: "ALL" (default) or a DNS record type name such as "A" or "MX".
      - matching: "contains" or "exact". Required unless type is "ALL", where
        it is ignored.

    Outputs:
      - FilterConfig instance.
    """

    model_config = ConfigDict(extra="ignore")

    host: Optional[str] = None
    type: str = WILDCARD_TYPE
    matching: Optional[Literal["contains", "exact"]] = None

    @field_validator("type")
    @classmethod
    def _normalize_type(cls, value: str) -> str:
        return value.strip().upper()

    @model_validator(mode="after")
    def _check_type_and_matching(self) -> "FilterConfig":
        if not self.is_usable() or self.type == WILDCARD_TYPE:
            return self
        if self.type not in QTYPE.reverse:
            raise ValueError(
                f"{self.type} is an invalid record type for filter host: {self.host}"
            )
        if self.matching is None:
            raise ValueError(
                f"Filter is required matching for host: {self.host} must be "
                'either "contains" or "exact"'
            )
        return self

    def is_usable(self) -> bool:
        return self.host is not None and len(self.host) >= MIN_FILTER_HOST_LEN

    def to_rule(self) -> FilterRule:
        if self.type == WILDCARD_TYPE:
            return FilterRule(str(self.host), ALL_QTYPES, exact=False)
        return FilterRule(
            str(self.host), QTYPE.reverse[self.type], exact=self.matching == "exact"
        )


class DNSFilterConfig(BaseModel):
    """Brief: Validated top-level configuration.

    Inputs:
      - host / port: Listener bind address (defaults localhost:1234).
      - timeout_ms: Per-upstream exchange timeout.
      - forwarders: Upstream entries; None when the key is absent.
      - filters: Block rule entries.
      - logfile: Legacy log file path, used when logging.file is unset.
      - logging: Options for dnsfilter.config.logging_config.init_logging.

    Outputs:
      - DNSFilterConfig instance.

    Example:
      >>> cfg = DNSFilterConfig.model_validate({"filters": [{"host": "ads.example.com"}]})
      >>> len(cfg.build_filter_set())
      1
    """

    model_config = ConfigDict(extra="ignore")

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, ge=1)
    forwarders: Optional[List[ForwarderConfig]] = None
    filters: List[FilterConfig] = Field(default_factory=list)
    logfile: Optional[str] = None
    logging: Dict[str, Any] = Field(default_factory=dict)

    def forwarder_endpoints(self) -> List[ForwarderEndpoint]:
        """Brief: Usable forwarders in order, or the built-in list when none are.

        Inputs:
          - None.

        Outputs:
          - Non-empty list of ForwarderEndpoint.
        """
        if self.forwarders is None:
            return list(DEFAULT_FORWARDERS)

        endpoints: List[ForwarderEndpoint] = []
        for entry in self.forwarders:
            if not entry.is_usable():
                logger.debug("Skipping forwarder without a usable host: %r", entry.host)
                continue
            endpoints.append(entry.to_endpoint())

        if not endpoints:
            logger.warning("No usable forwarders configured; using built-in defaults")
            return list(DEFAULT_FORWARDERS)
        return endpoints

    def filter_rules(self) -> List[FilterRule]:
        rules: List[FilterRule] = []
        for entry in self.filters:
            if not entry.is_usable():
                logger.debug("Skipping filter without a usable host: %r", entry.host)
                continue
            rules.append(entry.to_rule())
        return rules

    def build_filter_set(self) -> FilterSet:
        return FilterSet(self.filter_rules())

    def build_forwarder_pool(
        self, logger: Optional[logging.Logger] = None
    ) -> ForwarderPool:
        return ForwarderPool(
            self.forwarder_endpoints(), timeout_ms=self.timeout_ms, logger=logger
        )

    def logging_config(self) -> Dict[str, Any]:
        """Brief: Logging options with the log file default applied.

        Inputs:
          - None.

        Outputs:
          - dict suitable for init_logging(). "file" comes from logging.file,
            then logfile, then filter-dns.log in the working directory.
        """
        cfg = dict(self.logging)
        if not cfg.get("file"):
            cfg["file"] = self.logfile or os.path.join(os.getcwd(), DEFAULT_LOGFILE)
        return cfg


def load_config(
    cfg: Dict[str, Any], *, config_path: Optional[str] = None
) -> DNSFilterConfig:
    """Brief: Validate a parsed mapping and build the typed configuration.

    Inputs:
      - cfg: Configuration mapping (e.g. from yaml.safe_load).
      - config_path: Optional file path used in error messages.

    Outputs:
      - DNSFilterConfig.

    Raises:
      - ConfigError: schema or model validation failed.
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Configuration root must be a mapping")

    try:
        validate_config(cfg, config_path=config_path)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    try:
        return DNSFilterConfig.model_validate(cfg)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid configuration in {config_path or '<config dict>'}: {exc}"
        ) from exc


def parse_config_file(config_path: str) -> DNSFilterConfig:
    """Brief: Read, schema-validate and deserialize a config file.

    Inputs:
      - config_path: Path to a YAML or JSON configuration file.

    Outputs:
      - DNSFilterConfig.

    Raises:
      - ConfigError: the file cannot be read or parsed, or validation fails.
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse configuration {config_path}: {exc}") from exc

    return load_config(cfg if cfg is not None else {}, config_path=config_path)
