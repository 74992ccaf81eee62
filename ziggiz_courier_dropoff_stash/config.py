# -*- coding: utf-8 -*-

# SPDX-License-Identifier: BSL-1.1
# Copyright (c) 2025 Ziggiz Inc.
#
# This file is part of the ziggiz-courier-core-data-processing and is licensed under the
# Business Source License 1.1. You may not use this file except in
# compliance with the License. You may obtain a copy of the License at:
# https://github.com/ziggiz-courier/ziggiz-courier-core-data-processing/blob/main/LICENSE
# Configuration models for the stash client and the shipper command

# Standard library imports
import logging
import ssl

from pathlib import Path
from typing import List, Optional, Union

# Third-party imports
import yaml

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

VALID_PROTOCOLS = ["tcp", "udp"]
VALID_TLS_VERSIONS = ["TLSv1_2", "TLSv1_3"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Defaults, in seconds
DEFAULT_KEEP_ALIVE = 5 * 60.0
DEFAULT_TIMEOUT = 30.0


def _check_protocol(v: str) -> str:
    v = v.lower()
    if v not in VALID_PROTOCOLS:
        raise ValueError(f"Invalid protocol: {v}. Must be one of {VALID_PROTOCOLS}")
    return v


def _check_tls_version(v: str) -> str:
    for ver in VALID_TLS_VERSIONS:
        if v.upper() == ver.upper():
            return ver
    raise ValueError(f"Invalid TLS version: {v}. Must be one of {VALID_TLS_VERSIONS}")


class LoggerConfig(BaseModel):
    """
    Configuration for individual loggers.

    Attributes:
        name (str): Logger name.
        level (str): Logging level (default: "INFO").
        propagate (bool): Whether to propagate logs to parent (default: True).
    """

    name: str
    level: str = "INFO"
    propagate: bool = True


class CertificateRuleConfig(BaseModel):
    """
    Configuration for a server certificate verification rule.

    Attributes:
        attribute (str): The certificate attribute to check (e.g., "CN", "OU").
        pattern (str): The regex pattern to match against the attribute value.
        required (bool): Whether this attribute is required to be present (default: True).
    """

    attribute: str
    pattern: str
    required: bool = True


class StashOptions(BaseModel):
    """
    Option set used to dial a log endpoint.

    The options are resolved once at connect time and are reused unchanged
    when the client redials after a broken connection. Durations are in
    seconds; 0 or None disables the corresponding timeout.

    When use_tls is set and no tls_context is given, a client context is
    built from the tls_* file options and skip_verify. When server_name is
    not set, the target host is used for SNI and hostname checks.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    protocol: str = "tcp"  # "tcp" or "udp"

    # TLS configuration
    use_tls: bool = False
    skip_verify: bool = False  # Only used when tls_context is None
    tls_context: Optional[ssl.SSLContext] = None
    server_name: Optional[str] = None
    tls_ca_certs: Optional[str] = None  # CA bundle used to verify the server
    tls_certfile: Optional[str] = None  # Client certificate for mutual TLS
    tls_keyfile: Optional[str] = None  # Client private key for mutual TLS
    tls_min_version: str = "TLSv1_2"
    tls_ciphers: Optional[str] = None
    tls_cert_rules: List[CertificateRuleConfig] = Field(default_factory=list)

    # Socket behaviour
    keep_alive: Optional[float] = Field(default=DEFAULT_KEEP_ALIVE, ge=0)
    read_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)
    write_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)
    dial_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        """Validate that the protocol is either TCP or UDP."""
        return _check_protocol(v)

    @field_validator("tls_min_version")
    @classmethod
    def validate_tls_min_version(cls, v: str) -> str:
        """Validate that the TLS version is valid."""
        return _check_tls_version(v)

    @model_validator(mode="after")
    def validate_tls(self) -> "StashOptions":
        """Validate combinations of TLS options."""
        if self.use_tls and self.protocol != "tcp":
            raise ValueError("TLS can only be used with the tcp protocol")
        if self.tls_keyfile and not self.tls_certfile:
            raise ValueError("tls_keyfile requires tls_certfile")
        if self.tls_cert_rules:
            if not self.use_tls:
                raise ValueError("Certificate rules can only be used when use_tls is True")
            if self.tls_context is None and self.skip_verify:
                raise ValueError(
                    "Certificate rules can only be used when server verification is enabled "
                    "(skip_verify must be False)"
                )
        return self

    @property
    def tls_version(self) -> ssl.TLSVersion:
        return getattr(ssl.TLSVersion, self.tls_min_version)

    def with_overrides(self, **overrides) -> "StashOptions":
        """
        Return a validated copy of these options with some fields replaced.

        Args:
            **overrides: Field names and their new values

        Returns:
            A new StashOptions instance

        Raises:
            pydantic.ValidationError: If a name is not a StashOptions field or
                a value is invalid
        """
        if not overrides:
            return self
        values = dict(self)
        values.update(overrides)
        return StashOptions(**values)


class Config(BaseModel):
    """
    Main configuration class for the Ziggiz Courier Dropoff Stash shipper.

    This class defines the endpoint to ship to, the connection options,
    and the logging and tracing setup of the shipper process itself.
    """

    # Endpoint configuration
    host: str = "localhost"
    port: int = Field(default=5000, ge=1, le=65535)
    protocol: str = "tcp"  # "tcp" or "udp"

    # TLS configuration
    use_tls: bool = False
    skip_verify: bool = False
    server_name: Optional[str] = None
    tls_ca_certs: Optional[str] = None
    tls_certfile: Optional[str] = None
    tls_keyfile: Optional[str] = None
    tls_min_version: str = "TLSv1_2"
    tls_ciphers: Optional[str] = None
    tls_cert_rules: List[CertificateRuleConfig] = Field(default_factory=list)

    # Socket behaviour
    keep_alive: Optional[float] = Field(default=DEFAULT_KEEP_ALIVE, ge=0)
    read_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)
    write_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)
    dial_timeout: Optional[float] = Field(default=DEFAULT_TIMEOUT, ge=0)

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    loggers: List[LoggerConfig] = Field(default_factory=list)

    # Tracing configuration
    enable_tracing: bool = False  # Export write spans to the console

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate that the host is not empty."""
        if not v:
            raise ValueError("host must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a valid Python logging level."""
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v

    @field_validator("protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        """Validate that the protocol is either TCP or UDP."""
        return _check_protocol(v)

    @field_validator("tls_min_version")
    @classmethod
    def validate_tls_min_version(cls, v: str) -> str:
        """Validate that the TLS version is valid."""
        return _check_tls_version(v)

    def to_stash_options(self) -> StashOptions:
        """
        Build the client option set from this configuration.

        Returns:
            A StashOptions instance

        Raises:
            pydantic.ValidationError: If the TLS settings are inconsistent
        """
        return StashOptions(
            protocol=self.protocol,
            use_tls=self.use_tls,
            skip_verify=self.skip_verify,
            server_name=self.server_name,
            tls_ca_certs=self.tls_ca_certs,
            tls_certfile=self.tls_certfile,
            tls_keyfile=self.tls_keyfile,
            tls_min_version=self.tls_min_version,
            tls_ciphers=self.tls_ciphers,
            tls_cert_rules=self.tls_cert_rules,
            keep_alive=self.keep_alive,
            read_timeout=self.read_timeout,
            write_timeout=self.write_timeout,
            dial_timeout=self.dial_timeout,
        )


def load_config(config_path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the configuration file. If None, will look for config.yaml
                   in the current directory and default directories.

    Returns:
        A Config object containing the loaded configuration.

    Raises:
        FileNotFoundError: If the configuration file cannot be found.
        yaml.YAMLError: If the configuration file contains invalid YAML.
    """
    # Default search paths
    search_paths = [
        Path.cwd() / "config.yaml",
        Path.cwd() / "config.yml",
        Path("/etc/ziggiz-courier-dropoff-stash/config.yaml"),
        Path("/etc/ziggiz-courier-dropoff-stash/config.yml"),
    ]

    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")
    else:
        for path in search_paths:
            if path.exists():
                config_file = path
                break
        else:
            logging.warning("No configuration file found, using default configuration")
            return Config()

    with open(config_file, "r") as f:
        try:
            config_data = yaml.safe_load(f) or {}
            return Config(**config_data)
        except yaml.YAMLError as e:
            logging.error("Error parsing configuration file", extra={"error": e})
            raise
        except Exception as e:
            logging.error("Error loading configuration", extra={"error": e})
            raise


def configure_logging(config: "Config") -> None:
    """
    Configure logging based on the provided configuration.

    Args:
        config: The loaded configuration object.
    """
    # Reset logging configuration
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    level = getattr(logging, config.log_level, logging.INFO)
    formatter = logging.Formatter(config.log_format, datefmt=config.log_date_format)

    # Add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logging.root.setLevel(level)
    logging.root.addHandler(console_handler)

    for logger_config in config.loggers:
        logger = logging.getLogger(logger_config.name)
        logger.setLevel(getattr(logging, logger_config.level, logging.INFO))
        logger.propagate = logger_config.propagate
