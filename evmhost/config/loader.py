"""
evmhost TOML Configuration Loader

Loads every section of evmhost.toml with environment variable overrides
(dataclass + from_dict + from_file per section).

Environment variable mapping:
    [vm] library          → EVMHOST_VM_LIBRARY
    [vm] revision         → EVMHOST_REVISION
    [host] abort_on_fatal → EVMHOST_ABORT_ON_FATAL
    [execution] gas       → EVMHOST_GAS
    [storage] state_file  → EVMHOST_STATE_FILE
    ...
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from eth_utils import is_hex_address

from ..constants import (
    DEFAULT_GAS,
    DEFAULT_SENDER,
    EVMHOST_REVISION,
    EVMHOST_STATE_FILE,
    EVMHOST_VM_LIBRARY,
    LOG_LEVEL,
)
from ..evmc.types import Address, Revision, TxContext, Uint256
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_int(name: str) -> Optional[int]:
    v = os.environ.get(name)
    if not v:
        return None
    try:
        return int(v, 0)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}") from None


def _env_bool(name: str) -> Optional[bool]:
    v = os.environ.get(name)
    if not v:
        return None
    return v.strip().lower() in ("1", "true", "yes")


def _check_int(section: str, name: str, value: Any, low: int, high: int) -> None:
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"[{section}] {name} must be an integer, got {value!r}")
    if not low <= value < high:
        raise ConfigurationError(f"[{section}] {name} out of range: {value}")


def _check_str(section: str, name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigurationError(f"[{section}] {name} must be a string, got {value!r}")



# ---------------------------------------------------------------------------
# Section dataclasses, one per [section] of config.example.toml
# ---------------------------------------------------------------------------


@dataclass
class VMConfig:
    """[vm] section."""
    library: str = str(EVMHOST_VM_LIBRARY)
    # derived from the library file name when empty
    create_symbol: str = ""
    revision: str = str(EVMHOST_REVISION)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VMConfig":
        return cls(
            library=data.get("library", str(EVMHOST_VM_LIBRARY)),
            create_symbol=data.get("create_symbol", ""),
            revision=data.get("revision", str(EVMHOST_REVISION)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("EVMHOST_VM_LIBRARY"):
            self.library = v
        if v := os.environ.get("EVMHOST_CREATE_SYMBOL"):
            self.create_symbol = v
        if v := os.environ.get("EVMHOST_REVISION"):
            self.revision = v

    def validate(self) -> None:
        for name in ("library", "create_symbol", "revision"):
            _check_str("vm", name, getattr(self, name))
        if not self.library:
            raise ConfigurationError("[vm] library must be set")
        try:
            Revision.from_name(self.revision)
        except ValueError as e:
            raise ConfigurationError(f"[vm] {e}") from e

    @property
    def revision_value(self) -> Revision:
        return Revision.from_name(self.revision)


@dataclass
class HostConfig:
    """[host] section."""
    abort_on_fatal: bool = False
    log_level: str = str(LOG_LEVEL)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostConfig":
        return cls(
            abort_on_fatal=data.get("abort_on_fatal", False),
            log_level=data.get("log_level", str(LOG_LEVEL)),
        )

    def apply_env(self) -> None:
        if (v := _env_bool("EVMHOST_ABORT_ON_FATAL")) is not None:
            self.abort_on_fatal = v
        if v := os.environ.get("EVMHOST_LOG_LEVEL"):
            self.log_level = v

    def validate(self) -> None:
        if not isinstance(self.abort_on_fatal, bool):
            raise ConfigurationError(f"[host] abort_on_fatal must be a boolean, got {self.abort_on_fatal!r}")
        _check_str("host", "log_level", self.log_level)
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")


@dataclass
class TxConfig:
    """[tx] section. Values handed to the interpreter by get_tx_context."""
    gas_price: int = 0
    origin: str = "0x" + "00" * 20
    coinbase: str = "0x" + "00" * 20
    block_number: int = 0
    block_timestamp: int = 0
    block_gas_limit: int = 0
    block_difficulty: int = 0
    chain_id: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TxConfig":
        defaults = cls()
        return cls(**{
            name: data.get(name, getattr(defaults, name))
            for name in cls.__dataclass_fields__
        })

    def apply_env(self) -> None:
        if (v := _env_int("EVMHOST_CHAIN_ID")) is not None:
            self.chain_id = v
        if (v := _env_int("EVMHOST_BLOCK_NUMBER")) is not None:
            self.block_number = v

    def validate(self) -> None:
        for name in ("origin", "coinbase"):
            if not is_hex_address(getattr(self, name)):
                raise ConfigurationError(f"[tx] {name} is not an address: {getattr(self, name)}")
        for name in ("gas_price", "block_difficulty", "chain_id"):
            _check_int("tx", name, getattr(self, name), 0, 1 << 256)
        for name in ("block_number", "block_timestamp", "block_gas_limit"):
            _check_int("tx", name, getattr(self, name), 0, 1 << 63)

    def to_tx_context(self) -> TxContext:
        return TxContext(
            gas_price=Uint256.from_int(self.gas_price),
            origin=Address.from_hex(self.origin),
            coinbase=Address.from_hex(self.coinbase),
            block_number=self.block_number,
            block_timestamp=self.block_timestamp,
            block_gas_limit=self.block_gas_limit,
            block_difficulty=Uint256.from_int(self.block_difficulty),
            chain_id=Uint256.from_int(self.chain_id),
        )


@dataclass
class ExecutionConfig:
    """[execution] section."""
    gas: int = DEFAULT_GAS
    sender: str = DEFAULT_SENDER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionConfig":
        return cls(
            gas=data.get("gas", DEFAULT_GAS),
            sender=data.get("sender", DEFAULT_SENDER),
        )

    def apply_env(self) -> None:
        if (v := _env_int("EVMHOST_GAS")) is not None:
            self.gas = v
        if v := os.environ.get("EVMHOST_SENDER"):
            self.sender = v

    def validate(self) -> None:
        _check_int("execution", "gas", self.gas, 1, 1 << 63)
        if not is_hex_address(self.sender):
            raise ConfigurationError(f"[execution] sender is not an address: {self.sender}")


@dataclass
class StorageConfig:
    """[storage] section."""
    state_file: str = str(EVMHOST_STATE_FILE)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageConfig":
        return cls(state_file=data.get("state_file", str(EVMHOST_STATE_FILE)))

    def apply_env(self) -> None:
        if v := os.environ.get("EVMHOST_STATE_FILE"):
            self.state_file = v

    def validate(self) -> None:
        _check_str("storage", "state_file", self.state_file)
        if not self.state_file:
            raise ConfigurationError("[storage] state_file must be set")


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class EvmHostConfig:
    """
    Unified evmhost configuration.

    Loads every section of evmhost.toml and applies environment variable
    overrides.
    """
    vm: VMConfig = field(default_factory=VMConfig)
    host: HostConfig = field(default_factory=HostConfig)
    tx: TxConfig = field(default_factory=TxConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvmHostConfig":
        """Create EvmHostConfig from a parsed TOML dict."""
        try:
            return cls(
                vm=VMConfig.from_dict(data.get("vm", {})),
                host=HostConfig.from_dict(data.get("host", {})),
                tx=TxConfig.from_dict(data.get("tx", {})),
                execution=ExecutionConfig.from_dict(data.get("execution", {})),
                storage=StorageConfig.from_dict(data.get("storage", {})),
            )
        except (AttributeError, TypeError) as e:
            raise ConfigurationError(f"Malformed configuration: {e}") from e

    @classmethod
    def from_file(cls, config_path: str) -> "EvmHostConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with env overrides applied).

        Raises:
            ConfigurationError: if the file is not valid TOML or fails
                validation
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
        else:
            try:
                with open(path, "rb") as f:
                    raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e
            cfg = cls.from_dict(raw)

        cfg.apply_env()
        cfg.validate()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.vm.apply_env()
        self.host.apply_env()
        self.tx.apply_env()
        self.execution.apply_env()
        self.storage.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        self.vm.validate()
        self.host.validate()
        self.tx.validate()
        self.execution.validate()
        self.storage.validate()
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "vm": {
                "library": self.vm.library,
                "create_symbol": self.vm.create_symbol,
                "revision": self.vm.revision,
            },
            "host": {
                "abort_on_fatal": self.host.abort_on_fatal,
                "log_level": self.host.log_level,
            },
            "tx": {name: getattr(self.tx, name) for name in TxConfig.__dataclass_fields__},
            "execution": {
                "gas": self.execution.gas,
                "sender": self.execution.sender,
            },
            "storage": {
                "state_file": self.storage.state_file,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> EvmHostConfig:
    """
    Load evmhost configuration.

    Resolution order:
        1. Explicit *path* argument
        2. EVMHOST_CONFIG env var
        3. ./evmhost.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("EVMHOST_CONFIG", "evmhost.toml")

    return EvmHostConfig.from_file(path)
