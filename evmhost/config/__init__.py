"""
evmhost Configuration

Loads all sections of evmhost.toml. Environment variables override TOML
values.
"""

from .loader import (
    EvmHostConfig,
    VMConfig,
    HostConfig,
    TxConfig,
    ExecutionConfig,
    StorageConfig,
    load_config,
)

__all__ = [
    "EvmHostConfig",
    "VMConfig",
    "HostConfig",
    "TxConfig",
    "ExecutionConfig",
    "StorageConfig",
    "load_config",
]
