"""
Host State Machine

In-memory accounts and the ``HostContext`` that serves them to the
interpreter, including nested calls and creations.
"""

from .address import generate_contract_address, generate_contract_address_create2
from .context import StateHost, storage_status
from .state import (
    AccountData,
    HostState,
    LogEntry,
    StorageValue,
    load_state,
    save_state,
)

__all__ = [
    "AccountData",
    "HostState",
    "LogEntry",
    "StateHost",
    "StorageValue",
    "generate_contract_address",
    "generate_contract_address_create2",
    "load_state",
    "save_state",
    "storage_status",
]
