"""
EVMC Boundary

Everything that touches cdata: the ABI declarations, value types, the
ownership bridge, the host vtable and the interpreter adapter.
"""

from .bridge import HandleRegistry
from .interface import HostContext, HostInterface
from .native import ffi
from .types import (
    Address,
    Bytes32,
    CallKind,
    ExecutionMessage,
    ExecutionResult,
    MessageFlags,
    Revision,
    StatusCode,
    StorageStatus,
    TxContext,
    Uint256,
    ZERO_ADDRESS,
    ZERO_WORD,
)
from .vm import EvmcVM, ExecutionContext, Executor, create_symbol_for, find_vm_library

__all__ = [
    "Address",
    "Bytes32",
    "CallKind",
    "EvmcVM",
    "ExecutionContext",
    "ExecutionMessage",
    "ExecutionResult",
    "Executor",
    "HandleRegistry",
    "HostContext",
    "HostInterface",
    "MessageFlags",
    "Revision",
    "StatusCode",
    "StorageStatus",
    "TxContext",
    "Uint256",
    "ZERO_ADDRESS",
    "ZERO_WORD",
    "create_symbol_for",
    "ffi",
    "find_vm_library",
]
