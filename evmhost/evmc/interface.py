"""
EVMC Host Interface

``HostContext`` is the capability set an interpreter needs from its host.
``HostInterface`` turns it into one native ``struct evmc_host_interface``:
a table of cffi trampolines that decode raw arguments, borrow the context
named by the opaque pointer, call the matching ``HostContext`` method and
encode its return value.

The table is built once per registry and dispatches dynamically, so any
``HostContext`` subclass can be served by the same vtable.

No exception can cross the C calling convention. A trampoline that fails
records the error as fatal, logs it and hands the interpreter a neutral
value; ``take_fatal()`` is checked by the execution adapter right after the
native call returns.
"""

import os
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..exceptions import FatalHostError
from ..logger import get_logger
from .bridge import HandleRegistry
from .native import ffi, pointer_value, read_bytes
from .types import (
    Address,
    Bytes32,
    ExecutionMessage,
    ExecutionResult,
    StatusCode,
    StorageStatus,
    TxContext,
    Uint256,
)

logger = get_logger(__name__)


class HostContext(ABC):
    """Blockchain state callbacks invoked by the interpreter."""

    @abstractmethod
    def get_tx_context(self) -> TxContext:
        ...

    @abstractmethod
    def account_exists(self, address: Address) -> bool:
        ...

    @abstractmethod
    def get_storage(self, address: Address, key: Bytes32) -> Bytes32:
        ...

    @abstractmethod
    def set_storage(self, address: Address, key: Bytes32, value: Bytes32) -> StorageStatus:
        ...

    @abstractmethod
    def get_balance(self, address: Address) -> Uint256:
        ...

    @abstractmethod
    def call(self, message: ExecutionMessage) -> ExecutionResult:
        ...

    @abstractmethod
    def selfdestruct(self, address: Address, beneficiary: Address) -> None:
        ...

    @abstractmethod
    def emit_log(self, address: Address, data: bytes, topics: List[Bytes32]) -> None:
        ...

    @abstractmethod
    def copy_code(self, address: Address, code_offset: int, size: int) -> bytes:
        """Return at most ``size`` bytes of code starting at ``code_offset``."""

    @abstractmethod
    def get_code_size(self, address: Address) -> int:
        ...

    @abstractmethod
    def get_code_hash(self, address: Address) -> Bytes32:
        ...

    @abstractmethod
    def get_block_hash(self, number: int) -> Bytes32:
        ...


class HostInterface:
    """
    Native vtable serving every ``HostContext`` held by ``registry``.

    Args:
        registry: Arena the opaque context pointers are resolved against
        abort_on_fatal: Abort the process from inside the failing callback
            instead of reporting the error once the interpreter returns
    """

    def __init__(self, registry: Optional[HandleRegistry] = None, abort_on_fatal: bool = False):
        self.registry = registry if registry is not None else HandleRegistry(HostContext)
        self.abort_on_fatal = abort_on_fatal
        self._fatal: Optional[FatalHostError] = None
        # output buffers of results handed to the interpreter, until released
        self._pending_outputs: Dict[int, object] = {}
        self._callbacks: List[object] = []
        self.raw = self._build()

    # --- fatal error channel ------------------------------------------------

    def take_fatal(self) -> Optional[FatalHostError]:
        """Return and clear the error recorded by a failed trampoline."""
        error, self._fatal = self._fatal, None
        return error

    def _record_fatal(self, name: str, exc_value: BaseException) -> None:
        if isinstance(exc_value, FatalHostError):
            error = exc_value
        else:
            error = FatalHostError(f"Host callback {name} raised {exc_value!r}")
            error.__cause__ = exc_value

        logger.critical(f"Fatal error in host callback {name}: {error}", exc_info=exc_value)
        if self.abort_on_fatal:
            os.abort()
        if self._fatal is None:
            self._fatal = error

    def _on_error(self, name: str, fallback=None):
        def handler(exception, exc_value, traceback):
            self._record_fatal(name, exc_value)
            return fallback() if fallback is not None else None
        return handler

    # --- result ownership ---------------------------------------------------

    def result_to_raw(self, result: ExecutionResult):
        """
        Build a ``struct evmc_result`` for the interpreter.

        The output buffer stays alive until the interpreter calls the
        result's ``release`` callback.
        """
        raw = ffi.new("struct evmc_result *")
        raw.status_code = int(result.status_code)
        raw.gas_left = result.gas_left
        result.create_address.write_raw(raw.create_address)
        if result.output:
            buffer = ffi.new("uint8_t[]", len(result.output))
            ffi.memmove(buffer, result.output, len(result.output))
            self._pending_outputs[pointer_value(buffer)] = buffer
            raw.output_data = buffer
            raw.output_size = len(result.output)
            raw.release = self._release_result
        return raw[0]

    @property
    def pending_outputs(self) -> int:
        """Number of results handed out and not yet released."""
        return len(self._pending_outputs)

    # --- trampolines --------------------------------------------------------

    def _build(self):
        registry = self.registry

        @ffi.callback("evmc_release_result_fn", onerror=self._on_error("release"))
        def release_result(result):
            self._pending_outputs.pop(pointer_value(result.output_data), None)

        @ffi.callback("evmc_get_tx_context_fn", onerror=self._on_error("get_tx_context"))
        def get_tx_context(context):
            with registry.borrow(context) as host:
                return host.get_tx_context().to_raw()[0]

        @ffi.callback("evmc_account_exists_fn", onerror=self._on_error("account_exists"))
        def account_exists(context, address):
            with registry.borrow(context) as host:
                return bool(host.account_exists(Address.from_raw(address)))

        @ffi.callback("evmc_get_storage_fn", onerror=self._on_error("get_storage"))
        def get_storage(context, address, key):
            with registry.borrow(context) as host:
                value = host.get_storage(Address.from_raw(address), Bytes32.from_raw(key))
            return value.to_raw()[0]

        @ffi.callback("evmc_set_storage_fn", onerror=self._on_error("set_storage"))
        def set_storage(context, address, key, value):
            with registry.borrow(context) as host:
                status = host.set_storage(
                    Address.from_raw(address),
                    Bytes32.from_raw(key),
                    Bytes32.from_raw(value),
                )
            return int(status)

        @ffi.callback("evmc_get_balance_fn", onerror=self._on_error("get_balance"))
        def get_balance(context, address):
            with registry.borrow(context) as host:
                balance = host.get_balance(Address.from_raw(address))
            return balance.to_raw()[0]

        @ffi.callback("evmc_get_code_size_fn", onerror=self._on_error("get_code_size"))
        def get_code_size(context, address):
            with registry.borrow(context) as host:
                return host.get_code_size(Address.from_raw(address))

        @ffi.callback("evmc_get_code_hash_fn", onerror=self._on_error("get_code_hash"))
        def get_code_hash(context, address):
            with registry.borrow(context) as host:
                code_hash = host.get_code_hash(Address.from_raw(address))
            return code_hash.to_raw()[0]

        @ffi.callback("evmc_copy_code_fn", onerror=self._on_error("copy_code"))
        def copy_code(context, address, code_offset, buffer_data, buffer_size):
            with registry.borrow(context) as host:
                chunk = host.copy_code(Address.from_raw(address), code_offset, buffer_size)
            written = min(len(chunk), buffer_size)
            if written:
                ffi.memmove(buffer_data, chunk, written)
            return written

        @ffi.callback("evmc_selfdestruct_fn", onerror=self._on_error("selfdestruct"))
        def selfdestruct(context, address, beneficiary):
            with registry.borrow(context) as host:
                host.selfdestruct(Address.from_raw(address), Address.from_raw(beneficiary))

        @ffi.callback(
            "evmc_call_fn",
            onerror=self._on_error("call", lambda: self.result_to_raw(ExecutionResult.failure())),
        )
        def call(context, msg):
            message = ExecutionMessage.from_raw(msg)
            with registry.borrow(context) as host:
                result = host.call(message)
            return self.result_to_raw(result)

        @ffi.callback("evmc_get_block_hash_fn", onerror=self._on_error("get_block_hash"))
        def get_block_hash(context, number):
            with registry.borrow(context) as host:
                block_hash = host.get_block_hash(number)
            return block_hash.to_raw()[0]

        @ffi.callback("evmc_emit_log_fn", onerror=self._on_error("emit_log"))
        def emit_log(context, address, data, data_size, topics, topics_count):
            topic_list = [Bytes32.from_raw(topics[i]) for i in range(topics_count)]
            with registry.borrow(context) as host:
                host.emit_log(Address.from_raw(address), read_bytes(data, data_size), topic_list)

        self._release_result = release_result
        self._callbacks = [
            release_result, get_tx_context, account_exists, get_storage,
            set_storage, get_balance, get_code_size, get_code_hash, copy_code,
            selfdestruct, call, get_block_hash, emit_log,
        ]
        return ffi.new("struct evmc_host_interface *", {
            "account_exists": account_exists,
            "get_storage": get_storage,
            "set_storage": set_storage,
            "get_balance": get_balance,
            "get_code_size": get_code_size,
            "get_code_hash": get_code_hash,
            "copy_code": copy_code,
            "selfdestruct": selfdestruct,
            "call": call,
            "get_tx_context": get_tx_context,
            "get_block_hash": get_block_hash,
            "emit_log": emit_log,
        })
