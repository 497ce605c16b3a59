"""
EVMC Execution Adapter

Wraps an interpreter's single ``execute`` entry point.

- ``EvmcVM`` holds a ``struct evmc_vm *`` (loaded from a shared library, or
  built in-process) and marshals messages and results across it.
- ``ExecutionContext`` bundles the host vtable, the opaque context pointer
  and the transaction context fetched once through the vtable.
- ``Executor`` runs a ``HostContext`` against code: it hands the host to
  the ownership bridge, executes, and always takes the host back.
"""

import os
from pathlib import Path
from typing import Iterable, Optional

from ..constants import DEFAULT_LIBRARY_DIRS, EVMC_ABI_VERSION
from ..exceptions import VMLoadError
from ..logger import get_logger
from .interface import HostContext, HostInterface
from .native import ffi
from .types import ExecutionMessage, ExecutionResult, Revision, TxContext

logger = get_logger(__name__)

_declared_symbols = set()


def find_vm_library(filename: str, search_dirs: Optional[Iterable[str]] = None) -> Path:
    """
    Locate an interpreter shared library.

    A path containing a directory is returned as-is if it exists. A bare
    file name is searched in ``LD_LIBRARY_PATH`` first, then in
    ``search_dirs`` (``/usr/lib`` and ``/usr/local/lib`` by default).

    Raises:
        VMLoadError: if the library cannot be found
    """
    candidate = Path(filename)
    if candidate.parent != Path("."):
        if candidate.is_file():
            return candidate
        raise VMLoadError(f"Can not find {filename}")

    directories = []
    ld_path = os.environ.get("LD_LIBRARY_PATH")
    if ld_path:
        directories.extend(p for p in ld_path.split(os.pathsep) if p)
    directories.extend(search_dirs if search_dirs is not None else DEFAULT_LIBRARY_DIRS)

    for directory in directories:
        path = Path(directory) / filename
        if path.is_file():
            return path
    raise VMLoadError(f"Can not find {filename}")


def create_symbol_for(path: Path) -> str:
    """
    Derive the EVMC create function name from a library file name.

    ``libevmone.so`` -> ``evmc_create_evmone``,
    ``libevm-jit.so.1`` -> ``evmc_create_evm_jit``.
    """
    name = path.name.split(".", 1)[0]
    if name.startswith("lib"):
        name = name[3:]
    name = name.replace("-", "_")
    if not name:
        raise VMLoadError(f"Can not derive create function from {path}")
    return f"evmc_create_{name}"


class ExecutionContext:
    """
    Host side of one top-level execution.

    The transaction context is fetched eagerly through the vtable and cached;
    it is assumed constant for the whole execution.
    """

    def __init__(self, interface: HostInterface, context):
        self.interface = interface
        self.context = context
        self.tx_context = TxContext.from_raw(interface.raw.get_tx_context(context))
        error = interface.take_fatal()
        if error is not None:
            raise error


class EvmcVM:
    """
    An EVMC interpreter instance.

    Args:
        raw: ``struct evmc_vm *``
        library: The library ``raw`` came from, kept open while in use
    """

    def __init__(self, raw, library=None):
        if not raw:
            raise VMLoadError("Interpreter create function returned NULL")
        if raw.abi_version != EVMC_ABI_VERSION:
            raise VMLoadError(
                f"Interpreter ABI version {raw.abi_version} is not supported "
                f"(expected {EVMC_ABI_VERSION})"
            )
        self.raw = raw
        self._library = library

    @classmethod
    def load(cls, filename: str, create_symbol: Optional[str] = None) -> "EvmcVM":
        """Open an interpreter library and create an instance from it."""
        path = find_vm_library(filename)
        symbol = create_symbol or create_symbol_for(path)
        if symbol not in _declared_symbols:
            ffi.cdef(f"struct evmc_vm *{symbol}(void);")
            _declared_symbols.add(symbol)

        try:
            library = ffi.dlopen(str(path))
            create = getattr(library, symbol)
        except (OSError, AttributeError) as e:
            raise VMLoadError(f"Failed to load {path}: {e}") from e

        vm = cls(create(), library)
        logger.info(f"Loaded interpreter {vm.name} {vm.version} from {path}")
        return vm

    @property
    def name(self) -> str:
        if not self.raw.name:
            return ""
        return ffi.string(self.raw.name).decode()

    @property
    def version(self) -> str:
        if not self.raw.version:
            return ""
        return ffi.string(self.raw.version).decode()

    def execute(
        self,
        revision: Revision,
        code: bytes,
        message: ExecutionMessage,
        context: ExecutionContext,
    ) -> ExecutionResult:
        """
        Run ``code`` for ``message`` with the host behind ``context``.

        ``code`` and ``message.input`` are borrowed for the duration of the
        call only. The raw result is copied and released before returning.

        Raises:
            FatalHostError: if a host callback failed during execution
        """
        raw_message, _input = message.to_raw()
        code_buffer = ffi.from_buffer("uint8_t[]", code)

        raw_result = self.raw.execute(
            self.raw,
            context.interface.raw,
            context.context,
            int(revision),
            raw_message,
            code_buffer,
            len(code),
        )
        result = ExecutionResult.from_raw(raw_result)
        if raw_result.release:
            raw_result.release(ffi.addressof(raw_result))

        error = context.interface.take_fatal()
        if error is not None:
            raise error
        return result

    def destroy(self) -> None:
        """Destroy the native instance. The object is unusable afterwards."""
        if self.raw is not None and self.raw.destroy:
            self.raw.destroy(self.raw)
        self.raw = None
        self._library = None


class Executor:
    """
    Runs host contexts against code on one interpreter and revision.

    Args:
        vm: Interpreter
        interface: Host vtable (and the registry its pointers resolve in)
        revision: Rule set passed to every execution
    """

    def __init__(self, vm: EvmcVM, interface: HostInterface, revision: Revision):
        self.vm = vm
        self.interface = interface
        self.revision = revision

    def run(self, host: HostContext, code: bytes, message: ExecutionMessage) -> ExecutionResult:
        registry = self.interface.registry
        context = registry.into_opaque(host)
        try:
            execution_context = ExecutionContext(self.interface, context)
            return self.vm.execute(self.revision, code, message, execution_context)
        finally:
            registry.reclaim(context, type(host))
