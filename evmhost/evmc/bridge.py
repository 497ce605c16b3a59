"""
Host Context Ownership Bridge

Moves host objects across the native boundary as opaque
``struct evmc_host_context *`` values.

Objects live in an arena of generation-checked slots. The opaque pointer
handed to the interpreter is not a memory address but an encoded
(generation, slot) handle, so a stale or foreign pointer is detected instead
of being dereferenced:

    handle = registry.into_opaque(host)       # arena owns host
    with registry.borrow(handle, StateHost) as host:
        ...                                   # callbacks only borrow
    host = registry.reclaim(handle, StateHost)  # caller owns host again

Exactly one side holds the object at any time: the arena between
``into_opaque`` and ``reclaim``, the caller otherwise.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generic, Iterator, List, Optional, Type, TypeVar

from ..exceptions import FatalHostError
from ..logger import get_logger
from .native import ffi, pointer_value

logger = get_logger(__name__)

T = TypeVar("T")

_SLOT_BITS = 32
_SLOT_MASK = (1 << _SLOT_BITS) - 1
# handles must fit in a 64-bit pointer
_GENERATION_MASK = (1 << 31) - 1


@dataclass
class _Slot:
    generation: int = 0
    obj: Any = None
    kind: Optional[type] = None


class HandleRegistry(Generic[T]):
    """
    Arena of host objects addressed by opaque handles.

    Args:
        base: Every inserted object must be an instance of this type.
    """

    def __init__(self, base: Type[T] = object):
        self.base = base
        self._slots: List[_Slot] = []
        self._free: List[int] = []
        self._live = 0

    def __len__(self) -> int:
        return self._live

    def into_opaque(self, obj: T):
        """
        Take ``obj`` into the arena and return its opaque pointer.

        The pointer stays valid until ``reclaim`` is called with it.
        """
        if not isinstance(obj, self.base):
            raise FatalHostError(
                f"Cannot register {type(obj).__name__}: not a {self.base.__name__}"
            )
        if self._free:
            index = self._free.pop()
        else:
            self._slots.append(_Slot())
            index = len(self._slots) - 1

        slot = self._slots[index]
        slot.obj = obj
        slot.kind = type(obj)
        self._live += 1

        handle = (slot.generation << _SLOT_BITS) | (index + 1)
        logger.debug(f"Host context {handle:#x} registered ({slot.kind.__name__})")
        return ffi.cast("struct evmc_host_context *", handle)

    def _resolve(self, ptr, kind: type) -> _Slot:
        handle = pointer_value(ptr)
        index = (handle & _SLOT_MASK) - 1
        generation = handle >> _SLOT_BITS

        if index < 0 or index >= len(self._slots):
            raise FatalHostError(f"Unknown host context handle {handle:#x}")
        slot = self._slots[index]
        if slot.obj is None or slot.generation != generation:
            raise FatalHostError(f"Stale host context handle {handle:#x}")
        if not issubclass(slot.kind, kind):
            raise FatalHostError(
                f"Host context {handle:#x} holds {slot.kind.__name__}, "
                f"borrowed as {kind.__name__}"
            )
        return slot

    @contextmanager
    def borrow(self, ptr, kind: Optional[Type[T]] = None) -> Iterator[T]:
        """
        Yield the object behind ``ptr`` without taking it out of the arena.

        Leaving the block never releases the slot: the interpreter still
        holds the pointer and passes it back on the next callback.
        """
        slot = self._resolve(ptr, kind or self.base)
        obj = slot.obj
        yield obj
        if slot.obj is not obj:
            raise FatalHostError("Host context was reclaimed while borrowed")

    def reclaim(self, ptr, kind: Optional[Type[T]] = None) -> T:
        """Remove the object behind ``ptr`` from the arena and return it."""
        slot = self._resolve(ptr, kind or self.base)
        obj = slot.obj
        index = (pointer_value(ptr) & _SLOT_MASK) - 1

        slot.obj = None
        slot.kind = None
        slot.generation = (slot.generation + 1) & _GENERATION_MASK
        self._free.append(index)
        self._live -= 1
        return obj
