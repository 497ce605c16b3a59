"""
EVMC Value Types

Fixed-width byte values, the EVMC enums and the records exchanged with the
interpreter, each with a lossless conversion to and from its raw struct.
"""

from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Tuple

from eth_utils import decode_hex, encode_hex, to_checksum_address

from ..constants import ADDRESS_SIZE, WORD_SIZE
from .native import ffi, read_bytes


class FixedBytes(bytes):
    """
    Immutable byte string of a fixed size.

    Subclasses set ``size`` and ``ctype`` (the raw struct holding a
    ``bytes`` array of that size). Equality and hashing are those of
    ``bytes``.
    """

    size: int = 0
    ctype: str = ""

    def __new__(cls, value=None):
        if value is None:
            value = b"\x00" * cls.size
        elif isinstance(value, int):
            raise TypeError(f"{cls.__name__} expects bytes, got int; use from_int()")
        value = bytes(value)
        if len(value) != cls.size:
            raise ValueError(f"{cls.__name__} requires {cls.size} bytes, got {len(value)}")
        return super().__new__(cls, value)

    @classmethod
    def from_hex(cls, text: str):
        """Parse a ``0x``-prefixed or bare hex string."""
        return cls(decode_hex(text))

    @classmethod
    def from_raw(cls, raw):
        """Copy out of a raw struct (or pointer to one)."""
        return cls(read_bytes(raw.bytes, cls.size))

    def to_raw(self):
        """Allocate a new raw struct holding these bytes."""
        raw = ffi.new(f"{self.ctype} *")
        self.write_raw(raw)
        return raw

    def write_raw(self, raw) -> None:
        """Fill an existing raw struct in place."""
        ffi.memmove(raw.bytes, self, self.size)

    def to_hex(self) -> str:
        return encode_hex(self)

    def is_zero(self) -> bool:
        return not any(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({encode_hex(self)})"

    __str__ = to_hex


class Address(FixedBytes):
    size = ADDRESS_SIZE
    ctype = "evmc_address"

    @property
    def checksum(self) -> str:
        return to_checksum_address(self)


class Bytes32(FixedBytes):
    size = WORD_SIZE
    ctype = "evmc_bytes32"


class Uint256(Bytes32):
    """32-byte big-endian unsigned integer."""

    ctype = "evmc_uint256be"

    @classmethod
    def from_int(cls, value: int) -> "Uint256":
        if value < 0 or value >= 1 << 256:
            raise ValueError(f"{value} does not fit in 256 bits")
        return cls(value.to_bytes(cls.size, "big"))

    def __int__(self) -> int:
        return int.from_bytes(self, "big")


ZERO_ADDRESS = Address()
ZERO_WORD = Bytes32()


class CallKind(IntEnum):
    CALL = 0
    DELEGATECALL = 1
    CALLCODE = 2
    CREATE = 3
    CREATE2 = 4

    @property
    def is_create(self) -> bool:
        return self in (CallKind.CREATE, CallKind.CREATE2)


class MessageFlags(IntFlag):
    NONE = 0
    STATIC = 1


class Revision(IntEnum):
    FRONTIER = 0
    HOMESTEAD = 1
    TANGERINE_WHISTLE = 2
    SPURIOUS_DRAGON = 3
    BYZANTIUM = 4
    CONSTANTINOPLE = 5
    PETERSBURG = 6
    ISTANBUL = 7
    BERLIN = 8

    @classmethod
    def from_name(cls, name: str) -> "Revision":
        """Case-insensitive lookup, e.g. ``"petersburg"`` or ``"TANGERINE-WHISTLE"``."""
        key = name.strip().upper().replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown revision: {name}") from None


class StatusCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    REVERT = 2
    OUT_OF_GAS = 3
    INVALID_INSTRUCTION = 4
    UNDEFINED_INSTRUCTION = 5
    STACK_OVERFLOW = 6
    STACK_UNDERFLOW = 7
    BAD_JUMP_DESTINATION = 8
    INVALID_MEMORY_ACCESS = 9
    CALL_DEPTH_EXCEEDED = 10
    STATIC_MODE_VIOLATION = 11
    PRECOMPILE_FAILURE = 12
    CONTRACT_VALIDATION_FAILURE = 13
    ARGUMENT_OUT_OF_RANGE = 14
    WASM_UNREACHABLE_INSTRUCTION = 15
    WASM_TRAP = 16
    INTERNAL_ERROR = -1
    REJECTED = -2
    OUT_OF_MEMORY = -3


class StorageStatus(IntEnum):
    UNCHANGED = 0
    MODIFIED = 1
    MODIFIED_AGAIN = 2
    ADDED = 3
    DELETED = 4


@dataclass
class TxContext:
    """Transaction and block metadata, constant for one top-level execution."""
    gas_price: Uint256 = field(default_factory=Uint256)
    origin: Address = ZERO_ADDRESS
    coinbase: Address = ZERO_ADDRESS
    block_number: int = 0
    block_timestamp: int = 0
    block_gas_limit: int = 0
    block_difficulty: Uint256 = field(default_factory=Uint256)
    chain_id: Uint256 = field(default_factory=Uint256)

    @classmethod
    def from_raw(cls, raw) -> "TxContext":
        return cls(
            gas_price=Uint256.from_raw(raw.tx_gas_price),
            origin=Address.from_raw(raw.tx_origin),
            coinbase=Address.from_raw(raw.block_coinbase),
            block_number=raw.block_number,
            block_timestamp=raw.block_timestamp,
            block_gas_limit=raw.block_gas_limit,
            block_difficulty=Uint256.from_raw(raw.block_difficulty),
            chain_id=Uint256.from_raw(raw.chain_id),
        )

    def to_raw(self):
        raw = ffi.new("struct evmc_tx_context *")
        self.gas_price.write_raw(raw.tx_gas_price)
        self.origin.write_raw(raw.tx_origin)
        self.coinbase.write_raw(raw.block_coinbase)
        raw.block_number = self.block_number
        raw.block_timestamp = self.block_timestamp
        raw.block_gas_limit = self.block_gas_limit
        self.block_difficulty.write_raw(raw.block_difficulty)
        self.chain_id.write_raw(raw.chain_id)
        return raw


@dataclass
class ExecutionMessage:
    """
    A call or create request, as passed to ``execute`` and to ``call``.

    Attributes:
        kind: Call variant
        flags: Message flags (``STATIC``)
        depth: Call depth as seen by the interpreter
        gas: Gas available to the callee
        destination: Callee (ignored by the host for create kinds)
        sender: Caller
        input: Call data, or init code for create kinds
        value: Transferred value
        create2_salt: Salt for CREATE2 address derivation
    """
    kind: CallKind = CallKind.CALL
    flags: MessageFlags = MessageFlags.NONE
    depth: int = 0
    gas: int = 0
    destination: Address = ZERO_ADDRESS
    sender: Address = ZERO_ADDRESS
    input: bytes = b""
    value: Uint256 = field(default_factory=Uint256)
    create2_salt: Bytes32 = ZERO_WORD

    @property
    def is_static(self) -> bool:
        return bool(self.flags & MessageFlags.STATIC)

    @classmethod
    def from_raw(cls, raw) -> "ExecutionMessage":
        return cls(
            kind=CallKind(raw.kind),
            flags=MessageFlags(raw.flags),
            depth=raw.depth,
            gas=raw.gas,
            destination=Address.from_raw(raw.destination),
            sender=Address.from_raw(raw.sender),
            input=read_bytes(raw.input_data, raw.input_size),
            value=Uint256.from_raw(raw.value),
            create2_salt=Bytes32.from_raw(raw.create2_salt),
        )

    def to_raw(self) -> Tuple[object, object]:
        """
        Build a ``struct evmc_message``.

        The input is not copied: ``input_data`` points into ``self.input``.
        Returns the raw message and the buffer it borrows from; the caller
        keeps both alive for as long as the interpreter may read them.
        """
        raw = ffi.new("struct evmc_message *")
        raw.kind = int(self.kind)
        raw.flags = int(self.flags)
        raw.depth = self.depth
        raw.gas = self.gas
        self.destination.write_raw(raw.destination)
        self.sender.write_raw(raw.sender)
        self.value.write_raw(raw.value)
        self.create2_salt.write_raw(raw.create2_salt)

        buffer = None
        if self.input:
            buffer = ffi.from_buffer("uint8_t[]", self.input)
            raw.input_data = buffer
        raw.input_size = len(self.input)
        return raw, buffer


@dataclass
class ExecutionResult:
    """Outcome of one interpreter invocation."""
    status_code: StatusCode = StatusCode.SUCCESS
    gas_left: int = 0
    output: bytes = b""
    create_address: Address = ZERO_ADDRESS

    @property
    def success(self) -> bool:
        return self.status_code == StatusCode.SUCCESS

    @classmethod
    def from_raw(cls, raw) -> "ExecutionResult":
        """Copy a raw result. Does not call its ``release`` callback."""
        return cls(
            status_code=StatusCode(raw.status_code),
            gas_left=raw.gas_left,
            output=read_bytes(raw.output_data, raw.output_size),
            create_address=Address.from_raw(raw.create_address),
        )

    @classmethod
    def failure(cls, status_code: StatusCode = StatusCode.INTERNAL_ERROR) -> "ExecutionResult":
        return cls(status_code=status_code)
