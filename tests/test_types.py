"""
evmhost Value Type Tests

Fixed-width byte values, enums and the raw EVMC records.

Run with:
    pytest tests/test_types.py -v
"""

import pytest

from evmhost.evmc import (
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
    ffi,
)


def abi_value(enum: str, name: str) -> int:
    return ffi.typeof(f"enum {enum}").relements[name]


class TestFixedBytes:
    """Address, Bytes32 and Uint256."""

    def test_default_is_zero(self):
        assert Address() == b"\x00" * 20
        assert Bytes32() == b"\x00" * 32
        assert ZERO_ADDRESS.is_zero()
        assert ZERO_WORD.is_zero()

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            Address(b"\x01" * 19)
        with pytest.raises(ValueError):
            Bytes32(b"\x01" * 33)

    def test_int_rejected(self):
        """Passing an int must not silently build a zero-filled value."""
        with pytest.raises(TypeError):
            Bytes32(32)

    def test_equality_is_bytewise(self):
        a = Address(b"\x11" * 20)
        assert a == Address.from_hex("0x" + "11" * 20)
        assert a != Address(b"\x12" * 20)
        assert {a: 1}[Address(b"\x11" * 20)] == 1

    def test_hex_rendering(self):
        a = Address(b"\xab" * 20)
        assert repr(a) == "Address(0x" + "ab" * 20 + ")"
        assert str(a) == "0x" + "ab" * 20
        assert a.to_hex() == "0x" + "ab" * 20

    def test_checksum(self):
        a = Address.from_hex("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
        assert a.checksum == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"

    def test_raw_round_trip(self):
        key = Bytes32(bytes(range(32)))
        raw = key.to_raw()
        assert ffi.typeof(raw) is ffi.typeof("evmc_bytes32 *")
        assert Bytes32.from_raw(raw) == key

        addr = Address(bytes(range(20)))
        assert Address.from_raw(addr.to_raw()) == addr

    def test_uint256(self):
        value = Uint256.from_int(0x7b)
        assert int(value) == 0x7b
        assert value == b"\x00" * 31 + b"\x7b"
        assert int(Uint256.from_int(2 ** 256 - 1)) == 2 ** 256 - 1

    def test_uint256_out_of_range(self):
        with pytest.raises(ValueError):
            Uint256.from_int(-1)
        with pytest.raises(ValueError):
            Uint256.from_int(2 ** 256)


class TestEnums:

    def test_call_kind_values_match_abi(self):
        assert int(CallKind.CALL) == abi_value("evmc_call_kind", "EVMC_CALL")
        assert int(CallKind.CREATE2) == abi_value("evmc_call_kind", "EVMC_CREATE2")

    def test_is_create(self):
        assert CallKind.CREATE.is_create
        assert CallKind.CREATE2.is_create
        assert not CallKind.CALL.is_create
        assert not CallKind.DELEGATECALL.is_create

    def test_status_codes_match_abi(self):
        assert int(StatusCode.INTERNAL_ERROR) == abi_value("evmc_status_code", "EVMC_INTERNAL_ERROR")
        assert int(StatusCode.REVERT) == abi_value("evmc_status_code", "EVMC_REVERT")

    def test_storage_status_and_revision_match_abi(self):
        assert int(StorageStatus.ADDED) == abi_value("evmc_storage_status", "EVMC_STORAGE_ADDED")
        assert int(StorageStatus.MODIFIED_AGAIN) == abi_value(
            "evmc_storage_status", "EVMC_STORAGE_MODIFIED_AGAIN"
        )
        assert int(Revision.PETERSBURG) == abi_value("evmc_revision", "EVMC_PETERSBURG")

    def test_revision_from_name(self):
        assert Revision.from_name("petersburg") is Revision.PETERSBURG
        assert Revision.from_name("Tangerine-Whistle") is Revision.TANGERINE_WHISTLE

    def test_unknown_revision(self):
        with pytest.raises(ValueError):
            Revision.from_name("shanghai-next")


class TestRecords:
    """Raw struct conversion of TxContext, ExecutionMessage, ExecutionResult."""

    def test_tx_context_round_trip(self):
        tx = TxContext(
            gas_price=Uint256.from_int(7),
            origin=Address(b"\x01" * 20),
            coinbase=Address(b"\x02" * 20),
            block_number=12,
            block_timestamp=1_600_000_000,
            block_gas_limit=8_000_000,
            block_difficulty=Uint256.from_int(3),
            chain_id=Uint256.from_int(1),
        )
        assert TxContext.from_raw(tx.to_raw()) == tx

    def test_message_round_trip(self):
        message = ExecutionMessage(
            kind=CallKind.CREATE2,
            flags=MessageFlags.STATIC,
            depth=3,
            gas=4466,
            destination=Address(b"\x20" * 20),
            sender=Address(b"\x80" * 20),
            input=b"\xde\xad\xbe\xef",
            value=Uint256.from_int(5),
            create2_salt=Bytes32(b"\xff" * 32),
        )
        raw, _buffer = message.to_raw()
        assert raw.input_size == 4
        assert ExecutionMessage.from_raw(raw) == message
        assert message.is_static

    def test_message_empty_input_is_null(self):
        raw, buffer = ExecutionMessage().to_raw()
        assert buffer is None
        assert raw.input_data == ffi.NULL
        assert ExecutionMessage.from_raw(raw).input == b""

    def test_result_from_raw(self):
        output = ffi.new("uint8_t[]", 2)
        output[0], output[1] = 0xbe, 0xef
        raw = ffi.new("struct evmc_result *")
        raw.status_code = int(StatusCode.REVERT)
        raw.gas_left = 99
        raw.output_data = output
        raw.output_size = 2

        result = ExecutionResult.from_raw(raw)
        assert result.status_code is StatusCode.REVERT
        assert result.gas_left == 99
        assert result.output == b"\xbe\xef"
        assert not result.success

    def test_failure(self):
        result = ExecutionResult.failure()
        assert result.status_code is StatusCode.INTERNAL_ERROR
        assert result.output == b""
