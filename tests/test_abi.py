"""
evmhost ABI Tests

String parsing, parameter/function/constructor encoding and output/log
decoding.

Run with:
    pytest tests/test_abi.py -v
"""

import json

import pytest
from eth_abi import encode
from eth_utils import encode_hex, keccak, to_checksum_address

from evmhost import abi
from evmhost.exceptions import AbiError

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20

TOKEN_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "supply", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
]


class TestParseValue:

    def test_lenient_integers(self):
        assert abi.parse_value("uint256", "123") == 123
        assert abi.parse_value("uint256", "0x7b") == 123
        assert abi.parse_value("int256", "-5") == -5

    def test_strict_integers_are_hex_words(self):
        assert abi.parse_value("uint256", "10", lenient=False) == 16
        assert abi.parse_value("int256", "ff" * 32, lenient=False) == -1

    def test_bool(self):
        assert abi.parse_value("bool", "True") is True
        assert abi.parse_value("bool", "false") is False
        with pytest.raises(AbiError):
            abi.parse_value("bool", "yes")

    def test_address(self):
        assert abi.parse_value("address", "a1" * 20) == to_checksum_address(ALICE)
        with pytest.raises(AbiError):
            abi.parse_value("address", "a1" * 20, lenient=False)
        with pytest.raises(AbiError):
            abi.parse_value("address", "0x1234")

    def test_bytes_and_string(self):
        assert abi.parse_value("bytes", "0xcafe") == b"\xca\xfe"
        assert abi.parse_value("bytes2", "cafe") == b"\xca\xfe"
        assert abi.parse_value("string", "hello") == "hello"

    def test_arrays(self):
        assert abi.parse_value("uint256[]", "[1, 2,3]") == [1, 2, 3]
        assert abi.parse_value("uint8[][]", "[[1,2],[3]]") == [[1, 2], [3]]
        assert abi.parse_value("string[2]", '["a", "b"]') == ["a", "b"]
        with pytest.raises(AbiError):
            abi.parse_value("uint256[]", "1,2")

    def test_unsupported(self):
        with pytest.raises(AbiError):
            abi.parse_value("(uint256,bool)", "[1,true]")
        with pytest.raises(AbiError):
            abi.parse_value("fixed128x18", "1.5")


class TestEncoding:

    def test_encode_params(self):
        data = abi.encode_params(["uint256", "bool", "string"], ["123", "true", "hi"])
        assert data == encode(["uint256", "bool", "string"], [123, True, "hi"])

    def test_length_mismatch(self):
        with pytest.raises(AbiError):
            abi.encode_params(["uint256"], ["1", "2"])

    def test_out_of_range(self):
        with pytest.raises(AbiError):
            abi.encode_params(["uint8"], ["256"])

    def test_selector(self):
        assert abi.signature(TOKEN_ABI[1]) == "transfer(address,uint256)"
        assert abi.function_selector("transfer(address,uint256)").hex() == "a9059cbb"

    def test_function_input(self):
        data = abi.encode_function_input(TOKEN_ABI, "transfer", [BOB, "1000"])
        assert data[:4] == bytes.fromhex("a9059cbb")
        assert data[4:] == encode(["address", "uint256"], [to_checksum_address(BOB), 1000])

    def test_unknown_function(self):
        with pytest.raises(AbiError):
            abi.encode_function_input(TOKEN_ABI, "mint", [])

    def test_constructor_input(self):
        data = abi.encode_constructor_input(TOKEN_ABI, "0x6000", ["7"])
        assert data == b"\x60\x00" + encode(["uint256"], [7])

    def test_missing_constructor(self):
        with pytest.raises(AbiError):
            abi.encode_constructor_input(TOKEN_ABI[1:], "0x6000", [])

    def test_tuple_signature(self):
        entry = {
            "type": "function",
            "name": "submit",
            "inputs": [{"type": "tuple[]", "components": [{"type": "address"}, {"type": "uint96"}]}],
        }
        assert abi.signature(entry) == "submit((address,uint96)[])"


class TestDecoding:

    def test_decode_params(self):
        data = encode(["uint256", "address", "bool", "bytes", "uint8[]"], [123, ALICE, True, b"\x01", [1, 2]])
        assert abi.decode_params(["uint256", "address", "bool", "bytes", "uint8[]"], encode_hex(data)) == [
            {"uint256": "123"},
            {"address": to_checksum_address(ALICE)},
            {"bool": True},
            {"bytes": "0x01"},
            {"uint8[]": ["1", "2"]},
        ]

    def test_decode_short_data(self):
        with pytest.raises(AbiError):
            abi.decode_params(["uint256"], "0x01")

    def test_decode_bad_hex(self):
        with pytest.raises(AbiError):
            abi.decode_params(["uint256"], "0xzz")

    def test_function_output(self):
        data = encode(["uint256"], [0x7b])
        assert abi.decode_function_output(TOKEN_ABI, "balanceOf", data) == [{"uint256": "123"}]

    def test_decode_log(self):
        sig = abi.event_topic("Transfer(address,address,uint256)")
        assert sig.hex().startswith("ddf252ad")
        topics = [
            encode_hex(sig),
            encode_hex(encode(["address"], [ALICE])),
            encode_hex(encode(["address"], [BOB])),
        ]
        data = encode_hex(encode(["uint256"], [5]))

        assert abi.decode_log(TOKEN_ABI, "Transfer", topics, data) == [
            {"from": to_checksum_address(ALICE)},
            {"to": to_checksum_address(BOB)},
            {"value": "5"},
        ]

    def test_decode_log_wrong_signature(self):
        topics = [encode_hex(keccak(b"Approval(address,address,uint256)")), "0x" + "00" * 32, "0x" + "00" * 32]
        with pytest.raises(AbiError):
            abi.decode_log(TOKEN_ABI, "Transfer", topics, encode_hex(encode(["uint256"], [5])))

    def test_decode_log_topic_count(self):
        topics = [encode_hex(abi.event_topic("Transfer(address,address,uint256)"))]
        with pytest.raises(AbiError):
            abi.decode_log(TOKEN_ABI, "Transfer", topics, encode_hex(encode(["uint256"], [5])))


class TestLoadAbi:

    def test_plain_list(self, tmp_path):
        path = tmp_path / "token.abi"
        path.write_text(json.dumps(TOKEN_ABI))
        assert abi.load_abi(path) == TOKEN_ABI

    def test_artifact(self, tmp_path):
        path = tmp_path / "Token.json"
        path.write_text(json.dumps({"contractName": "Token", "abi": TOKEN_ABI}))
        assert abi.load_abi(str(path)) == TOKEN_ABI

    def test_invalid(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(AbiError):
            abi.load_abi(path)
        path.write_text('{"bytecode": "0x00"}')
        with pytest.raises(AbiError):
            abi.load_abi(path)
        with pytest.raises(AbiError):
            abi.load_abi(tmp_path / "absent.json")
