"""
Contract ABI Utilities

Parameter, function call, constructor and event log encoding on top of
``eth_abi``. Values come in as command line strings and are parsed per
ABI type; decoded values come back as JSON-friendly ``{name: value}``
entries.

Lenient parsing (the default) accepts decimal integers, unprefixed hex
and addresses in any case. Strict parsing only accepts hex for integers.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_abi import decode, encode
from eth_abi.exceptions import ABITypeError, DecodingError, EncodingError, ParseError
from eth_utils import decode_hex, encode_hex, keccak, to_checksum_address

from .exceptions import AbiError

_ABI_ERRORS = (
    ABITypeError,
    DecodingError,
    EncodingError,
    ParseError,
    OverflowError,
    TypeError,
    ValueError,
)


# =============================================================================
# ABI DOCUMENTS
# =============================================================================

def load_abi(source: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Load a contract ABI from a JSON file.

    Accepts a bare ABI list or a compiler artifact with an ``abi`` key.
    """
    path = Path(source)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise AbiError(f"Failed to read ABI file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise AbiError(f"ABI file {path} is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise AbiError(f"ABI file {path} does not contain an ABI list")
    return data


def find_entry(abi: List[Dict[str, Any]], entry_type: str, name: Optional[str] = None) -> Dict[str, Any]:
    """Return the first ABI entry of ``entry_type`` (and ``name``, when given)."""
    for entry in abi:
        if entry.get("type", "function") != entry_type:
            continue
        if name is None or entry.get("name") == name:
            return entry
    label = f"{entry_type} {name}" if name else entry_type
    raise AbiError(f"No {label} in ABI")


def canonical_type(param: Dict[str, Any]) -> str:
    """ABI type of a parameter, with tuples spelled out as ``(t1,t2)``."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def signature(entry: Dict[str, Any]) -> str:
    """Text signature, e.g. ``transfer(address,uint256)``."""
    types = ",".join(canonical_type(p) for p in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def function_selector(text_signature: str) -> bytes:
    """First four bytes of keccak256(signature)."""
    return keccak(text_signature.encode("utf-8"))[:4]


def event_topic(text_signature: str) -> bytes:
    return keccak(text_signature.encode("utf-8"))


# =============================================================================
# VALUE PARSING
# =============================================================================

def _split_top_level(body: str) -> List[str]:
    body = body.strip()
    if not body:
        return []

    items, depth, current = [], 0, []
    for char in body:
        if char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        if char == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    items.append("".join(current).strip())
    return [item.strip('"') for item in items]


def _split_array(text: str) -> List[str]:
    text = text.strip()
    if not (text.startswith("[") and text.endswith("]")):
        raise AbiError(f"Array value must be enclosed in brackets: {text}")
    return _split_top_level(text[1:-1])


def _parse_int(abi_type: str, text: str, lenient: bool) -> int:
    text = text.strip()
    if lenient:
        return int(text, 0) if text.lower().lstrip("-").startswith("0x") else int(text, 10)
    value = int(text, 16)
    # strict values are 256-bit two's complement words
    if abi_type.startswith("int") and value >= 1 << 255:
        value -= 1 << 256
    return value


def parse_value(abi_type: str, text: str, lenient: bool = True) -> Any:
    """
    Convert a string to the Python value ``eth_abi`` expects for ``abi_type``.

    Raises:
        AbiError: if the value cannot be parsed
    """
    try:
        if abi_type.endswith("]"):
            inner = abi_type[:abi_type.rindex("[")]
            return [parse_value(inner, item, lenient) for item in _split_array(text)]
        if abi_type.startswith("("):
            raise AbiError(f"Tuple values are not supported: {abi_type}")
        if abi_type.startswith(("uint", "int")):
            return _parse_int(abi_type, text, lenient)
        if abi_type == "bool":
            lowered = text.strip().lower()
            if lowered not in ("true", "false"):
                raise AbiError(f"Invalid bool value: {text}")
            return lowered == "true"
        if abi_type == "address":
            if not lenient and not text.startswith("0x"):
                raise AbiError(f"Address must be 0x-prefixed: {text}")
            return to_checksum_address(text if text.startswith("0x") else "0x" + text)
        if abi_type.startswith("bytes"):
            return decode_hex(text)
        if abi_type == "string":
            return text
    except AbiError:
        raise
    except _ABI_ERRORS as e:
        raise AbiError(f"Invalid {abi_type} value {text!r}: {e}") from e
    raise AbiError(f"Unsupported ABI type: {abi_type}")


def format_value(abi_type: str, value: Any) -> Any:
    """JSON-friendly rendering of a decoded value."""
    if abi_type.endswith("]"):
        inner = abi_type[:abi_type.rindex("[")]
        return [format_value(inner, item) for item in value]
    if abi_type.startswith("("):
        inner_types = _split_top_level(abi_type[abi_type.index("(") + 1:abi_type.rindex(")")])
        return [format_value(t, v) for t, v in zip(inner_types, value)]
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type == "bool":
        return bool(value)
    if isinstance(value, bytes):
        return encode_hex(value)
    if isinstance(value, int):
        return str(value)
    return value


# =============================================================================
# ENCODING
# =============================================================================

def encode_params(types: Sequence[str], values: Sequence[str], lenient: bool = True) -> bytes:
    """ABI-encode string values against a list of types."""
    if len(types) != len(values):
        raise AbiError(f"Got {len(values)} values for {len(types)} types")
    parsed = [parse_value(t, v, lenient) for t, v in zip(types, values)]
    try:
        return encode(list(types), parsed)
    except _ABI_ERRORS as e:
        raise AbiError(f"Failed to encode parameters: {e}") from e


def encode_function_input(
    abi: List[Dict[str, Any]],
    name: str,
    values: Sequence[str],
    lenient: bool = True,
) -> bytes:
    """Selector followed by the encoded arguments of function ``name``."""
    function = find_entry(abi, "function", name)
    types = [canonical_type(p) for p in function.get("inputs", [])]
    return function_selector(signature(function)) + encode_params(types, values, lenient)


def encode_constructor_input(
    abi: List[Dict[str, Any]],
    code: Union[str, bytes],
    values: Sequence[str],
    lenient: bool = True,
) -> bytes:
    """Contract init code followed by the encoded constructor arguments."""
    constructor = find_entry(abi, "constructor")
    types = [canonical_type(p) for p in constructor.get("inputs", [])]
    if isinstance(code, str):
        try:
            code = decode_hex(code)
        except ValueError as e:
            raise AbiError(f"Invalid contract code: {e}") from e
    return bytes(code) + encode_params(types, values, lenient)


# =============================================================================
# DECODING
# =============================================================================

def _decode(types: List[str], data: bytes) -> tuple:
    try:
        return decode(types, data)
    except _ABI_ERRORS as e:
        raise AbiError(f"Failed to decode data: {e}") from e


def _as_bytes(data: Union[str, bytes]) -> bytes:
    if isinstance(data, bytes):
        return data
    try:
        return decode_hex(data)
    except ValueError as e:
        raise AbiError(f"Invalid hex data: {e}") from e


def decode_params(types: Sequence[str], data: Union[str, bytes]) -> List[Dict[str, Any]]:
    """Decode ``data`` into ``[{type: value}, ...]``."""
    values = _decode(list(types), _as_bytes(data))
    return [{t: format_value(t, v)} for t, v in zip(types, values)]


def decode_function_output(
    abi: List[Dict[str, Any]],
    name: str,
    data: Union[str, bytes],
) -> List[Dict[str, Any]]:
    """Decode the return data of function ``name`` into ``[{type: value}, ...]``."""
    function = find_entry(abi, "function", name)
    types = [canonical_type(p) for p in function.get("outputs", [])]
    return decode_params(types, data)


def decode_log(
    abi: List[Dict[str, Any]],
    event: str,
    topics: Sequence[Union[str, bytes]],
    data: Union[str, bytes],
) -> List[Dict[str, Any]]:
    """
    Decode a log of event ``event`` into ``[{param name: value}, ...]``.

    Indexed parameters come from ``topics``, the others from ``data``. For a
    non-anonymous event the first topic must be the event signature hash.
    Indexed dynamic values are only available as their hash.
    """
    entry = find_entry(abi, "event", event)
    inputs = entry.get("inputs", [])
    topic_bytes = [_as_bytes(t) for t in topics]

    if not entry.get("anonymous", False):
        expected = event_topic(signature(entry))
        if not topic_bytes or topic_bytes[0] != expected:
            raise AbiError(f"First topic is not the signature of {signature(entry)}")
        topic_bytes = topic_bytes[1:]

    indexed = [p for p in inputs if p.get("indexed")]
    if len(topic_bytes) != len(indexed):
        raise AbiError(f"Event {event} has {len(indexed)} indexed inputs, got {len(topic_bytes)} topics")

    non_indexed = [p for p in inputs if not p.get("indexed")]
    data_values = iter(_decode([canonical_type(p) for p in non_indexed], _as_bytes(data)))
    topic_values = iter(topic_bytes)

    result = []
    for param in inputs:
        abi_type = canonical_type(param)
        if param.get("indexed"):
            topic = next(topic_values)
            if abi_type in ("string", "bytes") or abi_type.endswith("]") or abi_type.startswith("("):
                value = encode_hex(topic)
            else:
                value = format_value(abi_type, _decode([abi_type], topic)[0])
        else:
            value = format_value(abi_type, next(data_values))
        result.append({param.get("name", ""): value})
    return result
