"""
Contract Address Derivation

Ethereum-compatible contract address computation for CREATE and CREATE2.
"""

from eth_utils import keccak
import rlp

from ..evmc.types import Address, Bytes32


def generate_contract_address(sender: Address, nonce: int) -> Address:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Creating account
        nonce: Creator's nonce before the creation

    Returns:
        Contract address
    """
    rlp_encoded = rlp.encode([bytes(sender), nonce])
    return Address(keccak(rlp_encoded)[-20:])


def generate_contract_address_create2(
    sender: Address,
    salt: Bytes32,
    init_code: bytes,
) -> Address:
    """
    Generate contract address using CREATE2 opcode logic.

    Address = keccak256(0xff + sender + salt + keccak256(init_code))[-20:]

    Args:
        sender: Creating account
        salt: 32-byte salt
        init_code: Contract initialization bytecode

    Returns:
        Contract address
    """
    data = b'\xff' + bytes(sender) + bytes(salt) + keccak(init_code)
    return Address(keccak(data)[-20:])
