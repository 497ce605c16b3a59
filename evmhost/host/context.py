"""
Recursive Host Context

``StateHost`` serves interpreter callbacks from a ``HostState``. Nested
calls and creations are emulated by running the interpreter again on a
child copy of the state and merging the child back once it returns.
"""

from typing import List, Optional

from eth_utils import keccak

from ..exceptions import FatalHostError
from ..logger import get_logger
from ..evmc.interface import HostContext
from ..evmc.types import (
    Address,
    Bytes32,
    CallKind,
    ExecutionMessage,
    ExecutionResult,
    StorageStatus,
    TxContext,
    Uint256,
    ZERO_WORD,
)
from .address import generate_contract_address, generate_contract_address_create2
from .state import HostState, LogEntry, StorageValue

logger = get_logger(__name__)


def storage_status(modify_time: int, changed: bool) -> StorageStatus:
    """
    Status reported for a storage write.

    Args:
        modify_time: Slot's ``modify_time`` after the write
        changed: Whether the write changed the slot's data

    Raises:
        FatalHostError: for a changing write that left ``modify_time`` at 0
    """
    if modify_time == 0:
        if changed:
            raise FatalHostError("Storage changed without advancing modify_time")
        return StorageStatus.ADDED
    if not changed:
        return StorageStatus.UNCHANGED
    if modify_time == 1:
        return StorageStatus.MODIFIED
    return StorageStatus.MODIFIED_AGAIN


class StateHost(HostContext):
    """
    ``HostContext`` backed by an in-memory ``HostState``.

    Args:
        state: Frame state, mutated in place
        executor: Used to run nested calls and creations
        tx_context: Returned by ``get_tx_context`` (zeroed by default)
    """

    def __init__(self, state: HostState, executor, tx_context: Optional[TxContext] = None):
        self.state = state
        self.executor = executor
        self.tx_context = tx_context or TxContext()

    # --- transaction / block ----------------------------------------------

    def get_tx_context(self) -> TxContext:
        return self.tx_context

    def get_block_hash(self, number: int) -> Bytes32:
        return ZERO_WORD

    # --- accounts -----------------------------------------------------------

    def account_exists(self, address: Address) -> bool:
        return address in self.state.accounts

    def get_balance(self, address: Address) -> Uint256:
        # balances are not modelled
        return Uint256()

    def _code(self, address: Address) -> bytes:
        account = self.state.accounts.get(address)
        if account is None or account.code is None:
            return b""
        return account.code

    def get_code_size(self, address: Address) -> int:
        return len(self._code(address))

    def get_code_hash(self, address: Address) -> Bytes32:
        code = self._code(address)
        return Bytes32(keccak(code)) if code else ZERO_WORD

    def copy_code(self, address: Address, code_offset: int, size: int) -> bytes:
        return self._code(address)[code_offset:code_offset + size]

    def selfdestruct(self, address: Address, beneficiary: Address) -> None:
        logger.debug(f"SELFDESTRUCT {address} -> {beneficiary} depth={self.state.depth}")
        self.state.accounts.pop(address, None)
        self.state.destructed_accounts.append(address)

    # --- storage ------------------------------------------------------------

    def get_storage(self, address: Address, key: Bytes32) -> Bytes32:
        account = self.state.accounts.get(address)
        if account is None:
            return ZERO_WORD
        value = account.storage.get(key)
        return value.data if value is not None else ZERO_WORD

    def set_storage(self, address: Address, key: Bytes32, value: Bytes32) -> StorageStatus:
        storage = self.state.account(address).storage
        slot = storage.get(key)
        if slot is None:
            storage[key] = StorageValue(data=value)
            status = storage_status(0, changed=False)
        else:
            changed = slot.data != value
            if changed:
                slot.data = value
                slot.modify_time += 1
                status = storage_status(slot.modify_time, changed=True)
            else:
                status = StorageStatus.UNCHANGED

        logger.debug(f"SSTORE {address} {key} = {value} {status.name}")
        return status

    # --- logs ---------------------------------------------------------------

    def emit_log(self, address: Address, data: bytes, topics: List[Bytes32]) -> None:
        self.state.account(address).logs.append(LogEntry(data=bytes(data), topics=list(topics)))

    # --- nested execution ---------------------------------------------------

    def resolve_callee(self, message: ExecutionMessage) -> Address:
        """
        Address the message executes at.

        CREATE and CREATE2 derive it (and advance the sender's nonce);
        every other kind targets ``message.destination``.
        """
        sender = self.state.account(message.sender)
        if message.kind == CallKind.CREATE:
            callee = generate_contract_address(message.sender, sender.nonce)
        elif message.kind == CallKind.CREATE2:
            callee = generate_contract_address_create2(
                message.sender, message.create2_salt, message.input
            )
        else:
            return message.destination
        sender.nonce += 1
        return callee

    def spawn_child(self, message: ExecutionMessage, callee: Address) -> "StateHost":
        child_state = self.state.clone(depth=message.depth + 1, current_account=callee)
        return StateHost(child_state, self.executor, self.tx_context)

    def call(self, message: ExecutionMessage) -> ExecutionResult:
        """
        Execute a nested call or creation and merge its state back.

        Raises:
            FatalHostError: if a non-create message targets an account
                without code, or the child state cannot be merged
        """
        callee = self.resolve_callee(message)

        if message.kind.is_create:
            code = message.input
            message = ExecutionMessage(
                kind=message.kind,
                flags=message.flags,
                depth=message.depth,
                gas=message.gas,
                destination=callee,
                sender=message.sender,
                input=b"",
                value=message.value,
                create2_salt=message.create2_salt,
            )
        else:
            account = self.state.accounts.get(callee)
            if account is None or account.code is None:
                raise FatalHostError(f"No code at {callee} for {message.kind.name}")
            code = account.code

        child = self.spawn_child(message, callee)
        logger.debug(
            f"{message.kind.name} {message.sender} -> {callee} depth={child.state.depth} "
            f"gas={message.gas}"
        )

        result = self.executor.run(child, code, message)

        if result.success and message.kind.is_create:
            child.state.account(callee).code = result.output

        self.state.merge_from(child.state)
        result.create_address = callee

        logger.debug(
            f"{message.kind.name} {callee} returned {result.status_code.name} "
            f"gas_left={result.gas_left} depth={child.state.depth}"
        )
        return result
