"""
evmhost Host State Tests

Storage accounting, state merging and JSON snapshots.

Run with:
    pytest tests/test_host_state.py -v
"""

import json

import pytest
from eth_utils import keccak

from evmhost.evmc import Address, Bytes32, StorageStatus, TxContext, ZERO_WORD
from evmhost.exceptions import FatalHostError, SnapshotError
from evmhost.host import (
    AccountData,
    HostState,
    LogEntry,
    StateHost,
    StorageValue,
    load_state,
    save_state,
    storage_status,
)

ACCOUNT = Address(b"\x20" * 20)
OTHER = Address(b"\x30" * 20)


def w(value: int) -> Bytes32:
    return Bytes32(value.to_bytes(32, "big"))


@pytest.fixture
def host():
    return StateHost(HostState(), executor=None)


class TestStorageStatus:

    @pytest.mark.parametrize("modify_time, changed, expected", [
        (0, False, StorageStatus.ADDED),
        (1, True, StorageStatus.MODIFIED),
        (2, True, StorageStatus.MODIFIED_AGAIN),
        (7, True, StorageStatus.MODIFIED_AGAIN),
        (1, False, StorageStatus.UNCHANGED),
        (5, False, StorageStatus.UNCHANGED),
    ])
    def test_table(self, modify_time, changed, expected):
        assert storage_status(modify_time, changed) is expected

    def test_change_without_modify_time_is_fatal(self):
        with pytest.raises(FatalHostError):
            storage_status(0, True)


class TestStorage:

    def test_unwritten_slot_is_zero(self, host):
        assert host.get_storage(ACCOUNT, w(1)) == ZERO_WORD
        host.state.account(ACCOUNT)
        assert host.get_storage(ACCOUNT, w(1)) == ZERO_WORD

    def test_same_value_twice(self, host):
        """A then A: ADDED, then UNCHANGED."""
        assert host.set_storage(ACCOUNT, w(1), w(5)) is StorageStatus.ADDED
        assert host.set_storage(ACCOUNT, w(1), w(5)) is StorageStatus.UNCHANGED
        slot = host.state.accounts[ACCOUNT].storage[w(1)]
        assert slot == StorageValue(data=w(5), modify_time=0)

    def test_modify_sequence(self, host):
        assert host.set_storage(ACCOUNT, w(1), w(5)) is StorageStatus.ADDED
        assert host.set_storage(ACCOUNT, w(1), w(6)) is StorageStatus.MODIFIED
        assert host.set_storage(ACCOUNT, w(1), w(7)) is StorageStatus.MODIFIED_AGAIN
        assert host.set_storage(ACCOUNT, w(1), w(7)) is StorageStatus.UNCHANGED
        assert host.state.accounts[ACCOUNT].storage[w(1)].modify_time == 2
        assert host.get_storage(ACCOUNT, w(1)) == w(7)

    def test_modify_time_never_decreases(self, host):
        seen = []
        for value in (1, 2, 2, 3, 1, 1):
            host.set_storage(ACCOUNT, w(9), w(value))
            seen.append(host.state.accounts[ACCOUNT].storage[w(9)].modify_time)
        assert seen == sorted(seen)


class TestAccountCallbacks:

    def test_stubs_are_deterministic(self, host):
        assert not host.account_exists(ACCOUNT)
        assert host.get_code_size(ACCOUNT) == 0
        assert host.get_code_hash(ACCOUNT) == ZERO_WORD
        assert host.copy_code(ACCOUNT, 0, 10) == b""

        host.state.account(ACCOUNT).code = b"\x60\x01"
        assert host.account_exists(ACCOUNT)
        assert host.get_code_size(ACCOUNT) == 2
        assert host.get_code_hash(ACCOUNT) == keccak(b"\x60\x01")
        assert host.copy_code(ACCOUNT, 1, 10) == b"\x01"
        assert int(host.get_balance(ACCOUNT)) == 0
        assert host.get_block_hash(1) == ZERO_WORD

    def test_default_tx_context(self, host):
        assert host.get_tx_context() == TxContext()

    def test_emit_log_order(self, host):
        host.emit_log(ACCOUNT, b"\x01", [w(1)])
        host.emit_log(ACCOUNT, b"\x02", [w(2), w(3)])
        logs = host.state.accounts[ACCOUNT].logs
        assert [log.data for log in logs] == [b"\x01", b"\x02"]
        assert logs[1].topics == [w(2), w(3)]

    def test_selfdestruct_appends(self, host):
        host.selfdestruct(ACCOUNT, OTHER)
        host.selfdestruct(OTHER, ACCOUNT)
        assert host.state.destructed_accounts == [ACCOUNT, OTHER]

    def test_selfdestruct_removes_account(self, host):
        host.set_storage(ACCOUNT, w(1), w(2))
        host.selfdestruct(ACCOUNT, OTHER)
        assert ACCOUNT not in host.state.accounts
        assert host.get_storage(ACCOUNT, w(1)) == ZERO_WORD
        assert not host.account_exists(ACCOUNT)


class TestMerge:

    def test_clone_is_independent(self):
        parent = HostState()
        parent.account(ACCOUNT).nonce = 1
        child = parent.clone(depth=1, current_account=ACCOUNT)
        child.account(ACCOUNT).nonce = 2
        child.account(OTHER)

        assert child.depth == 1
        assert parent.accounts[ACCOUNT].nonce == 1
        assert OTHER not in parent.accounts

    def test_child_replaces_parent(self):
        parent = HostState()
        parent.account(ACCOUNT)
        child = parent.clone(depth=1, current_account=OTHER)
        child.account(OTHER).code = b"\x00"

        parent.merge_from(child)
        assert set(parent.accounts) == {ACCOUNT, OTHER}
        assert parent.accounts[OTHER].code == b"\x00"
        assert parent.depth == 0

    def test_destructed_account_leaves_parent(self):
        parent = HostState()
        parent.account(ACCOUNT)
        parent.account(OTHER)
        child = StateHost(parent.clone(depth=1, current_account=ACCOUNT), executor=None)
        child.selfdestruct(ACCOUNT, OTHER)

        parent.merge_from(child.state)
        assert ACCOUNT not in parent.accounts
        assert OTHER in parent.accounts
        assert parent.destructed_accounts == [ACCOUNT]

    def test_destructed_account_in_accounts_is_fatal(self):
        parent = HostState()
        parent.account(OTHER)
        child = parent.clone(depth=1, current_account=ACCOUNT)
        child.account(ACCOUNT).code = b"\x00"
        child.destructed_accounts.append(ACCOUNT)

        with pytest.raises(FatalHostError):
            parent.merge_from(child)
        assert set(parent.accounts) == {OTHER}
        assert parent.destructed_accounts == []

    def test_shrinking_destructed_list_is_fatal(self):
        parent = HostState(destructed_accounts=[ACCOUNT, OTHER])
        child = HostState(depth=1, destructed_accounts=[ACCOUNT])
        with pytest.raises(FatalHostError):
            parent.merge_from(child)
        assert parent.destructed_accounts == [ACCOUNT, OTHER]


class TestSnapshot:

    @pytest.fixture
    def populated(self):
        state = HostState(depth=0, current_account=ACCOUNT)
        account = state.account(ACCOUNT)
        account.nonce = 3
        account.code = b"\x60\x00\xf3"
        account.storage[w(1)] = StorageValue(data=w(0x7b), modify_time=2)
        account.logs.append(LogEntry(data=b"\xca\xfe", topics=[w(1), w(2)]))
        state.account(OTHER)
        state.destructed_accounts.append(Address(b"\x40" * 20))
        return state

    def test_round_trip(self, populated):
        assert HostState.loads(populated.dumps()) == populated

    def test_layout(self, populated):
        data = json.loads(populated.dumps())
        account = data["accounts"]["0x" + "20" * 20]
        assert account["nonce"] == 3
        assert account["address"] == "0x" + "20" * 20
        assert account["code"] == "0x6000f3"
        assert account["storage"]["0x" + "00" * 31 + "01"] == {
            "data": "0x" + "00" * 31 + "7b",
            "modify_time": 2,
        }
        assert account["logs"] == [{"data": "0xcafe", "topics": ["0x" + "00" * 31 + "01", "0x" + "00" * 31 + "02"]}]
        assert data["accounts"]["0x" + "30" * 20]["code"] is None
        assert data["destructed_accounts"] == ["0x" + "40" * 20]

    def test_save_and_load(self, populated, tmp_path):
        path = tmp_path / "nested" / "state.json"
        save_state(populated, path)
        assert load_state(path) == populated

    def test_missing_file_is_empty_state(self, tmp_path):
        assert load_state(tmp_path / "absent.json") == HostState()

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        '{"accounts": {"0x01": {"address": "0x01"}}}',
        '{"accounts": {"0x' + "20" * 20 + '": {"nonce": 0}}}',
    ])
    def test_malformed(self, text):
        with pytest.raises(SnapshotError):
            HostState.loads(text)

    def test_address_mismatch(self):
        account = AccountData(address=ACCOUNT).to_dict()
        text = json.dumps({"accounts": {"0x" + "30" * 20: account}})
        with pytest.raises(SnapshotError):
            HostState.loads(text)
