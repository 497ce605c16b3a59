"""
Host State

Accounts, storage and logs seen by the interpreter, and the JSON snapshot
format the CLI reads and writes.

Snapshot layout::

    {
      "depth": 0,
      "current_account": "0x…",
      "accounts": {
        "0x…": {
          "nonce": 1,
          "address": "0x…",
          "code": "0x…" | null,
          "storage": {"0x<key>": {"data": "0x<word>", "modify_time": 1}},
          "logs": [{"data": "0x…", "topics": ["0x…"]}]
        }
      },
      "destructed_accounts": ["0x…"]
    }
"""

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_utils import decode_hex, encode_hex

from ..exceptions import FatalHostError, SnapshotError
from ..evmc.types import Address, Bytes32, ZERO_ADDRESS, ZERO_WORD


@dataclass
class StorageValue:
    """
    A storage slot.

    ``modify_time`` counts the writes that changed ``data``.
    """
    data: Bytes32 = ZERO_WORD
    modify_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"data": encode_hex(self.data), "modify_time": self.modify_time}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageValue":
        return cls(
            data=Bytes32.from_hex(data["data"]),
            modify_time=int(data.get("modify_time", 0)),
        )


@dataclass
class LogEntry:
    data: bytes = b""
    topics: List[Bytes32] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": encode_hex(self.data),
            "topics": [encode_hex(topic) for topic in self.topics],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            data=decode_hex(data.get("data", "0x")),
            topics=[Bytes32.from_hex(topic) for topic in data.get("topics", [])],
        )


@dataclass
class AccountData:
    """
    Account as tracked by the host.

    Attributes:
        address: Account address
        nonce: Number of contracts created by this account
        code: Deployed code, ``None`` for accounts without code
        storage: Slot key -> value
        logs: Emitted logs, in emission order
    """
    address: Address
    nonce: int = 0
    code: Optional[bytes] = None
    storage: Dict[Bytes32, StorageValue] = field(default_factory=dict)
    logs: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nonce": self.nonce,
            "address": encode_hex(self.address),
            "code": encode_hex(self.code) if self.code is not None else None,
            "storage": {
                encode_hex(key): value.to_dict()
                for key, value in self.storage.items()
            },
            "logs": [log.to_dict() for log in self.logs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccountData":
        code = data.get("code")
        return cls(
            address=Address.from_hex(data["address"]),
            nonce=int(data.get("nonce", 0)),
            code=decode_hex(code) if code is not None else None,
            storage={
                Bytes32.from_hex(key): StorageValue.from_dict(value)
                for key, value in data.get("storage", {}).items()
            },
            logs=[LogEntry.from_dict(log) for log in data.get("logs", [])],
        )


@dataclass
class HostState:
    """
    State of one (possibly nested) execution frame.

    Invariants checked by ``merge_from``: no address is both in ``accounts``
    and in ``destructed_accounts``, and ``destructed_accounts`` never
    shrinks.
    """
    depth: int = 0
    current_account: Address = ZERO_ADDRESS
    accounts: Dict[Address, AccountData] = field(default_factory=dict)
    destructed_accounts: List[Address] = field(default_factory=list)

    def account(self, address: Address) -> AccountData:
        """Return the account at ``address``, creating it if absent."""
        account = self.accounts.get(address)
        if account is None:
            account = AccountData(address=address)
            self.accounts[address] = account
        return account

    def clone(self, depth: int, current_account: Address) -> "HostState":
        """Deep copy for a nested frame."""
        return HostState(
            depth=depth,
            current_account=current_account,
            accounts=copy.deepcopy(self.accounts),
            destructed_accounts=list(self.destructed_accounts),
        )

    def merge_from(self, child: "HostState") -> None:
        """
        Adopt a finished child frame's accounts and destructed list.

        The child is authoritative: it started as a copy of this state and
        only ever adds to it.

        Raises:
            FatalHostError: if the child lost destructed accounts, or holds
                an account it also lists as destructed
        """
        if len(child.destructed_accounts) < len(self.destructed_accounts):
            raise FatalHostError(
                f"Child frame at depth {child.depth} dropped destructed accounts "
                f"({len(child.destructed_accounts)} < {len(self.destructed_accounts)})"
            )
        overlap = [a for a in child.destructed_accounts if a in child.accounts]
        if overlap:
            raise FatalHostError(
                f"Child frame at depth {child.depth} holds destructed accounts: "
                + ", ".join(str(a) for a in overlap)
            )
        self.accounts = child.accounts
        self.destructed_accounts = list(child.destructed_accounts)

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "current_account": encode_hex(self.current_account),
            "accounts": {
                encode_hex(address): account.to_dict()
                for address, account in self.accounts.items()
            },
            "destructed_accounts": [encode_hex(a) for a in self.destructed_accounts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostState":
        """
        Parse a snapshot document.

        Raises:
            SnapshotError: on missing fields or malformed hex values
        """
        try:
            accounts = {}
            for key, value in data.get("accounts", {}).items():
                account = AccountData.from_dict(value)
                if account.address != Address.from_hex(key):
                    raise SnapshotError(f"Account {key} is stored under a different address")
                accounts[account.address] = account
            return cls(
                depth=int(data.get("depth", 0)),
                current_account=Address.from_hex(data.get("current_account", encode_hex(ZERO_ADDRESS))),
                accounts=accounts,
                destructed_accounts=[
                    Address.from_hex(a) for a in data.get("destructed_accounts", [])
                ],
            )
        except SnapshotError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SnapshotError(f"Malformed state snapshot: {e}") from e

    def dumps(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def loads(cls, text: str) -> "HostState":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"State snapshot is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotError("State snapshot must be a JSON object")
        return cls.from_dict(data)


def load_state(path: Path) -> HostState:
    """
    Read a snapshot file. A missing file yields an empty state.

    Raises:
        SnapshotError: if the file exists but cannot be parsed
    """
    path = Path(path)
    if not path.exists():
        return HostState()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"Failed to read {path}: {e}") from e
    return HostState.loads(text)


def save_state(state: HostState, path: Path) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(state.dumps() + "\n", encoding="utf-8")
    except OSError as e:
        raise SnapshotError(f"Failed to write {path}: {e}") from e
