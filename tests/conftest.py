"""
Shared fixtures: a tiny in-process interpreter wired to a fresh host
interface and an empty host state.
"""

import pytest

from evmhost.evmc import Executor, HostInterface, Revision
from evmhost.host import HostState, StateHost

from tiny_evm import TinyEVM


@pytest.fixture
def tiny():
    evm = TinyEVM()
    yield evm
    assert evm.errors == []


@pytest.fixture
def interface():
    return HostInterface()


@pytest.fixture
def executor(tiny, interface):
    return Executor(tiny.vm, interface, Revision.PETERSBURG)


@pytest.fixture
def state():
    return HostState()


@pytest.fixture
def host(state, executor):
    return StateHost(state, executor)
