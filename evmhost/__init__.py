"""
evmhost Package

Hosts an EVMC interpreter over in-memory account state.

Core imports are lazily loaded so that ``evmhost.constants`` and
``evmhost.logger`` stay usable without cffi. For direct module access,
import from submodules:

    from evmhost.evmc import EvmcVM, Executor, HostInterface
    from evmhost.host import HostState, StateHost
    from evmhost.exceptions import FatalHostError
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy module loading."""
    if name in ('EvmcVM', 'Executor', 'HostInterface'):
        from . import evmc
        return getattr(evmc, name)
    elif name in ('HostState', 'StateHost'):
        from . import host
        return getattr(host, name)
    elif name == 'FatalHostError':
        from .exceptions import FatalHostError
        return FatalHostError
    elif name == 'main':
        from .cli.main import main
        return main
    raise AttributeError(f"module 'evmhost' has no attribute {name!r}")

__all__ = ['EvmcVM', 'Executor', 'HostInterface', 'HostState', 'StateHost', 'FatalHostError', 'main']
