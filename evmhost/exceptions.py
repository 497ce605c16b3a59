"""
evmhost Exceptions

Custom exception classes for the EVMC host bridge.

Two tiers are kept apart on purpose:

- ``FatalHostError``: the host and the interpreter went out of sync.
  Nothing can continue safely, callers are not expected to recover.
- everything else under ``EvmHostException``: bad input from the outside
  world (malformed snapshot, missing library, broken config).
"""


class EvmHostException(Exception):
    """Base exception for evmhost."""
    pass


class FatalHostError(EvmHostException):
    """
    Host/interpreter contract violation.

    Recorded at the native boundary and re-raised once the interpreter
    returns; never handled.
    """
    pass


class SnapshotError(EvmHostException):
    """Persisted host state could not be read or is malformed."""
    pass


class VMLoadError(EvmHostException):
    """Interpreter library could not be located or loaded."""
    pass


class ConfigurationError(EvmHostException):
    """Configuration error."""
    pass


class AbiError(EvmHostException):
    """ABI description, type or value could not be processed."""
    pass
