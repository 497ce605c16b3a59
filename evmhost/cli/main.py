#!/usr/bin/env python3
"""
evmhost CLI

Command-line interface for running contracts on an EVMC interpreter
against a JSON state snapshot.

Usage:
    evmhost create --code HEX [--address SENDER]
    evmhost call --address ADDR --input-data HEX [--sender ADDR] [--static]
    evmhost list
    evmhost show --address ADDR
    evmhost remove --address ADDR
    evmhost abi encode params|function|constructor ...
    evmhost abi decode params|function|log ...

``create`` and ``call`` read the snapshot from ``--input-storage`` and write
the resulting state to ``--output-storage`` (both default to
``[storage] state_file``).
"""

import json
from pathlib import Path
from typing import Optional, Tuple

import click
from eth_utils import decode_hex, encode_hex

from .. import abi as abi_codec
from .. import __version__
from ..config import EvmHostConfig, load_config
from ..evmc import (
    Address,
    CallKind,
    EvmcVM,
    ExecutionMessage,
    ExecutionResult,
    Executor,
    HostInterface,
    MessageFlags,
)
from ..exceptions import AbiError, ConfigurationError, SnapshotError, VMLoadError
from ..host import HostState, StateHost, load_state, save_state
from ..logger import configure_logging, get_logger

logger = get_logger(__name__)


def load_vm(config: EvmHostConfig) -> EvmcVM:
    """Open the interpreter named by ``[vm]``."""
    return EvmcVM.load(config.vm.library, config.vm.create_symbol or None)


def parse_address(value: str, option: str) -> Address:
    try:
        return Address.from_hex(value)
    except ValueError as e:
        raise click.BadParameter(f"{value!r} is not a 20-byte address", param_hint=option) from e


def parse_hex(value: str, option: str) -> bytes:
    try:
        return decode_hex(value)
    except ValueError as e:
        raise click.BadParameter(f"{value!r} is not valid hex", param_hint=option) from e


def read_state(path: Path) -> HostState:
    try:
        return load_state(path)
    except SnapshotError as e:
        raise click.ClickException(str(e))


def write_state(state: HostState, path: Path) -> None:
    try:
        save_state(state, path)
    except SnapshotError as e:
        raise click.ClickException(str(e))


def execute_message(config: EvmHostConfig, state: HostState, message: ExecutionMessage) -> ExecutionResult:
    """Run one top-level message against ``state`` on the configured interpreter."""
    try:
        vm = load_vm(config)
    except VMLoadError as e:
        raise click.ClickException(str(e))

    try:
        interface = HostInterface(abort_on_fatal=config.host.abort_on_fatal)
        executor = Executor(vm, interface, config.vm.revision_value)
        host = StateHost(state, executor, config.tx.to_tx_context())
        return host.call(message)
    finally:
        vm.destroy()


def echo_result(result: ExecutionResult, show_address: bool = False) -> None:
    color = "green" if result.success else "red"
    click.echo(click.style(f"Status:   {result.status_code.name}", fg=color))
    click.echo(f"Gas left: {result.gas_left}")
    if show_address:
        click.echo(f"Address:  {result.create_address.checksum}")
    click.echo(f"Output:   {encode_hex(result.output)}")


def storage_options(func):
    func = click.option(
        "--output-storage",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Snapshot to write (default: the input snapshot)",
    )(func)
    func = click.option(
        "--input-storage",
        type=click.Path(dir_okay=False, path_type=Path),
        help="Snapshot to read (default: [storage] state_file)",
    )(func)
    return func


def storage_paths(config: EvmHostConfig, input_storage: Optional[Path], output_storage: Optional[Path]) -> Tuple[Path, Path]:
    input_path = input_storage or Path(config.storage.state_file)
    return input_path, output_storage or input_path


@click.group()
@click.version_option(version=__version__, prog_name="evmhost")
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Configuration file (default: $EVMHOST_CONFIG or ./evmhost.toml)",
)
@click.option("--vm", "vm_library", help="Interpreter shared library (overrides [vm] library)")
@click.option("--log-level", help="Log level (overrides [host] log_level)")
@click.pass_context
def cli(ctx, config_path: Optional[str], vm_library: Optional[str], log_level: Optional[str]):
    """evmhost Command Line Interface

    Run contracts on an EVMC interpreter against a JSON state snapshot.
    """
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if vm_library:
        config.vm.library = vm_library
    if log_level:
        config.host.log_level = log_level
    configure_logging(log_level=config.host.log_level)

    ctx.obj = config


@cli.command("create")
@click.option("--code", required=True, help="Contract init code (hex)")
@click.option("--address", "sender", help="Creator address (default: [execution] sender)")
@click.option("--gas", type=int, help="Gas limit (default: [execution] gas)")
@storage_options
@click.pass_obj
def create_cmd(config: EvmHostConfig, code: str, sender: Optional[str], gas: Optional[int],
               input_storage: Optional[Path], output_storage: Optional[Path]):
    """Deploy a contract.

    Examples:

        evmhost create --code 0x6080...
    """
    init_code = parse_hex(code, "--code")
    creator = parse_address(sender or config.execution.sender, "--address")
    input_path, output_path = storage_paths(config, input_storage, output_storage)

    state = read_state(input_path)
    message = ExecutionMessage(
        kind=CallKind.CREATE,
        gas=gas or config.execution.gas,
        sender=creator,
        input=init_code,
    )
    result = execute_message(config, state, message)
    write_state(state, output_path)

    echo_result(result, show_address=True)
    if not result.success:
        raise SystemExit(1)


@cli.command("call")
@click.option("--address", required=True, help="Contract address")
@click.option("--input-data", default="0x", help="Call data (hex)")
@click.option("--sender", help="Caller address (default: [execution] sender)")
@click.option("--static", "is_static", is_flag=True, help="Run as a static call")
@click.option("--gas", type=int, help="Gas limit (default: [execution] gas)")
@storage_options
@click.pass_obj
def call_cmd(config: EvmHostConfig, address: str, input_data: str, sender: Optional[str],
             is_static: bool, gas: Optional[int],
             input_storage: Optional[Path], output_storage: Optional[Path]):
    """Call a deployed contract.

    Examples:

        evmhost call --address 0x... --input-data 0x6d4ce63c
    """
    destination = parse_address(address, "--address")
    caller = parse_address(sender or config.execution.sender, "--sender")
    data = parse_hex(input_data, "--input-data")
    input_path, output_path = storage_paths(config, input_storage, output_storage)

    state = read_state(input_path)
    account = state.accounts.get(destination)
    if account is None or account.code is None:
        raise click.ClickException(f"No contract at {destination.checksum}")

    message = ExecutionMessage(
        kind=CallKind.CALL,
        flags=MessageFlags.STATIC if is_static else MessageFlags.NONE,
        gas=gas or config.execution.gas,
        destination=destination,
        sender=caller,
        input=data,
    )
    result = execute_message(config, state, message)
    write_state(state, output_path)

    echo_result(result)
    if not result.success:
        raise SystemExit(1)


@cli.command("list")
@click.option("--input-storage", type=click.Path(dir_okay=False, path_type=Path),
              help="Snapshot to read (default: [storage] state_file)")
@click.pass_obj
def list_cmd(config: EvmHostConfig, input_storage: Optional[Path]):
    """List accounts in the snapshot."""
    state = read_state(input_storage or Path(config.storage.state_file))
    if not state.accounts:
        click.echo("No accounts")
        return
    for address, account in state.accounts.items():
        code_size = len(account.code) if account.code is not None else 0
        click.echo(
            f"{address.checksum}  nonce={account.nonce}  code={code_size}B  "
            f"slots={len(account.storage)}  logs={len(account.logs)}"
        )


@cli.command("show")
@click.option("--address", required=True, help="Account address")
@click.option("--input-storage", type=click.Path(dir_okay=False, path_type=Path),
              help="Snapshot to read (default: [storage] state_file)")
@click.pass_obj
def show_cmd(config: EvmHostConfig, address: str, input_storage: Optional[Path]):
    """Show one account as JSON."""
    key = parse_address(address, "--address")
    state = read_state(input_storage or Path(config.storage.state_file))
    account = state.accounts.get(key)
    if account is None:
        raise click.ClickException(f"Account {key.checksum} not found")
    click.echo(json.dumps(account.to_dict(), indent=2))


@cli.command("remove")
@click.option("--address", required=True, help="Account address")
@storage_options
@click.pass_obj
def remove_cmd(config: EvmHostConfig, address: str,
               input_storage: Optional[Path], output_storage: Optional[Path]):
    """Remove an account from the snapshot."""
    key = parse_address(address, "--address")
    input_path, output_path = storage_paths(config, input_storage, output_storage)
    state = read_state(input_path)
    if state.accounts.pop(key, None) is None:
        raise click.ClickException(f"Account {key.checksum} not found")
    write_state(state, output_path)
    click.echo(f"Removed {key.checksum}")


# =============================================================================
# ABI
# =============================================================================

def _load_abi(path: str):
    try:
        return abi_codec.load_abi(path)
    except AbiError as e:
        raise click.ClickException(str(e))


def _echo_json(entries) -> None:
    click.echo(json.dumps(entries, indent=2))


no_lenient_option = click.option(
    "--no-lenient", is_flag=True, help="Don't allow short representation of input params",
)
file_option = click.option(
    "--file", "abi_file", required=True, type=click.Path(exists=True, dir_okay=False),
    help="ABI json file path",
)


@cli.group("abi")
def abi_group():
    """ABI encoding and decoding."""
    pass


@abi_group.group("encode")
def abi_encode():
    """Encode parameters, function calls or constructor input."""
    pass


@abi_encode.command("params")
@click.option("--param", "params", nargs=2, multiple=True, required=True,
              metavar="TYPE VALUE", help="Parameter type and value")
@no_lenient_option
def encode_params_cmd(params, no_lenient: bool):
    """Encode values by type."""
    types = [t for t, _ in params]
    values = [v for _, v in params]
    try:
        click.echo(encode_hex(abi_codec.encode_params(types, values, lenient=not no_lenient)))
    except AbiError as e:
        raise click.ClickException(str(e))


@abi_encode.command("function")
@file_option
@click.option("--name", required=True, help="Function name")
@click.option("--param", "params", multiple=True, metavar="VALUE", help="Function parameter")
@no_lenient_option
def encode_function_cmd(abi_file: str, name: str, params, no_lenient: bool):
    """Encode a function call (selector and arguments)."""
    contract_abi = _load_abi(abi_file)
    try:
        data = abi_codec.encode_function_input(contract_abi, name, list(params), lenient=not no_lenient)
    except AbiError as e:
        raise click.ClickException(str(e))
    click.echo(encode_hex(data))


@abi_encode.command("constructor")
@file_option
@click.option("--code", default="0x", help="Contract bin code")
@click.option("--param", "params", multiple=True, metavar="VALUE", help="Constructor parameter")
@no_lenient_option
def encode_constructor_cmd(abi_file: str, code: str, params, no_lenient: bool):
    """Encode contract init code with constructor arguments."""
    contract_abi = _load_abi(abi_file)
    try:
        data = abi_codec.encode_constructor_input(contract_abi, code, list(params), lenient=not no_lenient)
    except AbiError as e:
        raise click.ClickException(str(e))
    click.echo(encode_hex(data))


@abi_group.group("decode")
def abi_decode():
    """Decode parameters, function output or logs."""
    pass


@abi_decode.command("params")
@click.option("--type", "types", multiple=True, required=True, help="Decode types")
@click.option("--data", required=True, help="Decode data")
def decode_params_cmd(types, data: str):
    """Decode data by type."""
    try:
        _echo_json(abi_codec.decode_params(list(types), data))
    except AbiError as e:
        raise click.ClickException(str(e))


@abi_decode.command("function")
@file_option
@click.option("--name", required=True, help="Function name")
@click.option("--data", required=True, help="Decode data")
def decode_function_cmd(abi_file: str, name: str, data: str):
    """Decode a function's return data."""
    contract_abi = _load_abi(abi_file)
    try:
        _echo_json(abi_codec.decode_function_output(contract_abi, name, data))
    except AbiError as e:
        raise click.ClickException(str(e))


@abi_decode.command("log")
@file_option
@click.option("--event", required=True, help="Event name")
@click.option("--param", "topics", multiple=True, metavar="TOPIC", help="Log topic")
@click.option("--data", required=True, help="Decode data")
def decode_log_cmd(abi_file: str, event: str, topics, data: str):
    """Decode an event log."""
    contract_abi = _load_abi(abi_file)
    try:
        _echo_json(abi_codec.decode_log(contract_abi, event, list(topics), data))
    except AbiError as e:
        raise click.ClickException(str(e))


def main():
    cli()


if __name__ == "__main__":
    main()
