"""
Provisioner - CLI Entry Point.

Commands:
    provision [--spec-file PATH]       Provision the project's resources
    operate --id ID --op OP            stop | start | restart | resize:N
    teardown                           Delete everything in the ledger
    status                             Show the persisted ledger
    run                                provision, scale-set demo, teardown

Global options select the project (directory under upload/), the ledger
state file, the provider and debug logging.

Exit codes:
    0 success, 1 provisioning/lifecycle failure, 2 configuration error,
    3 teardown left residual resources
"""

import argparse
import asyncio
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Sequence

from . import constants as CONSTANTS
from .logger import logger, print_stack_trace, set_debug_mode
from .core.context import SessionContext
from .core.exceptions import (
    ConfigurationError,
    CycleDetected,
    LifecycleError,
    ProviderError,
    ProviderNotFoundError,
    ProvisioningFailed,
    TeardownResidual,
)
from .core.factory import create_context
from .core.graph import DependencyGraph
from .core.ledger import ProvisioningLedger
from .core.lifecycle import LifecycleController
from .core.models import LifecycleOperation, ResourceKind, ResourceStatus, SessionResult
from .core.session import ProvisioningSession, TeardownPolicy
from .core.teardown import TeardownCoordinator


# ==========================================
# Reporting
# ==========================================

def print_ledger(ledger: ProvisioningLedger) -> None:
    """Print one line per ledger entry."""
    if len(ledger) == 0:
        print("Ledger is empty.")
        return
    for entry in ledger.entries():
        line = f"  {entry.resource_id:<24} {entry.spec.kind.value:<14} {entry.status.value:<11}"
        if entry.last_error:
            line += f" {entry.last_error.value}: {entry.error_message}"
        elif entry.handle:
            line += f" {entry.handle}"
        print(line)


def print_report(result: SessionResult, ledger: Optional[ProvisioningLedger] = None) -> None:
    """Print succeeded / failed / residual sets (and the ledger for context)."""
    print("Session result:")
    print(f"  succeeded: {sorted(result.succeeded)}")
    print(f"  failed:    {sorted(result.failed)}")
    print(f"  residual:  {sorted(result.residual)}")
    if result.residual:
        print("WARNING: residual resources may still exist at the provider and incur cost.")
    if ledger is not None:
        print_ledger(ledger)


def exit_code_for(result: SessionResult) -> int:
    if result.residual:
        return CONSTANTS.EXIT_RESIDUAL
    if result.failed:
        return CONSTANTS.EXIT_FAILED
    return CONSTANTS.EXIT_OK


# ==========================================
# Commands
# ==========================================

def _context(args: argparse.Namespace, load_specs: bool = False) -> SessionContext:
    context = create_context(
        project_name=args.project,
        spec_file=getattr(args, "spec_file", None),
        state_file=args.state_file,
        provider_name=args.provider,
        load_specs=load_specs,
    )
    if context.config.debug:
        set_debug_mode(True)
    return context


def _interrupt(context: SessionContext) -> None:
    logger.warning("Interrupt received: cancelling the session, teardown follows")
    context.cancel()


@contextmanager
def cancel_on_interrupt(context: SessionContext):
    """
    Turn SIGINT into session cancellation while the block runs.

    In-flight creates are interrupted and unstarted ones cancelled, so the
    session unwinds through its own teardown instead of a KeyboardInterrupt.
    Event loops without signal support (Windows) keep the KeyboardInterrupt
    handling in main().
    """
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt, context)
        installed = True
    except NotImplementedError:
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _run_session(context: SessionContext, policy: TeardownPolicy, demo: bool) -> int:
    # Validate before entering the session so a bad spec never triggers teardown
    DependencyGraph.build(context.specs)

    ledger = ProvisioningLedger.load(context.get_state_file())
    session = ProvisioningSession(context, ledger, teardown_policy=policy)
    try:
        with cancel_on_interrupt(context):
            async with session:
                await session.provision()
                if demo:
                    await _scale_set_demo(session)
    except (ProvisioningFailed, LifecycleError, ProviderError) as e:
        logger.error(str(e))
        print_stack_trace()
        result = session.result()
        print_report(result, ledger)
        return exit_code_for(result) or CONSTANTS.EXIT_FAILED
    except TeardownResidual:
        result = session.result()
        print_report(result, ledger)
        return CONSTANTS.EXIT_RESIDUAL

    result = session.result()
    print_report(result)
    return exit_code_for(result)


async def _scale_set_demo(session: ProvisioningSession) -> None:
    """Stop, start, double the capacity and restart every Ready scale set."""
    for entry in session.ledger.entries():
        if entry.spec.kind is not ResourceKind.SCALE_SET or entry.status is not ResourceStatus.READY:
            continue
        capacity = int(entry.properties.get("sku", {}).get("capacity", 1))
        for op in ("stop", "start", f"resize:{capacity * 2}", "restart"):
            await session.operate(entry.resource_id, op)


async def cmd_provision(args: argparse.Namespace) -> int:
    context = _context(args, load_specs=True)
    try:
        return await _run_session(context, TeardownPolicy.ON_ERROR, demo=False)
    finally:
        await context.provider.close()


async def cmd_run(args: argparse.Namespace) -> int:
    context = _context(args, load_specs=True)
    try:
        return await _run_session(context, TeardownPolicy.ALWAYS, demo=True)
    finally:
        await context.provider.close()


async def cmd_operate(args: argparse.Namespace) -> int:
    op = LifecycleOperation.parse(args.op)
    context = _context(args)
    try:
        ledger = ProvisioningLedger.load(context.get_state_file())
        try:
            result = await LifecycleController.from_context(context).operate(ledger, args.id, op)
        except (LifecycleError, ProviderError) as e:
            logger.error(str(e))
            print_stack_trace()
            print_ledger(ledger)
            return CONSTANTS.EXIT_FAILED
        print(f"'{result.operation}' completed on {result.resource_id} ({result.handle})")
        return CONSTANTS.EXIT_OK
    finally:
        await context.provider.close()


async def cmd_teardown(args: argparse.Namespace) -> int:
    context = _context(args)
    try:
        ledger = ProvisioningLedger.load(context.get_state_file())
        result = await TeardownCoordinator.from_context(context).teardown(ledger)
        print_report(SessionResult(residual=result.residual), ledger if result.residual else None)
        print(f"Deleted: {sorted(result.deleted)}")
        return CONSTANTS.EXIT_RESIDUAL if result.residual else CONSTANTS.EXIT_OK
    finally:
        await context.provider.close()


async def cmd_status(args: argparse.Namespace) -> int:
    context = _context(args)
    try:
        ledger = ProvisioningLedger.load(context.get_state_file())
        print(f"Project '{context.project_name}' ({context.get_state_file()}):")
        print_ledger(ledger)
        return CONSTANTS.EXIT_OK
    finally:
        await context.provider.close()


COMMANDS = {
    "provision": cmd_provision,
    "operate": cmd_operate,
    "teardown": cmd_teardown,
    "status": cmd_status,
    "run": cmd_run,
}


# ==========================================
# Entry Point
# ==========================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provisioner",
        description="Provision, operate and tear down a dependency graph of cloud resources."
    )
    parser.add_argument("--project", default=CONSTANTS.DEFAULT_PROJECT_NAME,
                        help="Project directory under upload/ (default: %(default)s)")
    parser.add_argument("--state-file", type=Path, default=None,
                        help="Ledger state file (default: <project>/state.json)")
    parser.add_argument("--provider", default=None,
                        help="Override the provider from config.json (e.g. azure, simulated)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    provision = subparsers.add_parser("provision", help="Provision all resources in the resource spec file")
    provision.add_argument("--spec-file", type=Path, default=None,
                           help="Resource spec file (default: <project>/config_resources.json)")

    operate = subparsers.add_parser("operate", help="Run a lifecycle operation on a resource")
    operate.add_argument("--id", required=True, help="Resource id")
    operate.add_argument("--op", required=True, help="stop | start | restart | resize:N")

    subparsers.add_parser("teardown", help="Delete every resource recorded in the ledger")
    subparsers.add_parser("status", help="Show the persisted ledger")

    run = subparsers.add_parser("run", help="Provision, run the scale set demo and tear down")
    run.add_argument("--spec-file", type=Path, default=None,
                     help="Resource spec file (default: <project>/config_resources.json)")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_debug_mode(args.debug)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except (ConfigurationError, CycleDetected, ProviderNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        print_stack_trace()
        return CONSTANTS.EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.error("Interrupted. Run 'status' to inspect the ledger and 'teardown' to clean up.")
        return CONSTANTS.EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
