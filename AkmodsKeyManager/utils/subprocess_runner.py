"""
Running the external tools
Captures both output streams fully and turns the outcome into a key state
"""

import logging
import subprocess
from collections import namedtuple

from AkmodsKeyManager.core.akmods_errors import (
    AkmodsAuthDismissedError,
    AkmodsCancelledError,
    AkmodsSpawnError,
    AkmodsToolError,
    error_from_kind,
    parse_error_report,
)
from AkmodsKeyManager.core.akmods_state import (
    AkmodsState,
    describe_failure,
    exit_code_to_state,
)
from AkmodsKeyManager.utils.cancellable import is_cancelled
from AkmodsKeyManager.utils.sensitive import SensitiveBuffer


# pkexec exits with this code when the authentication dialog is dismissed
PKEXEC_DISMISSED_EXIT_CODE = 126

# How often (seconds) a running child is checked for cancellation
POLL_INTERVAL = 0.1


CommandResult = namedtuple("CommandResult", ["returncode", "stdout", "stderr"])


def _decode(data):
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def run_command(args, input_data=None, cancellable=None):
    """
    Run a command to completion
    Args:
        args: argument list, args[0] is looked up in PATH
        input_data: bytes, bytearray or SensitiveBuffer written to stdin, which
            is then closed; None connects stdin to /dev/null
        cancellable: object with is_cancelled(), checked while waiting
    Returns: CommandResult
    Raises: AkmodsSpawnError, AkmodsCancelledError
    """
    if is_cancelled(cancellable):
        raise AkmodsCancelledError()

    if isinstance(input_data, SensitiveBuffer):
        input_data = input_data.data

    try:
        process = subprocess.Popen(
            args,
            stdin=subprocess.PIPE if input_data is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE
        )
    except OSError as e:
        logging.debug(f"akmods: Failed to spawn {args[0]}: {e}")
        raise AkmodsSpawnError(f"Failed to execute '{args[0]}': {e.strerror or e}") from e

    # communicate() reads both pipes concurrently, so a chatty tool cannot
    # block on a full pipe; retrying after a timeout does not lose output
    pending_input = input_data
    while True:
        try:
            stdout, stderr = process.communicate(input=pending_input, timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            # the input is only accepted by the first call
            pending_input = None
            if is_cancelled(cancellable):
                logging.debug(f"akmods: Cancelling {args[0]} (pid {process.pid})")
                process.kill()
                process.communicate()
                raise AkmodsCancelledError()

    return CommandResult(process.returncode, _decode(stdout), _decode(stderr))


def execute_sync(args, input_data=None, cancellable=None, runner=None):
    """
    Run a tool following the helper exit code contract
    Exit codes 0-3 are key states, everything else is a failure. On exit 4
    a leading "kind:" stderr line selects the exception class.
    Returns: AkmodsState (never ERROR)
    Raises: AkmodsError subclasses
    """
    if runner is None:
        runner = run_command

    result = runner(args, input_data=input_data, cancellable=cancellable)

    if result.returncode == 0:
        if is_cancelled(cancellable):
            raise AkmodsCancelledError()
        if result.stderr:
            raise AkmodsToolError(result.stderr, returncode=0)
        return AkmodsState.ENROLLED

    state = exit_code_to_state(result.returncode)
    if state is not None and state != AkmodsState.ERROR:
        return state

    kind, stderr = None, result.stderr
    if state == AkmodsState.ERROR:
        kind, stderr = parse_error_report(result.stderr)

    message = describe_failure(result.returncode, result.stdout, stderr)
    logging.debug(f"akmods: '{' '.join(str(a) for a in args)}' failed: {message}")

    if result.returncode == PKEXEC_DISMISSED_EXIT_CODE:
        raise AkmodsAuthDismissedError(message)
    if kind is not None:
        raise error_from_kind(kind, message, returncode=result.returncode)
    raise AkmodsToolError(message, returncode=result.returncode)
