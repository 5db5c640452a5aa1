#!/usr/bin/env python3
"""
Akmods key helper
Privileged entry point, started through pkexec

The key state is reported as exit code (see EXIT_CODES). On errors stderr
carries a "kind:<value>" line followed by the message. With --enroll the
MOK password is read from stdin.
"""

import argparse
import logging
import sys

from AkmodsKeyManager.core.akmods_errors import (
    AkmodsError,
    AkmodsInvalidPasswordError,
    format_error_report,
)
from AkmodsKeyManager.core.akmods_state import AkmodsState, state_to_exit_code
from AkmodsKeyManager.core.akmods_tools import AkmodsTools
from AkmodsKeyManager.utils.logging_setup import configure_logging
from AkmodsKeyManager.utils.sensitive import SensitiveBuffer


# Runs as root: the log location is fixed, never taken from the caller
HELPER_LOG_FILE = "/var/log/akmods-key-helper.log"

READ_CHUNK_SIZE = 256


def read_password(stream):
    """
    Read the one-time password until EOF, without the final newline
    @stream needs readinto(): the bytes only ever land in wipeable buffers
    """
    password = SensitiveBuffer()
    with SensitiveBuffer(bytes(READ_CHUNK_SIZE)) as chunk:
        try:
            while True:
                count = stream.readinto(chunk.data)
                if not count:
                    break
                with memoryview(chunk.data) as view:
                    password.data.extend(view[:count])
        except BaseException:
            password.wipe()
            raise

    if not password.strip_newline():
        raise AkmodsInvalidPasswordError("Password cannot be empty.")
    return password


def parse_args(argv):
    parser = argparse.ArgumentParser(
        prog="akmods-key-helper",
        description="Check or enroll the akmods signing key"
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--test", action="store_true", help="report the key state")
    group.add_argument("--enroll", action="store_true",
                       help="create the key when missing and import it")
    return parser.parse_args(argv)


def run(args, tools=None, stdin=None, stderr=None):
    """Execute the requested action; returns the process exit code"""
    if tools is None:
        tools = AkmodsTools()
    if stdin is None:
        stdin = sys.stdin.buffer.raw
    if stderr is None:
        stderr = sys.stderr

    try:
        if args.test:
            state = tools.test_key()
        else:
            state = tools.ensure_enrolled(lambda: read_password(stdin))
    except AkmodsError as e:
        logging.error(f"akmods: {e.message}")
        stderr.write(format_error_report(e))
        stderr.flush()
        return state_to_exit_code(AkmodsState.ERROR)

    logging.info(f"akmods: key state {state.name}")
    return state_to_exit_code(state)


def main(argv=None):
    """Main entry point"""
    try:
        args = parse_args(argv)
    except SystemExit as e:
        # argparse exits with 2, which would read as NOT_ENROLLED
        if e.code == 0:
            raise
        return state_to_exit_code(AkmodsState.ERROR)

    configure_logging(HELPER_LOG_FILE)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
