"""
Akmods key states and output classification
Shared between the unprivileged manager and the privileged helper
"""

import logging
from enum import IntEnum


KEY_PATH = "/etc/pki/akmods/certs"
KEY_FILENAME = KEY_PATH + "/public_key.der"


class AkmodsState(IntEnum):
    """State of the akmods signing key"""
    ENROLLED = 0
    NOT_FOUND = 1
    NOT_ENROLLED = 2
    PENDING = 3
    ERROR = 4


class SecurebootState(IntEnum):
    """SecureBoot state as reported by mokutil --sb-state"""
    UNKNOWN = -1
    DISABLED = 0
    ENABLED = 1
    NOT_SUPPORTED = 2


# ==================== Exit code contract ====================
#
# The helper reports the key state as its process exit code. Bump the
# version whenever the table changes, both sides read it from here.
# Version 2: on ERROR, stderr starts with a "kind:<value>" line.

EXIT_CODE_PROTOCOL_VERSION = 2

EXIT_CODES = {
    AkmodsState.ENROLLED: 0,
    AkmodsState.NOT_FOUND: 1,
    AkmodsState.NOT_ENROLLED: 2,
    AkmodsState.PENDING: 3,
    AkmodsState.ERROR: 4,
}

_STATES_BY_EXIT_CODE = {code: state for state, code in EXIT_CODES.items()}


def state_to_exit_code(state):
    """Exit code the helper returns for @state"""
    return EXIT_CODES[AkmodsState(state)]


def exit_code_to_state(returncode):
    """
    State carried by a helper exit code
    Returns None for codes outside the contract (pkexec failures, signals...)
    """
    return _STATES_BY_EXIT_CODE.get(returncode)


# ==================== Classification ====================

def _has_prefix(text, prefix):
    return text is not None and text[:len(prefix)].lower() == prefix.lower()


def _test_key_prefixes(key_filename):
    return (
        (f"{key_filename} not found\n", AkmodsState.NOT_FOUND),
        (f"{key_filename} is not enrolled\n", AkmodsState.NOT_ENROLLED),
        (f"{key_filename} is already in the enrollment request\n", AkmodsState.PENDING),
        (f"{key_filename} is already enrolled\n", AkmodsState.ENROLLED),
    )


def classify_key_output(stdout, key_filename=KEY_FILENAME):
    """Match mokutil's human readable answer; ERROR when nothing matches"""
    for prefix, state in _test_key_prefixes(key_filename):
        if _has_prefix(stdout, prefix):
            return state
    return AkmodsState.ERROR


def classify_test_key_output(returncode, stdout, stderr, key_filename=KEY_FILENAME):
    """
    Classify the outcome of 'mokutil --test-key <key>'

    mokutil exits with 1 for perfectly normal answers ("is already enrolled",
    "is already in the enrollment request"), so exit code 1 with some stdout
    still goes through the prefix matching. Other tools do not get this
    treatment.
    """
    if returncode != 0:
        if not stdout and stderr:
            if _has_prefix(stderr, f"Failed to open {key_filename}\n"):
                return AkmodsState.NOT_FOUND
            return AkmodsState.ERROR
        if stdout and returncode == 1:
            return classify_key_output(stdout, key_filename)
        return AkmodsState.ERROR

    if stderr:
        return AkmodsState.ERROR

    state = classify_key_output(stdout, key_filename)
    if state == AkmodsState.ERROR:
        logging.warning(f"akmods: Unexpected output from mokutil --test-key: {stdout!r}")
    return state


def classify_secureboot_output(stdout, stderr):
    """Classify the outcome of 'mokutil --sb-state'"""
    if _has_prefix(stdout, "SecureBoot enabled\n"):
        return SecurebootState.ENABLED
    if _has_prefix(stdout, "SecureBoot disabled\n"):
        return SecurebootState.DISABLED
    if not stdout and _has_prefix(stderr, "EFI variables are not supported on this system\n"):
        return SecurebootState.NOT_SUPPORTED
    return SecurebootState.UNKNOWN


def describe_failure(returncode, stdout, stderr):
    """
    Richest diagnostic for a failed call: stderr verbatim when it is the only
    thing the tool said, otherwise the exit detail with both streams labeled
    """
    if not stdout and stderr:
        return stderr
    message = f"Child process exited with code {returncode}"
    if stdout:
        message += f"\nstdout: {stdout}"
    if stderr:
        message += f"\nstderr: {stderr}"
    return message
