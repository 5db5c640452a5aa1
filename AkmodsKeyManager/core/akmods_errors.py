"""
Errors raised by the akmods key management
"""

from enum import Enum

from AkmodsKeyManager.core.akmods_state import AkmodsState


class AkmodsErrorKind(Enum):
    """Closed set of failures callers have to tell apart"""
    DIRECTORY_NOT_FOUND = "directory_not_found"
    SPAWN_FAILED = "spawn_failed"
    CANCELLED = "cancelled"
    AUTHENTICATION_DISMISSED = "authentication_dismissed"
    TOOL_REPORTED_FAILURE = "tool_reported_failure"
    UNEXPECTED_OUTPUT = "unexpected_output"
    INVALID_PASSWORD = "invalid_password"


class AkmodsError(Exception):
    """Base exception for akmods key errors"""

    kind = AkmodsErrorKind.TOOL_REPORTED_FAILURE
    state = AkmodsState.ERROR

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def should_report(self):
        """Whether the user has to be told about this error"""
        return self.kind not in (AkmodsErrorKind.CANCELLED,
                                 AkmodsErrorKind.AUTHENTICATION_DISMISSED)


class AkmodsDirectoryNotFoundError(AkmodsError):
    """The akmods key directory does not exist"""
    kind = AkmodsErrorKind.DIRECTORY_NOT_FOUND


class AkmodsSpawnError(AkmodsError):
    """A tool could not be executed"""
    kind = AkmodsErrorKind.SPAWN_FAILED


class AkmodsCancelledError(AkmodsError):
    """The caller cancelled the operation"""
    kind = AkmodsErrorKind.CANCELLED

    def __init__(self, message="Operation was cancelled"):
        super().__init__(message)


class AkmodsAuthDismissedError(AkmodsError):
    """The administrator password prompt was dismissed"""
    kind = AkmodsErrorKind.AUTHENTICATION_DISMISSED


class AkmodsToolError(AkmodsError):
    """A tool failed; the message carries its diagnostic"""
    kind = AkmodsErrorKind.TOOL_REPORTED_FAILURE

    def __init__(self, message, returncode=None):
        super().__init__(message)
        self.returncode = returncode


class AkmodsUnexpectedOutputError(AkmodsError):
    """A tool succeeded but said something we cannot parse"""
    kind = AkmodsErrorKind.UNEXPECTED_OUTPUT


class AkmodsInvalidPasswordError(AkmodsError, ValueError):
    """The one-time password is empty or uses forbidden characters"""
    kind = AkmodsErrorKind.INVALID_PASSWORD


# ==================== Helper error reports ====================
#
# On ERROR the helper starts its stderr with "kind:<value>" so the caller
# can raise the same exception class on its side of pkexec.

KIND_LINE_PREFIX = "kind:"

ERROR_CLASSES = {
    cls.kind: cls for cls in (
        AkmodsDirectoryNotFoundError,
        AkmodsSpawnError,
        AkmodsCancelledError,
        AkmodsAuthDismissedError,
        AkmodsToolError,
        AkmodsUnexpectedOutputError,
        AkmodsInvalidPasswordError,
    )
}


def format_error_report(error):
    """Text the helper writes on stderr for @error"""
    message = error.message if error.message.endswith("\n") else error.message + "\n"
    return f"{KIND_LINE_PREFIX}{error.kind.value}\n{message}"


def parse_error_report(stderr):
    """
    Split a helper error report
    Returns: (AkmodsErrorKind or None, remaining text)
    """
    first, _, rest = (stderr or "").partition("\n")
    if not first.startswith(KIND_LINE_PREFIX):
        return None, stderr
    try:
        kind = AkmodsErrorKind(first[len(KIND_LINE_PREFIX):].strip())
    except ValueError:
        return None, stderr
    return kind, rest


def error_from_kind(kind, message, returncode=None):
    """Exception instance matching @kind"""
    cls = ERROR_CLASSES.get(kind, AkmodsToolError)
    if cls is AkmodsToolError:
        return AkmodsToolError(message, returncode=returncode)
    return cls(message)
