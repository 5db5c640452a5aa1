"""
Akmods key management
Business logic to check the state of the akmods signing key and enroll it
into the MOK list, for machines with SecureBoot enabled
"""

import logging
import threading
import time
from pathlib import Path

from AkmodsKeyManager.core.akmods_errors import (
    AkmodsCancelledError,
    AkmodsDirectoryNotFoundError,
    AkmodsError,
    AkmodsInvalidPasswordError,
)
from AkmodsKeyManager.core.akmods_state import KEY_PATH, AkmodsState
from AkmodsKeyManager.core.secureboot_gate import SecureBootGate
from AkmodsKeyManager.utils.pkexec_helper import PkexecHelper
from AkmodsKeyManager.utils.sensitive import SensitiveBuffer, validate_password


STATE_MESSAGES = {
    AkmodsState.ENROLLED: "The akmods key is enrolled",
    AkmodsState.NOT_FOUND: "No akmods key exists yet",
    AkmodsState.NOT_ENROLLED: "The akmods key is not enrolled",
    AkmodsState.PENDING: "The akmods key is pending enrollment. Reboot required.",
    AkmodsState.ERROR: "Unable to determine the akmods key state",
}


class KeyStateCache:
    """Last checked key state, valid for a few seconds"""

    def __init__(self, ttl, clock):
        self.ttl = ttl
        self.clock = clock
        self._state = None
        self._error = None
        self._timestamp = None
        self._lock = threading.Lock()

    @property
    def timestamp(self):
        with self._lock:
            return self._timestamp

    def lookup(self):
        """
        Returns: (hit, state, error); state and error are only set on a hit
        """
        with self._lock:
            if self._timestamp is None or self.clock() - self._timestamp >= self.ttl:
                return False, None, None
            return True, self._state, self._error

    def store(self, state, error=None):
        with self._lock:
            self._state = state
            self._error = error
            self._timestamp = self.clock()

    def clear(self):
        with self._lock:
            self._state = None
            self._error = None
            self._timestamp = None


class AkmodsManager:
    """Main class to handle the akmods key"""

    STATE_CACHE_TTL = 5.0

    def __init__(self, key_dir=None, helper=None, secureboot_gate=None,
                 cache_ttl=None, clock=None):
        if key_dir is None:
            self.key_dir = Path(KEY_PATH)
        else:
            self.key_dir = Path(key_dir)

        self.helper = helper or PkexecHelper()
        self.secureboot = secureboot_gate or SecureBootGate()

        # Avoids asking for the admin password on every refresh
        self._state_cache = KeyStateCache(
            self.STATE_CACHE_TTL if cache_ttl is None else cache_ttl,
            clock or time.monotonic
        )

    def clear_state_cache(self):
        """Forget the last checked state, forcing a new check"""
        self._state_cache.clear()
        logging.debug("akmods: key state cache cleared")

    # ==================== SecureBoot ====================

    def get_secureboot_state(self):
        """SecureBoot state, read once and then remembered"""
        return self.secureboot.get_state()

    def get_last_secureboot_state(self):
        """Last known SecureBoot state, never runs mokutil"""
        return self.secureboot.get_last_state()

    def is_available(self):
        """Check whether akmods keys can be handled at all on this system"""
        return self.key_dir.is_dir()

    # ==================== Key state ====================

    def get_key_state(self, cancellable=None):
        """
        Current state of the akmods key
        Checks through the privileged helper, at most once per cache period
        Returns: AkmodsState
        Raises: AkmodsError
        """
        if not self.is_available():
            raise AkmodsDirectoryNotFoundError("Akmods key directory not found.")

        hit, state, error = self._state_cache.lookup()
        if hit:
            if error is not None:
                raise error.with_traceback(None)
            return state

        try:
            state = self.helper.test_key(cancellable=cancellable)
        except AkmodsCancelledError:
            # only this caller gave up, the next one checks again
            raise
        except AkmodsError as e:
            # cache failures too, it bounds how often the prompt shows up
            self._state_cache.store(AkmodsState.ERROR, e)
            raise

        self._state_cache.store(state)
        logging.debug(f"akmods: key state is {state.name}")
        return state

    # ==================== Enrollment ====================

    def enroll(self, password, cancellable=None):
        """
        Create the akmods key when needed and import it for enrollment
        Args:
            password: one-time MOK password (str, bytes or SensitiveBuffer);
                a SensitiveBuffer is wiped before returning
            cancellable: object with is_cancelled()
        Returns: AkmodsState, normally PENDING
        Raises: AkmodsError
        """
        with SensitiveBuffer(password if password is not None else b"") as secret:
            if isinstance(password, SensitiveBuffer):
                password.wipe()

            if not secret:
                raise AkmodsInvalidPasswordError("Password cannot be empty.")

            logging.info("akmods: enrolling the akmods key")
            state = self.helper.enroll(secret, cancellable=cancellable)

        self.clear_state_cache()
        logging.info(f"akmods: enrollment finished with state {state.name}")
        return state

    # ==================== Reports ====================

    def check_key_status(self, cancellable=None):
        """
        Key state for display
        Returns: dict with success, state, message, needs_reboot, error_kind, show_error
        """
        try:
            state = self.get_key_state(cancellable=cancellable)
        except AkmodsError as e:
            return self._error_report(e, "Failed to check the akmods key")

        return {
            'success': True,
            'state': state,
            'message': STATE_MESSAGES[state],
            'needs_reboot': state == AkmodsState.PENDING,
            'error_kind': None,
            'show_error': False
        }

    def enroll_key(self, password, cancellable=None):
        """
        Enroll the akmods key with a password typed by the user
        Returns: dict with success, state, message, needs_reboot, error_kind, show_error
        """
        valid, reason = validate_password(password)
        if not valid:
            if isinstance(password, SensitiveBuffer):
                password.wipe()
            return self._error_report(AkmodsInvalidPasswordError(reason),
                                      "Invalid password")

        try:
            state = self.enroll(password, cancellable=cancellable)
        except AkmodsError as e:
            return self._error_report(e, "Failed to prepare reboot")

        if state == AkmodsState.PENDING:
            message = 'Akmods key imported successfully. Reboot required.'
        else:
            message = STATE_MESSAGES[state]

        return {
            'success': True,
            'state': state,
            'message': message,
            'needs_reboot': state == AkmodsState.PENDING,
            'error_kind': None,
            'show_error': False
        }

    def _error_report(self, error, summary):
        if error.should_report():
            logging.error(f"akmods: {summary}: {error.message}")
        else:
            logging.debug(f"akmods: {summary}: {error.message}")

        return {
            'success': False,
            'state': AkmodsState.ERROR,
            'message': f"{summary}: {error.message}",
            'needs_reboot': False,
            'error_kind': error.kind,
            'show_error': error.should_report()
        }
