"""
SecureBoot detection
The akmods key only matters when SecureBoot is enabled
"""

import logging
import threading

from AkmodsKeyManager.core.akmods_errors import AkmodsError
from AkmodsKeyManager.core.akmods_state import SecurebootState, classify_secureboot_output
from AkmodsKeyManager.utils.subprocess_runner import run_command


class SecureBootGate:
    """
    Memoized SecureBoot state

    The first recognized answer of 'mokutil --sb-state' is kept until
    invalidate() is called. Failures leave the state UNKNOWN so a later
    call can try again (mokutil may get installed meanwhile).
    """

    COMMAND = ["mokutil", "--sb-state"]

    def __init__(self, runner=None):
        self.runner = runner or run_command
        self._state = SecurebootState.UNKNOWN
        self._lock = threading.Lock()

    def get_state(self):
        """
        SecureBoot state, probing mokutil when not known yet
        Returns: SecurebootState, UNKNOWN when it could not be determined
        """
        with self._lock:
            if self._state != SecurebootState.UNKNOWN:
                return self._state

        try:
            result = self.runner(self.COMMAND)
        except AkmodsError as e:
            logging.debug(f"akmods: Failed to enum SecureBoot state: {e.message}")
            return SecurebootState.UNKNOWN

        if not result.stdout and not result.stderr:
            logging.debug(f"akmods: No standard output from '{self.COMMAND[0]}'")
            return SecurebootState.UNKNOWN

        state = classify_secureboot_output(result.stdout, result.stderr)
        if state == SecurebootState.UNKNOWN:
            logging.debug(f"akmods: Unexpected response from '{self.COMMAND[0]}': "
                          f"'{result.stdout}'; stderr:'{result.stderr}'")
            return state

        with self._lock:
            self._state = state
        return state

    def get_last_state(self):
        """Last recognized state, without probing"""
        with self._lock:
            return self._state

    def invalidate(self):
        """Forget the memoized state"""
        with self._lock:
            self._state = SecurebootState.UNKNOWN

    def is_enabled(self):
        """Whether the akmods key handling is relevant on this machine"""
        return self.get_state() == SecurebootState.ENABLED
