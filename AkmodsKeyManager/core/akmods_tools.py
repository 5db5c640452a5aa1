"""
Direct calls of mokutil and kmodgenca
Used by the privileged helper, which already runs as root
"""

import logging
from pathlib import Path

from AkmodsKeyManager.core.akmods_errors import (
    AkmodsDirectoryNotFoundError,
    AkmodsInvalidPasswordError,
    AkmodsToolError,
    AkmodsUnexpectedOutputError,
)
from AkmodsKeyManager.core.akmods_state import (
    KEY_FILENAME,
    KEY_PATH,
    AkmodsState,
    classify_test_key_output,
    describe_failure,
)
from AkmodsKeyManager.utils.sensitive import SensitiveBuffer
from AkmodsKeyManager.utils.subprocess_runner import run_command


class AkmodsTools:
    """Key state checks and key enrollment steps"""

    def __init__(self, key_dir=None, key_filename=None, runner=None):
        self.key_dir = Path(key_dir or KEY_PATH)
        self.key_filename = str(key_filename or KEY_FILENAME)
        self.runner = runner or run_command

    def test_key(self):
        """
        Ask mokutil about the key
        Returns: AkmodsState (never ERROR)
        Raises: AkmodsError with the diagnostic to print
        """
        if not self.key_dir.is_dir():
            raise AkmodsDirectoryNotFoundError("Akmods key directory not found.")

        result = self.runner(["mokutil", "--test-key", self.key_filename])
        state = classify_test_key_output(result.returncode, result.stdout, result.stderr,
                                         self.key_filename)
        if state != AkmodsState.ERROR:
            return state

        if result.returncode == 0 and result.stderr:
            raise AkmodsToolError(
                f"Something failed while calling 'mokutil --test-key': {result.stderr}",
                returncode=0
            )
        if result.returncode == 0 or (result.returncode == 1 and result.stdout):
            # the tool answered, just not with anything known
            raise AkmodsUnexpectedOutputError(f"Unexpected output '{result.stdout}'")
        raise AkmodsToolError(
            "Failed to call 'mokutil --test-key': "
            + describe_failure(result.returncode, result.stdout, result.stderr),
            returncode=result.returncode
        )

    def generate_key(self):
        """
        Create a new akmods key pair
        Returns: AkmodsState.NOT_ENROLLED
        """
        logging.info("akmods: generating a new akmods key")
        result = self.runner(["kmodgenca", "-a"])
        if result.returncode != 0:
            raise AkmodsToolError(
                "Failed to call 'kmodgenca': "
                + describe_failure(result.returncode, result.stdout, result.stderr),
                returncode=result.returncode
            )
        # stderr carries keygen noise, it does not mean failure
        return AkmodsState.NOT_ENROLLED

    def import_key(self, password):
        """
        Request enrollment of the key on next boot
        Args:
            password: SensitiveBuffer with the one-time password, wiped here
        Returns: AkmodsState.PENDING
        """
        with SensitiveBuffer(password) as secret:
            if isinstance(password, SensitiveBuffer):
                password.wipe()
            if not secret:
                raise AkmodsInvalidPasswordError("Password cannot be empty.")

            logging.info(f"akmods: importing {self.key_filename}")
            # mokutil asks for the password and then for its confirmation
            with secret.repeated_lines(2) as payload:
                result = self.runner(["mokutil", "--import", self.key_filename],
                                     input_data=payload)

        if result.returncode != 0:
            raise AkmodsToolError(
                "Failed to call 'mokutil --import': "
                + describe_failure(result.returncode, result.stdout, result.stderr),
                returncode=result.returncode
            )
        if result.stderr:
            raise AkmodsToolError(
                f"Something failed while calling 'mokutil --import': {result.stderr}",
                returncode=0
            )
        return AkmodsState.PENDING

    def ensure_enrolled(self, read_password):
        """
        Bring the key to the PENDING state, unless it is already further
        Args:
            read_password: callable returning a SensitiveBuffer, called only
                when the key actually has to be imported
        Returns: AkmodsState
        Raises: AkmodsError from the first failing step
        """
        state = self.test_key()
        if state in (AkmodsState.ENROLLED, AkmodsState.PENDING):
            logging.info(f"akmods: nothing to do, key state is {state.name}")
            return state

        if state == AkmodsState.NOT_FOUND:
            state = self.generate_key()

        if state == AkmodsState.NOT_ENROLLED:
            state = self.import_key(read_password())

        return state
