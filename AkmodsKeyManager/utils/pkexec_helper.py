"""
PolicyKit helper for privileged operations
Uses the akmods-key-helper program, which reports the key state as exit code
"""

from pathlib import Path

from AkmodsKeyManager.utils.sensitive import SensitiveBuffer
from AkmodsKeyManager.utils.subprocess_runner import execute_sync


class PkexecHelper:
    """Helper class for PolicyKit authenticated operations"""

    PKEXEC = "pkexec"
    HELPER_PATH = "/usr/libexec/akmods-key-helper"

    def __init__(self, helper_path=None, runner=None):
        self.helper_path = str(helper_path or self.HELPER_PATH)
        self.runner = runner

    def is_helper_installed(self):
        """Check if the helper program is installed"""
        return Path(self.helper_path).exists()

    def _run_helper(self, action, input_data=None, cancellable=None):
        """Run the helper with pkexec; exactly one authentication per call"""
        cmd = [self.PKEXEC, self.helper_path, action]
        return execute_sync(cmd, input_data=input_data, cancellable=cancellable,
                            runner=self.runner)

    def test_key(self, cancellable=None):
        """Ask the helper for the current key state"""
        return self._run_helper("--test", cancellable=cancellable)

    def enroll(self, password, cancellable=None):
        """
        Ask the helper to create (when missing) and import the key
        The password travels on stdin, never on the command line
        """
        with SensitiveBuffer(password) as secret, secret.repeated_lines(1) as payload:
            return self._run_helper("--enroll", input_data=payload, cancellable=cancellable)
