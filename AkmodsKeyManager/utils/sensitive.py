"""
Handling of the MOK one-time password
"""

import string


PASSWORD_CHARACTERS = frozenset(string.ascii_letters + string.digits)


class SensitiveBuffer:
    """
    Mutable byte buffer zeroed when released

    Use it as a context manager: the content is wiped on every exit path,
    including exceptions. Wiping twice is harmless.
    """

    def __init__(self, data=b""):
        if isinstance(data, SensitiveBuffer):
            data = data.data
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytearray(data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.wipe()
        return False

    def __len__(self):
        return len(self._data)

    def __bool__(self):
        return len(self._data) > 0

    def __repr__(self):
        return f"<SensitiveBuffer len={len(self._data)}>"

    @property
    def data(self):
        """The underlying bytearray; do not keep references to it"""
        return self._data

    def is_wiped(self):
        """True once every byte is zero"""
        return not any(self._data)

    def wipe(self):
        """Overwrite the content in place"""
        # item assignment keeps working while a memoryview is exported
        for i in range(len(self._data)):
            self._data[i] = 0

    def strip_newline(self):
        """Drop one trailing line terminator, in place"""
        if self._data.endswith(b"\n"):
            self._data[-1] = 0
            del self._data[-1]
            if self._data.endswith(b"\r"):
                self._data[-1] = 0
                del self._data[-1]
        return self

    def repeated_lines(self, count):
        """New buffer with the content followed by a newline, @count times"""
        lines = SensitiveBuffer()
        for _ in range(count):
            lines._data.extend(self._data)
            lines._data.extend(b"\n")
        return lines


def validate_password(password):
    """
    Check a MOK password typed by the user
    MokManager only handles plain letters and digits reliably
    Returns: (valid, reason)
    """
    if isinstance(password, SensitiveBuffer):
        password = password.data
    if isinstance(password, (bytes, bytearray)):
        try:
            text = password.decode("ascii")
        except UnicodeDecodeError:
            return False, "Use only uppercase, lowercase letters and numbers."
    else:
        text = password or ""

    if not text:
        return False, "Password cannot be empty."
    if not set(text) <= PASSWORD_CHARACTERS:
        return False, "Use only uppercase, lowercase letters and numbers."
    return True, ""
