"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from AkmodsKeyManager.utils.sensitive import SensitiveBuffer
from AkmodsKeyManager.utils.subprocess_runner import CommandResult


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRunner:
    """Stands in for run_command; answers from a script of results"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def __call__(self, args, input_data=None, cancellable=None):
        if isinstance(input_data, SensitiveBuffer):
            input_data = input_data.data
        self.calls.append({
            'args': list(args),
            'input': bytes(input_data) if input_data is not None else None,
        })
        if not self.responses:
            raise AssertionError(f"unexpected call: {args}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(args, input_data)
        return response

    @property
    def call_count(self):
        return len(self.calls)

    @property
    def commands(self):
        return [call['args'] for call in self.calls]


def result(returncode=0, stdout="", stderr=""):
    return CommandResult(returncode, stdout, stderr)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def key_dir(tmp_path: Path) -> Path:
    """Return a temporary akmods key directory."""
    certs = tmp_path / "certs"
    certs.mkdir()
    return certs


@pytest.fixture
def key_filename(key_dir: Path) -> str:
    return str(key_dir / "public_key.der")
