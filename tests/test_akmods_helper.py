"""
Tests for the privileged helper entry point.
"""

import io
import logging

import pytest
from conftest import result

from AkmodsKeyManager.akmods_helper import (
    HELPER_LOG_FILE,
    READ_CHUNK_SIZE,
    main,
    parse_args,
    read_password,
    run,
)
from AkmodsKeyManager.core.akmods_errors import AkmodsInvalidPasswordError, AkmodsSpawnError
from AkmodsKeyManager.core.akmods_state import AkmodsState, exit_code_to_state
from AkmodsKeyManager.core.akmods_tools import AkmodsTools
from AkmodsKeyManager.utils.logging_setup import log_handler


class ReadintoOnlyStream:
    """Raw stream without read(); remembers the buffers it filled"""

    def __init__(self, data, fail_after=None):
        self.data = data
        self.fail_after = fail_after
        self.buffers = []

    def readinto(self, buffer):
        if self.fail_after is not None and len(self.buffers) >= self.fail_after:
            raise OSError("read failed")
        self.buffers.append(buffer)
        count = min(len(buffer), len(self.data))
        buffer[:count] = self.data[:count]
        self.data = self.data[count:]
        return count


@pytest.fixture
def tools(key_dir, key_filename, runner):
    return AkmodsTools(key_dir=key_dir, key_filename=key_filename, runner=runner)


class TestParseArgs:
    def test_test(self):
        assert parse_args(["--test"]).test

    def test_enroll(self):
        assert parse_args(["--enroll"]).enroll

    def test_log_file_is_not_accepted(self, capsys):
        assert main(["--test", "--log-file", "/tmp/akmods.log"]) == AkmodsState.ERROR

    def test_missing_action_is_an_error_state(self, capsys):
        assert main([]) == AkmodsState.ERROR

    def test_both_actions_is_an_error_state(self, capsys):
        assert main(["--test", "--enroll"]) == AkmodsState.ERROR

    def test_unknown_argument_is_an_error_state(self, capsys):
        assert main(["--frobnicate"]) == AkmodsState.ERROR


class TestReadPassword:
    def test_strips_one_newline(self):
        password = read_password(io.BytesIO(b"abc123\n"))
        assert bytes(password.data) == b"abc123"

    def test_without_newline(self):
        assert bytes(read_password(io.BytesIO(b"abc123")).data) == b"abc123"

    def test_empty(self):
        with pytest.raises(AkmodsInvalidPasswordError):
            read_password(io.BytesIO(b"\n"))

    def test_reads_into_caller_buffers_only(self):
        stream = ReadintoOnlyStream(b"abc123\n")
        password = read_password(stream)
        assert bytes(password.data) == b"abc123"
        assert all(not any(buffer) for buffer in stream.buffers)

    def test_longer_than_one_chunk(self):
        secret = b"a1" * READ_CHUNK_SIZE
        assert bytes(read_password(ReadintoOnlyStream(secret + b"\n")).data) == secret

    def test_read_buffer_wiped_on_read_error(self):
        stream = ReadintoOnlyStream(b"abc", fail_after=1)
        with pytest.raises(OSError):
            read_password(stream)
        assert all(not any(buffer) for buffer in stream.buffers)


class TestRun:
    def test_test_reports_state_as_exit_code(self, tools, runner, key_filename):
        runner.queue(result(1, f"{key_filename} is not enrolled\n"))
        stderr = io.StringIO()
        code = run(parse_args(["--test"]), tools=tools, stderr=stderr)
        assert exit_code_to_state(code) == AkmodsState.NOT_ENROLLED
        assert stderr.getvalue() == ""

    def test_test_failure_goes_to_stderr(self, tmp_path, runner):
        tools = AkmodsTools(key_dir=tmp_path / "missing", runner=runner)
        stderr = io.StringIO()
        code = run(parse_args(["--test"]), tools=tools, stderr=stderr)
        assert code == 4
        assert stderr.getvalue() == "kind:directory_not_found\nAkmods key directory not found.\n"

    def test_enroll_reads_password_from_stdin(self, tools, runner, key_filename):
        runner.queue(result(0, f"{key_filename} is not enrolled\n"), result(0))
        code = run(parse_args(["--enroll"]), tools=tools,
                   stdin=io.BytesIO(b"abc123\n"), stderr=io.StringIO())
        assert exit_code_to_state(code) == AkmodsState.PENDING
        assert runner.calls[1]['input'] == b"abc123\nabc123\n"

    def test_enroll_empty_password(self, tools, runner, key_filename):
        runner.queue(result(0, f"{key_filename} is not enrolled\n"))
        stderr = io.StringIO()
        code = run(parse_args(["--enroll"]), tools=tools,
                   stdin=io.BytesIO(b""), stderr=stderr)
        assert code == 4
        assert stderr.getvalue() == "kind:invalid_password\nPassword cannot be empty.\n"
        assert runner.call_count == 1

    def test_enroll_when_already_enrolled(self, tools, runner, key_filename):
        runner.queue(result(1, f"{key_filename} is already enrolled\n"))
        code = run(parse_args(["--enroll"]), tools=tools,
                   stdin=io.BytesIO(b"abc123\n"), stderr=io.StringIO())
        assert code == 0
        assert runner.call_count == 1

    def test_spawn_failure_keeps_its_kind(self, tools, runner):
        runner.queue(AkmodsSpawnError("Failed to execute 'mokutil': No such file or directory"))
        stderr = io.StringIO()
        code = run(parse_args(["--test"]), tools=tools, stderr=stderr)
        assert code == 4
        assert stderr.getvalue().startswith("kind:spawn_failed\n")


# ── Logging ──────────────────────────────────────────────────────────


class TestLogging:
    def test_fixed_log_location(self):
        assert HELPER_LOG_FILE == "/var/log/akmods-key-helper.log"

    def test_missing_directory_is_not_created(self, tmp_path):
        log_file = tmp_path / "a" / "b" / "helper.log"
        handler = log_handler(log_file)
        assert isinstance(handler, logging.NullHandler)
        assert not (tmp_path / "a").exists()

    def test_writes_to_existing_directory(self, tmp_path):
        handler = log_handler(tmp_path / "helper.log")
        try:
            assert isinstance(handler, logging.FileHandler)
        finally:
            handler.close()

    def test_no_file_drops_records(self):
        assert isinstance(log_handler(None), logging.NullHandler)
