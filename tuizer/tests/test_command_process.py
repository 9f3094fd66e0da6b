from __future__ import annotations

import io
import logging
import time
from pathlib import Path

import pytest

import tuizer.command.command as command_module
from tuizer.command import (Command, CommandStateError, CommandStatus, DataReceived, Exited, HistoryEntryType,
                            ProcessError)
from conftest import make_pipe_streams, make_streams, posix_only, wait_for

pytestmark = posix_only

TIMEOUT = 10


def _joined(command: Command, kind: HistoryEntryType) -> str:
    return "".join(entry.data for entry in command.get_history_dump() if entry.type is kind)


def test_output_is_relayed_and_recorded() -> None:
    output = io.BytesIO()
    command = Command({"command": "sh", "parameters": ["-c", "printf 'one\\ntwo\\n'"]}, make_streams(output=output))

    command.run()
    assert command.pid is not None

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert command.exit_code == 0
    assert output.getvalue() == b"one\ntwo\n"
    assert _joined(command, HistoryEntryType.OUT) == "one\ntwo\n"
    assert all(entry.date >= command.start_date for entry in command.get_history_dump())
    assert not command.is_running()


def test_input_is_relayed_and_recorded() -> None:
    output = io.BytesIO()
    command = Command({"command": "cat"}, make_streams(data=b"hello\nworld\n", output=output))

    command.run()

    # The input reaches EOF, stdin gets closed and cat exits.
    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert _joined(command, HistoryEntryType.IN) == "hello\nworld\n"
    assert _joined(command, HistoryEntryType.OUT) == "hello\nworld\n"
    assert output.getvalue() == b"hello\nworld\n"


def test_text_sinks_receive_strings() -> None:
    output = io.StringIO()
    command = Command({"command": "sh", "parameters": ["-c", "printf 'h\\303\\251llo'"]}, make_streams(output=output))

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert output.getvalue() == "héllo"


def test_error_output_and_failing_exit_code() -> None:
    error = io.BytesIO()
    command = Command({"command": "sh", "parameters": ["-c", "echo oops >&2; exit 3"]}, make_streams(error=error))

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.ERROR
    assert command.exit_code == 3
    assert error.getvalue() == b"oops\n"
    assert _joined(command, HistoryEntryType.ERR) == "oops\n"
    assert _joined(command, HistoryEntryType.OUT) == ""


def test_answered_parameters_are_resolved_at_run() -> None:
    output = io.BytesIO()
    command = Command(
        {"command": "sh", "parameters": ["-c", {"parameter": "echo $", "answer": "resolved"}]},
        make_streams(output=output),
    )

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert output.getvalue() == b"resolved\n"
    assert command.command_string == "sh -c echo $"


def test_kill_ends_in_killed() -> None:
    command = Command({"command": "sleep", "parameters": ["30"]}, make_streams())
    command.run()
    assert command.is_running()

    command.kill()

    assert command.wait(TIMEOUT) is CommandStatus.KILLED
    assert command.exit_code is None
    assert not command.is_running()


def test_stop_ends_in_stopped() -> None:
    command = Command({"command": "sleep", "parameters": ["30"]}, make_streams())
    command.run()

    command.stop()

    assert command.wait(TIMEOUT) is CommandStatus.STOPPED
    assert command.exit_code is None


def test_stop_after_exit_does_nothing() -> None:
    command = Command({"command": "true"}, make_streams())
    command.run()
    assert command.wait(TIMEOUT) is CommandStatus.FINISHED

    command.stop()
    command.kill()

    assert command.status is CommandStatus.FINISHED


def test_missing_executable_raises_process_error() -> None:
    command = Command({"command": "tuizer-definitely-missing-binary"}, make_streams())

    with pytest.raises(ProcessError) as info:
        command.run()

    assert isinstance(info.value.__cause__, FileNotFoundError)
    assert command.status is CommandStatus.NOT_STARTED
    assert command.pid is None


def test_run_is_guarded_against_a_second_call() -> None:
    command = Command({"command": "true"}, make_streams())
    command.run()

    with pytest.raises(CommandStateError):
        command.run()
    with pytest.raises(CommandStateError):
        command.parameters = ["--again"]

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    with pytest.raises(CommandStateError):
        command.run()


def test_listeners_observe_terminal_state() -> None:
    command = Command({"command": "sh", "parameters": ["-c", "echo hi"]}, make_streams())
    exits, chunks = [], []
    command.on_event(Exited, lambda event: exits.append((event, command.status)))
    command.on_event(DataReceived, chunks.append)

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert exits == [(Exited(code=0, signal=None), CommandStatus.FINISHED)]
    assert b"".join(chunk.data for chunk in chunks if chunk.channel is HistoryEntryType.OUT) == b"hi\n"


def test_removed_listeners_are_not_called() -> None:
    command = Command({"command": "true"}, make_streams())
    calls = []
    command.on_event(Exited, calls.append)
    command.remove_all_event_listeners(Exited)

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert calls == []


def test_runtime_stream_error_stops_the_command() -> None:
    class BrokenSink:
        def write(self, data):
            raise OSError("sink is gone")

    command = Command(
        {"command": "sh", "parameters": ["-c", "echo hi"]},
        make_streams(output=BrokenSink()),
    )

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.STOPPED
    # The exit code is still recorded once the process is gone.
    assert command.exit_code == 0
    # Output keeps being drained and recorded.
    assert _joined(command, HistoryEntryType.OUT) == "hi\n"


def test_working_directory_is_configurable(tmp_path: Path) -> None:
    output = io.BytesIO()
    command = Command({"command": "pwd"}, make_streams(output=output), cwd=tmp_path)

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert Path(output.getvalue().decode().strip()).resolve() == tmp_path.resolve()


def test_history_cap_applies_to_commands() -> None:
    command = Command(
        {"command": "sh", "parameters": ["-c", "for i in 1 2 3 4 5; do echo $i; sleep 0.05; done"]},
        make_streams(),
        history_limit=2,
    )

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    history = command.get_history_dump()
    assert len(history) <= 2
    assert history[-1].data.endswith("5\n")


def test_concurrent_commands_are_independent() -> None:
    sleeper = Command({"command": "sleep", "parameters": ["30"]}, make_streams())
    echo = Command({"command": "sh", "parameters": ["-c", "echo done"]}, make_streams())
    sleeper.run()
    echo.run()

    assert echo.wait(TIMEOUT) is CommandStatus.FINISHED
    assert wait_for(sleeper.is_running)

    sleeper.kill()
    assert sleeper.wait(TIMEOUT) is CommandStatus.KILLED
    assert sleeper.get_history_dump() == []


def test_output_of_short_lived_processes_is_never_lost() -> None:
    lost = []
    for attempt in range(50):
        output = io.BytesIO()
        command = Command({"command": "printf", "parameters": ["hi"]}, make_streams(output=output))
        command.run()
        assert command.wait(TIMEOUT) is CommandStatus.FINISHED
        if _joined(command, HistoryEntryType.OUT) != "hi" or output.getvalue() != b"hi":
            lost.append(attempt)
    assert lost == []


def test_input_is_recorded_before_the_reply() -> None:
    for _ in range(30):
        streams, writer = make_pipe_streams()
        command = Command({"command": "cat"}, streams)
        command.run()
        writer.write(b"ping\n")
        writer.close()

        assert command.wait(TIMEOUT) is CommandStatus.FINISHED
        streams.read_input.close()
        history = command.get_history_dump()
        assert [entry.type for entry in history][:1] == [HistoryEntryType.IN]
        assert history[0].date <= history[-1].date


def test_interactive_exchange_is_recorded_in_delivery_order() -> None:
    streams, writer = make_pipe_streams()
    command = Command({"command": "cat"}, streams)
    lines = ["alpha\n", "beta\n", "gamma\n"]
    command.run()

    for count, line in enumerate(lines, start=1):
        writer.write(line.encode())
        assert wait_for(lambda: _joined(command, HistoryEntryType.OUT) == "".join(lines[:count]))
    writer.close()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    streams.read_input.close()
    history = command.get_history_dump()
    assert [entry.type for entry in history] == [HistoryEntryType.IN, HistoryEntryType.OUT] * len(lines)
    assert [entry.data for entry in history if entry.type is HistoryEntryType.IN] == lines
    assert [entry.data for entry in history if entry.type is HistoryEntryType.OUT] == lines
    dates = [entry.date for entry in history]
    assert dates == sorted(dates)
    assert dates[0] >= command.start_date


def test_truncated_utf8_at_eof_is_replaced_not_dropped() -> None:
    output = io.StringIO()
    command = Command({"command": "sh", "parameters": ["-c", "printf 'ab\\303'"]}, make_streams(output=output))

    command.run()

    assert command.wait(TIMEOUT) is CommandStatus.FINISHED
    assert output.getvalue() == "ab\ufffd"
    assert _joined(command, HistoryEntryType.OUT) == "ab\ufffd"


def test_inherited_output_pipes_delay_exit_once(monkeypatch: pytest.MonkeyPatch,
                                                caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(command_module.config, "OUTPUT_DRAIN_TIMEOUT", 1.0)
    # The background sleep keeps both stdout and stderr open after sh exits.
    command = Command({"command": "sh", "parameters": ["-c", "sleep 5 & echo hi"]}, make_streams())

    with caplog.at_level(logging.WARNING, logger="tuizer.command.command"):
        started = time.monotonic()
        command.run()
        status = command.wait(TIMEOUT)
        elapsed = time.monotonic() - started

    assert status is CommandStatus.FINISHED
    assert elapsed < 1.8
    assert _joined(command, HistoryEntryType.OUT) == "hi\n"
    assert "still open after exit" in caplog.text
