from __future__ import annotations

import io
import os
import sys
import time
from typing import BinaryIO, Callable, Tuple

import pytest

from tuizer.command import RunCommandStreams

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX binaries and signals")


def make_streams(data: bytes = b"", output=None, error=None) -> RunCommandStreams:
    return RunCommandStreams(
        read_input=io.BytesIO(data),
        write_output=output if output is not None else io.BytesIO(),
        write_error=error if error is not None else io.BytesIO(),
    )


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


def make_pipe_streams(output=None) -> Tuple[RunCommandStreams, BinaryIO]:
    """Streams whose input channel is an OS pipe; returns them with the writing end."""
    read_fd, write_fd = os.pipe()
    reader = open(read_fd, "rb")
    writer = open(write_fd, "wb", buffering=0)
    streams = RunCommandStreams(
        read_input=reader,
        write_output=output if output is not None else io.BytesIO(),
        write_error=io.BytesIO(),
    )
    return streams, writer
