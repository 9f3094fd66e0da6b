import codecs
import io
import logging
import subprocess
import threading
import time
from typing import Any, Callable, Iterator, List, Optional, Union

from tuizer.command.descriptor import RunCommandStreams
from tuizer.command.events import DataReceived, Errored, LifecycleEvent
from tuizer.command.history import HistoryEntryType

log = logging.getLogger(__name__)


def iter_chunks(stream: Any, size: int) -> Iterator[Union[bytes, str]]:
    """
    Yields chunks from a stream until EOF.

    Streams offering `read1` return whatever is available (so prompts without a
    trailing newline get through); anything else is read line by line.
    """
    read1 = getattr(stream, "read1", None)
    while True:
        chunk = read1(size) if callable(read1) else stream.readline()
        if not chunk:
            return
        yield chunk


class StreamBridge:
    """
    Relays a process's standard streams to the channels of a `RunCommandStreams`.

    One daemon thread per stream copies the data. Writes are synchronous, so a
    slow sink slows down the reader and, through the OS pipe, the child itself.
    Every chunk is handed to `post` as a `DataReceived` event; failures are
    handed over as `Errored`.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        streams: RunCommandStreams,
        post: Callable[[LifecycleEvent], None],
        name: str,
        read_size: int = 4096,
    ) -> None:
        self.process = process
        self.streams = streams
        self.name = name
        self.read_size = read_size
        self._post = post
        self._proc_logger = logging.getLogger(f"proc.{name}")
        self._sink_lock = threading.Lock()
        self._stdin_lock = threading.Lock()
        self._detached = threading.Event()
        self._output_threads: List[threading.Thread] = []
        self._input_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Starts the relay threads."""
        if self.process.stdout:
            self._output_threads.append(self._start_thread(
                "stdout", self._relay_output, self.process.stdout, self.streams.write_output, HistoryEntryType.OUT))
        if self.process.stderr:
            self._output_threads.append(self._start_thread(
                "stderr", self._relay_output, self.process.stderr, self.streams.write_error, HistoryEntryType.ERR))
        if self.process.stdin:
            self._input_thread = self._start_thread(
                "stdin", self._relay_input, self.streams.read_input, self.process.stdin)

    def _start_thread(self, label: str, target: Callable, *args: Any) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True, name=f"tuizer-{self.name}-{label}")
        thread.start()
        return thread

    def join_output(self, timeout: Optional[float] = None) -> bool:
        """
        Waits until stdout and stderr reached EOF, i.e. all output has been posted.
        The timeout is shared by both relays.

        :return: False if a relay was still running when the timeout expired.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in self._output_threads:
            thread.join(None if deadline is None else max(0.0, deadline - time.monotonic()))
        return not any(thread.is_alive() for thread in self._output_threads)

    def detach(self) -> None:
        """
        Stops relaying input and closes the process stdin. A read already blocked
        on the input channel cannot be interrupted; its chunk is dropped.
        """
        self._detached.set()
        self._close_stdin()

    def _report(self, error: BaseException, action: str) -> None:
        if self._detached.is_set():
            log.debug(f"Ignoring error of detached bridge '{self.name}' while {action}: {error}")
            return
        log.error(f"Stream bridge of '{self.name}' failed while {action}: {error}")
        self._post(Errored(error))

    def _write_sink(self, sink: Any, chunk: bytes, text: str) -> None:
        payload = text if isinstance(sink, io.TextIOBase) else chunk
        with self._sink_lock:
            sink.write(payload)
            flush = getattr(sink, "flush", None)
            if callable(flush):
                flush()

    def _relay_output(self, pipe: Any, sink: Any, channel: HistoryEntryType) -> None:
        """Target function for the stdout/stderr threads."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        sink_ok = True

        def relay(chunk: bytes, text: str) -> None:
            nonlocal sink_ok
            if sink_ok:
                try:
                    self._write_sink(sink, chunk, text)
                except (OSError, ValueError) as e:
                    # Keep draining the pipe so the child never blocks on a dead sink.
                    sink_ok = False
                    self._report(e, f"writing {channel.value} to its sink")
            self._proc_logger.debug(text.rstrip("\n"))
            self._post(DataReceived(channel, chunk, text))

        try:
            for chunk in iter_chunks(pipe, self.read_size):
                relay(chunk, decoder.decode(chunk))
            # A truncated UTF-8 sequence at EOF; its bytes were already relayed.
            tail = decoder.decode(b"", final=True)
            if tail:
                relay(b"", tail)
        except (OSError, ValueError) as e:
            self._report(e, f"reading {channel.value}")
        finally:
            pipe.close()

    def _relay_input(self, source: Any, stdin: Any) -> None:
        """Target function for the stdin thread."""
        try:
            for chunk in iter_chunks(source, self.read_size):
                if self._detached.is_set():
                    log.debug(f"Dropping input chunk for finished command '{self.name}'.")
                    break
                if isinstance(chunk, str):
                    data, text = chunk.encode("utf-8"), chunk
                else:
                    data, text = chunk, chunk.decode("utf-8", errors="replace")
                # Recorded before the child can see it, so replies never precede it.
                self._post(DataReceived(HistoryEntryType.IN, data, text))
                with self._stdin_lock:
                    stdin.write(data)
                    stdin.flush()
        except BrokenPipeError:
            log.debug(f"Command '{self.name}' closed its stdin; input relay ends.")
        except (OSError, ValueError) as e:
            self._report(e, "relaying input")
        finally:
            self._close_stdin()

    def _close_stdin(self) -> None:
        stdin = self.process.stdin
        if stdin is None:
            return
        with self._stdin_lock:
            if stdin.closed:
                return
            try:
                stdin.close()
            except (OSError, ValueError) as e:
                log.debug(f"Closing stdin of '{self.name}' failed: {e}")
