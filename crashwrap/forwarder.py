"""Dual-stream forwarder.

stdout: pipe -> destination, verbatim.
stderr: pipe -> reader thread -> queue -> detector thread -> destination.

Each stream runs on its own threads so a stall on one never blocks the
other. There is no ordering between the two streams. A failing destination
is recorded and then bypassed, but its pipe keeps being drained so the child
never blocks on a full pipe.
"""

from __future__ import annotations

import os
import queue
import threading
from typing import BinaryIO, List, Optional

from .detector import CrashDetector
from .errors import StreamError
from .journal import Journal

CHUNK_SIZE = 4096


class _Sink:
    def __init__(self, name: str, dest: BinaryIO, errors: List[StreamError], journal: Journal) -> None:
        self.name = name
        self.dest = dest
        self.broken = False
        self._errors = errors
        self._journal = journal

    def write(self, data: bytes) -> None:
        if not data or self.broken:
            return
        try:
            self.dest.write(data)
            self.dest.flush()
        except (OSError, ValueError) as e:
            self.broken = True
            self._errors.append(StreamError(self.name, e))
            self._journal.log(f"{self.name} destination failed, discarding further output: {e!r}")


class StreamForwarder:
    def __init__(
        self,
        stdout_pipe: BinaryIO,
        stderr_pipe: BinaryIO,
        *,
        stdout_dest: BinaryIO,
        stderr_dest: BinaryIO,
        detector: CrashDetector,
        mirror_capture: bool = True,
        journal: Optional[Journal] = None,
    ) -> None:
        self._journal = journal if journal is not None else Journal(None)
        self.errors: List[StreamError] = []
        self._stdout_pipe = stdout_pipe
        self._stderr_pipe = stderr_pipe
        self._out = _Sink("stdout", stdout_dest, self.errors, self._journal)
        self._err = _Sink("stderr", stderr_dest, self.errors, self._journal)
        self.detector = detector
        self._mirror = bool(mirror_capture)
        self._chunks: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        self.stdout_bytes = 0
        self.stderr_bytes = 0

    def start(self) -> None:
        specs = (
            ("crashwrap-stdout", self._pump_stdout),
            ("crashwrap-stderr-read", self._read_stderr),
            ("crashwrap-stderr-detect", self._detect_stderr),
        )
        for name, target in specs:
            t = threading.Thread(target=target, name=name, daemon=True)
            t.start()
            self._threads.append(t)

    def join(self) -> None:
        """Block until both streams hit EOF and every byte was handed on."""

        for t in self._threads:
            t.join()

    def _read_chunks(self, pipe: BinaryIO, stream: str):
        fd = pipe.fileno()
        try:
            while True:
                try:
                    data = os.read(fd, CHUNK_SIZE)
                except OSError as e:
                    self.errors.append(StreamError(stream, e))
                    self._journal.log(f"{stream} read failed: {e!r}")
                    return
                if not data:
                    return
                yield data
        finally:
            pipe.close()

    def _pump_stdout(self) -> None:
        for data in self._read_chunks(self._stdout_pipe, "stdout"):
            self.stdout_bytes += len(data)
            self._out.write(data)

    def _read_stderr(self) -> None:
        try:
            for data in self._read_chunks(self._stderr_pipe, "stderr"):
                self.stderr_bytes += len(data)
                self._chunks.put(data)
        finally:
            self._chunks.put(None)

    def _detect_stderr(self) -> None:
        det = self.detector
        while True:
            try:
                chunk = self._chunks.get(timeout=det.deadline())
            except queue.Empty:
                released = det.poll()
                if released:
                    self._journal.log(f"partial signature given up after quiet period ({len(released)} bytes released)")
                self._err.write(released)
                continue
            if chunk is None:
                break
            passthrough, captured = det.feed(chunk)
            self._err.write(passthrough)
            if self._mirror:
                self._err.write(captured)
        self._err.write(det.close())
