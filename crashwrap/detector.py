"""Incremental crash-signature detector.

Feeds on raw stderr chunks of any size (down to one byte) and splits them
into bytes to pass through and bytes that belong to a crash capture.

States:
  SCANNING   no pending match; bytes are released as they arrive
  PARTIAL    the bytes held since the last line start are a prefix of some
             signature; they are not released until the match is decided
  CAPTURING  a signature matched; it and everything after it is captured
  CONFIRMED  the capture is final (stream closed, or quiet period elapsed)

Patience policy for a pending PARTIAL match:
  quiet_period_s is None  the held prefix waits until more bytes decide it
                          or the stream closes. "pan" <pause> "ic: x" is
                          always detected.
  quiet_period_s = T      after T seconds without new bytes the held prefix
                          is released as ordinary text and that line can no
                          longer match. The same T promotes CAPTURING to
                          CONFIRMED; bytes after that pass through unscanned.
"""

from __future__ import annotations

import enum
import time
from typing import Callable, List, Optional, Sequence, Tuple


class DetectorState(enum.Enum):
    SCANNING = "scanning"
    PARTIAL = "partial"
    CAPTURING = "capturing"
    CONFIRMED = "confirmed"


class CrashDetector:
    def __init__(
        self,
        signatures: Sequence[bytes],
        *,
        quiet_period_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        sigs: List[bytes] = [bytes(s) for s in signatures]
        if not sigs or any(len(s) == 0 for s in sigs):
            raise ValueError("signatures must be a non-empty list of non-empty byte strings")
        self._sigs = sigs
        self._quiet = float(quiet_period_s) if quiet_period_s is not None else None
        self._clock = clock

        self.state = DetectorState.SCANNING
        self.signature: Optional[bytes] = None
        self._at_line_start = True
        self._held = bytearray()
        self._capture = bytearray()
        self._last_write = clock()
        self._closed = False
        self._taken = False

    @property
    def held(self) -> bytes:
        return bytes(self._held)

    def _full_match(self, held: bytes) -> Optional[bytes]:
        for sig in self._sigs:
            if sig == held:
                return sig
        return None

    def _is_prefix(self, held: bytes) -> bool:
        return any(sig.startswith(held) for sig in self._sigs)

    def feed(self, chunk: bytes) -> Tuple[bytes, bytes]:
        """Consume ``chunk``; return ``(passthrough, newly_captured)``."""

        if self._closed:
            raise ValueError("feed() after close()")
        if not chunk:
            return b"", b""
        self._last_write = self._clock()

        out = bytearray()
        cap = bytearray()
        i = 0
        n = len(chunk)
        while i < n:
            st = self.state
            if st is DetectorState.CONFIRMED:
                out += chunk[i:]
                break
            if st is DetectorState.CAPTURING:
                cap += chunk[i:]
                break
            if st is DetectorState.SCANNING:
                if self._at_line_start:
                    self.state = DetectorState.PARTIAL
                    continue
                j = chunk.find(b"\n", i)
                if j < 0:
                    out += chunk[i:]
                    break
                out += chunk[i : j + 1]
                i = j + 1
                self._at_line_start = True
                continue

            # PARTIAL: decide one byte at a time; signatures are short.
            self._held.append(chunk[i])
            i += 1
            held = bytes(self._held)
            hit = self._full_match(held)
            if hit is not None:
                self.state = DetectorState.CAPTURING
                self.signature = hit
                cap += held
                self._held.clear()
            elif not self._is_prefix(held):
                # Only the first held byte is settled; a line start further in
                # may still begin a signature, so rescan the rest.
                out += held[:1]
                self._held.clear()
                self.state = DetectorState.SCANNING
                self._at_line_start = held[:1] == b"\n"
                if len(held) > 1:
                    chunk = held[1:] + chunk[i:]
                    i = 0
                    n = len(chunk)

        self._capture += cap
        return bytes(out), bytes(cap)

    def deadline(self, now: Optional[float] = None) -> Optional[float]:
        """Seconds until ``poll`` can change anything, or None if never."""

        if self._quiet is None:
            return None
        pending = (self.state is DetectorState.PARTIAL and self._held) or self.state is DetectorState.CAPTURING
        if not pending:
            return None
        now = self._clock() if now is None else now
        return max(0.0, self._last_write + self._quiet - now)

    def poll(self, now: Optional[float] = None) -> bytes:
        """Apply the quiet period; return held bytes that were given up on."""

        if self._quiet is None:
            return b""
        now = self._clock() if now is None else now
        if now - self._last_write < self._quiet:
            return b""
        if self.state is DetectorState.PARTIAL and self._held:
            held = bytes(self._held)
            self._held.clear()
            self.state = DetectorState.SCANNING
            self._at_line_start = held.endswith(b"\n")
            return held
        if self.state is DetectorState.CAPTURING:
            self.state = DetectorState.CONFIRMED
        return b""

    def close(self) -> bytes:
        """End of stream. Returns any held bytes that never became a match."""

        self._closed = True
        if self.state is DetectorState.CAPTURING:
            self.state = DetectorState.CONFIRMED
            return b""
        held = bytes(self._held)
        self._held.clear()
        if self.state is DetectorState.PARTIAL:
            self.state = DetectorState.SCANNING
        return held

    def take_capture(self) -> Optional[bytes]:
        """The confirmed capture, exactly once; None before or after that."""

        if self.state is not DetectorState.CONFIRMED or self._taken:
            return None
        self._taken = True
        data = bytes(self._capture)
        self._capture = bytearray()
        return data
