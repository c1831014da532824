from __future__ import annotations

import contextlib
import logging
import queue
import threading
import time
from typing import BinaryIO, Optional

log = logging.getLogger(__name__)

CHUNK_SIZE = 256


class StreamWatcher:
    """Drain a child's output on a background thread.

    The consumer never blocks on the stream itself: chunks are handed over
    through a queue and appended to ``buffer`` by :meth:`drain`. The reader
    thread stops quietly at end of stream or on a read error; ``closed``
    becomes true once the consumer has seen that.
    """

    def __init__(self, stream: BinaryIO, name: str = "stdout") -> None:
        self.name = name
        self.buffer = bytearray()
        self.closed = False
        self._cursor = 0
        self._queue: "queue.SimpleQueue[Optional[bytes]]" = queue.SimpleQueue()
        self._thread = threading.Thread(
            target=self._pump,
            args=(stream,),
            name=f"stream-watcher-{name}",
            daemon=True,
        )
        self._thread.start()

    def _pump(self, stream: BinaryIO) -> None:
        try:
            read = getattr(stream, "read1", None) or stream.read
            while True:
                chunk = read(CHUNK_SIZE)
                if not chunk:
                    break
                self._queue.put(bytes(chunk))
        except (OSError, ValueError) as exc:
            log.debug("%s reader stopped: %s", self.name, exc)
        finally:
            self._queue.put(None)
            with contextlib.suppress(OSError):
                stream.close()

    def _accept(self, item: Optional[bytes]) -> int:
        if item is None:
            self.closed = True
            return 0
        self.buffer.extend(item)
        return len(item)

    def drain(self) -> int:
        added = 0
        while not self.closed:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            added += self._accept(item)
        return added

    def _wait(self, done, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        self.drain()
        while not done() and not self.closed:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                item = self._queue.get(timeout=remaining)
            except queue.Empty:
                break
            self._accept(item)
        return done()

    def wait_closed(self, timeout: float) -> bool:
        return self._wait(lambda: self.closed, timeout)

    def wait_for_lines(self, count: int, timeout: float) -> bool:
        return self._wait(lambda: self.buffer.count(b"\n") >= count, timeout)

    def find_marker(self, marker: bytes) -> bool:
        """Report ``marker`` once, as soon as its last byte has arrived.

        Only start positions from the cursor up to ``len(buffer) - len(marker)``
        are examined; the cursor then moves past them so no byte is rescanned
        and a match is never reported twice.
        """
        index = self.buffer.find(marker, self._cursor)
        if index >= 0:
            self._cursor = index + len(marker)
            return True
        self._cursor = max(self._cursor, len(self.buffer) - len(marker) + 1)
        return False

    def text(self) -> str:
        return self.buffer.decode("utf-8", errors="replace")
