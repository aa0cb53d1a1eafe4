
from __future__ import annotations
import queue
from typing import Any, List, Optional, Tuple
from loguru import logger

from ..core.interfaces import AnyCut, CutSink


class CutCollector:
    """Sink living next to the master problem; keeps (theta index, cut) in arrival order."""

    def __init__(self):
        self.cuts: List[Tuple[int, AnyCut]] = []

    def add_cut(self, index: int, cut: AnyCut) -> bool:
        self.cuts.append((index, cut))
        return True

    def __len__(self) -> int:
        return len(self.cuts)


class CutChannel:
    """
    Buffered channel used when a policy runs on a worker.

    The worker-side policy writes into the channel; the master drains it into
    its own sink. Pass a ``multiprocessing`` (manager) queue when the two
    sides are different processes.
    """

    def __init__(self, q: Optional[Any] = None):
        self._queue = q if q is not None else queue.Queue()

    def add_cut(self, index: int, cut: AnyCut) -> bool:
        self._queue.put((index, cut))
        return True

    def drain(self, sink: CutSink) -> int:
        n = 0
        while True:
            try:
                index, cut = self._queue.get_nowait()
            except queue.Empty:
                break
            if sink.add_cut(index, cut):
                n += 1
        logger.debug("Drained {} cuts from channel", n)
        return n
