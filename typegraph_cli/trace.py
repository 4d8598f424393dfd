"""Per-request diagnostic trace passed explicitly through crawl calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("typegraph_cli.crawl")


@dataclass(frozen=True)
class TraceEntry:
    level: int
    message: str


class CrawlTrace:
    """Collects diagnostic entries for one request.

    Every entry is also forwarded to a standard :mod:`logging` logger, and to
    *sink* when given.
    """

    def __init__(
        self,
        sink: Optional[Callable[[str], None]] = None,
        log: Optional[logging.Logger] = None,
        request_id: int = 0,
    ) -> None:
        self.sink = sink
        self.log = log or logger
        self.request_id = request_id
        self.entries: List[TraceEntry] = []

    def _emit(self, level: int, msg: str, *args: object) -> None:
        text = msg % args if args else msg
        self.entries.append(TraceEntry(level, text))
        self.log.log(level, "[req %d] %s", self.request_id, text)
        if self.sink is not None:
            self.sink(text)

    def debug(self, msg: str, *args: object) -> None:
        self._emit(logging.DEBUG, msg, *args)

    def info(self, msg: str, *args: object) -> None:
        self._emit(logging.INFO, msg, *args)

    def warning(self, msg: str, *args: object) -> None:
        self._emit(logging.WARNING, msg, *args)

    def messages(self, min_level: int = logging.DEBUG) -> List[str]:
        return [e.message for e in self.entries if e.level >= min_level]
