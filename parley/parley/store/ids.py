from __future__ import annotations

import time


class IdSource:
    """Time-based ids that never repeat and never go backwards.

    Ids are milliseconds since the epoch.  When the clock has not advanced, or
    has stepped back, the previous id plus one is issued instead.  Callers
    that need id order to match commit order must draw ids while holding the
    store's commit lock.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._last = 0

    def observe(self, value: int) -> None:
        """Never issue an id at or below ``value``."""
        if value > self._last:
            self._last = value

    def next_int(self) -> int:
        now = int(self._clock() * 1000)
        self._last = max(now, self._last + 1)
        return self._last

    def next_str(self) -> str:
        return str(self.next_int())
