"""
Audit entry id generation.

Ids sort by creation time within one process: millisecond UTC timestamp,
then a counter that restarts with each new stamp, then a random node tag that keeps ids from two
processes apart. Only letters, digits and ``-`` are used so the id is a
valid Turtle local name.
"""
import secrets
from typing import Optional

from podshare.core.clock import Clock, system_clock


class AuditIdGenerator:

    def __init__(self, clock: Optional[Clock] = None, node: Optional[str] = None):
        self.clock = clock or system_clock
        self.node = node or secrets.token_hex(4)
        self._stamp = ""
        self._counter = 0

    def next_id(self) -> str:
        ts = self.clock.now()
        stamp = ts.strftime("%Y%m%dT%H%M%S") + f"{ts.microsecond // 1000:03d}"
        if stamp > self._stamp:
            self._stamp = stamp
            self._counter = 0
        else:
            # Same millisecond, or the clock stepped back
            self._counter += 1
        return f"{self._stamp}-{self._counter:06d}-{self.node}"
