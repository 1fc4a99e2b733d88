"""
Latest-issued-wins sequencing for concurrent fetches of one resource.
"""


class SequenceGate:
    """
    Hands out increasing sequence numbers and accepts a completion only if
    nothing newer has completed before it.

    Responses may complete in any order; ``accept`` discards the stale ones.
    """

    def __init__(self):
        self._issued = 0
        self._applied = 0

    @property
    def issued(self) -> int:
        return self._issued

    @property
    def applied(self) -> int:
        return self._applied

    def issue(self) -> int:
        self._issued += 1
        return self._issued

    def accept(self, seq: int) -> bool:
        if seq <= self._applied:
            return False
        self._applied = seq
        return True
