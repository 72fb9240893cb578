# src/dynamic_query/base/naming.py

import threading


class ParameterCounter:
    """
    Hands out placeholder names (``p1``, ``p2``, ...) for one builder lineage.

    A single counter is created by the root builder and passed by reference to
    every builder derived from it, so two branches extended independently (or
    from different threads) never receive the same name. Gaps in the sequence
    are harmless.
    """

    __slots__ = ("_value", "_lock")

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def next_name(self) -> str:
        return f"p{self.increment()}"

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def current(self) -> int:
        """Last issued value (0 when nothing has been issued yet)."""
        return self._value

    def __repr__(self) -> str:
        return f"ParameterCounter(current={self._value})"
