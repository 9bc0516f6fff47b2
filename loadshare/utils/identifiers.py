"""Identifier sources for generated records (alerts, plans, batch runs)."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import count
from typing import Callable, Iterator
from uuid import uuid4


IdSource = Callable[[], str]


def uuid_id_source() -> str:
    return str(uuid4())


@dataclass
class SequentialIdSource:
    """Deterministic ids (``prefix-1``, ``prefix-2``...) for tests and replays."""

    prefix: str = "id"
    _counter: Iterator[int] = field(default_factory=lambda: count(1), repr=False)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"
