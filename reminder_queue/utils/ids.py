"""Identifier generation for reminders, events and claim tokens."""

import itertools
import uuid
from typing import Protocol


class IdGenerator(Protocol):
    def new_id(self) -> str:
        """Return a fresh, unique opaque identifier."""


class UuidGenerator:
    def new_id(self) -> str:
        return str(uuid.uuid4())


class SequentialIdGenerator:
    """Deterministic ids (``prefix-1``, ``prefix-2``, ...)."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self._counter = itertools.count(1)

    def new_id(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"
