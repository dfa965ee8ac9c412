"""Context fields attached to every log record of a slot evaluation or run."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def bind_context(**kwargs: object) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def slot_context(slot_index: int, strategy: str) -> Iterator[None]:
    """Tag records emitted while one slot is being decided."""
    with structlog.contextvars.bound_contextvars(slot_index=slot_index, strategy=strategy):
        yield


@contextmanager
def run_context(**fields: object) -> Iterator[None]:
    """Tag records for the duration of a simulation run; previous values come back afterwards."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield
