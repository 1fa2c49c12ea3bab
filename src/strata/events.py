"""Lifecycle notifications emitted by the migrator.

The six notifications form a closed union (``Event``). Each carries a stable
``name`` string so listeners can subscribe by name, and consumers can also
dispatch on the concrete type.

The migrator only needs something with a ``publish(event)`` method. The
in-process ``EventDispatcher`` below is the default implementation.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar, Protocol, Union

from strata.models import Direction


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class MigrationsStarted:
    """A batch of migrations is about to run."""

    name: ClassVar[str] = "migration.started"

    direction: Direction


@dataclass(frozen=True)
class MigrationsEnded:
    """A batch of migrations finished successfully."""

    name: ClassVar[str] = "migration.ended"

    direction: Direction


@dataclass(frozen=True)
class MigrationStarted:
    """A single migration body is about to run."""

    name: ClassVar[str] = "migration.migration_started"

    migration: str
    method: Direction


@dataclass(frozen=True)
class MigrationEnded:
    """A single migration body finished successfully."""

    name: ClassVar[str] = "migration.migration_ended"

    migration: str
    method: Direction


@dataclass(frozen=True)
class MigrationSkipped:
    """A pending migration declined to run."""

    name: ClassVar[str] = "migration.skipped"

    migration: str


@dataclass(frozen=True)
class NoPendingMigrations:
    """There was nothing to do."""

    name: ClassVar[str] = "migration.no_pending"

    direction: Direction


Event = Union[
    MigrationsStarted,
    MigrationsEnded,
    MigrationStarted,
    MigrationEnded,
    MigrationSkipped,
    NoPendingMigrations,
]

EVENT_TYPES: tuple[type, ...] = (
    MigrationsStarted,
    MigrationsEnded,
    MigrationStarted,
    MigrationEnded,
    MigrationSkipped,
    NoPendingMigrations,
)

Listener = Callable[[Event], None]


# =============================================================================
# Publishing
# =============================================================================


class EventPublisher(Protocol):
    """Anything the migrator can hand events to."""

    def publish(self, event: Event) -> None:
        """Deliver an event."""
        ...


class EventDispatcher:
    """Synchronous in-process event dispatcher.

    Listeners registered for an event name run in registration order, then
    listeners registered for all events. A listener that raises stops
    delivery and the exception propagates to the publisher.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._wildcard: list[Listener] = []

    def listen(self, event_name: str, listener: Listener) -> None:
        """Register a listener for one event name."""
        self._listeners[event_name].append(listener)

    def listen_all(self, listener: Listener) -> None:
        """Register a listener for every event."""
        self._wildcard.append(listener)

    def publish(self, event: Event) -> None:
        """Deliver an event to its listeners."""
        for listener in [*self._listeners.get(event.name, []), *self._wildcard]:
            listener(event)

    def has_listeners(self, event_name: str) -> bool:
        """Check whether anything listens for an event name."""
        return bool(self._listeners.get(event_name)) or bool(self._wildcard)

    def forget(self, event_name: str) -> None:
        """Remove all listeners for an event name."""
        self._listeners.pop(event_name, None)

    def flush(self) -> None:
        """Remove every listener."""
        self._listeners.clear()
        self._wildcard.clear()
