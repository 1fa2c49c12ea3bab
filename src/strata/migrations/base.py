"""Migration units: a named pair of up/down operations.

Migrations come in two shapes:

1. Class-based, subclassing BaseMigration::

    class CreateUsersTable(BaseMigration):
        within_transaction = True

        def up(self, connection):
            def columns(table):
                table.id()
                table.string("email").unique()

            connection.schema.create_table("users", columns)

        def down(self, connection):
            connection.schema.drop_table("users")

2. Function-based, via SimpleMigration(up=..., down=...).

Either way the module assigns the instance to a module-level ``migration``
name so directory discovery can register it under the file name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from strata.connection import Connection


@runtime_checkable
class Migration(Protocol):
    """Capabilities the migrator relies on."""

    def up(self, connection: Connection) -> None:
        ...

    def down(self, connection: Connection) -> None:
        ...

    def connection_name(self) -> str:
        ...

    def uses_transaction(self) -> bool:
        ...


class BaseMigration(ABC):
    """Base class for class-based migrations.

    Attributes:
        connection: Named connection to run on ("" for the default).
        within_transaction: Wrap up/down in a transaction.
    """

    connection: str = ""
    within_transaction: bool = False

    @abstractmethod
    def up(self, connection: Connection) -> None:
        """Apply this migration."""

    @abstractmethod
    def down(self, connection: Connection) -> None:
        """Revert this migration."""

    def connection_name(self) -> str:
        return self.connection

    def uses_transaction(self) -> bool:
        return self.within_transaction

    def should_run(self) -> bool:
        """Return False to leave this migration pending for now."""
        return True


class SimpleMigration(BaseMigration):
    """A migration assembled from two functions."""

    def __init__(
        self,
        up: Callable[[Connection], None],
        down: Callable[[Connection], None],
        connection: str = "",
        within_transaction: bool = False,
    ) -> None:
        self._up = up
        self._down = down
        self.connection = connection
        self.within_transaction = within_transaction

    def up(self, connection: Connection) -> None:
        self._up(connection)

    def down(self, connection: Connection) -> None:
        self._down(connection)
