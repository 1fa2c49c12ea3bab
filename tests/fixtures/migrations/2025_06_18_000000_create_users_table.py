"""Create the users table."""

from strata.migrations import BaseMigration


class CreateUsersTable(BaseMigration):
    within_transaction = True

    def up(self, connection):
        def columns(table):
            table.id()
            table.string("name")
            table.string("email").unique()
            table.boolean("is_admin").default(False)
            table.timestamps()

        connection.schema.create_table("users", columns)

    def down(self, connection):
        connection.schema.drop_table("users")


migration = CreateUsersTable()
