"""Tests for the per-dialect SQL grammars.

Covers exact SQL for each dialect: create, alter, indexes, foreign keys,
drops, renames, defaults and comments, plus the grammar factory.
"""

import pytest

from strata.errors import DialectUnsupported, SchemaError
from strata.schema import (
    Blueprint,
    Expression,
    MySqlGrammar,
    PostgresGrammar,
    SqliteGrammar,
    get_grammar,
)
from strata.schema.grammars import wrap


def users_blueprint() -> Blueprint:
    table = Blueprint("users", creating=True)
    table.id()
    table.string("email").unique()
    table.boolean("active").default(True)
    table.timestamp("created_at").nullable().use_current()
    return table


def posts_blueprint() -> Blueprint:
    table = Blueprint("posts", creating=True)
    table.id()
    table.foreign_id("user_id").constrained().cascade_on_delete()
    table.string("title")
    return table


# =============================================================================
# Factory & Helpers
# =============================================================================


class TestFactory:
    """Tests for get_grammar."""

    @pytest.mark.parametrize(
        "dialect,expected",
        [
            ("mysql", MySqlGrammar),
            ("mariadb", MySqlGrammar),
            ("postgresql", PostgresGrammar),
            ("postgres", PostgresGrammar),
            ("pgsql", PostgresGrammar),
            ("sqlite", SqliteGrammar),
            ("SQLite", SqliteGrammar),
        ],
    )
    def test_known_dialects(self, dialect: str, expected: type) -> None:
        """Dialect keys map to their grammar, case-insensitively."""
        assert isinstance(get_grammar(dialect), expected)

    def test_unknown_dialect(self) -> None:
        """Unknown dialects raise DialectUnsupported naming the key."""
        with pytest.raises(DialectUnsupported) as exc_info:
            get_grammar("oracle")
        assert exc_info.value.dialect == "oracle"
        assert "oracle" in str(exc_info.value)

    def test_wrap_segments(self) -> None:
        """Dotted names are quoted per segment."""
        assert wrap("public.users", '"') == '"public"."users"'

    def test_wrap_escapes_quote(self) -> None:
        """Embedded quote characters are doubled."""
        assert wrap('we"ird', '"') == '"we""ird"'
        assert wrap("we`ird", "`") == "`we``ird`"


# =============================================================================
# SQLite
# =============================================================================


class TestSqliteGrammar:
    """Tests for the SQLite grammar."""

    def test_create_table(self) -> None:
        """Keys inline; unique indexes follow as CREATE UNIQUE INDEX."""
        assert users_blueprint().to_sql(SqliteGrammar()) == [
            'CREATE TABLE "users" ("id" INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"email" VARCHAR NOT NULL, "active" TINYINT(1) NOT NULL DEFAULT 1, '
            '"created_at" DATETIME DEFAULT CURRENT_TIMESTAMP)',
            'CREATE UNIQUE INDEX "users_email_unique" ON "users" ("email")',
        ]

    def test_foreign_key_inlined(self) -> None:
        """Foreign keys are part of CREATE TABLE."""
        assert posts_blueprint().to_sql(SqliteGrammar()) == [
            'CREATE TABLE "posts" ("id" INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL, '
            '"user_id" INTEGER NOT NULL, "title" VARCHAR NOT NULL, '
            'FOREIGN KEY ("user_id") REFERENCES "users" ("id") ON DELETE CASCADE)'
        ]

    def test_composite_primary_key(self) -> None:
        """Explicit primary keys are inlined as a table constraint."""
        table = Blueprint("role_user", creating=True)
        table.integer("role_id")
        table.integer("user_id")
        table.primary(["role_id", "user_id"])

        assert table.to_sql(SqliteGrammar()) == [
            'CREATE TABLE "role_user" ("role_id" INTEGER NOT NULL, '
            '"user_id" INTEGER NOT NULL, PRIMARY KEY ("role_id", "user_id"))'
        ]

    def test_add_columns_one_statement_each(self) -> None:
        """SQLite adds one column per ALTER TABLE."""
        table = Blueprint("users")
        table.string("phone").nullable()
        table.integer("age").default(0)

        assert table.to_sql(SqliteGrammar()) == [
            'ALTER TABLE "users" ADD COLUMN "phone" VARCHAR',
            'ALTER TABLE "users" ADD COLUMN "age" INTEGER NOT NULL DEFAULT 0',
        ]

    def test_add_not_null_without_default(self) -> None:
        """SQLite cannot add a NOT NULL column with no default."""
        table = Blueprint("users")
        table.string("phone")

        with pytest.raises(SchemaError, match="NOT NULL"):
            table.to_sql(SqliteGrammar())

    def test_add_foreign_key_on_alter(self) -> None:
        """SQLite cannot add a foreign key to an existing table."""
        table = Blueprint("posts")
        table.foreign("user_id").references("id").on("users")

        with pytest.raises(SchemaError, match="foreign key"):
            table.to_sql(SqliteGrammar())

    def test_expression_default_parenthesized(self) -> None:
        """Function-call defaults are wrapped in parentheses."""
        table = Blueprint("events", creating=True)
        table.string("day").default(Expression("date('now')"))

        assert table.to_sql(SqliteGrammar()) == [
            'CREATE TABLE "events" ("day" VARCHAR NOT NULL DEFAULT (date(\'now\')))'
        ]

    def test_uppercase_function_default_parenthesized(self) -> None:
        """Upper-case expressions other than bare keywords still get parentheses."""
        table = Blueprint("scores", creating=True)
        table.integer("points").default(Expression("ABS(-1)"))
        table.timestamp("seen_on").default(Expression("CURRENT_DATE"))
        table.timestamp("seen_at").use_current()

        assert table.to_sql(SqliteGrammar()) == [
            'CREATE TABLE "scores" ("points" INTEGER NOT NULL DEFAULT (ABS(-1)), '
            '"seen_on" DATETIME NOT NULL DEFAULT CURRENT_DATE, '
            '"seen_at" DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP)'
        ]

    def test_string_default_escaped(self) -> None:
        """String defaults are quoted with doubled single quotes."""
        table = Blueprint("users", creating=True)
        table.string("motto").default("it's fine")

        assert table.to_sql(SqliteGrammar()) == [
            'CREATE TABLE "users" ("motto" VARCHAR NOT NULL DEFAULT \'it\'\'s fine\')'
        ]

    def test_drop_and_rename(self) -> None:
        """Drops and renames compile in declaration order."""
        table = Blueprint("users")
        table.rename_column("name", "full_name")
        table.drop_index("users_name_index")
        table.drop_column("legacy")

        assert table.to_sql(SqliteGrammar()) == [
            'ALTER TABLE "users" RENAME COLUMN "name" TO "full_name"',
            'DROP INDEX "users_name_index"',
            'ALTER TABLE "users" DROP COLUMN "legacy"',
        ]

    def test_drop_foreign_rejected(self) -> None:
        """SQLite cannot drop a foreign key."""
        table = Blueprint("posts")
        table.drop_foreign("posts_user_id_foreign")

        with pytest.raises(SchemaError):
            table.to_sql(SqliteGrammar())

    def test_table_operations(self) -> None:
        """Drop and rename table statements."""
        grammar = SqliteGrammar()
        assert grammar.compile_drop_table("users") == 'DROP TABLE "users"'
        assert grammar.compile_drop_table_if_exists("users") == 'DROP TABLE IF EXISTS "users"'
        assert grammar.compile_rename_table("a", "b") == 'ALTER TABLE "a" RENAME TO "b"'


# =============================================================================
# MySQL
# =============================================================================


class TestMySqlGrammar:
    """Tests for the MySQL grammar."""

    def test_create_table(self) -> None:
        """Backticks, inline AUTO_INCREMENT, ALTER-based unique index."""
        assert users_blueprint().to_sql(MySqlGrammar()) == [
            "CREATE TABLE `users` (`id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY, "
            "`email` VARCHAR(255) NOT NULL, `active` TINYINT(1) NOT NULL DEFAULT 1, "
            "`created_at` TIMESTAMP NULL DEFAULT CURRENT_TIMESTAMP)",
            "ALTER TABLE `users` ADD UNIQUE `users_email_unique` (`email`)",
        ]

    def test_foreign_key_constraint(self) -> None:
        """Foreign keys follow CREATE TABLE as named constraints."""
        assert posts_blueprint().to_sql(MySqlGrammar()) == [
            "CREATE TABLE `posts` (`id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT PRIMARY KEY, "
            "`user_id` BIGINT UNSIGNED NOT NULL, `title` VARCHAR(255) NOT NULL)",
            "ALTER TABLE `posts` ADD CONSTRAINT `posts_user_id_foreign` "
            "FOREIGN KEY (`user_id`) REFERENCES `users` (`id`) ON DELETE CASCADE",
        ]

    def test_add_columns_single_statement(self) -> None:
        """MySQL adds every column in one ALTER TABLE."""
        table = Blueprint("users")
        table.string("phone", 20).nullable()
        table.unsigned_integer("age").default(0)

        assert table.to_sql(MySqlGrammar()) == [
            "ALTER TABLE `users` ADD `phone` VARCHAR(20) NULL, "
            "ADD `age` INT UNSIGNED NOT NULL DEFAULT 0"
        ]

    def test_column_comment(self) -> None:
        """Comments are inline and escaped."""
        table = Blueprint("users", creating=True)
        table.string("bio").comment("It's short")

        assert table.to_sql(MySqlGrammar()) == [
            "CREATE TABLE `users` (`bio` VARCHAR(255) NOT NULL COMMENT 'It''s short')"
        ]

    def test_indexes_on_alter(self) -> None:
        """Primary, unique and plain indexes are ALTER TABLE ADD."""
        table = Blueprint("users")
        table.primary("id")
        table.unique(["email"], "email_uq")
        table.index("name")

        assert table.to_sql(MySqlGrammar()) == [
            "ALTER TABLE `users` ADD PRIMARY KEY (`id`)",
            "ALTER TABLE `users` ADD UNIQUE `email_uq` (`email`)",
            "ALTER TABLE `users` ADD INDEX `users_name_index` (`name`)",
        ]

    def test_drops(self) -> None:
        """Each kind of drop uses its own clause."""
        table = Blueprint("users")
        table.drop_primary()
        table.drop_foreign("users_team_id_foreign")
        table.drop_unique("users_email_unique")
        table.drop_column("a", "b")

        assert table.to_sql(MySqlGrammar()) == [
            "ALTER TABLE `users` DROP PRIMARY KEY",
            "ALTER TABLE `users` DROP FOREIGN KEY `users_team_id_foreign`",
            "ALTER TABLE `users` DROP INDEX `users_email_unique`",
            "ALTER TABLE `users` DROP `a`, DROP `b`",
        ]

    def test_rename_table(self) -> None:
        """MySQL renames with RENAME TABLE."""
        assert MySqlGrammar().compile_rename_table("a", "b") == "RENAME TABLE `a` TO `b`"


# =============================================================================
# PostgreSQL
# =============================================================================


class TestPostgresGrammar:
    """Tests for the PostgreSQL grammar."""

    def test_create_table(self) -> None:
        """BIGSERIAL ids, boolean literals, unique constraints."""
        assert users_blueprint().to_sql(PostgresGrammar()) == [
            'CREATE TABLE "users" ("id" BIGSERIAL NOT NULL PRIMARY KEY, '
            '"email" VARCHAR(255) NOT NULL, "active" BOOLEAN NOT NULL DEFAULT TRUE, '
            '"created_at" TIMESTAMP(0) WITHOUT TIME ZONE NULL DEFAULT CURRENT_TIMESTAMP)',
            'ALTER TABLE "users" ADD CONSTRAINT "users_email_unique" UNIQUE ("email")',
        ]

    def test_increments_is_serial(self) -> None:
        """increments() compiles to SERIAL."""
        table = Blueprint("tags", creating=True)
        table.increments("id")

        assert table.to_sql(PostgresGrammar()) == [
            'CREATE TABLE "tags" ("id" SERIAL NOT NULL PRIMARY KEY)'
        ]

    def test_comments_follow_create(self) -> None:
        """Column comments become COMMENT ON statements."""
        table = Blueprint("users", creating=True)
        table.string("bio").comment("Short bio")

        assert table.to_sql(PostgresGrammar()) == [
            'CREATE TABLE "users" ("bio" VARCHAR(255) NOT NULL)',
            'COMMENT ON COLUMN "users"."bio" IS \'Short bio\'',
        ]

    def test_json_default(self) -> None:
        """Dict defaults are serialized as JSON strings."""
        table = Blueprint("settings", creating=True)
        table.json("meta").default({"a": 1})

        assert table.to_sql(PostgresGrammar()) == [
            'CREATE TABLE "settings" ("meta" JSON NOT NULL DEFAULT \'{"a": 1}\')'
        ]

    def test_plain_index(self) -> None:
        """Plain indexes use CREATE INDEX."""
        table = Blueprint("users")
        table.index("name")

        assert table.to_sql(PostgresGrammar()) == [
            'CREATE INDEX "users_name_index" ON "users" ("name")'
        ]

    def test_drops(self) -> None:
        """Plain indexes drop with DROP INDEX, everything else as a constraint."""
        table = Blueprint("users")
        table.drop_index("users_name_index")
        table.drop_unique("users_email_unique")
        table.drop_primary()

        assert table.to_sql(PostgresGrammar()) == [
            'DROP INDEX "users_name_index"',
            'ALTER TABLE "users" DROP CONSTRAINT "users_email_unique"',
            'ALTER TABLE "users" DROP CONSTRAINT "users_pkey"',
        ]

    def test_foreign_key_with_update_action(self) -> None:
        """ON DELETE and ON UPDATE are both emitted."""
        table = Blueprint("posts")
        table.foreign("user_id").references("id").on("users").on_delete("restrict").on_update(
            "cascade"
        )

        assert table.to_sql(PostgresGrammar()) == [
            'ALTER TABLE "posts" ADD CONSTRAINT "posts_user_id_foreign" FOREIGN KEY ("user_id") '
            'REFERENCES "users" ("id") ON DELETE RESTRICT ON UPDATE CASCADE'
        ]


class TestDeclarationOrder:
    """Column and command order survives compilation in every dialect."""

    @pytest.mark.parametrize("grammar", [SqliteGrammar(), MySqlGrammar(), PostgresGrammar()])
    def test_column_order_preserved(self, grammar) -> None:
        """Columns appear in the CREATE TABLE in declaration order."""
        table = Blueprint("t", creating=True)
        for name in ["zeta", "alpha", "mid"]:
            table.string(name)

        create = table.to_sql(grammar)[0]
        assert create.index("zeta") < create.index("alpha") < create.index("mid")
