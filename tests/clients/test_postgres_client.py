"""Tests for PostgresClient - pooling, user context and transactions (pool mocked)."""

from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest

from clients.postgres_client import PostgresClient
from utils.user_context import user_context

TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
DSN = "postgresql://test/invoicing"


@pytest.fixture
def conn():
    connection = MagicMock()
    cursor = connection.cursor.return_value.__enter__.return_value
    cursor.description = None
    return connection


@pytest.fixture
def cursor(conn):
    return conn.cursor.return_value.__enter__.return_value


@pytest.fixture
def pool(conn):
    with patch("clients.postgres_client.psycopg2.pool.ThreadedConnectionPool") as cls:
        cls.return_value.getconn.return_value = conn
        yield cls
    PostgresClient.close_all_pools()


@pytest.fixture
def db(pool):
    return PostgresClient(DSN)


class TestPostgresClientInit:
    """Connection pool initialization."""

    def test_creates_one_pool_per_url(self, pool):
        PostgresClient(DSN)
        PostgresClient(DSN)

        pool.assert_called_once()
        assert pool.call_args.kwargs["dsn"] == DSN

    def test_close_removes_pool(self, db, pool):
        db.close()

        pool.return_value.closeall.assert_called_once()
        assert DSN not in PostgresClient._connection_pools


class TestUserContext:
    """app.current_user_id follows the user_context contextvar."""

    def test_sets_user_context_from_contextvar(self, db, cursor):
        with user_context(TEST_USER_ID):
            db.execute("SELECT 1")

        assert cursor.execute.call_args_list[0].args == (
            "SET app.current_user_id = %s", (str(TEST_USER_ID),)
        )

    def test_clears_context_without_user_id(self, db, cursor):
        db.execute("SELECT 1")
        assert cursor.execute.call_args_list[0].args == ("SET app.current_user_id = ''",)

    def test_connection_returned_to_pool(self, db, pool, conn):
        db.execute("SELECT 1")
        pool.return_value.putconn.assert_called_once_with(conn)


class TestExecuteMethods:
    """Query execution methods."""

    def test_execute_returns_list_of_dicts(self, db, cursor):
        cursor.description = [("num",)]
        cursor.fetchall.return_value = [{"num": 1}]

        assert db.execute("SELECT 1 as num") == [{"num": 1}]

    def test_execute_without_rows_commits(self, db, conn):
        assert db.execute("UPDATE invoices SET notes = NULL") == []
        conn.commit.assert_called_once()

    def test_uuid_params_converted(self, db, cursor):
        db.execute("SELECT * FROM invoices WHERE id = ANY(%s)", ([TEST_USER_ID],))
        assert cursor.execute.call_args.args[1] == ([str(TEST_USER_ID)],)

    def test_execute_scalar_returns_value(self, db, cursor):
        cursor.fetchone.return_value = (42,)
        assert db.execute_scalar("SELECT nextval('invoice_number_seq')") == 42

    def test_execute_scalar_no_rows_returns_none(self, db, cursor):
        cursor.fetchone.return_value = None
        assert db.execute_scalar("SELECT 1 WHERE false") is None


class TestTransaction:

    def test_commits_on_success(self, db, conn):
        with db.transaction() as cur:
            cur.execute("DELETE FROM invoice_items WHERE invoice_id = %s", ("x",))

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()

    def test_rolls_back_and_reraises(self, db, conn):
        with pytest.raises(RuntimeError, match="conflict"):
            with db.transaction():
                raise RuntimeError("conflict")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
