import tempfile
import unittest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from cryptodca.db import SqlUserStore, TransactionRecord
from cryptodca.errors import DuplicateEmailError
from cryptodca.users import parse_transaction
from cryptodca.tests.test_users import transaction_fields


class SqlUserStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store logic.
    """

    def setUp(self):
        self.db = SqlUserStore("sqlite+pysqlite:///:memory:", retry_backoff_seconds=0)

    def _transaction(self, transaction_id: str, **overrides) -> TransactionRecord:
        record, error = parse_transaction(transaction_fields(**overrides), transaction_id)
        self.assertIsNone(error)
        return record

    def test_insert_and_lookup(self):
        user = self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        self.assertTrue(user.user_id)
        self.assertEqual(self.db.get_user(user.user_id).email, "ada@example.com")
        self.assertEqual(
            self.db.get_user_by_email("ada@example.com").user_id, user.user_id
        )
        self.assertIsNone(self.db.get_user_by_email("nobody@example.com"))

    def test_unique_email(self):
        self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        with self.assertRaises(DuplicateEmailError):
            self.db.insert_user("Other", "Person", "ada@example.com", "hash")

    def test_update_rejects_unknown_fields(self):
        user = self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        with self.assertRaises(ValueError):
            self.db.update_user_fields(user.user_id, {"hashed_password": "x"})

    def test_push_replace_pull(self):
        user = self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        self.db.push_transaction(user.user_id, self._transaction("t1"))
        self.db.push_transaction(user.user_id, self._transaction("t2", coin="ETH"))

        updated, replaced = self.db.replace_transaction(
            user.user_id, self._transaction("t1", type="sell")
        )
        self.assertTrue(replaced)
        self.assertEqual(updated.find_transaction("t1").type, "sell")

        _, replaced = self.db.replace_transaction(user.user_id, self._transaction("t9"))
        self.assertFalse(replaced)

        after = self.db.pull_transaction(user.user_id, "t1")
        self.assertEqual([t.id for t in after.transactions], ["t2"])
        self.assertEqual(
            [t.id for t in self.db.get_user(user.user_id).transactions], ["t2"]
        )

    def test_missing_user(self):
        self.assertIsNone(self.db.push_transaction("missing", self._transaction("t1")))
        self.assertEqual(
            self.db.replace_transaction("missing", self._transaction("t1")),
            (None, False),
        )
        self.assertIsNone(self.db.pull_transaction("missing", "t1"))
        self.assertIsNone(self.db.update_user_fields("missing", {"firstname": "X"}))


class SqlUserStoreRetryTests(unittest.TestCase):
    def setUp(self):
        self.db = SqlUserStore(
            "sqlite+pysqlite:///:memory:", max_attempts=3, retry_backoff_seconds=0.1
        )

    @patch("cryptodca.db.time.sleep")
    def test_retries_after_disconnect(self, mock_sleep):
        calls = []

        def operation(session):
            calls.append(session)
            if len(calls) < 3:
                raise OperationalError("SELECT 1", {}, Exception("server closed"))
            return "ok"

        self.assertEqual(self.db._run(operation), "ok")
        self.assertEqual(len(calls), 3)
        self.assertEqual(
            [call.args[0] for call in mock_sleep.call_args_list], [0.1, 0.2]
        )

    @patch("cryptodca.db.time.sleep")
    def test_gives_up_after_max_attempts(self, mock_sleep):
        def operation(session):
            raise OperationalError("SELECT 1", {}, Exception("server closed"))

        with self.assertRaises(OperationalError):
            self.db._run(operation)
        self.assertEqual(mock_sleep.call_count, 2)


class SqlUserStoreLostCommitTests(unittest.TestCase):
    """
    The first commit reaches the database but the client sees the connection
    drop, so the store retries an operation that already took effect.
    """

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        # A file database survives the pool being disposed between attempts.
        self.db = SqlUserStore(
            f"sqlite+pysqlite:///{tmp.name}/users.db", retry_backoff_seconds=0
        )
        self.addCleanup(self.db.engine.dispose)

    def _drop_first_commit_reply(self):
        real_factory = self.db.Session
        state = {"dropped": False}

        def factory():
            session = real_factory()
            real_commit = session.commit

            def commit():
                real_commit()
                if not state["dropped"]:
                    state["dropped"] = True
                    raise OperationalError("COMMIT", {}, Exception("connection lost"))

            session.commit = commit
            return session

        self.db.Session = factory

    @patch("cryptodca.db.time.sleep")
    def test_push_is_not_duplicated_by_retry(self, mock_sleep):
        user = self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        record, _ = parse_transaction(transaction_fields(), "t1")

        self._drop_first_commit_reply()
        updated = self.db.push_transaction(user.user_id, record)

        self.assertEqual(mock_sleep.call_count, 1)
        self.assertEqual([t.id for t in updated.transactions], ["t1"])
        self.assertEqual(
            [t.id for t in self.db.get_user(user.user_id).transactions], ["t1"]
        )

    @patch("cryptodca.db.time.sleep")
    def test_insert_returns_the_committed_user_on_retry(self, mock_sleep):
        self._drop_first_commit_reply()
        user = self.db.insert_user("Ada", "Lovelace", "ada@example.com", "hash")

        self.assertEqual(mock_sleep.call_count, 1)
        self.assertEqual(user.email, "ada@example.com")
        self.assertEqual(
            self.db.get_user_by_email("ada@example.com").user_id, user.user_id
        )
        with self.assertRaises(DuplicateEmailError):
            self.db.insert_user("Other", "Person", "ada@example.com", "hash")


if __name__ == "__main__":
    unittest.main()
