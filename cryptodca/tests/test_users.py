import unittest
from datetime import datetime, timezone

from cryptodca.db import InMemoryUserStore, SqlUserStore
from cryptodca.errors import ErrorKind
from cryptodca.users import UserRepository


def transaction_fields(**overrides) -> dict:
    fields = {
        "timestamp": "2024-01-05T10:00:00+00:00",
        "type": "buy",
        "coin": "BTC",
        "numCoins": 0.5,
        "currency": "USD",
        "totalAmountPaid": 21000.0,
        "fee": 12.5,
        "notes": "first buy",
        "exchange": "Kraken",
    }
    fields.update(overrides)
    return fields


def without_id(data: dict) -> dict:
    return {key: value for key, value in data.items() if key != "id"}


class UserRepositoryContract:
    """Behaviour shared by every user store implementation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()
        self.repo = UserRepository(self.store)
        self.user = self.store.insert_user("Ada", "Lovelace", "ada@example.com", "hash")
        self.user_id = self.user.user_id

    # -- profile -----------------------------------------------------------

    def test_get_by_id(self):
        self.assertEqual(self.repo.get_by_id(self.user_id).email, "ada@example.com")
        self.assertIsNone(self.repo.get_by_id("missing"))

    def test_update_profile_writes_only_supplied_fields(self):
        result = self.repo.update_profile(
            self.user_id,
            {"firstname": "Augusta", "lastname": None, "hashed_password": "x"},
        )
        self.assertTrue(result.ok)
        user = self.repo.get_by_id(self.user_id)
        self.assertEqual(user.firstname, "Augusta")
        self.assertEqual(user.lastname, "Lovelace")
        self.assertEqual(user.hashed_password, "hash")

    def test_update_profile_settings_and_email(self):
        result = self.repo.update_profile(
            self.user_id, {"settings": {"currency": "EUR"}, "email": "ADA@Example.org"}
        )
        self.assertTrue(result.ok)
        self.assertEqual(result.value.settings, {"currency": "EUR"})
        self.assertEqual(result.value.email, "ada@example.org")

    def test_update_profile_validation(self):
        for partial in ({"firstname": "  "}, {"email": "bad"}, {"settings": [1]}):
            with self.subTest(partial=partial):
                result = self.repo.update_profile(self.user_id, partial)
                self.assertFalse(result.ok)
                self.assertEqual(result.error.kind, ErrorKind.VALIDATION)

    def test_update_profile_duplicate_email(self):
        self.store.insert_user("Charles", "Babbage", "charles@example.com", "hash")
        result = self.repo.update_profile(self.user_id, {"email": "charles@example.com"})
        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, ErrorKind.CONFLICT)

    def test_update_profile_unknown_user(self):
        result = self.repo.update_profile("missing", {"firstname": "X"})
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)
        result = self.repo.update_profile("missing", {})
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    # -- watch pairs -------------------------------------------------------

    def test_watch_pairs_round_trip_keeps_order(self):
        result = self.repo.set_watch_pairs(self.user_id, ["BTC-USD", "ETH-USD"])
        self.assertEqual(result.value, ["BTC-USD", "ETH-USD"])
        self.assertEqual(
            self.repo.get_watch_pairs(self.user_id).value, ["BTC-USD", "ETH-USD"]
        )
        self.repo.set_watch_pairs(self.user_id, ["SOL-USD"])
        self.assertEqual(self.repo.get_watch_pairs(self.user_id).value, ["SOL-USD"])

    def test_watch_pairs_drop_duplicates(self):
        result = self.repo.set_watch_pairs(self.user_id, ["BTC-USD", "ETH-USD", "BTC-USD"])
        self.assertEqual(result.value, ["BTC-USD", "ETH-USD"])

    def test_watch_pairs_must_be_list_of_strings(self):
        for pairs in ([1, 2], "BTC-USD", None, ["BTC-USD", None]):
            with self.subTest(pairs=pairs):
                result = self.repo.set_watch_pairs(self.user_id, pairs)
                self.assertFalse(result.ok)
                self.assertEqual(result.error.message, "InvalidWatchPairs")
        self.assertEqual(self.repo.get_watch_pairs(self.user_id).value, [])

    def test_watch_pairs_unknown_user(self):
        self.assertEqual(
            self.repo.get_watch_pairs("missing").error.kind, ErrorKind.NOT_FOUND
        )
        self.assertEqual(
            self.repo.set_watch_pairs("missing", []).error.kind, ErrorKind.NOT_FOUND
        )

    # -- transactions ------------------------------------------------------

    def test_append_generates_distinct_ids(self):
        ids = set()
        for _ in range(5):
            result = self.repo.append_transaction(
                self.user_id, transaction_fields(id="client-chosen")
            )
            self.assertTrue(result.ok)
            self.assertTrue(result.value.id)
            self.assertNotEqual(result.value.id, "client-chosen")
            ids.add(result.value.id)
        self.assertEqual(len(ids), 5)
        self.assertEqual(len(self.repo.get_transactions(self.user_id).value), 5)

    def test_append_defaults_notes(self):
        fields = transaction_fields()
        del fields["notes"]
        result = self.repo.append_transaction(self.user_id, fields)
        self.assertEqual(result.value.notes, "")

    def test_append_validation(self):
        bad_payloads = [
            transaction_fields(type="hold"),
            transaction_fields(numCoins="lots"),
            transaction_fields(fee=True),
            transaction_fields(timestamp="yesterday"),
            {key: value for key, value in transaction_fields().items() if key != "coin"},
            ["not", "an", "object"],
        ]
        for payload in bad_payloads:
            with self.subTest(payload=payload):
                result = self.repo.append_transaction(self.user_id, payload)
                self.assertFalse(result.ok)
                self.assertEqual(result.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.repo.get_transactions(self.user_id).value, [])

    def test_append_unknown_user(self):
        result = self.repo.append_transaction("missing", transaction_fields())
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    def test_get_transaction(self):
        created = self.repo.append_transaction(self.user_id, transaction_fields()).value
        fetched = self.repo.get_transaction(self.user_id, created.id)
        self.assertTrue(fetched.ok)
        self.assertEqual(fetched.value, created)
        missing = self.repo.get_transaction(self.user_id, "nope")
        self.assertEqual(missing.error.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(missing.error.message, "Transaction not found")

    def test_replace_then_get_returns_new_fields_with_same_id(self):
        first = self.repo.append_transaction(self.user_id, transaction_fields()).value
        second = self.repo.append_transaction(
            self.user_id, transaction_fields(coin="ETH")
        ).value
        replacement = transaction_fields(
            type="sell", coin="BTC", numCoins=0.25, totalAmountPaid=11000.0, fee=3.0,
            notes="", exchange="Coinbase",
        )
        result = self.repo.replace_transaction(self.user_id, first.id, replacement)
        self.assertTrue(result.ok)

        fetched = self.repo.get_transaction(self.user_id, first.id).value
        self.assertEqual(fetched.id, first.id)
        self.assertEqual(without_id(fetched.as_dict()), replacement)
        # Order and siblings are untouched.
        transactions = self.repo.get_transactions(self.user_id).value
        self.assertEqual([t.id for t in transactions], [first.id, second.id])
        self.assertEqual(transactions[1], second)

    def test_naive_timestamps_are_stored_as_utc(self):
        naive = transaction_fields(timestamp="2024-01-05T10:00:00")
        created = self.repo.append_transaction(self.user_id, naive).value
        expected = datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(created.timestamp, expected)
        self.assertIsNotNone(created.timestamp.tzinfo)

        user = self.repo.replace_transaction(
            self.user_id, created.id, transaction_fields(timestamp="2024-02-01T08:30:00")
        ).value
        replaced = user.find_transaction(created.id)
        fetched = self.repo.get_transaction(self.user_id, created.id).value
        self.assertEqual(fetched, replaced)
        self.assertEqual(
            fetched.timestamp, datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc)
        )

    def test_replace_missing_transaction(self):
        result = self.repo.replace_transaction(self.user_id, "nope", transaction_fields())
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)
        result = self.repo.replace_transaction("missing", "nope", transaction_fields())
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    def test_replace_requires_every_field(self):
        created = self.repo.append_transaction(self.user_id, transaction_fields()).value
        result = self.repo.replace_transaction(self.user_id, created.id, {"coin": "ETH"})
        self.assertEqual(result.error.kind, ErrorKind.VALIDATION)
        self.assertEqual(self.repo.get_transaction(self.user_id, created.id).value, created)

    def test_remove_then_get_is_not_found(self):
        created = self.repo.append_transaction(self.user_id, transaction_fields()).value
        self.assertTrue(self.repo.remove_transaction(self.user_id, created.id).ok)
        result = self.repo.get_transaction(self.user_id, created.id)
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    def test_remove_is_idempotent(self):
        self.assertTrue(self.repo.remove_transaction(self.user_id, "never-existed").ok)
        result = self.repo.remove_transaction("missing", "never-existed")
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)


class InMemoryUserRepositoryTests(UserRepositoryContract, unittest.TestCase):
    def make_store(self):
        return InMemoryUserStore()

    def test_returned_records_are_copies(self):
        user = self.repo.get_by_id(self.user_id)
        user.watch_pairs.append("BTC-USD")
        self.assertEqual(self.repo.get_watch_pairs(self.user_id).value, [])


class SqlUserRepositoryTests(UserRepositoryContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store logic.
    """

    def make_store(self):
        return SqlUserStore("sqlite+pysqlite:///:memory:")


if __name__ == "__main__":
    unittest.main()
