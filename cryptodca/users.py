"""
Profile, watch pair and transaction operations on a single user document.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timezone
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from cryptodca.credentials import (
    EMAIL_EXISTS,
    FIRSTNAME_REQUIRED,
    INVALID_EMAIL,
    LASTNAME_REQUIRED,
    clean_name,
)
from cryptodca.db import TransactionRecord, UserRecord, UserStore
from cryptodca.errors import (
    DuplicateEmailError,
    ErrorKind,
    Result,
    not_found,
    validation_error,
)
from cryptodca.schemas import TransactionPayload
from cryptodca.security import normalize_email

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "User not found"
TRANSACTION_NOT_FOUND = "Transaction not found"
INVALID_WATCH_PAIRS = "InvalidWatchPairs"
INVALID_SETTINGS = "Settings must be an object"

PROFILE_FIELDS = ("firstname", "lastname", "email", "settings")


def _describe_validation_error(exc: ValidationError) -> tuple[str, Optional[str]]:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or None
    if location:
        return f"Invalid transaction field '{location}': {first['msg']}", location
    return f"Invalid transaction: {first['msg']}", None


def parse_transaction(
    fields: Any, transaction_id: str
) -> tuple[Optional[TransactionRecord], Optional[Result]]:
    """Validate client fields into a record carrying ``transaction_id``."""
    if not isinstance(fields, Mapping):
        return None, validation_error("Transaction must be an object")
    try:
        payload = TransactionPayload.model_validate(dict(fields))
    except ValidationError as exc:
        message, field = _describe_validation_error(exc)
        return None, validation_error(message, field)
    timestamp = payload.timestamp
    if timestamp.tzinfo is None:
        # Naive timestamps are UTC.
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    record = TransactionRecord(
        id=transaction_id,
        timestamp=timestamp,
        type=payload.type,
        coin=payload.coin,
        num_coins=payload.numCoins,
        currency=payload.currency,
        total_amount_paid=payload.totalAmountPaid,
        fee=payload.fee,
        notes=payload.notes,
        exchange=payload.exchange,
    )
    return record, None


class UserRepository:
    """
    CRUD over a user's profile and embedded collections.

    Expected failures come back as a ``Result`` error; store faults raise.
    """

    def __init__(self, store: UserStore):
        self.store = store

    def get_by_id(self, user_id: str) -> Optional[UserRecord]:
        return self.store.get_user(user_id)

    def update_profile(self, user_id: str, partial: Mapping[str, Any]) -> Result[UserRecord]:
        # Only profile fields are writable here, and absent/None values are
        # dropped rather than written.
        supplied = {
            key: partial[key]
            for key in PROFILE_FIELDS
            if key in partial and partial[key] is not None
        }
        update: dict[str, Any] = {}
        if "firstname" in supplied:
            firstname = clean_name(supplied["firstname"])
            if firstname is None:
                return validation_error(FIRSTNAME_REQUIRED, "firstname")
            update["firstname"] = firstname
        if "lastname" in supplied:
            lastname = clean_name(supplied["lastname"])
            if lastname is None:
                return validation_error(LASTNAME_REQUIRED, "lastname")
            update["lastname"] = lastname
        if "email" in supplied:
            email = normalize_email(supplied["email"])
            if email is None:
                return validation_error(INVALID_EMAIL, "email")
            update["email"] = email
        if "settings" in supplied:
            if not isinstance(supplied["settings"], Mapping):
                return validation_error(INVALID_SETTINGS, "settings")
            update["settings"] = dict(supplied["settings"])

        if not update:
            user = self.store.get_user(user_id)
            return Result.success(user) if user else not_found(USER_NOT_FOUND)

        try:
            user = self.store.update_user_fields(user_id, update)
        except DuplicateEmailError:
            return Result.failure(ErrorKind.CONFLICT, EMAIL_EXISTS, field="email")
        if user is None:
            return not_found(USER_NOT_FOUND)
        return Result.success(user)

    def get_watch_pairs(self, user_id: str) -> Result[list[str]]:
        user = self.store.get_user(user_id)
        if user is None:
            return not_found(USER_NOT_FOUND)
        return Result.success(list(user.watch_pairs))

    def set_watch_pairs(self, user_id: str, pairs: Any) -> Result[list[str]]:
        if not isinstance(pairs, list) or not all(isinstance(p, str) for p in pairs):
            return validation_error(INVALID_WATCH_PAIRS, "watchPairs")
        # Ordered set: keep the first occurrence of each pair.
        unique_pairs = list(dict.fromkeys(pairs))
        user = self.store.update_user_fields(user_id, {"watch_pairs": unique_pairs})
        if user is None:
            return not_found(USER_NOT_FOUND)
        return Result.success(list(user.watch_pairs))

    def append_transaction(
        self, user_id: str, fields: Mapping[str, Any]
    ) -> Result[TransactionRecord]:
        transaction, error = parse_transaction(fields, uuid.uuid4().hex)
        if error:
            return error
        user = self.store.push_transaction(user_id, transaction)
        if user is None:
            return not_found(USER_NOT_FOUND)
        logger.info("Appended transaction %s for user %s", transaction.id, user_id)
        return Result.success(transaction)

    def get_transactions(self, user_id: str) -> Result[list[TransactionRecord]]:
        user = self.store.get_user(user_id)
        if user is None:
            return not_found(USER_NOT_FOUND)
        return Result.success(list(user.transactions))

    def get_transaction(
        self, user_id: str, transaction_id: str
    ) -> Result[TransactionRecord]:
        user = self.store.get_user(user_id)
        if user is None:
            return not_found(USER_NOT_FOUND)
        transaction = user.find_transaction(transaction_id)
        if transaction is None:
            return not_found(TRANSACTION_NOT_FOUND)
        return Result.success(transaction)

    def replace_transaction(
        self, user_id: str, transaction_id: str, fields: Mapping[str, Any]
    ) -> Result[UserRecord]:
        """
        Replace every field of a transaction; the id is kept. Callers must
        resend the full record.
        """
        transaction, error = parse_transaction(fields, transaction_id)
        if error:
            return error
        user, replaced = self.store.replace_transaction(user_id, transaction)
        if user is None:
            return not_found(USER_NOT_FOUND)
        if not replaced:
            return not_found(TRANSACTION_NOT_FOUND)
        return Result.success(user)

    def remove_transaction(self, user_id: str, transaction_id: str) -> Result[None]:
        # Removing an id that is not there is not an error.
        user = self.store.pull_transaction(user_id, transaction_id)
        if user is None:
            return not_found(USER_NOT_FOUND)
        return Result.success()
