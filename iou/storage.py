import copy
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Iterator, Optional
from uuid import UUID, uuid4

from .errors import DuplicateKeyError, NotFoundError
from .models import as_utc

_TABLES = ("users", "persons", "transactions", "friend_requests", "notifications")
_INDEXES = ("email_index", "friend_person_index", "friend_request_index")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _locked(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class InMemoryStorage:
    """
    Arena-style row store keyed by UUID.

    Rows are plain dicts. Cross references (person <-> person,
    transaction <-> transaction) are stored as ids and resolved by lookup.
    Composite unique keys are kept as explicit index maps:

    - ``email_index``: normalized email -> user id
    - ``friend_person_index``: (owner id, friend user id) -> person id
    - ``friend_request_index``: (from user id, to user id) -> request id

    Every write and every table scan holds ``_lock``, the same re-entrant
    lock ``atomic()`` holds for a whole block, so a rollback can never
    overwrite a write made by another thread.
    """

    def __init__(self, seed: bool = False):
        self.users: dict[UUID, dict] = {}
        self.persons: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.friend_requests: dict[UUID, dict] = {}
        self.notifications: dict[UUID, dict] = {}
        self.email_index: dict[str, UUID] = {}
        self.friend_person_index: dict[tuple[UUID, UUID], UUID] = {}
        self.friend_request_index: dict[tuple[UUID, UUID], UUID] = {}
        self._lock = threading.RLock()
        self._depth = 0
        if seed:
            self._seed_data()

    def _seed_data(self):
        self.insert_user({
            "id": UUID("550e8400-e29b-41d4-a716-446655440000"),
            "name": "Alice Demo", "email": "alice@example.com",
        })
        self.insert_user({
            "id": UUID("660e8400-e29b-41d4-a716-446655440001"),
            "name": "Bob Demo", "email": "bob@example.com",
        })

    @contextmanager
    def atomic(self) -> Iterator["InMemoryStorage"]:
        """
        Run a multi-step mutation as one unit.

        Nested blocks join the outermost one. If the outermost block raises,
        every table and index is restored to its state on entry.
        """
        with self._lock:
            snapshot = self._snapshot() if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def _snapshot(self) -> dict:
        return {name: copy.deepcopy(getattr(self, name)) for name in _TABLES + _INDEXES}

    def _restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def _touch(self, row: dict, changes: dict) -> dict:
        row.update(changes)
        row["updated_at"] = utcnow()
        return row

    # Users

    @_locked
    def insert_user(self, data: dict) -> dict:
        email = normalize_email(data["email"])
        if email in self.email_index:
            raise DuplicateKeyError(f"User with email {email} already exists")
        now = utcnow()
        row = {
            "id": data.get("id") or uuid4(),
            "name": data["name"].strip(),
            "email": email,
            "friends": [],
            "created_at": now,
            "updated_at": now,
        }
        self.users[row["id"]] = row
        self.email_index[email] = row["id"]
        return row

    def get_user(self, user_id: UUID) -> Optional[dict]:
        return self.users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[dict]:
        user_id = self.email_index.get(normalize_email(email))
        return self.users.get(user_id) if user_id else None

    @_locked
    def search_users(self, query: str, exclude: UUID, limit: int) -> list[dict]:
        needle = query.strip().lower()
        if not needle:
            return []
        matches = [
            u for u in self.users.values()
            if u["id"] != exclude and (needle in u["name"].lower() or needle in u["email"])
        ]
        matches.sort(key=lambda u: u["name"].lower())
        return matches[:limit]

    @_locked
    def update_user(self, user_id: UUID, changes: dict) -> dict:
        row = self.users.get(user_id)
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return self._touch(row, changes)

    @_locked
    def add_friend(self, user_id: UUID, friend_id: UUID) -> bool:
        row = self.users.get(user_id)
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        if friend_id in row["friends"]:
            return False
        self._touch(row, {"friends": row["friends"] + [friend_id]})
        return True

    @_locked
    def remove_friend(self, user_id: UUID, friend_id: UUID) -> bool:
        row = self.users.get(user_id)
        if not row or friend_id not in row["friends"]:
            return False
        self._touch(row, {"friends": [f for f in row["friends"] if f != friend_id]})
        return True

    @_locked
    def delete_user(self, user_id: UUID) -> Optional[dict]:
        row = self.users.pop(user_id, None)
        if row:
            self.email_index.pop(row["email"], None)
        return row

    # Persons

    @_locked
    def insert_person(self, data: dict) -> dict:
        now = utcnow()
        row = {
            "id": uuid4(),
            "user_id": data["user_id"],
            "name": data["name"],
            "nickname": data.get("nickname", ""),
            "payment_address": data.get("payment_address", ""),
            "friend_user_id": data.get("friend_user_id"),
            "counterpart_person_id": data.get("counterpart_person_id"),
            "created_at": now,
            "updated_at": now,
        }
        key = self._friend_key(row)
        if key and key in self.friend_person_index:
            raise DuplicateKeyError(f"User {key[0]} already has a person linked to {key[1]}")
        self.persons[row["id"]] = row
        if key:
            self.friend_person_index[key] = row["id"]
        return row

    def get_person(self, person_id: UUID) -> Optional[dict]:
        return self.persons.get(person_id)

    def find_friend_person(self, owner_id: UUID, friend_user_id: UUID) -> Optional[dict]:
        person_id = self.friend_person_index.get((owner_id, friend_user_id))
        return self.persons.get(person_id) if person_id else None

    @_locked
    def persons_for_user(self, user_id: UUID) -> list[dict]:
        return [p for p in self.persons.values() if p["user_id"] == user_id]

    @_locked
    def persons_representing(self, friend_user_id: UUID) -> list[dict]:
        return [p for p in self.persons.values() if p["friend_user_id"] == friend_user_id]

    @_locked
    def update_person(self, person_id: UUID, changes: dict) -> dict:
        row = self.persons.get(person_id)
        if not row:
            raise NotFoundError(f"Person {person_id} not found")
        old_key = self._friend_key(row)
        new_key = self._friend_key({**row, **changes})
        if new_key != old_key:
            if new_key and self.friend_person_index.get(new_key, person_id) != person_id:
                raise DuplicateKeyError(
                    f"User {new_key[0]} already has a person linked to {new_key[1]}"
                )
            if old_key:
                self.friend_person_index.pop(old_key, None)
            if new_key:
                self.friend_person_index[new_key] = person_id
        return self._touch(row, changes)

    @_locked
    def delete_person(self, person_id: UUID) -> Optional[dict]:
        row = self.persons.pop(person_id, None)
        if row:
            key = self._friend_key(row)
            if key and self.friend_person_index.get(key) == person_id:
                del self.friend_person_index[key]
        return row

    @staticmethod
    def _friend_key(row: dict) -> Optional[tuple[UUID, UUID]]:
        if row.get("friend_user_id") is None:
            return None
        return (row["user_id"], row["friend_user_id"])

    # Transactions

    @_locked
    def insert_transaction(self, data: dict) -> dict:
        now = utcnow()
        row = {
            "id": uuid4(),
            "person_id": data["person_id"],
            "amount": data["amount"],
            "description": data["description"],
            "date": as_utc(data.get("date")) or now,
            "type": data["type"],
            "counterpart_transaction_id": data.get("counterpart_transaction_id"),
            "added_by": data.get("added_by"),
            "created_at": now,
            "updated_at": now,
        }
        self.transactions[row["id"]] = row
        return row

    def get_transaction(self, transaction_id: UUID) -> Optional[dict]:
        return self.transactions.get(transaction_id)

    @_locked
    def transactions_for_person(self, person_id: UUID) -> list[dict]:
        return [t for t in self.transactions.values() if t["person_id"] == person_id]

    @_locked
    def update_transaction(self, transaction_id: UUID, changes: dict) -> dict:
        row = self.transactions.get(transaction_id)
        if not row:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if "date" in changes:
            changes = {**changes, "date": as_utc(changes["date"])}
        return self._touch(row, changes)

    @_locked
    def delete_transaction(self, transaction_id: UUID) -> Optional[dict]:
        return self.transactions.pop(transaction_id, None)

    @_locked
    def delete_transactions_for_person(self, person_id: UUID) -> int:
        ids = [t["id"] for t in self.transactions_for_person(person_id)]
        for tx_id in ids:
            del self.transactions[tx_id]
        return len(ids)

    # Friend requests

    @_locked
    def insert_friend_request(self, data: dict) -> dict:
        key = (data["from_user_id"], data["to_user_id"])
        if key in self.friend_request_index:
            raise DuplicateKeyError(f"Friend request from {key[0]} to {key[1]} already exists")
        now = utcnow()
        row = {
            "id": uuid4(),
            "from_user_id": data["from_user_id"],
            "to_user_id": data["to_user_id"],
            "link_person_from_id": data.get("link_person_from_id"),
            "status": data["status"],
            "created_at": now,
            "updated_at": now,
        }
        self.friend_requests[row["id"]] = row
        self.friend_request_index[key] = row["id"]
        return row

    def get_friend_request(self, request_id: UUID) -> Optional[dict]:
        return self.friend_requests.get(request_id)

    def find_friend_request(self, from_user_id: UUID, to_user_id: UUID) -> Optional[dict]:
        request_id = self.friend_request_index.get((from_user_id, to_user_id))
        return self.friend_requests.get(request_id) if request_id else None

    @_locked
    def friend_requests_where(self, **filters) -> list[dict]:
        return [
            r for r in self.friend_requests.values()
            if all(r.get(k) == v for k, v in filters.items())
        ]

    @_locked
    def update_friend_request(self, request_id: UUID, changes: dict) -> dict:
        row = self.friend_requests.get(request_id)
        if not row:
            raise NotFoundError(f"Friend request {request_id} not found")
        return self._touch(row, changes)

    @_locked
    def delete_friend_request(self, request_id: UUID) -> Optional[dict]:
        row = self.friend_requests.pop(request_id, None)
        if row:
            self.friend_request_index.pop((row["from_user_id"], row["to_user_id"]), None)
        return row

    # Notifications

    @_locked
    def insert_notification(self, data: dict) -> dict:
        now = utcnow()
        row = {
            "id": uuid4(),
            "user_id": data["user_id"],
            "type": data["type"],
            "message": data["message"],
            "metadata": data.get("metadata") or {},
            "read": False,
            "created_at": now,
            "updated_at": now,
        }
        self.notifications[row["id"]] = row
        return row

    @_locked
    def notifications_for_user(self, user_id: UUID) -> list[dict]:
        return [n for n in self.notifications.values() if n["user_id"] == user_id]

    @_locked
    def delete_notification(self, notification_id: UUID) -> Optional[dict]:
        return self.notifications.pop(notification_id, None)

    @_locked
    def update_notification(self, notification_id: UUID, changes: dict) -> dict:
        row = self.notifications.get(notification_id)
        if not row:
            raise NotFoundError(f"Notification {notification_id} not found")
        return self._touch(row, changes)
