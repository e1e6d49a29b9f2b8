"""
Transaction mirroring between friend-linked persons.

When a person is linked to a friend's person (``counterpart_person_id``),
every transaction recorded on it has a twin on the counterpart with the
opposite type. Both rows point at each other through
``counterpart_transaction_id``, and creates, updates and deletes are applied
to the pair inside one ``storage.atomic()`` block.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from .access import editable_transaction, owned_person, require_user
from .errors import InvalidOperationError
from .logger import get_logger
from .models import (
    NewTransaction,
    NotificationType,
    Transaction,
    TransactionPatch,
    TransactionType,
)
from .notifications import NotificationEmitter
from .storage import InMemoryStorage

log = get_logger(__name__)


class TransactionMirror:
    def __init__(self, storage: InMemoryStorage, notifier: NotificationEmitter):
        self.storage = storage
        self.notifier = notifier

    def list_for_person(self, user_id: UUID, person_id: UUID) -> list[Transaction]:
        require_user(self.storage, user_id)
        owned_person(self.storage, person_id, user_id)
        rows = sorted(
            self.storage.transactions_for_person(person_id),
            key=lambda t: t["date"],
            reverse=True,
        )
        return [Transaction(**t) for t in rows]

    def create(self, user_id: UUID, person_id: UUID, payload: NewTransaction) -> Transaction:
        user = require_user(self.storage, user_id)
        person = owned_person(self.storage, person_id, user_id)
        fields = _validated(payload)

        with self.storage.atomic():
            row, twin = self._create_pair(user, person, fields)

        log.info(
            "transaction_created",
            transaction_id=str(row["id"]),
            person_id=str(person_id),
            mirrored=twin is not None,
        )
        if twin:
            self._notify_added(user, twin)
        return Transaction(**row)

    def create_bulk(self, user_id: UUID, person_ids: list[UUID], payload: NewTransaction) -> list[Transaction]:
        """
        Record the same transaction against several persons.

        Every person is authorized before anything is written, and all rows
        (twins included) are committed together or not at all.
        """
        user = require_user(self.storage, user_id)
        unique_ids = list(dict.fromkeys(person_ids))
        if not unique_ids:
            raise InvalidOperationError("At least one person is required")
        persons = [owned_person(self.storage, pid, user_id) for pid in unique_ids]
        fields = _validated(payload)

        pairs = []
        with self.storage.atomic():
            for person in persons:
                pairs.append(self._create_pair(user, person, fields))

        log.info(
            "bulk_transactions_created",
            count=len(pairs),
            mirrored=sum(1 for _, twin in pairs if twin),
        )
        for _, twin in pairs:
            if twin:
                self._notify_added(user, twin)
        return [Transaction(**row) for row, _ in pairs]

    def update(self, transaction_id: UUID, user_id: UUID, patch: TransactionPatch) -> Transaction:
        user = require_user(self.storage, user_id)
        tx, _ = editable_transaction(self.storage, transaction_id, user_id)
        changes = _validated_changes(patch)
        if not changes:
            return Transaction(**tx)

        twin = None
        with self.storage.atomic():
            row = self.storage.update_transaction(transaction_id, changes)
            twin_id = row["counterpart_transaction_id"]
            if twin_id:
                twin_changes = dict(changes)
                if "type" in changes:
                    twin_changes["type"] = changes["type"].inverse()
                if self.storage.get_transaction(twin_id):
                    twin = self.storage.update_transaction(twin_id, twin_changes)
                else:
                    log.warning("counterpart_transaction_missing", transaction_id=str(transaction_id))

        log.info("transaction_updated", transaction_id=str(transaction_id), fields=sorted(changes))
        if twin:
            recipient = self._owner_of(twin)
            if recipient:
                self.notifier.emit(
                    recipient,
                    NotificationType.TX_UPDATED,
                    f"{user['name']} updated a transaction: {twin['description']} ({twin['amount']})",
                    {"person_id": twin["person_id"], "transaction_id": twin["id"], "from_user": user["id"]},
                )
        return Transaction(**row)

    def delete(self, transaction_id: UUID, user_id: UUID) -> Transaction:
        user = require_user(self.storage, user_id)
        tx, _ = editable_transaction(self.storage, transaction_id, user_id)

        recipient = None
        twin = None
        with self.storage.atomic():
            twin_id = tx["counterpart_transaction_id"]
            if twin_id:
                twin = self.storage.get_transaction(twin_id)
                if twin:
                    recipient = self._owner_of(twin)
                    self.storage.delete_transaction(twin_id)
                else:
                    log.warning("counterpart_transaction_missing", transaction_id=str(transaction_id))
            self.storage.delete_transaction(transaction_id)

        log.info("transaction_deleted", transaction_id=str(transaction_id), mirrored=twin is not None)
        if recipient:
            self.notifier.emit(
                recipient,
                NotificationType.TX_DELETED,
                f"{user['name']} deleted a transaction: {tx['description']} ({tx['amount']})",
                {"person_id": twin["person_id"], "transaction_id": twin["id"], "from_user": user["id"]},
            )
        return Transaction(**tx)

    def mirror(self, row: dict, target_person_id: UUID) -> dict:
        """Create the sign-inverted twin of ``row`` on the target person and link both."""
        twin = self.storage.insert_transaction({
            "person_id": target_person_id,
            "amount": row["amount"],
            "description": row["description"],
            "date": row["date"],
            "type": TransactionType(row["type"]).inverse(),
            "counterpart_transaction_id": row["id"],
            "added_by": row["added_by"],
        })
        self.storage.update_transaction(row["id"], {"counterpart_transaction_id": twin["id"]})
        return twin

    def _create_pair(self, user: dict, person: dict, fields: dict) -> tuple[dict, Optional[dict]]:
        row = self.storage.insert_transaction({
            **fields,
            "person_id": person["id"],
            "added_by": user["id"],
        })
        counterpart_id = person["counterpart_person_id"]
        if not counterpart_id:
            return row, None
        if not self.storage.get_person(counterpart_id):
            log.warning("counterpart_person_missing", person_id=str(person["id"]))
            return row, None
        return row, self.mirror(row, counterpart_id)

    def _owner_of(self, tx: dict) -> Optional[UUID]:
        person = self.storage.get_person(tx["person_id"])
        return person["user_id"] if person else None

    def _notify_added(self, user: dict, twin: dict) -> None:
        recipient = self._owner_of(twin)
        if not recipient:
            return
        self.notifier.emit(
            recipient,
            NotificationType.TX_ADDED,
            f"{user['name']} added a transaction: {twin['description']} ({twin['amount']})",
            {"person_id": twin["person_id"], "transaction_id": twin["id"], "from_user": user["id"]},
        )


def _check_amount(amount: Decimal) -> Decimal:
    if not amount.is_finite() or amount <= 0:
        raise InvalidOperationError("Amount must be greater than zero")
    return amount


def _check_description(description: str) -> str:
    description = description.strip()
    if not description:
        raise InvalidOperationError("Description is required")
    return description


def _validated(payload: NewTransaction) -> dict:
    return {
        "amount": _check_amount(payload.amount),
        "description": _check_description(payload.description),
        "type": payload.type,
        "date": payload.date,
    }


def _validated_changes(patch: TransactionPatch) -> dict:
    changes = patch.changes()
    if "amount" in changes:
        _check_amount(changes["amount"])
    if "description" in changes:
        changes["description"] = _check_description(changes["description"])
    return changes
