from decimal import Decimal
from uuid import UUID

from .access import owned_person, require_user
from .errors import InvalidOperationError
from .logger import get_logger
from .models import (
    CreatePersonRequest,
    NotificationType,
    Person,
    PersonWithTransactions,
    Transaction,
    TransactionType,
    UpdatePersonRequest,
)
from .notifications import NotificationEmitter
from .storage import InMemoryStorage

log = get_logger(__name__)


def balance_of(transactions: list[dict]) -> Decimal:
    """Sum of credits minus sum of debits."""
    total = Decimal("0")
    for tx in transactions:
        if TransactionType(tx["type"]) == TransactionType.CREDIT:
            total += tx["amount"]
        else:
            total -= tx["amount"]
    return total


class PersonService:
    def __init__(self, storage: InMemoryStorage, notifier: NotificationEmitter):
        self.storage = storage
        self.notifier = notifier

    def create(self, user_id: UUID, request: CreatePersonRequest) -> Person:
        require_user(self.storage, user_id)
        name = request.name.strip()
        if not name:
            raise InvalidOperationError("Name is required")
        row = self.storage.insert_person({
            "user_id": user_id,
            "name": name,
            "nickname": request.nickname.strip(),
            "payment_address": request.payment_address.strip(),
        })
        log.info("person_created", person_id=str(row["id"]), user_id=str(user_id))
        return Person(**row)

    def list_for_user(self, user_id: UUID) -> list[Person]:
        require_user(self.storage, user_id)
        rows = sorted(self.storage.persons_for_user(user_id), key=lambda p: p["name"].lower())
        return [Person(**p) for p in rows]

    def list_with_transactions(self, user_id: UUID) -> list[PersonWithTransactions]:
        result = []
        for person in self.list_for_user(user_id):
            rows = sorted(
                self.storage.transactions_for_person(person.id),
                key=lambda t: t["date"],
                reverse=True,
            )
            result.append(PersonWithTransactions(
                **person.model_dump(),
                transactions=[Transaction(**t) for t in rows],
                balance=balance_of(rows),
            ))
        return result

    def balance(self, user_id: UUID, person_id: UUID) -> Decimal:
        require_user(self.storage, user_id)
        owned_person(self.storage, person_id, user_id)
        return balance_of(self.storage.transactions_for_person(person_id))

    def update(self, person_id: UUID, user_id: UUID, request: UpdatePersonRequest) -> Person:
        require_user(self.storage, user_id)
        person = owned_person(self.storage, person_id, user_id)
        changes = {k: v.strip() for k, v in request.model_dump(exclude_none=True).items()}
        if "name" in changes:
            if not changes["name"]:
                raise InvalidOperationError("Name is required")
            if person["friend_user_id"] is not None and changes["name"] != person["name"]:
                raise InvalidOperationError(
                    "A linked friend's name follows their profile; set a nickname instead"
                )
        if not changes:
            return Person(**person)
        row = self.storage.update_person(person_id, changes)
        log.info("person_updated", person_id=str(person_id), fields=sorted(changes))
        return Person(**row)

    def delete(self, person_id: UUID, user_id: UUID) -> Person:
        """
        Delete a person and its transactions.

        For a friend-linked person this is a hard unlink: the counterpart
        person and its transactions are deleted too and both users drop each
        other from their friend lists.
        """
        require_user(self.storage, user_id)
        person = owned_person(self.storage, person_id, user_id)

        with self.storage.atomic():
            removed = self.storage.delete_transactions_for_person(person_id)
            counterpart_id = person["counterpart_person_id"]
            counterpart = self.storage.get_person(counterpart_id) if counterpart_id else None
            if counterpart:
                removed += self.storage.delete_transactions_for_person(counterpart_id)
                self.storage.delete_person(counterpart_id)
                self.storage.remove_friend(user_id, counterpart["user_id"])
                self.storage.remove_friend(counterpart["user_id"], user_id)
            elif person["friend_user_id"] is not None:
                self.storage.remove_friend(user_id, person["friend_user_id"])
                self.storage.remove_friend(person["friend_user_id"], user_id)
            self.storage.delete_person(person_id)

        log.info(
            "person_deleted",
            person_id=str(person_id),
            counterpart_person_id=str(counterpart_id) if counterpart else None,
            transactions_removed=removed,
        )
        return Person(**person)

    def remind(self, person_id: UUID, user_id: UUID) -> Decimal:
        user = require_user(self.storage, user_id)
        person = owned_person(self.storage, person_id, user_id)
        if person["friend_user_id"] is None:
            raise InvalidOperationError("Reminders can only be sent to linked friends")
        balance = balance_of(self.storage.transactions_for_person(person_id))
        if balance > 0:
            message = f"{user['name']} reminds you that you owe {balance}"
        elif balance < 0:
            message = f"{user['name']} reminds you that they owe you {-balance}"
        else:
            message = f"{user['name']} sent you a reminder: you are settled up"
        self.notifier.emit(
            person["friend_user_id"],
            NotificationType.REMINDER,
            message,
            {
                "from_user": user_id,
                "person_id": person["counterpart_person_id"],
                "balance": str(-balance),
            },
        )
        log.info("reminder_sent", person_id=str(person_id), user_id=str(user_id))
        return balance
