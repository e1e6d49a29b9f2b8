from uuid import UUID

from .errors import ForbiddenError, NotFoundError, UnauthenticatedError
from .storage import InMemoryStorage


def require_user(storage: InMemoryStorage, user_id: UUID) -> dict:
    user = storage.get_user(user_id)
    if not user:
        raise UnauthenticatedError("Unknown or missing user")
    return user


def owned_person(storage: InMemoryStorage, person_id: UUID, user_id: UUID) -> dict:
    person = storage.get_person(person_id)
    if not person:
        raise NotFoundError(f"Person {person_id} not found")
    if person["user_id"] != user_id:
        raise ForbiddenError(f"Person {person_id} does not belong to user {user_id}")
    return person


def editable_transaction(storage: InMemoryStorage, transaction_id: UUID, user_id: UUID) -> tuple[dict, dict]:
    """
    Resolve a transaction the user may edit or delete.

    The owning person must belong to the user, and the user must be the one
    who added it. Rows without ``added_by`` predate that field and fall back
    to person ownership alone.
    """
    tx = storage.get_transaction(transaction_id)
    if not tx:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    person = storage.get_person(tx["person_id"])
    if not person or person["user_id"] != user_id:
        raise ForbiddenError(f"Transaction {transaction_id} does not belong to user {user_id}")
    if tx["added_by"] is not None and tx["added_by"] != user_id:
        raise ForbiddenError("Only the user who added this transaction can change it")
    return tx, person
