from decimal import Decimal
from typing import Optional
from uuid import UUID

from .config import Settings, get_settings
from .friends import FriendshipResolver
from .mirror import TransactionMirror
from .models import (
    CreatePersonRequest,
    FriendRequest,
    FriendRequestAction,
    FriendRequestList,
    FriendResponseResult,
    NewTransaction,
    Notification,
    Person,
    PersonWithTransactions,
    RegisterUserRequest,
    Transaction,
    TransactionPatch,
    UpdatePersonRequest,
    UpdateProfileRequest,
    User,
    UserSummary,
)
from .notifications import NotificationEmitter
from .persons import PersonService
from .storage import InMemoryStorage
from .users import UserService


class LedgerService:
    """
    Operation surface of the IOU ledger.

    Wires the friendship resolver, transaction mirror, person lifecycle and
    notification feed over one shared storage. Every operation takes the
    acting user's id first (or after the target id, mirroring the HTTP
    routes) and raises ``LedgerServiceError`` subclasses on failure.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.storage = storage if storage is not None else InMemoryStorage(seed=settings.seed_demo_data)
        self.notifications = NotificationEmitter(self.storage, limit=settings.notification_limit)
        self.users = UserService(self.storage, search_limit=settings.user_search_limit)
        self.transactions = TransactionMirror(self.storage, self.notifications)
        self.persons = PersonService(self.storage, self.notifications)
        self.friends = FriendshipResolver(self.storage, self.notifications, self.transactions)

    # Users

    def register_user(self, name: str, email: str) -> User:
        return self.users.register(RegisterUserRequest(name=name, email=email))

    def get_profile(self, user_id: UUID) -> User:
        return self.users.get(user_id)

    def update_profile(self, user_id: UUID, name: str) -> User:
        return self.users.update_profile(user_id, UpdateProfileRequest(name=name))

    def delete_account(self, user_id: UUID) -> User:
        return self.users.delete(user_id)

    def search_users(self, user_id: UUID, query: str) -> list[UserSummary]:
        return self.users.search(user_id, query)

    # Friends

    def send_friend_request(self, user_id: UUID, email: str, person_id: Optional[UUID] = None) -> FriendRequest:
        return self.friends.send_request(user_id, email, person_id)

    def respond_friend_request(
        self, request_id: UUID, user_id: UUID, action: FriendRequestAction
    ) -> FriendResponseResult:
        return self.friends.respond(request_id, user_id, FriendRequestAction(action))

    def cancel_friend_request(self, request_id: UUID, user_id: UUID) -> FriendRequest:
        return self.friends.cancel(request_id, user_id)

    def list_friend_requests(self, user_id: UUID) -> FriendRequestList:
        return self.friends.list_requests(user_id)

    def list_friends(self, user_id: UUID) -> list[UserSummary]:
        return self.friends.list_friends(user_id)

    # Persons

    def create_person(self, user_id: UUID, request: CreatePersonRequest) -> Person:
        return self.persons.create(user_id, request)

    def update_person(self, person_id: UUID, user_id: UUID, request: UpdatePersonRequest) -> Person:
        return self.persons.update(person_id, user_id, request)

    def delete_person(self, person_id: UUID, user_id: UUID) -> Person:
        return self.persons.delete(person_id, user_id)

    def list_persons(self, user_id: UUID) -> list[Person]:
        return self.persons.list_for_user(user_id)

    def list_persons_with_transactions(self, user_id: UUID) -> list[PersonWithTransactions]:
        return self.persons.list_with_transactions(user_id)

    def get_balance(self, user_id: UUID, person_id: UUID) -> Decimal:
        return self.persons.balance(user_id, person_id)

    def remind_person(self, person_id: UUID, user_id: UUID) -> Decimal:
        return self.persons.remind(person_id, user_id)

    # Transactions

    def list_transactions(self, user_id: UUID, person_id: UUID) -> list[Transaction]:
        return self.transactions.list_for_person(user_id, person_id)

    def create_transaction(self, user_id: UUID, person_id: UUID, payload: NewTransaction) -> Transaction:
        return self.transactions.create(user_id, person_id, payload)

    def create_bulk_transaction(
        self, user_id: UUID, person_ids: list[UUID], payload: NewTransaction
    ) -> list[Transaction]:
        return self.transactions.create_bulk(user_id, person_ids, payload)

    def update_transaction(self, transaction_id: UUID, user_id: UUID, patch: TransactionPatch) -> Transaction:
        return self.transactions.update(transaction_id, user_id, patch)

    def delete_transaction(self, transaction_id: UUID, user_id: UUID) -> Transaction:
        return self.transactions.delete(transaction_id, user_id)

    # Notifications

    def list_notifications(self, user_id: UUID) -> list[Notification]:
        self.users.get(user_id)
        return self.notifications.list_for_user(user_id)

    def mark_notifications_read(self, user_id: UUID, ids: Optional[list[UUID]] = None) -> int:
        self.users.get(user_id)
        return self.notifications.mark_read(user_id, ids)

    def clear_notifications(self, user_id: UUID) -> int:
        self.users.get(user_id)
        return self.notifications.clear(user_id)
