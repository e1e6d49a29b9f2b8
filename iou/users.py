from uuid import UUID

from .access import require_user
from .errors import InvalidOperationError
from .logger import get_logger
from .models import RegisterUserRequest, UpdateProfileRequest, User, UserSummary
from .storage import InMemoryStorage

log = get_logger(__name__)


class UserService:
    """Account identities: registration stand-in, profile and search."""

    def __init__(self, storage: InMemoryStorage, search_limit: int = 10):
        self.storage = storage
        self.search_limit = search_limit

    def register(self, request: RegisterUserRequest) -> User:
        if "@" not in request.email:
            raise InvalidOperationError("A valid email is required")
        if not request.name.strip():
            raise InvalidOperationError("Name is required")
        row = self.storage.insert_user({"name": request.name, "email": request.email})
        log.info("user_registered", user_id=str(row["id"]))
        return User(**row)

    def get(self, user_id: UUID) -> User:
        return User(**require_user(self.storage, user_id))

    def update_profile(self, user_id: UUID, request: UpdateProfileRequest) -> User:
        """
        Rename a user.

        Friend-linked persons on other users' ledgers carry this user's
        display name, so they are renamed in the same unit of work.
        """
        require_user(self.storage, user_id)
        name = request.name.strip()
        if not name:
            raise InvalidOperationError("Name is required")
        with self.storage.atomic():
            row = self.storage.update_user(user_id, {"name": name})
            renamed = 0
            for person in self.storage.persons_representing(user_id):
                if person["name"] != name:
                    self.storage.update_person(person["id"], {"name": name})
                    renamed += 1
        log.info("profile_updated", user_id=str(user_id), persons_renamed=renamed)
        return User(**row)

    def delete(self, user_id: UUID) -> User:
        """
        Delete an account with everything that hangs off it.

        The user's persons and transactions go, and so does every person
        other users keep for this user (with its history), as when a linked
        person is deleted. Friend requests in either direction and the
        user's notifications are removed too.
        """
        user = require_user(self.storage, user_id)
        with self.storage.atomic():
            persons = self.storage.persons_for_user(user_id) + self.storage.persons_representing(user_id)
            removed = 0
            for person in persons:
                removed += self.storage.delete_transactions_for_person(person["id"])
                self.storage.delete_person(person["id"])
            for friend_id in user["friends"]:
                self.storage.remove_friend(friend_id, user_id)
            requests = (
                self.storage.friend_requests_where(from_user_id=user_id)
                + self.storage.friend_requests_where(to_user_id=user_id)
            )
            for request in requests:
                self.storage.delete_friend_request(request["id"])
            for notification in self.storage.notifications_for_user(user_id):
                self.storage.delete_notification(notification["id"])
            self.storage.delete_user(user_id)
        log.info(
            "user_deleted",
            user_id=str(user_id),
            persons_removed=len(persons),
            transactions_removed=removed,
        )
        return User(**user)

    def search(self, user_id: UUID, query: str) -> list[UserSummary]:
        require_user(self.storage, user_id)
        rows = self.storage.search_users(query, exclude=user_id, limit=self.search_limit)
        return [UserSummary(**u) for u in rows]
