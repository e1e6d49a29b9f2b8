"""
Friend requests and the linked ledgers they create.

Accepting a request turns the social connection into two persons, one on
each user's ledger, that point at each other. Transactions recorded on
either person before the link are backfilled with mirrored twins.
Every accept step checks what is already in place, so replaying an accept
over partially linked data converges on the same result.
"""

from typing import Optional
from uuid import UUID

from .access import require_user
from .errors import ForbiddenError, InvalidOperationError, NotFoundError
from .logger import get_logger
from .mirror import TransactionMirror
from .models import (
    FriendRequest,
    FriendRequestAction,
    FriendRequestList,
    FriendRequestStatus,
    FriendResponseResult,
    NotificationType,
    Person,
    UserSummary,
)
from .notifications import NotificationEmitter
from .storage import InMemoryStorage

log = get_logger(__name__)


class FriendshipResolver:
    def __init__(self, storage: InMemoryStorage, notifier: NotificationEmitter, mirror: TransactionMirror):
        self.storage = storage
        self.notifier = notifier
        self.mirror = mirror

    def send_request(self, from_user_id: UUID, to_email: str, person_id: Optional[UUID] = None) -> FriendRequest:
        sender = require_user(self.storage, from_user_id)
        if not to_email or not to_email.strip():
            raise InvalidOperationError("Email is required")
        target = self.storage.find_user_by_email(to_email)
        if not target:
            raise NotFoundError("User not found")
        if target["id"] == from_user_id:
            raise InvalidOperationError("Cannot friend yourself")
        if target["id"] in sender["friends"]:
            raise InvalidOperationError("Already friends")
        if person_id is not None:
            self._check_linkable(person_id, from_user_id, target["id"])

        existing = self.storage.find_friend_request(from_user_id, target["id"])
        if existing and existing["status"] == FriendRequestStatus.PENDING:
            return FriendRequest(**existing)

        if existing:
            changes = {"status": FriendRequestStatus.PENDING}
            if person_id is not None:
                changes["link_person_from_id"] = person_id
            row = self.storage.update_friend_request(existing["id"], changes)
        else:
            row = self.storage.insert_friend_request({
                "from_user_id": from_user_id,
                "to_user_id": target["id"],
                "link_person_from_id": person_id,
                "status": FriendRequestStatus.PENDING,
            })

        log.info("friend_request_sent", request_id=str(row["id"]), reopened=existing is not None)
        self.notifier.emit(
            target["id"],
            NotificationType.FRIEND_REQUEST,
            f"{sender['name']} sent you a friend request",
            {"from_user": from_user_id, "request_id": row["id"]},
        )
        return FriendRequest(**row)

    def list_requests(self, user_id: UUID) -> FriendRequestList:
        require_user(self.storage, user_id)
        pending = FriendRequestStatus.PENDING
        incoming = self.storage.friend_requests_where(to_user_id=user_id, status=pending)
        outgoing = self.storage.friend_requests_where(from_user_id=user_id, status=pending)
        return FriendRequestList(
            incoming=[FriendRequest(**r) for r in sorted(incoming, key=lambda r: r["created_at"])],
            outgoing=[FriendRequest(**r) for r in sorted(outgoing, key=lambda r: r["created_at"])],
        )

    def list_friends(self, user_id: UUID) -> list[UserSummary]:
        user = require_user(self.storage, user_id)
        friends = [self.storage.get_user(fid) for fid in user["friends"]]
        return [UserSummary(**f) for f in friends if f]

    def respond(self, request_id: UUID, user_id: UUID, action: FriendRequestAction) -> FriendResponseResult:
        require_user(self.storage, user_id)
        request = self.storage.get_friend_request(request_id)
        if not request:
            raise NotFoundError(f"Friend request {request_id} not found")
        if request["to_user_id"] != user_id:
            raise ForbiddenError("This friend request is not addressed to you")
        if request["status"] != FriendRequestStatus.PENDING:
            raise InvalidOperationError(f"Friend request is already {FriendRequestStatus(request['status']).value}")

        if action == FriendRequestAction.DECLINE:
            row = self.storage.update_friend_request(request_id, {"status": FriendRequestStatus.DECLINED})
            log.info("friend_request_declined", request_id=str(request_id))
            return FriendResponseResult(request=FriendRequest(**row))

        return self._accept(request)

    def cancel(self, request_id: UUID, user_id: UUID) -> FriendRequest:
        require_user(self.storage, user_id)
        request = self.storage.get_friend_request(request_id)
        if not request:
            raise NotFoundError(f"Friend request {request_id} not found")
        if request["from_user_id"] != user_id:
            raise ForbiddenError("Only the sender can cancel a friend request")
        if request["status"] != FriendRequestStatus.PENDING:
            raise InvalidOperationError(f"Friend request is already {FriendRequestStatus(request['status']).value}")
        row = self.storage.update_friend_request(request_id, {"status": FriendRequestStatus.CANCELLED})
        log.info("friend_request_cancelled", request_id=str(request_id))
        return FriendRequest(**row)

    def _accept(self, request: dict) -> FriendResponseResult:
        with self.storage.atomic():
            row = self.storage.update_friend_request(request["id"], {"status": FriendRequestStatus.ACCEPTED})
            a_user = self.storage.get_user(request["from_user_id"])
            b_user = self.storage.get_user(request["to_user_id"])
            if not a_user or not b_user:
                raise NotFoundError("Friend request refers to a user that no longer exists")

            self.storage.add_friend(a_user["id"], b_user["id"])
            self.storage.add_friend(b_user["id"], a_user["id"])

            a_person = self._ensure_person(a_user["id"], b_user["id"], b_user["name"], request["link_person_from_id"])
            b_person = self._ensure_person(b_user["id"], a_user["id"], a_user["name"])

            self._link(a_person, b_person)
            self._link(b_person, a_person)

            if a_person["name"] != b_user["name"]:
                self.storage.update_person(a_person["id"], {"name": b_user["name"]})
            if b_person["name"] != a_user["name"]:
                self.storage.update_person(b_person["id"], {"name": a_user["name"]})

            backfilled = self._backfill(a_person["id"], b_person["id"])
            backfilled += self._backfill(b_person["id"], a_person["id"])

        log.info(
            "friend_request_accepted",
            request_id=str(request["id"]),
            from_person_id=str(a_person["id"]),
            to_person_id=str(b_person["id"]),
            backfilled=backfilled,
        )
        self.notifier.emit(
            a_user["id"],
            NotificationType.FRIEND_ACCEPTED,
            f"{b_user['name']} accepted your friend request",
            {"friend": b_user["id"], "person_id": a_person["id"]},
        )
        self.notifier.emit(
            b_user["id"],
            NotificationType.FRIEND_ACCEPTED,
            f"You are now friends with {a_user['name']}",
            {"friend": a_user["id"], "person_id": b_person["id"]},
        )
        return FriendResponseResult(
            request=FriendRequest(**row),
            from_person=Person(**a_person),
            to_person=Person(**b_person),
        )

    def _check_linkable(self, person_id: UUID, owner_id: UUID, friend_id: UUID) -> dict:
        person = self.storage.get_person(person_id)
        if not person:
            raise NotFoundError(f"Person {person_id} not found")
        if person["user_id"] != owner_id:
            raise ForbiddenError(f"Person {person_id} does not belong to you")
        if person["friend_user_id"] not in (None, friend_id):
            raise InvalidOperationError(f"Person {person_id} is already linked to another user")
        return person

    def _ensure_person(
        self,
        owner_id: UUID,
        friend_id: UUID,
        friend_name: str,
        preferred_person_id: Optional[UUID] = None,
    ) -> dict:
        existing = self.storage.find_friend_person(owner_id, friend_id)
        if existing:
            return existing
        if preferred_person_id:
            preferred = self.storage.get_person(preferred_person_id)
            if preferred and preferred["user_id"] == owner_id and preferred["friend_user_id"] is None:
                return self.storage.update_person(preferred_person_id, {"friend_user_id": friend_id})
            log.warning("link_person_unusable", person_id=str(preferred_person_id))
        return self.storage.insert_person({
            "user_id": owner_id,
            "name": friend_name,
            "friend_user_id": friend_id,
        })

    def _link(self, person: dict, counterpart: dict) -> None:
        if person["counterpart_person_id"] != counterpart["id"]:
            self.storage.update_person(person["id"], {"counterpart_person_id": counterpart["id"]})

    def _backfill(self, source_person_id: UUID, target_person_id: UUID) -> int:
        count = 0
        for tx in self.storage.transactions_for_person(source_person_id):
            if tx["counterpart_transaction_id"] is None:
                self.mirror.mirror(tx, target_person_id)
                count += 1
        return count
