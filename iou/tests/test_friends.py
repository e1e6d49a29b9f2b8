"""
Tests for friend requests and ledger linking

Tests cover:
1. Sending requests (validation, idempotency, re-requesting)
2. Accepting: person linking, name reconciliation, backfill
3. Declining and cancelling
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from iou.errors import ForbiddenError, InvalidOperationError, NotFoundError
from iou.models import (
    CreatePersonRequest,
    FriendRequestAction,
    FriendRequestStatus,
    NewTransaction,
    NotificationType,
    TransactionType,
)


def _notification_types(service, user):
    return [n.type for n in service.list_notifications(user.id)]


class TestSendFriendRequest:
    """Tests for sending friend requests."""

    def test_send_creates_pending_request(self, service, alice, bob):
        """Test a new request is pending and notifies the target."""
        request = service.send_friend_request(alice.id, "bob@example.com")

        assert request.status == FriendRequestStatus.PENDING
        assert request.from_user_id == alice.id
        assert request.to_user_id == bob.id
        assert _notification_types(service, bob) == [NotificationType.FRIEND_REQUEST]

    def test_email_lookup_is_case_insensitive(self, service, alice, bob):
        request = service.send_friend_request(alice.id, "  Bob@Example.COM ")
        assert request.to_user_id == bob.id

    def test_send_twice_while_pending_is_idempotent(self, service, storage, alice, bob):
        """Test that a second send while pending keeps a single row."""
        first = service.send_friend_request(alice.id, bob.email)
        second = service.send_friend_request(alice.id, bob.email)

        assert first.id == second.id
        assert len(storage.friend_requests) == 1
        assert _notification_types(service, bob) == [NotificationType.FRIEND_REQUEST]

    def test_unknown_email_fails(self, service, alice):
        with pytest.raises(NotFoundError):
            service.send_friend_request(alice.id, "nobody@example.com")

    def test_cannot_friend_yourself(self, service, alice):
        with pytest.raises(InvalidOperationError):
            service.send_friend_request(alice.id, alice.email)

    def test_cannot_request_existing_friend(self, service, alice, bob, linked_pair):
        with pytest.raises(InvalidOperationError):
            service.send_friend_request(alice.id, bob.email)

    def test_rerequest_after_decline_resets_to_pending(self, service, storage, alice, bob):
        """Test re-requesting reuses the declined row."""
        request = service.send_friend_request(alice.id, bob.email)
        service.respond_friend_request(request.id, bob.id, FriendRequestAction.DECLINE)

        again = service.send_friend_request(alice.id, bob.email)

        assert again.id == request.id
        assert again.status == FriendRequestStatus.PENDING
        assert len(storage.friend_requests) == 1
        assert _notification_types(service, bob).count(NotificationType.FRIEND_REQUEST) == 2

    def test_rerequest_after_cancel_resets_to_pending(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)
        service.cancel_friend_request(request.id, alice.id)

        again = service.send_friend_request(alice.id, bob.email)

        assert again.id == request.id
        assert again.status == FriendRequestStatus.PENDING

    def test_reverse_direction_request_is_a_separate_row(self, service, storage, alice, bob):
        """Test mutual requests are not merged into an acceptance."""
        forward = service.send_friend_request(alice.id, bob.email)
        reverse = service.send_friend_request(bob.id, alice.email)

        assert forward.id != reverse.id
        assert reverse.status == FriendRequestStatus.PENDING
        assert len(storage.friend_requests) == 2
        assert service.get_profile(alice.id).friends == []

    def test_link_person_must_belong_to_sender(self, service, alice, bob, carol):
        carols_person = service.create_person(carol.id, CreatePersonRequest(name="Bob"))

        with pytest.raises(ForbiddenError):
            service.send_friend_request(alice.id, bob.email, carols_person.id)

    def test_link_person_already_linked_elsewhere_fails(self, service, befriend, alice, bob, carol):
        result = befriend(alice, carol)

        with pytest.raises(InvalidOperationError):
            service.send_friend_request(alice.id, bob.email, result.from_person.id)

    def test_list_requests_splits_incoming_and_outgoing(self, service, alice, bob, carol):
        service.send_friend_request(alice.id, bob.email)
        service.send_friend_request(carol.id, alice.email)

        requests = service.list_friend_requests(alice.id)

        assert [r.to_user_id for r in requests.outgoing] == [bob.id]
        assert [r.from_user_id for r in requests.incoming] == [carol.id]


class TestAcceptFriendRequest:
    """Tests for accepting a friend request."""

    def test_accept_links_persons_symmetrically(self, service, alice, bob, linked_pair):
        """Test both persons point at each other and at the other user."""
        alice_person, bob_person = linked_pair

        assert alice_person.user_id == alice.id
        assert alice_person.friend_user_id == bob.id
        assert bob_person.user_id == bob.id
        assert bob_person.friend_user_id == alice.id
        assert alice_person.counterpart_person_id == bob_person.id
        assert bob_person.counterpart_person_id == alice_person.id

    def test_accept_adds_both_users_to_friend_sets(self, service, alice, bob, linked_pair):
        assert service.get_profile(alice.id).friends == [bob.id]
        assert service.get_profile(bob.id).friends == [alice.id]
        assert [f.id for f in service.list_friends(alice.id)] == [bob.id]

    def test_accept_notifies_both_users(self, service, alice, bob, linked_pair):
        assert NotificationType.FRIEND_ACCEPTED in _notification_types(service, alice)
        assert NotificationType.FRIEND_ACCEPTED in _notification_types(service, bob)

    def test_accept_marks_request_accepted(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)
        result = service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

        assert result.request.status == FriendRequestStatus.ACCEPTED
        assert service.list_friend_requests(bob.id).incoming == []

    def test_linked_person_with_backfill(self, service, befriend, alice, bob):
        """
        Alice tracks an unlinked "Bob" with a debit of 100, then links it
        while befriending Bob's real account.
        """
        p1 = service.create_person(alice.id, CreatePersonRequest(name="Bobby"))
        original = service.create_transaction(alice.id, p1.id, NewTransaction(
            amount=Decimal("100"),
            description="Concert tickets",
            type=TransactionType.DEBIT,
            date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        ))

        result = befriend(alice, bob, p1.id)

        assert result.from_person.id == p1.id
        assert result.from_person.friend_user_id == bob.id
        p2 = result.to_person
        assert p2.user_id == bob.id
        assert p2.friend_user_id == alice.id
        assert p2.counterpart_person_id == p1.id
        assert result.from_person.counterpart_person_id == p2.id

        twins = service.list_transactions(bob.id, p2.id)
        assert len(twins) == 1
        twin = twins[0]
        assert twin.amount == Decimal("100")
        assert twin.type == TransactionType.CREDIT
        assert twin.description == "Concert tickets"
        assert twin.date == original.date
        assert twin.counterpart_transaction_id == original.id
        [linked_original] = service.list_transactions(alice.id, p1.id)
        assert linked_original.counterpart_transaction_id == twin.id

    def test_accept_reconciles_names(self, service, befriend, alice, bob):
        """Test the linked person is renamed after the friend's profile."""
        p1 = service.create_person(alice.id, CreatePersonRequest(name="Bobby", nickname="B"))

        result = befriend(alice, bob, p1.id)

        assert result.from_person.name == "Bob"
        assert result.from_person.nickname == "B"
        assert result.to_person.name == "Alice"

    def test_backfill_both_sides(self, service, storage, alice, bob):
        """Test N pre-existing transactions end up as N linked pairs."""
        pa = service.create_person(alice.id, CreatePersonRequest(name="Bob"))
        for amount in ("10", "20", "30"):
            service.create_transaction(alice.id, pa.id, NewTransaction(
                amount=Decimal(amount), description="lunch", type=TransactionType.CREDIT,
            ))

        request = service.send_friend_request(alice.id, bob.email, pa.id)
        result = service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

        a_txs = service.list_transactions(alice.id, result.from_person.id)
        b_txs = service.list_transactions(bob.id, result.to_person.id)
        assert len(a_txs) == 3
        assert len(b_txs) == 3
        for tx in a_txs:
            twin = storage.get_transaction(tx.counterpart_transaction_id)
            assert twin["counterpart_transaction_id"] == tx.id
            assert twin["type"] == TransactionType.DEBIT
        assert service.get_balance(alice.id, pa.id) == Decimal("60")
        assert service.get_balance(bob.id, result.to_person.id) == Decimal("-60")

    def test_unusable_link_person_falls_back_to_new_person(self, service, storage, alice, bob):
        """Test a link person deleted before acceptance is not reused."""
        pa = service.create_person(alice.id, CreatePersonRequest(name="Bob"))
        request = service.send_friend_request(alice.id, bob.email, pa.id)
        service.delete_person(pa.id, alice.id)

        result = service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

        assert result.from_person.id != pa.id
        assert result.from_person.friend_user_id == bob.id
        assert storage.find_friend_person(alice.id, bob.id)["id"] == result.from_person.id

    def test_replaying_accept_converges(self, service, storage, alice, bob, linked_pair):
        """Test re-running the accept steps over linked data adds nothing."""
        alice_person, bob_person = linked_pair
        service.create_transaction(alice.id, alice_person.id, NewTransaction(
            amount=Decimal("5"), description="coffee", type=TransactionType.CREDIT,
        ))
        request = storage.find_friend_request(alice.id, bob.id)
        persons_before = len(storage.persons)
        transactions_before = len(storage.transactions)

        result = service.friends._accept(request)

        assert result.from_person.id == alice_person.id
        assert result.to_person.id == bob_person.id
        assert len(storage.persons) == persons_before
        assert len(storage.transactions) == transactions_before
        assert service.get_profile(alice.id).friends == [bob.id]

    def test_failed_accept_leaves_nothing_behind(self, service, storage, alice, bob, monkeypatch):
        """Test the accept steps are all-or-nothing."""
        request = service.send_friend_request(alice.id, bob.email)

        def broken_backfill(source_person_id, target_person_id):
            raise RuntimeError("storage unavailable")

        monkeypatch.setattr(service.friends, "_backfill", broken_backfill)

        with pytest.raises(RuntimeError):
            service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

        assert storage.get_friend_request(request.id)["status"] == FriendRequestStatus.PENDING
        assert storage.persons == {}
        assert service.get_profile(alice.id).friends == []
        assert service.get_profile(bob.id).friends == []


class TestDeclineAndCancel:
    """Tests for declining and cancelling requests."""

    def test_decline_has_no_ledger_effect(self, service, storage, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)

        result = service.respond_friend_request(request.id, bob.id, FriendRequestAction.DECLINE)

        assert result.request.status == FriendRequestStatus.DECLINED
        assert result.from_person is None
        assert storage.persons == {}
        assert service.get_profile(bob.id).friends == []

    def test_only_recipient_can_respond(self, service, alice, bob, carol):
        request = service.send_friend_request(alice.id, bob.email)

        with pytest.raises(ForbiddenError):
            service.respond_friend_request(request.id, carol.id, FriendRequestAction.ACCEPT)
        with pytest.raises(ForbiddenError):
            service.respond_friend_request(request.id, alice.id, FriendRequestAction.ACCEPT)

    def test_cannot_respond_twice(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)
        service.respond_friend_request(request.id, bob.id, FriendRequestAction.DECLINE)

        with pytest.raises(InvalidOperationError):
            service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

    def test_respond_to_missing_request_fails(self, service, alice):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            service.respond_friend_request(uuid4(), alice.id, FriendRequestAction.ACCEPT)

    def test_cancel_by_sender(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)

        cancelled = service.cancel_friend_request(request.id, alice.id)

        assert cancelled.status == FriendRequestStatus.CANCELLED
        assert service.list_friend_requests(bob.id).incoming == []

    def test_only_sender_can_cancel(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)

        with pytest.raises(ForbiddenError):
            service.cancel_friend_request(request.id, bob.id)

    def test_cannot_cancel_accepted_request(self, service, alice, bob):
        request = service.send_friend_request(alice.id, bob.email)
        service.respond_friend_request(request.id, bob.id, FriendRequestAction.ACCEPT)

        with pytest.raises(InvalidOperationError):
            service.cancel_friend_request(request.id, alice.id)
