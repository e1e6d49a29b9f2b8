import pytest

from iou.config import Settings
from iou.models import CreatePersonRequest, FriendRequestAction
from iou.service import LedgerService
from iou.storage import InMemoryStorage


@pytest.fixture
def settings():
    return Settings(seed_demo_data=False, log_json=False)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def service(storage, settings):
    return LedgerService(storage=storage, settings=settings)


@pytest.fixture
def alice(service):
    return service.register_user("Alice", "alice@example.com")


@pytest.fixture
def bob(service):
    return service.register_user("Bob", "bob@example.com")


@pytest.fixture
def carol(service):
    return service.register_user("Carol", "carol@example.com")


@pytest.fixture
def befriend(service):
    """Send and accept a friend request; the helper returns the accept result."""
    def _befriend(from_user, to_user, person_id=None):
        request = service.send_friend_request(from_user.id, to_user.email, person_id)
        return service.respond_friend_request(request.id, to_user.id, FriendRequestAction.ACCEPT)
    return _befriend


@pytest.fixture
def linked_pair(befriend, alice, bob):
    """Alice and Bob as friends: (alice's person for bob, bob's person for alice)."""
    result = befriend(alice, bob)
    return result.from_person, result.to_person


@pytest.fixture
def unlinked_person(service, alice):
    return service.create_person(alice.id, CreatePersonRequest(name="Dave"))
