import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from cache import CacheKeys
from errors import (
    InvalidTransition,
    ListingUnavailable,
    NotAuthenticated,
    NotFound,
    PermissionDenied,
    StorageError,
)
from models import FoodRequest, Listing, ListingStatus, RequestStatus
from schemas import PickupDetails, RequestCreate


@pytest.fixture
def listing(manager, business, new_listing):
    return manager.create_listing(business, new_listing())


def _statuses(manager, owner, listing_id):
    return {r.requester_id: r.status for r in manager.get_requests_for_listing(owner, listing_id)}


# ---------------------------------------------------------------------------
# create_request
# ---------------------------------------------------------------------------

def test_create_request_is_pending(manager, shelter, listing):
    request = manager.create_request(
        shelter, listing.id, RequestCreate(message="We can collect", pickup_time="17:00")
    )

    assert request.status == RequestStatus.PENDING
    assert request.listing_id == listing.id
    assert request.requester_id == shelter.id
    assert request.shelter_name == "Hope House"
    assert request.pickup_time == "17:00"


def test_create_request_requires_login(manager, listing):
    with pytest.raises(NotAuthenticated):
        manager.create_request(None, listing.id, RequestCreate())


def test_business_cannot_request_food(manager, other_business, listing):
    with pytest.raises(PermissionDenied, match="Only shelters"):
        manager.create_request(other_business, listing.id, RequestCreate())


def test_create_request_for_missing_listing(manager, shelter):
    with pytest.raises(NotFound):
        manager.create_request(shelter, "missing", RequestCreate())


def test_create_request_on_claimed_listing_is_refused(manager, business, shelter, listing):
    manager.claim_listing(business, listing.id)

    with pytest.raises(ListingUnavailable):
        manager.create_request(shelter, listing.id, RequestCreate())


def test_create_request_refreshes_request_views(manager, cache, business, shelter, listing):
    manager.get_requests_for_listing(business, listing.id)
    manager.get_business_requests(business)
    manager.get_shelter_requests(shelter)

    request = manager.create_request(shelter, listing.id, RequestCreate())

    assert [r.id for r in manager.get_requests_for_listing(business, listing.id)] == [request.id]
    assert [r.id for r in manager.get_business_requests(business)] == [request.id]
    mine = manager.get_shelter_requests(shelter)
    assert [r.id for r in mine] == [request.id]
    assert mine[0].listing.title == listing.title


def test_requests_for_listing_are_owner_only(manager, other_business, shelter, listing):
    manager.create_request(shelter, listing.id, RequestCreate())

    with pytest.raises(PermissionDenied):
        manager.get_requests_for_listing(other_business, listing.id)
    with pytest.raises(PermissionDenied):
        manager.get_requests_for_listing(shelter, listing.id)


# ---------------------------------------------------------------------------
# accept_request
# ---------------------------------------------------------------------------

def test_accept_claims_listing_and_rejects_the_rest(
    manager, business, shelter, shelter2, shelter3, listing, clock
):
    r1 = manager.create_request(shelter, listing.id, RequestCreate())
    clock.advance()
    manager.create_request(shelter2, listing.id, RequestCreate())
    clock.advance()
    manager.create_request(shelter3, listing.id, RequestCreate())

    accepted = manager.accept_request(business, r1.id)

    assert accepted.status == RequestStatus.ACCEPTED
    assert manager.get_listing(business, listing.id).status == ListingStatus.CLAIMED
    assert _statuses(manager, business, listing.id) == {
        shelter.id: RequestStatus.ACCEPTED,
        shelter2.id: RequestStatus.REJECTED,
        shelter3.id: RequestStatus.REJECTED,
    }


def test_accept_applies_pickup_details(manager, business, shelter, listing):
    request = manager.create_request(
        shelter, listing.id, RequestCreate(pickup_time="17:00", pickup_notes="Side door")
    )

    accepted = manager.accept_request(business, request.id, PickupDetails(time="18:30"))

    assert accepted.pickup_time == "18:30"
    assert accepted.pickup_notes == "Side door"


def test_accept_by_non_owner_is_denied(manager, session, other_business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())

    with pytest.raises(PermissionDenied):
        manager.accept_request(other_business, request.id)
    with pytest.raises(PermissionDenied):
        manager.accept_request(shelter, request.id)

    assert session.get(FoodRequest, request.id).status == RequestStatus.PENDING
    assert session.get(Listing, listing.id).status == ListingStatus.AVAILABLE


def test_accept_missing_request(manager, business):
    with pytest.raises(NotFound, match="Request not found"):
        manager.accept_request(business, "missing")


def test_accept_twice_is_a_noop(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())

    first = manager.accept_request(business, request.id)
    second = manager.accept_request(business, request.id)

    assert second.status == RequestStatus.ACCEPTED
    assert second.updated_at == first.updated_at


def test_accept_after_another_was_accepted_is_refused(manager, business, shelter, shelter2, listing):
    r1 = manager.create_request(shelter, listing.id, RequestCreate())
    r2 = manager.create_request(shelter2, listing.id, RequestCreate())
    manager.accept_request(business, r1.id)

    with pytest.raises(InvalidTransition, match="already been rejected"):
        manager.accept_request(business, r2.id)

    statuses = _statuses(manager, business, listing.id)
    assert list(statuses.values()).count(RequestStatus.ACCEPTED) == 1


def test_accept_loses_race_with_concurrent_claim(manager, session, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())
    # Another writer claims the listing without touching its requests.
    session.exec(
        update(Listing).where(Listing.id == listing.id).values(status=ListingStatus.CLAIMED)
    )
    session.commit()

    with pytest.raises(ListingUnavailable):
        manager.accept_request(business, request.id)

    assert session.get(FoodRequest, request.id).status == RequestStatus.PENDING


def test_accept_storage_failure_changes_nothing(
    manager, session, cache, business, shelter, shelter2, listing, monkeypatch
):
    r1 = manager.create_request(shelter, listing.id, RequestCreate())
    manager.create_request(shelter2, listing.id, RequestCreate())
    warm = manager.get_requests_for_listing(business, listing.id)

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("connection lost"))

    monkeypatch.setattr(session, "commit", failing_commit)
    with pytest.raises(StorageError):
        manager.accept_request(business, r1.id)
    monkeypatch.undo()

    assert cache.get(CacheKeys.listing_requests(listing.id)) == warm
    assert session.get(Listing, listing.id).status == ListingStatus.AVAILABLE
    statuses = session.exec(select(FoodRequest.status)).all()
    assert statuses == [RequestStatus.PENDING, RequestStatus.PENDING]


def test_accept_invalidates_every_affected_view(
    manager, cache, business, shelter, shelter2, listing
):
    r1 = manager.create_request(shelter, listing.id, RequestCreate())
    manager.create_request(shelter2, listing.id, RequestCreate())
    manager.get_all_listings(shelter)
    manager.get_business_listings(business)
    manager.get_listing(business, listing.id)
    manager.get_requests_for_listing(business, listing.id)
    manager.get_business_requests(business)
    manager.get_shelter_requests(shelter)
    manager.get_shelter_requests(shelter2)

    manager.accept_request(business, r1.id)

    for key in (
        CacheKeys.all_listings(),
        CacheKeys.business_listings(business.id),
        CacheKeys.listing(listing.id),
        CacheKeys.listing_requests(listing.id),
        CacheKeys.business_requests(business.id),
        CacheKeys.shelter_requests(shelter.id),
        CacheKeys.shelter_requests(shelter2.id),
    ):
        assert cache.get(key) is None, key

    assert manager.get_all_listings(shelter) == []
    assert manager.get_shelter_requests(shelter2)[0].status == RequestStatus.REJECTED
    assert manager.get_shelter_requests(shelter)[0].listing.status == ListingStatus.CLAIMED


# ---------------------------------------------------------------------------
# reject_request
# ---------------------------------------------------------------------------

def test_reject_leaves_listing_available(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())

    rejected = manager.reject_request(business, request.id)

    assert rejected.status == RequestStatus.REJECTED
    assert manager.get_listing(business, listing.id).status == ListingStatus.AVAILABLE


def test_reject_twice_is_a_noop(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())

    first = manager.reject_request(business, request.id)
    second = manager.reject_request(business, request.id)

    assert second.status == RequestStatus.REJECTED
    assert second.updated_at == first.updated_at


def test_reject_accepted_request_is_refused(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())
    manager.accept_request(business, request.id)

    with pytest.raises(InvalidTransition, match="already been accepted"):
        manager.reject_request(business, request.id)


def test_reject_by_non_owner_is_denied(manager, other_business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())

    with pytest.raises(PermissionDenied):
        manager.reject_request(other_business, request.id)


# ---------------------------------------------------------------------------
# claim_listing and delete_listing with requests
# ---------------------------------------------------------------------------

def test_claim_rejects_pending_requests(manager, business, shelter, shelter2, listing):
    manager.create_request(shelter, listing.id, RequestCreate())
    manager.create_request(shelter2, listing.id, RequestCreate())

    claimed = manager.claim_listing(business, listing.id)

    assert claimed.status == ListingStatus.CLAIMED
    statuses = set(_statuses(manager, business, listing.id).values())
    assert statuses == {RequestStatus.REJECTED}


def test_claim_refreshes_shelter_views(manager, business, shelter, listing):
    manager.create_request(shelter, listing.id, RequestCreate())
    manager.get_shelter_requests(shelter)

    manager.claim_listing(business, listing.id)

    mine = manager.get_shelter_requests(shelter)
    assert mine[0].status == RequestStatus.REJECTED
    assert mine[0].listing.status == ListingStatus.CLAIMED


def test_deleted_listing_leaves_requests_behind(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())
    manager.get_shelter_requests(shelter)

    manager.delete_listing(business, listing.id)

    mine = manager.get_shelter_requests(shelter)
    assert [r.id for r in mine] == [request.id]
    assert mine[0].status == RequestStatus.PENDING
    assert mine[0].listing is None
    assert manager.get_business_requests(business) == []


def test_requests_on_deleted_listing_cannot_be_decided(manager, business, shelter, listing):
    request = manager.create_request(shelter, listing.id, RequestCreate())
    manager.delete_listing(business, listing.id)

    with pytest.raises(NotFound, match="Listing not found"):
        manager.accept_request(business, request.id)
