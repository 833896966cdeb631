"""
Listing and request lifecycle.

A listing starts ``available`` and becomes ``claimed`` either when its owner
accepts one of the requests filed against it or when the owner claims it
directly. Both paths run as one transaction guarded by a compare-and-swap on
the listing status, and both reject every request still pending on the
listing, so a claimed listing never has pending requests left behind.

Requests start ``pending`` and end ``accepted`` or ``rejected``; neither end
state is ever left again.

Every mutating operation returns a :class:`~service.Mutation` naming the cache
keys it made stale; the :func:`~service.mutation` wrapper invalidates them once
the transaction has committed.
"""

from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import select

from cache import OWNER_VIEW_TTL, SHARED_VIEW_TTL, CacheKeys
from errors import InvalidTransition, ListingUnavailable, NotFound, PermissionDenied
from models import (
    FoodRequest,
    Listing,
    ListingStatus,
    RequestStatus,
    User,
    UserType,
)
from schemas import (
    ListingCreate,
    ListingRead,
    ListingSummary,
    ListingUpdate,
    PickupDetails,
    RequestCreate,
    RequestRead,
    RequestWithListing,
)
from service import BaseService, Mutation, mutation


def _with_listing(request: FoodRequest, listing: Optional[Listing]) -> RequestWithListing:
    row = RequestWithListing.model_validate(request)
    if listing is not None:
        row.listing = ListingSummary.model_validate(listing)
    return row


class LifecycleManager(BaseService):
    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def _get_listing(self, listing_id: str) -> Listing:
        listing = self.session.get(Listing, listing_id)
        if listing is None:
            raise NotFound("Listing not found")
        return listing

    def _get_request(self, request_id: str) -> FoodRequest:
        request = self.session.get(FoodRequest, request_id)
        if request is None:
            raise NotFound("Request not found")
        return request

    def _requester_ids(self, listing_id: str) -> List[str]:
        return list(
            self.session.exec(
                select(FoodRequest.requester_id)
                .where(FoodRequest.listing_id == listing_id)
                .distinct()
            ).all()
        )

    def _listing_views(self, listing: Listing) -> FrozenSet[str]:
        """Every key whose value embeds ``listing``."""
        keys = {
            CacheKeys.all_listings(),
            CacheKeys.business_listings(listing.owner_id),
            CacheKeys.listing(listing.id),
            CacheKeys.listing_requests(listing.id),
            CacheKeys.business_requests(listing.owner_id),
        }
        keys.update(CacheKeys.shelter_requests(r) for r in self._requester_ids(listing.id))
        return frozenset(keys)

    @staticmethod
    def _request_views(listing: Listing, requester_ids: Iterable[str]) -> FrozenSet[str]:
        keys = {
            CacheKeys.listing_requests(listing.id),
            CacheKeys.business_requests(listing.owner_id),
        }
        keys.update(CacheKeys.shelter_requests(r) for r in requester_ids)
        return frozenset(keys)

    def _claim(self, listing: Listing, now: datetime) -> None:
        """Move ``listing`` from available to claimed and reject pending requests.

        The status update only matches an available row, so two racing claims
        cannot both succeed.
        """
        claimed = self.session.exec(
            update(Listing)
            .where(Listing.id == listing.id, Listing.status == ListingStatus.AVAILABLE)
            .values(status=ListingStatus.CLAIMED, updated_at=now)
        )
        if claimed.rowcount != 1:
            raise ListingUnavailable()

        self.session.exec(
            update(FoodRequest)
            .where(
                FoodRequest.listing_id == listing.id,
                FoodRequest.status == RequestStatus.PENDING,
            )
            .values(status=RequestStatus.REJECTED, updated_at=now)
        )

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------

    @mutation
    def create_listing(self, caller: Optional[User], fields: ListingCreate) -> Mutation:
        caller = self._require_caller(caller, "You must be logged in to create a listing")
        if caller.user_type != UserType.BUSINESS:
            raise PermissionDenied("Only businesses can create listings")

        with self._transaction():
            profile = self._profile(caller.id)
            now = self.clock()
            listing = Listing(
                **fields.model_dump(),
                owner_id=caller.id,
                business_name=profile.business_name if profile else None,
                status=ListingStatus.AVAILABLE,
                created_at=now,
                updated_at=now,
            )
            self.session.add(listing)

        return Mutation(
            ListingRead.model_validate(listing),
            frozenset({
                CacheKeys.all_listings(),
                CacheKeys.business_listings(caller.id),
            }),
        )

    @mutation
    def update_listing(
        self,
        caller: Optional[User],
        listing_id: str,
        fields: ListingUpdate,
    ) -> Mutation:
        caller = self._require_caller(caller, "You must be logged in to update a listing")

        with self._transaction():
            listing = self._get_listing(listing_id)
            if listing.owner_id != caller.id:
                raise PermissionDenied("You do not have permission to update this listing")

            for name, value in fields.model_dump(exclude_unset=True).items():
                setattr(listing, name, value)
            listing.updated_at = self.clock()
            self.session.add(listing)
            stale = self._listing_views(listing)

        return Mutation(ListingRead.model_validate(listing), stale)

    @mutation
    def delete_listing(self, caller: Optional[User], listing_id: str) -> Mutation:
        """Hard-delete a listing. Requests filed against it are left in place."""
        caller = self._require_caller(caller, "You must be logged in to delete a listing")

        with self._transaction():
            listing = self._get_listing(listing_id)
            if listing.owner_id != caller.id:
                raise PermissionDenied("You do not have permission to delete this listing")
            stale = self._listing_views(listing)
            self.session.delete(listing)

        return Mutation(None, stale)

    @mutation
    def claim_listing(self, caller: Optional[User], listing_id: str) -> Mutation:
        """Mark a listing claimed without accepting any request.

        Pending requests on the listing are rejected exactly as they are when
        a request is accepted.
        """
        caller = self._require_caller(caller, "You must be logged in to claim a listing")

        with self._transaction():
            listing = self._get_listing(listing_id)
            if listing.owner_id != caller.id:
                raise PermissionDenied("You do not have permission to claim this listing")
            if listing.status == ListingStatus.CLAIMED:
                return Mutation(ListingRead.model_validate(listing))

            self._claim(listing, self.clock())
            stale = self._listing_views(listing)

        self.session.refresh(listing)
        return Mutation(ListingRead.model_validate(listing), stale)

    def get_all_listings(self, caller: Optional[User]) -> List[ListingRead]:
        self._require_caller(caller, "You must be logged in to view listings")

        def load():
            listings = self.session.exec(
                select(Listing)
                .where(Listing.status == ListingStatus.AVAILABLE)
                .order_by(Listing.created_at.desc())
            ).all()
            return [ListingRead.model_validate(listing) for listing in listings]

        return self._cached(CacheKeys.all_listings(), SHARED_VIEW_TTL, load)

    def get_business_listings(self, caller: Optional[User]) -> List[ListingRead]:
        caller = self._require_caller(caller, "You must be logged in to view your listings")

        def load():
            listings = self.session.exec(
                select(Listing)
                .where(Listing.owner_id == caller.id)
                .order_by(Listing.created_at.desc())
            ).all()
            return [ListingRead.model_validate(listing) for listing in listings]

        return self._cached(CacheKeys.business_listings(caller.id), OWNER_VIEW_TTL, load)

    def get_listing(self, caller: Optional[User], listing_id: str) -> ListingRead:
        self._require_caller(caller, "You must be logged in to view listings")
        return self._cached(
            CacheKeys.listing(listing_id),
            OWNER_VIEW_TTL,
            lambda: ListingRead.model_validate(self._get_listing(listing_id)),
        )

    # ------------------------------------------------------------------
    # requests
    # ------------------------------------------------------------------

    @mutation
    def create_request(
        self,
        caller: Optional[User],
        listing_id: str,
        fields: RequestCreate,
    ) -> Mutation:
        caller = self._require_caller(caller, "You must be logged in to request food")
        if caller.user_type != UserType.SHELTER:
            raise PermissionDenied("Only shelters can request food")

        with self._transaction():
            listing = self._get_listing(listing_id)
            if listing.status != ListingStatus.AVAILABLE:
                raise ListingUnavailable()

            profile = self._profile(caller.id)
            now = self.clock()
            request = FoodRequest(
                listing_id=listing.id,
                requester_id=caller.id,
                shelter_name=profile.shelter_name if profile else None,
                status=RequestStatus.PENDING,
                message=fields.message,
                pickup_time=fields.pickup_time,
                pickup_notes=fields.pickup_notes,
                created_at=now,
                updated_at=now,
            )
            self.session.add(request)
            stale = self._request_views(listing, [caller.id])

        return Mutation(RequestRead.model_validate(request), stale)

    @mutation
    def accept_request(
        self,
        caller: Optional[User],
        request_id: str,
        pickup: Optional[PickupDetails] = None,
    ) -> Mutation:
        """Accept a request, claim its listing and reject the other requests.

        The three writes commit together or not at all. Accepting a request
        that is already accepted changes nothing.
        """
        caller = self._require_caller(caller, "You must be logged in to accept requests")

        with self._transaction():
            request = self._get_request(request_id)
            listing = self._get_listing(request.listing_id)
            if listing.owner_id != caller.id:
                raise PermissionDenied("You do not have permission to accept this request")
            if request.status == RequestStatus.ACCEPTED:
                return Mutation(RequestRead.model_validate(request))
            if request.status == RequestStatus.REJECTED:
                raise InvalidTransition("Request has already been rejected")

            now = self.clock()
            request.status = RequestStatus.ACCEPTED
            request.updated_at = now
            if pickup is not None:
                if pickup.time is not None:
                    request.pickup_time = pickup.time
                if pickup.notes is not None:
                    request.pickup_notes = pickup.notes
            self.session.add(request)
            self.session.flush()

            self._claim(listing, now)
            stale = self._listing_views(listing)

        self.session.refresh(request)
        return Mutation(RequestRead.model_validate(request), stale)

    @mutation
    def reject_request(self, caller: Optional[User], request_id: str) -> Mutation:
        """Reject a pending request. Rejecting twice is a no-op."""
        caller = self._require_caller(caller, "You must be logged in to reject requests")

        with self._transaction():
            request = self._get_request(request_id)
            listing = self._get_listing(request.listing_id)
            if listing.owner_id != caller.id:
                raise PermissionDenied("You do not have permission to reject this request")
            if request.status == RequestStatus.REJECTED:
                return Mutation(RequestRead.model_validate(request))
            if request.status == RequestStatus.ACCEPTED:
                raise InvalidTransition("Request has already been accepted")

            request.status = RequestStatus.REJECTED
            request.updated_at = self.clock()
            self.session.add(request)
            stale = self._request_views(listing, [request.requester_id])

        return Mutation(RequestRead.model_validate(request), stale)

    def get_requests_for_listing(self, caller: Optional[User], listing_id: str) -> List[RequestRead]:
        caller = self._require_caller(caller, "You must be logged in to view requests")
        with self._reading():
            listing = self._get_listing(listing_id)
        if listing.owner_id != caller.id:
            raise PermissionDenied("You do not have permission to view these requests")

        def load():
            requests = self.session.exec(
                select(FoodRequest)
                .where(FoodRequest.listing_id == listing_id)
                .order_by(FoodRequest.created_at.desc())
            ).all()
            return [RequestRead.model_validate(r) for r in requests]

        return self._cached(CacheKeys.listing_requests(listing_id), SHARED_VIEW_TTL, load)

    def get_business_requests(self, caller: Optional[User]) -> List[RequestWithListing]:
        """Requests filed against any of the caller's listings."""
        caller = self._require_caller(caller, "You must be logged in to view requests")

        def load():
            rows = self.session.exec(
                select(FoodRequest, Listing)
                .join(Listing, Listing.id == FoodRequest.listing_id)
                .where(Listing.owner_id == caller.id)
                .order_by(FoodRequest.created_at.desc())
            ).all()
            return [_with_listing(request, listing) for request, listing in rows]

        return self._cached(CacheKeys.business_requests(caller.id), SHARED_VIEW_TTL, load)

    def get_shelter_requests(self, caller: Optional[User]) -> List[RequestWithListing]:
        """The caller's own requests; ``listing`` is None once a listing is deleted."""
        caller = self._require_caller(caller, "You must be logged in to view your requests")

        def load():
            rows = self.session.exec(
                select(FoodRequest, Listing)
                .join(Listing, Listing.id == FoodRequest.listing_id, isouter=True)
                .where(FoodRequest.requester_id == caller.id)
                .order_by(FoodRequest.created_at.desc())
            ).all()
            return [_with_listing(request, listing) for request, listing in rows]

        return self._cached(CacheKeys.shelter_requests(caller.id), SHARED_VIEW_TTL, load)
