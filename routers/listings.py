from typing import List

from fastapi import APIRouter, Response

from dependencies import LifecycleDep
from schemas import ListingCreate, ListingRead, ListingUpdate, RequestCreate, RequestRead
from .auth import OptionalUserDep

router = APIRouter(tags=["listings"])


@router.get("/", response_model=List[ListingRead])
def list_available_listings(lifecycle: LifecycleDep, current: OptionalUserDep):
    """
    All listings that are still available, newest first.
    """
    return lifecycle.get_all_listings(current)


@router.get("/mine", response_model=List[ListingRead])
def list_my_listings(lifecycle: LifecycleDep, current: OptionalUserDep):
    """
    Every listing the logged-in business has posted, whatever its status.
    """
    return lifecycle.get_business_listings(current)


@router.get("/{listing_id}", response_model=ListingRead)
def get_listing(listing_id: str, lifecycle: LifecycleDep, current: OptionalUserDep):
    return lifecycle.get_listing(current, listing_id)


@router.post("/", response_model=ListingRead, status_code=201)
def create_listing(listing_in: ListingCreate, lifecycle: LifecycleDep, current: OptionalUserDep):
    return lifecycle.create_listing(current, listing_in)


@router.patch("/{listing_id}", response_model=ListingRead)
def update_listing(
    listing_id: str,
    update: ListingUpdate,
    lifecycle: LifecycleDep,
    current: OptionalUserDep,
):
    return lifecycle.update_listing(current, listing_id, update)


@router.delete("/{listing_id}", status_code=204)
def delete_listing(listing_id: str, lifecycle: LifecycleDep, current: OptionalUserDep):
    lifecycle.delete_listing(current, listing_id)
    return Response(status_code=204)


@router.post("/{listing_id}/claim", response_model=ListingRead)
def claim_listing(listing_id: str, lifecycle: LifecycleDep, current: OptionalUserDep):
    """
    Mark a listing claimed without accepting a request; pending requests are rejected.
    """
    return lifecycle.claim_listing(current, listing_id)


@router.get("/{listing_id}/requests", response_model=List[RequestRead])
def list_listing_requests(listing_id: str, lifecycle: LifecycleDep, current: OptionalUserDep):
    return lifecycle.get_requests_for_listing(current, listing_id)


@router.post("/{listing_id}/requests", response_model=RequestRead, status_code=201)
def create_request(
    listing_id: str,
    request_in: RequestCreate,
    lifecycle: LifecycleDep,
    current: OptionalUserDep,
):
    return lifecycle.create_request(current, listing_id, request_in)
