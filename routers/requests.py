from typing import List, Optional

from fastapi import APIRouter

from dependencies import LifecycleDep
from schemas import PickupDetails, RequestRead, RequestWithListing
from .auth import OptionalUserDep

router = APIRouter(tags=["requests"])


@router.get("/business", response_model=List[RequestWithListing])
def list_business_requests(lifecycle: LifecycleDep, current: OptionalUserDep):
    """
    Requests filed against any of the logged-in business's listings.
    """
    return lifecycle.get_business_requests(current)


@router.get("/mine", response_model=List[RequestWithListing])
def list_my_requests(lifecycle: LifecycleDep, current: OptionalUserDep):
    """
    The logged-in shelter's requests. ``listing`` is null for deleted listings.
    """
    return lifecycle.get_shelter_requests(current)


@router.post("/{request_id}/accept", response_model=RequestRead)
def accept_request(
    request_id: str,
    lifecycle: LifecycleDep,
    current: OptionalUserDep,
    pickup: Optional[PickupDetails] = None,
):
    return lifecycle.accept_request(current, request_id, pickup)


@router.post("/{request_id}/reject", response_model=RequestRead)
def reject_request(request_id: str, lifecycle: LifecycleDep, current: OptionalUserDep):
    return lifecycle.reject_request(current, request_id)
