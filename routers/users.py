# routers/users.py
from fastapi import APIRouter, HTTPException
from sqlmodel import select

from db import SessionDep
from models import Profile
from schemas import ProfileRead
from .auth import CurrentUserDep

router = APIRouter(tags=["users"])


@router.get("/{user_id}/profile", response_model=ProfileRead)
def get_profile(user_id: str, session: SessionDep, current: CurrentUserDep):
    """
    Get another user's public profile (e.g. the other side of a chat).
    """
    profile = session.exec(
        select(Profile).where(Profile.user_id == user_id)
    ).first()
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile
