"""
Shared API dependencies.
"""

from typing import Annotated

from fastapi import Depends

from cache import QueryCache, get_query_cache
from db import SessionDep
from food_analysis import FoodAnalyzer, get_food_analyzer
from lifecycle import LifecycleManager
from messaging import ChatService

CacheDep = Annotated[QueryCache, Depends(get_query_cache)]


def get_lifecycle(session: SessionDep, cache: CacheDep) -> LifecycleManager:
    return LifecycleManager(session, cache)


def get_chat_service(session: SessionDep, cache: CacheDep) -> ChatService:
    return ChatService(session, cache)


LifecycleDep = Annotated[LifecycleManager, Depends(get_lifecycle)]
ChatDep = Annotated[ChatService, Depends(get_chat_service)]
AnalyzerDep = Annotated[FoodAnalyzer, Depends(get_food_analyzer)]
