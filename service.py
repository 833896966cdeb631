"""Shared plumbing for the services that sit between routers and storage."""

from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from typing import Any, Callable, FrozenSet, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from cache import CacheInvalidator, QueryCache
from errors import NotAuthenticated, StorageError
from models import Profile, User, utcnow


class Mutation(NamedTuple):
    """Result of a write plus the cache keys the write made stale."""

    result: Any
    stale: FrozenSet[str] = frozenset()


def mutation(method: Callable[..., Mutation]) -> Callable[..., Any]:
    """Unwrap a :class:`Mutation` and invalidate the keys it reports.

    Keys are only invalidated when the method returns; an operation that
    raises leaves the cache untouched.
    """

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        outcome = method(self, *args, **kwargs)
        self.invalidator.apply(outcome.stale)
        return outcome.result

    return wrapper


class BaseService:
    def __init__(
        self,
        session: Session,
        cache: QueryCache,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.cache = cache
        self.invalidator = CacheInvalidator(cache)
        self.clock = clock

    @contextmanager
    def _transaction(self):
        """Commit on success, roll back on any error."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError() from exc
        except Exception:
            self.session.rollback()
            raise

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError() from exc

    def _cached(self, key: str, ttl: float, load: Callable[[], Any]) -> Any:
        value = self.cache.get(key)
        if value is not None:
            return value
        with self._reading():
            value = load()
        self.cache.set(key, value, ttl)
        return value

    def _profile(self, user_id: str) -> Optional[Profile]:
        return self.session.exec(
            select(Profile).where(Profile.user_id == user_id)
        ).first()

    @staticmethod
    def _require_caller(caller: Optional[User], message: str) -> User:
        if caller is None:
            raise NotAuthenticated(message)
        return caller
