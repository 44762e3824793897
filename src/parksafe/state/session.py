"""Session store: the single owner of the authenticated identity."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from parksafe.exceptions import ParkSafeAuthenticationError
from parksafe.models.user import AuthUser
from parksafe.session import Session
from parksafe.state._observable import Observable

_logger = logging.getLogger(__name__)


class SessionReader(Protocol):
    """Read-only view handed to synchronizers."""

    @property
    def session(self) -> Session | None: ...

    @property
    def user(self) -> AuthUser | None: ...

    def require_user(self) -> AuthUser: ...

    def subscribe(self, listener: Callable[[Session | None], None]) -> Callable[[], None]: ...


class SessionStore:
    """Holds the current :class:`Session`; only the client writes to it.

    When *path* is given the session is persisted as JSON so that
    :meth:`load` can restore it on the next start.
    """

    def __init__(self, *, path: Path | None = None) -> None:
        self._path = path
        self._session: Session | None = None
        self._changes: Observable[Session | None] = Observable()

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user(self) -> AuthUser | None:
        return self._session.user if self._session is not None else None

    @property
    def is_admin(self) -> bool:
        return self._session is not None and self._session.is_admin

    def require_user(self) -> AuthUser:
        if self._session is None:
            raise ParkSafeAuthenticationError("Not authenticated", code="no_session")
        return self._session.user

    def subscribe(self, listener: Callable[[Session | None], None]) -> Callable[[], None]:
        return self._changes.subscribe(listener)

    def set(self, session: Session) -> None:
        self._session = session
        self._persist()
        self._changes.notify(session)

    def update_user(self, user: AuthUser) -> None:
        if self._session is None:
            raise ParkSafeAuthenticationError("Not authenticated", code="no_session")
        self.set(self._session.with_user(user))

    def clear(self) -> None:
        self._session = None
        if self._path is not None:
            self._path.unlink(missing_ok=True)
        self._changes.notify(None)

    def load(self) -> Session | None:
        """Read a persisted session without activating it."""
        if self._path is None or not self._path.is_file():
            return None
        try:
            return Session.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            _logger.warning("Ignoring unreadable session file %s", self._path, exc_info=True)
            return None

    def _persist(self) -> None:
        if self._path is None or self._session is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(self._session.model_dump_json(), encoding="utf-8")
        except OSError:
            _logger.warning("Could not persist session to %s", self._path, exc_info=True)
