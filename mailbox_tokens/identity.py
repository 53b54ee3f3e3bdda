"""Session identity and the providers that resolve it.

Key material is bound to whoever holds the live authenticated session, so
the identity is fetched from a provider on every cryptographic call and is
never cached or persisted.
"""
import os
import inspect
from abc import ABC, abstractmethod
from typing import Any, Optional, Union
from collections.abc import Awaitable, Callable, Mapping
from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from .exceptions import NoSessionError


SESSION_REQUEST_KEY = os.environ.get('SESSION_REQUEST_KEY', 'session')
SESSION_USER_ID = os.environ.get('SESSION_USER_ID', 'user_id')
SESSION_EMAIL = os.environ.get('SESSION_EMAIL', 'email')
SESSION_TOKEN_KEY = os.environ.get('SESSION_TOKEN_KEY', 'session_token')


class SessionIdentity(BaseModel):
    """Attributes of the current authenticated session.

    Only ``user_id`` and ``email`` feed key derivation; ``session_token``
    proves the session is live and is masked in ``repr``.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    email: str = ''
    session_token: str = Field(min_length=1, repr=False)


IdentityResult = Union[SessionIdentity, Mapping[str, Any], None]


class SessionProvider(ABC):
    """Boundary to the authentication/session provider."""

    @abstractmethod
    async def get_current_session(self) -> Optional[SessionIdentity]:
        """Return the live session identity, or None without a session."""

    async def require_identity(self) -> SessionIdentity:
        """Return the live identity or raise NoSessionError.

        Provider failures are treated as "no session": there is never a
        fallback to a cached or default identity.
        """
        try:
            identity = await self.get_current_session()
        except NoSessionError:
            raise
        except Exception as err:
            raise NoSessionError(
                f"Session provider failed: {err}"
            ) from err
        if identity is None:
            raise NoSessionError(
                "No authenticated session available for encryption"
            )
        return identity


def _as_identity(value: IdentityResult) -> Optional[SessionIdentity]:
    if value is None or isinstance(value, SessionIdentity):
        return value
    try:
        return SessionIdentity.model_validate(dict(value))
    except ValidationError as err:
        raise NoSessionError(f"Invalid session identity: {err}") from err


class CallableSessionProvider(SessionProvider):
    """Adapts a sync or async callable returning an identity (or a mapping)."""

    def __init__(
        self,
        getter: Callable[[], Union[IdentityResult, Awaitable[IdentityResult]]]
    ) -> None:
        self._getter = getter

    async def get_current_session(self) -> Optional[SessionIdentity]:
        result = self._getter()
        if inspect.isawaitable(result):
            result = await result
        return _as_identity(result)


class RequestSessionProvider(SessionProvider):
    """Reads the identity from the session attached to an aiohttp request.

    The session object is any mapping stored at ``request[SESSION_REQUEST_KEY]``
    by the session middleware. When it has no explicit session token, its
    ``session_id`` attribute is used instead.
    """

    def __init__(
        self,
        request: web.Request,
        request_key: str = SESSION_REQUEST_KEY
    ) -> None:
        self._request = request
        self._key = request_key

    async def get_current_session(self) -> Optional[SessionIdentity]:
        session = self._request.get(self._key)
        if not session:
            return None
        user_id = session.get(SESSION_USER_ID)
        token = session.get(SESSION_TOKEN_KEY) or getattr(session, 'session_id', None)
        if user_id is None or not token:
            return None
        return SessionIdentity(
            user_id=str(user_id),
            email=session.get(SESSION_EMAIL) or '',
            session_token=str(token)
        )
