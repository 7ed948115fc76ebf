"""
Identity providers.

A provider answers "who is shopping right now" and notifies subscribers
whenever that changes. Callbacks receive the new user id, or None after
sign-out, and may be coroutine functions.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set, Union

from supabase._async.client import AsyncClient

from storefront.logging import describe_shopper, get_logger

logger = get_logger(__name__)

IdentityCallback = Callable[[Optional[str]], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class IdentityProvider(Protocol):
    async def current_identity(self) -> Optional[str]: ...

    def subscribe(self, callback: IdentityCallback) -> Unsubscribe: ...


class StaticIdentityProvider:
    """Identity set explicitly by the host application."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._callbacks: List[IdentityCallback] = []

    async def current_identity(self) -> Optional[str]:
        return self._user_id

    def subscribe(self, callback: IdentityCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def sign_in(self, user_id: str) -> None:
        await self._set(user_id)

    async def sign_out(self) -> None:
        await self._set(None)

    async def _set(self, user_id: Optional[str]) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        for callback in list(self._callbacks):
            result = callback(user_id)
            if inspect.isawaitable(result):
                await result


class SupabaseIdentityProvider:
    """
    Identity from Supabase auth.

    gotrue invokes listeners synchronously on every auth event, including
    token refreshes; subscribers are only notified when the user id changes.
    Coroutine callbacks are scheduled on the running loop.
    """

    def __init__(self, client: AsyncClient):
        self.client = client
        self._last_user_id: Optional[str] = None
        self._tasks: Set["asyncio.Task[Any]"] = set()

    async def current_identity(self) -> Optional[str]:
        try:
            session = await self.client.auth.get_session()
        except Exception as e:
            logger.warning("Failed to read auth session: %s", type(e).__name__)
            return None
        user = getattr(session, "user", None) if session else None
        self._last_user_id = str(user.id) if user else None
        return self._last_user_id

    def subscribe(self, callback: IdentityCallback) -> Unsubscribe:
        def listener(event, session) -> None:
            user = getattr(session, "user", None) if session else None
            user_id = str(user.id) if user else None
            if user_id == self._last_user_id:
                return
            logger.info(
                "Auth event %s: identity now %s",
                getattr(event, "value", event),
                describe_shopper(user_id),
            )
            self._last_user_id = user_id
            result = callback(user_id)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

        subscription = self.client.auth.on_auth_state_change(listener)
        return subscription.unsubscribe
