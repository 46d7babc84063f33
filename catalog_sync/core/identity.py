import logging
from typing import Callable, Optional

from pydantic import BaseModel, EmailStr

from catalog_sync.services.broadcast import BroadcastHub, Subscription

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    email: EmailStr
    access_token: str


class IdentityProvider:
    """
    Current signed-in user and their bearer token.

    Token acquisition and refresh happen elsewhere; this only stores the
    result and tells subscribers when the email changes (sign-in, switch,
    sign-out).
    """

    def __init__(self):
        self._identity: Optional[Identity] = None
        self._changes: BroadcastHub[Optional[str]] = BroadcastHub("identity")

    @property
    def email(self) -> Optional[str]:
        return self._identity.email if self._identity else None

    def get_token(self) -> Optional[str]:
        return self._identity.access_token if self._identity else None

    def sign_in(self, email: str, access_token: str) -> Identity:
        previous = self.email
        self._identity = Identity(email=email, access_token=access_token)
        logger.info(f"Signed in as {self._identity.email}")
        if self._identity.email != previous:
            self._changes.publish(self._identity.email)
        return self._identity

    def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info(f"Signed out {self._identity.email}")
        self._identity = None
        self._changes.publish(None)

    def subscribe(self, listener: Callable[[Optional[str]], None]) -> Subscription:
        return self._changes.subscribe(listener)

    def close(self) -> None:
        self._changes.close()
