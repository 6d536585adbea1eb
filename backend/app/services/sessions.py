"""Session verification for realtime handshakes."""

from __future__ import annotations

from app.core.security import TokenError, read_token_claims
from app.services.chat_store import SqlChatStore
from parley.realtime.errors import InvalidCredentialError
from parley.realtime.events import SessionUser


class TokenSessionVerifier:
    """Resolves a signed access token to the user it was issued for."""

    def __init__(self, store: SqlChatStore) -> None:
        self._store = store

    async def verify(self, token: str) -> SessionUser:
        try:
            claims = read_token_claims(token)
        except TokenError as exc:
            raise InvalidCredentialError(str(exc)) from exc

        subject = claims.get("sub")
        if subject is None or claims.get("scope") is not None:
            raise InvalidCredentialError("Token does not identify a user")

        user = await self._store.get_user(str(subject))
        if user is None:
            raise InvalidCredentialError("Unknown user")
        return user
