"""Token check delegated to by the stream endpoint."""

from __future__ import annotations

import hmac
from typing import Iterable, Protocol


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> bool:
        ...


class StaticTokenVerifier:
    """Accept tokens from a fixed set.

    With an empty set every non-empty token is accepted, which is how the
    stream behaves when no tokens are configured.
    """

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens = tuple(t for t in tokens if t)

    async def verify(self, token: str) -> bool:
        if not token:
            return False
        if not self._tokens:
            return True
        candidate = token.encode("utf-8")
        return any(hmac.compare_digest(candidate, expected.encode("utf-8")) for expected in self._tokens)
