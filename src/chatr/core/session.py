"""Request-scoped credential check."""
from __future__ import annotations

from typing import Mapping, Optional

from chatr.core.credentials import is_well_formed
from chatr.core.directory import AgentDirectory
from chatr.exceptions import MalformedCredential, MissingCredential
from chatr.store.base import AgentRecord


class SessionGate:
    """Pulls a bearer credential off request headers and resolves its agent.

    ``Authorization: Bearer <key>`` is preferred; ``X-API-Key: <key>`` is
    accepted for older clients. Malformed keys are rejected by shape alone,
    before the directory is touched.
    """

    def __init__(self, directory: AgentDirectory):
        self._directory = directory

    @staticmethod
    def extract(headers: Mapping[str, str]) -> str:
        authorization: Optional[str] = headers.get("authorization")
        if authorization:
            scheme, _, token = authorization.partition(" ")
            if scheme.lower() != "bearer" or not token.strip():
                raise MalformedCredential("Authorization header must be 'Bearer <api key>'")
            return token.strip()
        api_key = headers.get("x-api-key")
        if api_key:
            return api_key.strip()
        raise MissingCredential("Missing Authorization header")

    @staticmethod
    def check_format(token: str) -> str:
        if not is_well_formed(token):
            raise MalformedCredential("Malformed API key")
        return token

    async def resolve(self, headers: Mapping[str, str]) -> AgentRecord:
        token = self.check_format(self.extract(headers))
        return await self._directory.authenticate(token)
