"""Bearer-token authorization for the local tool-call server."""

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Optional
from urllib.parse import parse_qs

from conductor.core.timeutil import Clock

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass
class MCPAuthPolicy:
    """A token minted once per process launch, valid for a fixed window."""

    expires_at: datetime
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    max_request_body_bytes: int = 256 * 1024
    clock: Clock = datetime.now

    @classmethod
    def issue(cls, ttl_hours: float = 12.0, max_request_body_bytes: int = 256 * 1024, clock: Clock = datetime.now):
        return cls(
            expires_at=clock() + timedelta(hours=ttl_hours),
            max_request_body_bytes=max_request_body_bytes,
            clock=clock,
        )

    @property
    def is_expired(self) -> bool:
        return self.clock() >= self.expires_at

    def _matches(self, candidate: Optional[str]) -> bool:
        return bool(candidate) and secrets.compare_digest(candidate, self.token)

    def is_authorized(self, headers: Mapping[str, str], query: Optional[str] = None) -> bool:
        """Header token first; the ``auth`` query parameter is accepted but deprecated."""
        if self.is_expired:
            logger.warning("Rejected tool-call request: token expired at %s", self.expires_at.isoformat())
            return False

        authorization = headers.get("authorization") or headers.get("Authorization") or ""
        if authorization[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
            if self._matches(authorization[len(BEARER_PREFIX):].strip()):
                return True

        if query:
            values = parse_qs(query).get("auth", [])
            if values and self._matches(values[0]):
                logger.warning("Client authenticated via query-param token; migrate to Authorization header")
                return True
        return False
