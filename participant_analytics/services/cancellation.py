"""
Cooperative cancellation for analytics computations.

Every compute_analytics() call carries a CancellationToken. When a newer
request for the same (organization, participant) starts, the registry cancels
the token of the request it supersedes; the superseded computation raises
AnalyticsCancelledError at its next checkpoint, so its result is discarded
instead of racing with the newer one.

Usage:
    token = registry.supersede(company_code, participant_id)
    try:
        bundle = await compute_analytics(..., token=token)
    finally:
        registry.release(company_code, participant_id, token)
"""

import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Dict, Optional, Tuple

from participant_analytics.core.errors import AnalyticsCancelledError


logger = logging.getLogger(__name__)

_token_ids = count(1)


@dataclass(eq=False)
class CancellationToken:
    """
    A one-way cancellation flag checked at computation checkpoints.

    Attributes:
        token_id: Monotonic identifier, for logging only.
        reason: Why the token was cancelled (None while active).
    """
    token_id: int = field(default_factory=lambda: next(_token_ids))
    reason: Optional[str] = None
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = 'superseded') -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def raise_if_cancelled(self) -> None:
        """Checkpoint: raise AnalyticsCancelledError once cancelled."""
        if self._cancelled:
            raise AnalyticsCancelledError(self.reason or 'superseded')


def checkpoint(token: Optional[CancellationToken]) -> None:
    """raise_if_cancelled() for an optional token."""
    if token is not None:
        token.raise_if_cancelled()


RegistryKey = Tuple[str, str]


class CancellationRegistry:
    """
    In-flight token per (organization, participant).

    Single event loop, no awaits inside methods, so no locking is required.
    """

    def __init__(self) -> None:
        self._active: Dict[RegistryKey, CancellationToken] = {}

    @staticmethod
    def _key(company_code: Optional[str], participant_id: str) -> RegistryKey:
        return (company_code or '', participant_id)

    def supersede(self, company_code: Optional[str], participant_id: str) -> CancellationToken:
        """
        Cancel the in-flight computation for this key (if any) and register a
        fresh token for the new one.
        """
        key = self._key(company_code, participant_id)
        previous = self._active.get(key)
        if previous is not None and not previous.cancelled:
            previous.cancel('superseded')
            logger.info(
                f"Cancelled analytics token {previous.token_id} for participant {participant_id}: superseded"
            )
        token = CancellationToken()
        self._active[key] = token
        return token

    def release(self, company_code: Optional[str], participant_id: str, token: CancellationToken) -> None:
        """Forget the token if it is still the registered one."""
        key = self._key(company_code, participant_id)
        if self._active.get(key) is token:
            del self._active[key]

    def active(self, company_code: Optional[str], participant_id: str) -> Optional[CancellationToken]:
        return self._active.get(self._key(company_code, participant_id))

    def __len__(self) -> int:
        return len(self._active)
