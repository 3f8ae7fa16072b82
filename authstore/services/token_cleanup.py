"""Expired token cleanup.

Periodic maintenance entry point for the caller's scheduler. Exchange
tokens live for seconds and are never read after expiry, so the sweep
hard deletes them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from authstore.models import ensure_aware, utcnow
from authstore.repositories.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeTokenCleanupResult:
    """Result of one exchange token sweep.

    Attributes:
        cutoff: Tokens with expires_at before this instant were removed.
        deleted_exchange_tokens: Number of rows deleted.
    """

    cutoff: datetime
    deleted_exchange_tokens: int


async def cleanup_expired_exchange_tokens(
    store: Store,
    now: datetime | None = None,
) -> ExchangeTokenCleanupResult:
    """Delete exchange tokens that expired before ``now``.

    Database errors propagate unchanged so the scheduler can retry.

    Args:
        store: Store to sweep.
        now: Cutoff instant. Defaults to the current UTC time.

    Returns:
        ExchangeTokenCleanupResult with the cutoff and deletion count.
    """
    cutoff = ensure_aware(now) if now is not None else utcnow()
    deleted = await store.exchange_tokens.cleanup_expired(cutoff)
    logger.info(
        "Exchange token sweep finished",
        extra={"cutoff": cutoff.isoformat(), "deleted": deleted},
    )
    return ExchangeTokenCleanupResult(cutoff=cutoff, deleted_exchange_tokens=deleted)
