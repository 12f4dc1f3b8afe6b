from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from tubetldr.models.response import CachedResponse


class CacheEnvelope(BaseModel):
    """Serialized form of a cache entry in the durable tier.

    Carries its own absolute expiry so that a backend with lazy or eventual
    expiry can never serve a value past its TTL, and so a tier-2 hit knows how
    long tier 1 may keep it.
    """

    expires_at: datetime
    value: CachedResponse
