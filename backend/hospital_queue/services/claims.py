"""
Exclusive claims backed by the unique ``_id`` of the claims collection.

A claim ties a key (e.g. one patient in one department) to the queue entry
holding it. Inserting the claim is the check: a second insert for the same
key fails with ``DuplicateKeyError`` no matter how the requests interleave.
"""

import logging
from datetime import timedelta
from typing import Optional

from pymongo.errors import DuplicateKeyError

from .. import clock
from ..config import get_settings
from ..database import Database

settings = get_settings()
logger = logging.getLogger(__name__)


def active_entry_key(patient_id: str, department: str) -> str:
    return f"active:{patient_id}:{department}"


def is_stale(claim: dict) -> bool:
    """Whether a claim is old enough that its holder can no longer be writing."""
    age = clock.now() - claim["claimed_at"]
    return age > timedelta(seconds=settings.CLAIM_STALE_SECONDS)


class Claims:
    """Acquire, hand over and release keyed claims."""

    @classmethod
    async def acquire(cls, key: str, holder: str) -> Optional[dict]:
        """Claim ``key`` for ``holder``.

        Returns None when the claim was taken, otherwise the existing claim.
        """
        claims = Database.get_collection("claims")
        for _ in range(2):
            try:
                await claims.insert_one({"_id": key, "holder": holder, "claimed_at": clock.now()})
                return None
            except DuplicateKeyError:
                existing = await claims.find_one({"_id": key})
                if existing is not None:
                    return existing
                # released between our insert and our read; try once more
        return {"_id": key, "holder": "", "claimed_at": clock.now()}

    @classmethod
    async def takeover(cls, key: str, stale_holder: str, holder: str) -> bool:
        """Move a claim whose holder is no longer active to a new holder."""
        claims = Database.get_collection("claims")
        result = await claims.update_one(
            {"_id": key, "holder": stale_holder},
            {"$set": {"holder": holder, "claimed_at": clock.now()}},
        )
        return result.modified_count == 1

    @classmethod
    async def release(cls, key: str, holder: Optional[str] = None) -> None:
        claims = Database.get_collection("claims")
        query = {"_id": key}
        if holder is not None:
            query["holder"] = holder
        try:
            await claims.delete_one(query)
        except Exception as e:
            # a stale claim is taken over on the next check-in
            logger.warning("Failed to release claim %s: %s", key, e)
