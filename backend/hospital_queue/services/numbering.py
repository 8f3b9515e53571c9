"""
Human readable, collision-free numbers: queue tickets and patient cards.

Both kinds follow the same scheme: a candidate seeded from persisted state,
probed upward one number at a time past numbers already issued under the
same prefix, then written through an insert guarded by a unique index. A
concurrent writer that takes the candidate first makes our insert fail with
``DuplicateKeyError``, and we move on to the next number.
"""

import logging
import re
from typing import Awaitable, Callable, Optional, TypeVar

from pymongo.errors import DuplicateKeyError, PyMongoError

from .. import clock
from ..config import get_settings
from ..database import Database
from ..errors import GenerationFailed

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")


def department_code(department: str) -> str:
    """First four characters of the department, uppercased."""
    return department.strip()[:4].upper()


class SequenceGenerator:
    """Issues ``PREFIX-NNN`` numbers that are unique for all time."""

    def __init__(self, prefix: str, width: Optional[int] = None):
        self.prefix = prefix
        self.width = width or settings.QUEUE_NUMBER_WIDTH
        self.pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{{self.width},}})$")

    def format(self, number: int) -> str:
        return f"{self.prefix}-{number:0{self.width}d}"

    def parse(self, value: Optional[str]) -> Optional[int]:
        match = self.pattern.match(value or "")
        return int(match.group(1)) if match else None

    @property
    def regex(self) -> str:
        """Mongo ``$regex`` matching every number of this prefix."""
        return self.pattern.pattern

    async def issue(
        self,
        seed: int,
        insert: Callable[[str, int], Awaitable[T]],
        is_taken: Optional[Callable[[str], Awaitable[bool]]] = None,
        attempts: Optional[int] = None,
    ) -> T:
        """Insert under the first free number at or after ``seed``.

        ``is_taken`` reports whether a formatted number was issued before.
        ``insert`` receives the formatted number and its numeric value and
        must raise ``DuplicateKeyError`` when the unique index rejects it.
        """
        attempts = attempts or settings.NUMBER_INSERT_ATTEMPTS
        number = max(seed, 1)

        for _ in range(attempts):
            try:
                if is_taken is not None:
                    while await is_taken(self.format(number)):
                        number += 1
                candidate = self.format(number)
                return await insert(candidate, number)
            except DuplicateKeyError:
                logger.info("Number %s taken concurrently, probing next", self.format(number))
                number += 1
            except PyMongoError as e:
                logger.error("%s number generation failed: %s", self.prefix, e)
                raise GenerationFailed(f"Failed to generate {self.prefix} number: {e}") from e

        raise GenerationFailed(
            f"No unique {self.prefix} number found after {attempts} attempts",
            {"prefix": self.prefix, "last_candidate": self.format(number)},
        )


class TicketNumberGenerator:
    """Department scoped queue numbers (``CARD-001``), restarting each day."""

    @classmethod
    def for_department(cls, department: str) -> SequenceGenerator:
        return SequenceGenerator(department_code(department))

    @classmethod
    async def next_seed(cls, department: str) -> int:
        """Highest sequence issued today for the department, plus one."""
        entries = Database.get_collection("queue_entries")
        generator = cls.for_department(department)

        latest = await entries.find_one(
            {
                "department": department,
                "joined_at": {"$gte": clock.start_of_day()},
                "queue_number": {"$regex": generator.regex},
            },
            sort=[("sequence", -1)],
        )
        if latest:
            last = generator.parse(latest["queue_number"])
            if last is not None:
                return last + 1
        return 1

    @classmethod
    async def is_taken(cls, queue_number: str) -> bool:
        """Whether the queue number was issued on any day."""
        entries = Database.get_collection("queue_entries")
        return await entries.find_one({"queue_number": queue_number}, projection={"_id": 1}) is not None

    @classmethod
    async def issue(cls, department: str, insert: Callable[[str, int], Awaitable[T]]) -> T:
        """Generate the next queue number for the department and insert with it."""
        try:
            seed = await cls.next_seed(department)
        except PyMongoError as e:
            logger.error("Queue number lookup failed for %s: %s", department, e)
            raise GenerationFailed("Failed to generate queue number") from e

        return await cls.for_department(department).issue(seed, insert, cls.is_taken)


class CardNumberGenerator:
    """Patient card numbers, unique across patients and appointments."""

    @classmethod
    def generator(cls) -> SequenceGenerator:
        return SequenceGenerator(settings.CARD_NUMBER_PREFIX)

    @classmethod
    async def is_taken(cls, card_number: str) -> bool:
        for name in ("patients", "appointments"):
            collection = Database.get_collection(name)
            if await collection.find_one({"card_number": card_number}, projection={"_id": 1}):
                return True
        return False

    @classmethod
    async def issue(cls, insert: Callable[[str, int], Awaitable[T]]) -> T:
        patients = Database.get_collection("patients")
        appointments = Database.get_collection("appointments")

        try:
            seed = (
                await patients.count_documents({})
                + await appointments.count_documents({})
                + settings.CARD_NUMBER_SEED_OFFSET
            )
        except PyMongoError as e:
            logger.error("Card number lookup failed: %s", e)
            raise GenerationFailed("Failed to generate card number") from e

        return await cls.generator().issue(seed, insert, cls.is_taken)
