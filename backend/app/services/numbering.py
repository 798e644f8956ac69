"""
Document numbering.

WHAT: Year-scoped sequential numbers for proposals (``YYYY-XXX``) and
invoices (``INV-YYYY-XXX``).

WHY: Numbers are what clients and accountants quote back, so they are
human-readable and restart every year. Suffixes are padded to three
digits and keep growing past 999. Two writers can compute the same "next"
number; the unique index on the number column turns that race into
an IntegrityError, and :func:`create_with_unique_number` retries with a
fresh number inside a savepoint.
"""

import logging
import re
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NumberGenerationError
from app.dao.invoice import BillDAO
from app.dao.proposal import ProposalDAO


logger = logging.getLogger(__name__)

T = TypeVar("T")

PROPOSAL_NUMBER_RE = re.compile(r"^\d{4}-\d{3}$")
SEQUENCE_WIDTH = 3


def next_sequence_number(last_number: Optional[str], prefix: str) -> int:
    """
    Sequence number following ``last_number``.

    Starts at 1 when there is no previous number or its suffix is not
    numeric.
    """
    if not last_number or not last_number.startswith(prefix):
        return 1
    suffix = last_number[len(prefix):]
    try:
        return int(suffix) + 1
    except ValueError:
        return 1


def format_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def proposal_prefix(year: Optional[int] = None) -> str:
    return f"{year or datetime.utcnow().year}-"


def invoice_prefix(year: Optional[int] = None) -> str:
    return f"INV-{year or datetime.utcnow().year}-"


def is_valid_proposal_number(value: str) -> bool:
    """True for ``YYYY-XXX`` (four digits, dash, three digits)."""
    return bool(PROPOSAL_NUMBER_RE.match(value or ""))


async def generate_proposal_number(session: AsyncSession, year: Optional[int] = None) -> str:
    """
    Next proposal number for the year, e.g. ``2025-007``.

    Args:
        session: Async database session
        year: Year to number in (defaults to the current UTC year)
    """
    prefix = proposal_prefix(year)
    last = await ProposalDAO(session).get_last_number_with_prefix(prefix)
    number = format_number(prefix, next_sequence_number(last, prefix))
    logger.debug("Generated proposal number %s (last: %s)", number, last)
    return number


async def generate_invoice_number(session: AsyncSession, year: Optional[int] = None) -> str:
    """
    Next invoice number for the year, e.g. ``INV-2025-007``.

    Args:
        session: Async database session
        year: Year to number in (defaults to the current UTC year)
    """
    prefix = invoice_prefix(year)
    last = await BillDAO(session).get_last_number_with_prefix(prefix)
    number = format_number(prefix, next_sequence_number(last, prefix))
    logger.debug("Generated invoice number %s (last: %s)", number, last)
    return number


async def create_with_unique_number(
    session: AsyncSession,
    generate: Callable[[], Awaitable[str]],
    create: Callable[[str], Awaitable[T]],
    max_attempts: Optional[int] = None,
) -> T:
    """
    Create a record under a freshly generated number, retrying on collision.

    WHAT: Runs ``create(number)`` inside a savepoint; a unique violation
    rolls back only the savepoint and the next attempt generates a new
    number.

    Args:
        session: Async database session
        generate: Coroutine function producing a candidate number
        create: Coroutine function creating the record (must flush)
        max_attempts: Attempts before giving up
            (defaults to settings.NUMBER_GENERATION_MAX_ATTEMPTS)

    Returns:
        Whatever ``create`` returned

    Raises:
        NumberGenerationError: If every attempt collided
    """
    attempts = max_attempts or settings.NUMBER_GENERATION_MAX_ATTEMPTS
    last_number = None
    for attempt in range(1, attempts + 1):
        last_number = await generate()
        try:
            async with session.begin_nested():
                return await create(last_number)
        except IntegrityError:
            logger.warning(
                "Number %s already taken (attempt %d/%d), retrying",
                last_number,
                attempt,
                attempts,
            )

    raise NumberGenerationError(attempts=attempts, last_number=last_number)
