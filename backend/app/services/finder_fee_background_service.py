"""
Finder Fee Background Service.

WHAT: Background job that creates missing finder fees for paid bills.

WHY: Fees are normally created when a bill is marked paid through the
API. Bills paid by other routes (imports, direct status changes, a failed
fee computation) would otherwise never pay out their finders. The sweep
closes that gap and is safe to run repeatedly because fee creation is
idempotent per bill.

HOW: Scheduled by APScheduler (see app.services.scheduler):
1. Open a dedicated session
2. Let FinderFeeService.process_paid_bills handle a batch of bills
3. Commit, or roll back and re-raise on failure
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import AsyncSessionLocal
from app.services.finder_fee_service import FinderFeeService


logger = logging.getLogger(__name__)


FINDER_FEE_SWEEP_INTERVAL_SECONDS = settings.FINDER_FEE_SWEEP_INTERVAL_SECONDS
FINDER_FEE_SWEEP_BATCH_SIZE = 100


class FinderFeeBackgroundService:
    """
    Background service for the finder-fee sweep.

    Example:
        service = FinderFeeBackgroundService()
        await service.sweep_paid_bills()
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        batch_size: int = FINDER_FEE_SWEEP_BATCH_SIZE,
    ):
        """
        Initialize the background service.

        Args:
            session_factory: Factory for database sessions
                           (defaults to the application's session factory)
            batch_size: Bills loaded per page of the sweep
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self.batch_size = batch_size

    async def sweep_paid_bills(self) -> dict:
        """
        Main job function: create fees for paid bills that have none.

        Returns:
            Dict with the number of bills that produced fees
        """
        logger.info("Starting finder fee sweep")
        start_time = datetime.utcnow()

        session = self._session_factory()
        try:
            processed = await FinderFeeService(session).process_paid_bills(limit=self.batch_size)
            await session.commit()
        except Exception as e:
            logger.error(f"Error in finder fee sweep: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

        elapsed = (datetime.utcnow() - start_time).total_seconds()
        logger.info(f"Finder fee sweep completed in {elapsed:.2f}s. Bills processed: {processed}")
        return {"bills_processed": processed}


# Singleton instance for the scheduler
_sweep_service: Optional[FinderFeeBackgroundService] = None


def get_finder_fee_sweep_service() -> FinderFeeBackgroundService:
    """Get or create the finder fee sweep service instance."""
    global _sweep_service
    if _sweep_service is None:
        _sweep_service = FinderFeeBackgroundService()
    return _sweep_service
