"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and making tests more maintainable. Using factories
instead of manual object creation ensures tests stay consistent when models change.

Factories flush instead of committing so everything a test creates lives
in the test session's transaction.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.client import Client, ClientFinder, Lead
from app.models.invoice import Bill, BillItem, BillStatus
from app.models.proposal import Proposal
from app.models.user import ProfileTier, User
from app.schemas.proposal import ProposalCreate
from app.services.proposal_service import ProposalService


class UserFactory:
    """
    Factory for creating User test instances.

    WHY: Users are both the staff priced on line items and the finders
    who earn referral fees.
    """

    _counter = 0

    @classmethod
    async def create(
        cls,
        session: AsyncSession,
        name: str = "Test User",
        email: Optional[str] = None,
        default_hourly_rate: Optional[Decimal] = None,
        profile_tier: Optional[ProfileTier] = None,
        is_active: bool = True,
    ) -> User:
        """
        Create a user for testing.

        Args:
            session: Database session
            name: Display name
            email: Unique email (generated when omitted)
            default_hourly_rate: Rate auto-filled into HOURLY items
            profile_tier: Professional profile tier
            is_active: Whether the account is active

        Returns:
            Created User instance
        """
        cls._counter += 1
        user = User(
            name=name,
            email=email or f"user{cls._counter}@example.com",
            default_hourly_rate=default_hourly_rate,
            profile_tier=profile_tier,
            is_active=is_active,
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
        return user


class ClientFactory:
    """Factory for creating Client test instances."""

    @staticmethod
    async def create(
        session: AsyncSession,
        name: str = "Test Client",
        company: Optional[str] = None,
        default_discount_percent: Optional[Decimal] = None,
        default_discount_amount: Optional[Decimal] = None,
    ) -> Client:
        """
        Create a client for testing.

        Args:
            session: Database session
            name: Client name
            company: Company name
            default_discount_percent: Default discount for new proposals
            default_discount_amount: Default fixed discount for new proposals

        Returns:
            Created Client instance
        """
        client = Client(
            name=name,
            company=company,
            default_discount_percent=default_discount_percent,
            default_discount_amount=default_discount_amount,
        )
        session.add(client)
        await session.flush()
        await session.refresh(client)
        return client


class LeadFactory:
    """Factory for creating Lead test instances."""

    @staticmethod
    async def create(session: AsyncSession, name: str = "Test Lead") -> Lead:
        lead = Lead(name=name)
        session.add(lead)
        await session.flush()
        await session.refresh(lead)
        return lead


class ClientFinderFactory:
    """
    Factory for creating ClientFinder (referral) associations.

    WHY: A client's finders determine who earns fees on its paid bills.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        client: Client,
        user: User,
        finder_fee_percent: Decimal = Decimal("10"),
    ) -> ClientFinder:
        finder = ClientFinder(
            client_id=client.id,
            user_id=user.id,
            finder_fee_percent=finder_fee_percent,
        )
        session.add(finder)
        await session.flush()
        await session.refresh(finder)
        return finder


class BillFactory:
    """
    Factory for creating Bill test instances.

    WHY: Finder fee and invoicing tests need bills in arbitrary states
    without going through the invoicing workflow.
    """

    _counter = 0

    @classmethod
    async def create(
        cls,
        session: AsyncSession,
        client: Optional[Client] = None,
        lead: Optional[Lead] = None,
        invoice_number: Optional[str] = None,
        status: BillStatus = BillStatus.DRAFT,
        subtotal: Optional[Decimal] = Decimal("1000.00"),
        amount: Optional[Decimal] = None,
        discount_percent: Optional[Decimal] = None,
        discount_amount: Optional[Decimal] = None,
        tax_rate: Decimal = Decimal("0"),
        paid_at: Optional[datetime] = None,
        items: Optional[List[Dict[str, Any]]] = None,
        proposal_id: Optional[int] = None,
    ) -> Bill:
        """
        Create a bill for testing.

        Args:
            session: Database session
            client: Client the bill is addressed to
            lead: Lead the bill is addressed to (when no client)
            invoice_number: Unique number (generated when omitted)
            status: Bill status
            subtotal: Stored subtotal (None derives it from the items)
            amount: Amount due (defaults to the subtotal)
            discount_percent / discount_amount: Bill-level discount
            tax_rate: Recorded tax rate
            paid_at: Payment timestamp (defaults to now for PAID bills)
            items: Line dicts with description, amount and is_credit
            proposal_id: Proposal the bill was raised from

        Returns:
            Created Bill instance with items loaded
        """
        cls._counter += 1
        if status == BillStatus.PAID and paid_at is None:
            paid_at = datetime.utcnow()

        bill = Bill(
            invoice_number=invoice_number or f"INV-1999-{cls._counter:03d}",
            status=status,
            client_id=client.id if client else None,
            lead_id=lead.id if lead else None,
            proposal_id=proposal_id,
            currency="EUR",
            subtotal=subtotal,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
            tax_rate=tax_rate,
            tax_amount=Decimal("0"),
            amount=amount if amount is not None else (subtotal or Decimal("0")),
            issue_date=date.today(),
            paid_at=paid_at,
        )
        session.add(bill)
        await session.flush()

        for line in items or []:
            session.add(
                BillItem(
                    bill_id=bill.id,
                    description=line.get("description", "Line"),
                    amount=line["amount"],
                    is_credit=line.get("is_credit", False),
                )
            )
        await session.flush()
        await session.refresh(bill, attribute_names=["items"])
        return bill


class ProposalFactory:
    """
    Factory for creating Proposal test instances.

    WHY: Proposals are created through ProposalService so the stored
    totals are what the pricing engine computes.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        client: Optional[Client] = None,
        lead: Optional[Lead] = None,
        title: str = "Test Proposal",
        type: str = "FIXED_FEE",
        items: Optional[List[Dict[str, Any]]] = None,
        **extra: Any,
    ) -> Proposal:
        """
        Create a proposal for testing.

        Args:
            session: Database session
            client: Client recipient
            lead: Lead recipient (when no client)
            title: Proposal title
            type: Proposal type value
            items: Line item payloads (defaults to one 1000.00 fixed fee)
            **extra: Any other ProposalCreate field

        Returns:
            Created Proposal with children loaded
        """
        data = ProposalCreate(
            title=title,
            type=type,
            client_id=client.id if client else None,
            lead_id=lead.id if lead else None,
            items=items if items is not None else [{"description": "Advice", "amount": "1000"}],
            **extra,
        )
        return await ProposalService(session).create(data)
