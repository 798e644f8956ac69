"""
Integration tests for finder fee API.

WHAT: Tests for listing finder fees and recording payouts via the HTTP API.

WHY: Finders are paid against these records. These tests ensure:
1. Listings filter by finder and status
2. Payouts update paid and remaining amounts
3. Overpayments are rejected with the maximum allowed payment

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.models.invoice import BillStatus
from app.services.finder_fee_service import FinderFeeService
from tests.factories import BillFactory


@pytest.fixture
def earned_fee(db_session, client_with_finder):
    """Factory for a 100.00 fee earned on a paid 1000.00 bill."""

    async def create():
        bill = await BillFactory.create(
            db_session, client=client_with_finder, status=BillStatus.PAID
        )
        fees = await FinderFeeService(db_session).calculate_and_create_finder_fees(bill.id)
        return fees[0]

    return create


class TestListFinderFees:
    @pytest.mark.asyncio
    async def test_list_for_finder(self, client: AsyncClient, earned_fee, test_finder):
        fee = await earned_fee()

        response = await client.get("/api/finder-fees", params={"finder_id": test_finder.id})

        assert response.status_code == 200
        data = response.json()
        assert [f["id"] for f in data["items"]] == [fee.id]
        assert data["items"][0]["payments"] == []

    @pytest.mark.asyncio
    async def test_status_filter(self, client: AsyncClient, earned_fee):
        await earned_fee()

        response = await client.get("/api/finder-fees", params={"status": "PAID"})

        assert response.json()["items"] == []

    @pytest.mark.asyncio
    async def test_get_fee(self, client: AsyncClient, earned_fee):
        fee = await earned_fee()

        response = await client.get(f"/api/finder-fees/{fee.id}")

        assert response.status_code == 200
        assert Decimal(response.json()["invoice_net_amount"]) == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_get_missing_fee(self, client: AsyncClient):
        response = await client.get("/api/finder-fees/999")
        assert response.status_code == 404


class TestPayFinderFee:
    @pytest.mark.asyncio
    async def test_partial_then_full(self, client: AsyncClient, earned_fee):
        fee = await earned_fee()

        first = await client.post(
            f"/api/finder-fees/{fee.id}/pay",
            json={"amount": "30", "payment_date": "2025-06-01", "notes": "First"},
        )
        assert first.status_code == 200
        assert first.json()["status"] == "PARTIALLY_PAID"
        assert Decimal(first.json()["remaining_amount"]) == Decimal("70.00")

        second = await client.post(f"/api/finder-fees/{fee.id}/pay", json={"amount": "70"})
        data = second.json()
        assert data["status"] == "PAID"
        assert Decimal(data["paid_amount"]) == Decimal("100.00")
        assert data["paid_at"] is not None
        assert len(data["payments"]) == 2

    @pytest.mark.asyncio
    async def test_overpayment(self, client: AsyncClient, earned_fee):
        fee = await earned_fee()

        response = await client.post(f"/api/finder-fees/{fee.id}/pay", json={"amount": "150"})

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "FinderFeeOverpaymentError"
        assert data["details"]["max_payment"] == "100.00"

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, client: AsyncClient, earned_fee):
        fee = await earned_fee()

        response = await client.post(f"/api/finder-fees/{fee.id}/pay", json={"amount": "0"})

        assert response.status_code == 400
