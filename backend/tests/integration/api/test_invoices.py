"""
Integration tests for invoice API.

WHAT: Tests for creating bills, reading their net amount and marking them
paid via the HTTP API.

WHY: Marking a bill paid is where finder fees are earned. These tests
ensure:
1. Bill amounts include credits, discounts and tax
2. Mark-paid returns the fees it created, exactly once
3. Closed bills are rejected

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.models.invoice import BillStatus
from tests.factories import BillFactory


class TestCreateInvoice:
    @pytest.mark.asyncio
    async def test_create_invoice(self, client: AsyncClient, test_client):
        response = await client.post(
            "/api/invoices",
            json={
                "client_id": test_client.id,
                "discount_percent": "10",
                "tax_rate": "20",
                "issue_date": "2025-03-01",
                "items": [
                    {"description": "Advice", "quantity": "4", "rate": "250"},
                    {"description": "Court fees", "amount": "50", "is_credit": True},
                ],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "DRAFT"
        assert data["is_paid"] is False
        assert data["due_date"] == "2025-03-31"
        assert Decimal(data["subtotal"]) == Decimal("1000.00")
        # (1000 − 50) − 10% = 855; + 20% tax
        assert Decimal(data["tax_amount"]) == Decimal("171.00")
        assert Decimal(data["amount"]) == Decimal("1026.00")

    @pytest.mark.asyncio
    async def test_create_invoice_both_recipients(self, client: AsyncClient, test_client, test_lead):
        response = await client.post(
            "/api/invoices", json={"client_id": test_client.id, "lead_id": test_lead.id}
        )
        assert response.status_code == 400
        assert response.json()["details"]["errors"] == {
            "request": "A bill is addressed to a client or a lead, not both"
        }

    @pytest.mark.asyncio
    async def test_get_invoice(self, client: AsyncClient, db_session, test_client):
        bill = await BillFactory.create(db_session, client=test_client)

        response = await client.get(f"/api/invoices/{bill.id}")

        assert response.status_code == 200
        assert response.json()["invoice_number"] == bill.invoice_number

    @pytest.mark.asyncio
    async def test_get_missing_invoice(self, client: AsyncClient):
        response = await client.get("/api/invoices/999")
        assert response.status_code == 404
        assert response.json()["message"] == "Invoice not found"


class TestNetAmount:
    @pytest.mark.asyncio
    async def test_net_amount(self, client: AsyncClient, db_session, test_client):
        bill = await BillFactory.create(
            db_session,
            client=test_client,
            subtotal=Decimal("1000"),
            discount_percent=Decimal("10"),
            tax_rate=Decimal("23"),
            items=[
                {"description": "Advice", "amount": Decimal("1000")},
                {"description": "Travel", "amount": Decimal("-50"), "is_credit": True},
            ],
        )

        response = await client.get(f"/api/invoices/{bill.id}/net-amount")

        assert response.status_code == 200
        assert response.json()["bill_id"] == bill.id
        assert Decimal(response.json()["net_amount"]) == Decimal("850.00")


class TestMarkPaid:
    @pytest.mark.asyncio
    async def test_mark_paid_creates_fees_once(
        self, client: AsyncClient, db_session, client_with_finder, test_finder
    ):
        bill = await BillFactory.create(db_session, client=client_with_finder)

        response = await client.post(
            f"/api/invoices/{bill.id}/mark-paid", json={"paid_at": "2025-05-01T12:00:00"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["bill"]["status"] == "PAID"
        assert data["bill"]["paid_at"].startswith("2025-05-01T12:00:00")
        assert len(data["finder_fees"]) == 1
        fee = data["finder_fees"][0]
        assert fee["finder_id"] == test_finder.id
        assert Decimal(fee["finder_fee_amount"]) == Decimal("100.00")
        assert fee["status"] == "PENDING"

        again = await client.post(f"/api/invoices/{bill.id}/mark-paid")
        assert again.status_code == 200
        assert again.json()["finder_fees"] == []
        assert again.json()["bill"]["paid_at"].startswith("2025-05-01T12:00:00")

    @pytest.mark.asyncio
    async def test_mark_paid_without_body(self, client: AsyncClient, db_session, test_client):
        bill = await BillFactory.create(db_session, client=test_client)

        response = await client.post(f"/api/invoices/{bill.id}/mark-paid")

        assert response.status_code == 200
        assert response.json()["bill"]["paid_at"] is not None
        assert response.json()["finder_fees"] == []

    @pytest.mark.asyncio
    async def test_written_off_bill_rejected(self, client: AsyncClient, db_session, test_client):
        bill = await BillFactory.create(
            db_session, client=test_client, status=BillStatus.WRITTEN_OFF
        )

        response = await client.post(f"/api/invoices/{bill.id}/mark-paid")

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidStateTransitionError"
