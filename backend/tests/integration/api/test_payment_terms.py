"""
Integration tests for payment term validation API.

WHAT: Tests for validating a payment term without persisting it.

WHY: Editors check a term before saving the proposal. These tests ensure:
1. Field errors are reported per field
2. The structure is detected when the caller doesn't name one
3. The normalized term drops other structures' fields

HOW: Uses pytest-asyncio with AsyncClient for HTTP testing.
"""

import pytest
from httpx import AsyncClient


class TestValidatePaymentTerm:
    @pytest.mark.asyncio
    async def test_valid_upfront_balance(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={
                "term": {
                    "structure": "UPFRONT_BALANCE",
                    "upfront_type": "PERCENT",
                    "upfront_value": "30",
                    "balance_payment_type": "TIME_BASED",
                    "balance_due_date": "2025-09-30",
                    "installment_count": 4,
                }
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["structure"] == "UPFRONT_BALANCE"
        assert data["errors"] == {}
        normalized = data["normalized"]
        assert normalized["balance_due_date"] == "2025-09-30"
        assert normalized["installment_count"] is None

    @pytest.mark.asyncio
    async def test_percent_over_100(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={
                "term": {
                    "structure": "UPFRONT_BALANCE",
                    "upfront_type": "PERCENT",
                    "upfront_value": "150",
                    "balance_payment_type": "FULL_UPFRONT",
                }
            },
        )

        data = response.json()
        assert data["valid"] is False
        assert data["errors"] == {"upfront_value": "Percentage cannot exceed 100%"}
        assert data["normalized"] is None

    @pytest.mark.asyncio
    async def test_structure_detected(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={
                "term": {
                    "recurring_enabled": True,
                    "recurring_frequency": "MONTHLY_3",
                    "recurring_start_date": "2025-01-01",
                }
            },
        )

        data = response.json()
        assert data["valid"] is True
        assert data["structure"] == "RECURRING"

    @pytest.mark.asyncio
    async def test_disabled_recurring_is_reported_as_one_time(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={"term": {"structure": "RECURRING", "recurring_enabled": False}},
        )

        data = response.json()
        assert data["valid"] is True
        assert data["structure"] == "ONE_TIME"
        assert data["normalized"]["recurring_enabled"] is False

    @pytest.mark.asyncio
    async def test_unknown_milestone(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={
                "term": {
                    "structure": "INSTALLMENTS",
                    "installment_type": "MILESTONE_BASED",
                    "milestone_ids": ["7"],
                },
                "available_milestone_ids": [3, 4],
            },
        )

        data = response.json()
        assert data["valid"] is False
        assert data["errors"] == {"milestone_ids": "Unknown milestone"}

    @pytest.mark.asyncio
    async def test_time_based_installments_need_count(self, client: AsyncClient):
        response = await client.post(
            "/api/payment-terms/validate",
            json={
                "term": {
                    "structure": "INSTALLMENTS",
                    "installment_type": "TIME_BASED",
                    "installment_frequency": "MONTHLY",
                }
            },
        )

        data = response.json()
        assert data["valid"] is False
        assert set(data["errors"]) == {"installment_count"}
