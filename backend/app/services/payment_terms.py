"""
Payment-terms state machine.

WHAT: Step-sequenced builder that turns user choices into one validated,
immutable payment term.

WHY: A payment term is a tagged variant over four structures, stored as a
flat row. The builder guarantees that:
1. Only fields of the chosen structure survive commit (no stale data)
2. Each step is validated before the user may advance
3. A committed term is re-detected as the structure it was committed as

HOW:
    SELECTING_STRUCTURE → CONFIGURING_STRUCTURE
        → [CONFIGURING_BALANCE, UPFRONT_BALANCE only] → COMPLETE

Transitions happen only on explicit ``next()``/``back()``. Validation
functions return ``(valid, {field: message})`` and never raise.
"""

import enum
import logging
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from typing import Any, Collection, Dict, Mapping, Optional, Tuple, Union

from app.models.payment_term import (
    BalancePaymentType,
    InstallmentFrequency,
    InstallmentType,
    PaymentStructure,
    RecurringFrequency,
    UpfrontType,
)
from app.services.money import HUNDRED, ZERO, to_decimal


logger = logging.getLogger(__name__)


class WizardStep(int, enum.Enum):
    SELECTING_STRUCTURE = 1
    CONFIGURING_STRUCTURE = 2
    CONFIGURING_BALANCE = 3
    COMPLETE = 4


MSG_SELECT_STRUCTURE = "Please select a payment structure"
MSG_SELECT_UPFRONT_TYPE = "Please select upfront payment type"
MSG_ENTER_UPFRONT_VALUE = "Please enter upfront payment amount"
MSG_UPFRONT_NEGATIVE = "Upfront payment must be positive"
MSG_PERCENT_OVER_100 = "Percentage cannot exceed 100%"
MSG_SELECT_RECURRING_FREQUENCY = "Please select recurring frequency or disable recurring payments"
MSG_CUSTOM_MONTHS = "Please enter a valid number of months"
MSG_SELECT_START_DATE = "Please select a start date"
MSG_SELECT_INSTALLMENT_TYPE = "Please select installment type"
MSG_INSTALLMENT_COUNT = "Please enter number of installments"
MSG_INSTALLMENT_FREQUENCY = "Please select installment frequency"
MSG_SELECT_MILESTONE = "Please select at least one milestone"
MSG_SELECT_BALANCE_TYPE = "Please select how the balance will be paid"
MSG_SELECT_DUE_DATE = "Please select a due date"
MSG_UNKNOWN_MILESTONE = "Unknown milestone"


@dataclass(frozen=True)
class PaymentTermValues:
    """
    Committed payment term.

    Flat like the storage row; only the fields of one structure are set.
    ``balance_due_date`` doubles as the due date of a ONE_TIME term.
    """

    upfront_type: Optional[UpfrontType] = None
    upfront_value: Optional[Decimal] = None
    balance_payment_type: Optional[BalancePaymentType] = None
    balance_due_date: Optional[date] = None
    recurring_enabled: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_custom_months: Optional[int] = None
    recurring_start_date: Optional[date] = None
    installment_type: Optional[InstallmentType] = None
    installment_count: Optional[int] = None
    installment_frequency: Optional[InstallmentFrequency] = None
    installment_maturity_dates: Optional[Tuple[date, ...]] = None
    milestone_ids: Optional[Tuple[Union[int, str], ...]] = None

    @property
    def structure(self) -> PaymentStructure:
        return detect_structure(self)

    @classmethod
    def from_record(cls, record: Any) -> "PaymentTermValues":
        """Build from a persisted PaymentTerm row (or any object with the fields)."""
        maturity = getattr(record, "installment_maturity_dates", None)
        milestone_ids = getattr(record, "milestone_ids", None)
        return cls(
            upfront_type=record.upfront_type,
            upfront_value=record.upfront_value,
            balance_payment_type=record.balance_payment_type,
            balance_due_date=record.balance_due_date,
            recurring_enabled=bool(record.recurring_enabled),
            recurring_frequency=record.recurring_frequency,
            recurring_custom_months=record.recurring_custom_months,
            recurring_start_date=record.recurring_start_date,
            installment_type=record.installment_type,
            installment_count=record.installment_count,
            installment_frequency=record.installment_frequency,
            installment_maturity_dates=(
                tuple(_as_date(d) for d in maturity) if maturity is not None else None
            ),
            milestone_ids=tuple(milestone_ids) if milestone_ids is not None else None,
        )

    def as_column_values(self) -> Dict[str, Any]:
        """Column values for a PaymentTerm row; dates in JSON lists as ISO strings."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        if self.installment_maturity_dates is not None:
            values["installment_maturity_dates"] = [
                d.isoformat() for d in self.installment_maturity_dates
            ]
        if self.milestone_ids is not None:
            values["milestone_ids"] = list(self.milestone_ids)
        return values


def _as_date(value: Union[str, date]) -> date:
    return value if isinstance(value, date) else date.fromisoformat(value)


# Fields each structure owns. Everything else is reset on commit.
STRUCTURE_FIELDS: Dict[PaymentStructure, Tuple[str, ...]] = {
    PaymentStructure.ONE_TIME: ("balance_due_date",),
    PaymentStructure.UPFRONT_BALANCE: (
        "upfront_type",
        "upfront_value",
        "balance_payment_type",
        "balance_due_date",
        "milestone_ids",
    ),
    PaymentStructure.RECURRING: (
        "recurring_enabled",
        "recurring_frequency",
        "recurring_custom_months",
        "recurring_start_date",
    ),
    PaymentStructure.INSTALLMENTS: (
        "installment_type",
        "installment_count",
        "installment_frequency",
        "installment_maturity_dates",
        "milestone_ids",
    ),
}


# ============================================================================
# Detection
# ============================================================================


def detect_structure(term: Any) -> PaymentStructure:
    """
    Classify a persisted term.

    Priority-ordered: RECURRING if recurring is enabled with a frequency;
    INSTALLMENTS if an installment type is set with a count (or, for
    milestone-based installments, selected milestones); UPFRONT_BALANCE if
    an upfront type and value are set; otherwise ONE_TIME.
    """
    if getattr(term, "recurring_enabled", False) and getattr(term, "recurring_frequency", None):
        return PaymentStructure.RECURRING

    installment_type = getattr(term, "installment_type", None)
    if installment_type:
        if getattr(term, "installment_count", None):
            return PaymentStructure.INSTALLMENTS
        if installment_type == InstallmentType.MILESTONE_BASED and getattr(
            term, "milestone_ids", None
        ):
            return PaymentStructure.INSTALLMENTS

    if getattr(term, "upfront_type", None) and getattr(term, "upfront_value", None) is not None:
        return PaymentStructure.UPFRONT_BALANCE

    return PaymentStructure.ONE_TIME


# ============================================================================
# Validation
# ============================================================================


def _milestone_errors(
    selected: Optional[Collection[Any]],
    available: Optional[Collection[Any]],
) -> Dict[str, str]:
    if not selected:
        return {"milestone_ids": MSG_SELECT_MILESTONE}
    if available is not None and any(m not in available for m in selected):
        return {"milestone_ids": MSG_UNKNOWN_MILESTONE}
    return {}


def validate_structure_step(
    structure: PaymentStructure,
    data: Mapping[str, Any],
    available_milestones: Optional[Collection[Any]] = None,
) -> Dict[str, str]:
    """Validate step 2 (structure configuration)."""
    errors: Dict[str, str] = {}

    if structure == PaymentStructure.UPFRONT_BALANCE:
        upfront_type = data.get("upfront_type")
        value = data.get("upfront_value")
        if not upfront_type:
            errors["upfront_type"] = MSG_SELECT_UPFRONT_TYPE
        if value is None or value == "":
            errors["upfront_value"] = MSG_ENTER_UPFRONT_VALUE
        elif to_decimal(value) < ZERO:
            errors["upfront_value"] = MSG_UPFRONT_NEGATIVE
        elif upfront_type == UpfrontType.PERCENT and to_decimal(value) > HUNDRED:
            errors["upfront_value"] = MSG_PERCENT_OVER_100

    elif structure == PaymentStructure.RECURRING:
        if data.get("recurring_enabled"):
            frequency = data.get("recurring_frequency")
            if not frequency:
                errors["recurring_frequency"] = MSG_SELECT_RECURRING_FREQUENCY
            elif frequency == RecurringFrequency.CUSTOM:
                months = data.get("recurring_custom_months")
                if months is None or int(months) < 1:
                    errors["recurring_custom_months"] = MSG_CUSTOM_MONTHS
            if not data.get("recurring_start_date"):
                errors["recurring_start_date"] = MSG_SELECT_START_DATE

    elif structure == PaymentStructure.INSTALLMENTS:
        installment_type = data.get("installment_type")
        if not installment_type:
            errors["installment_type"] = MSG_SELECT_INSTALLMENT_TYPE
        elif installment_type == InstallmentType.TIME_BASED:
            count = data.get("installment_count")
            if count is None or int(count) < 1:
                errors["installment_count"] = MSG_INSTALLMENT_COUNT
            if not data.get("installment_frequency"):
                errors["installment_frequency"] = MSG_INSTALLMENT_FREQUENCY
        elif installment_type == InstallmentType.MILESTONE_BASED:
            errors.update(_milestone_errors(data.get("milestone_ids"), available_milestones))

    return errors


def validate_balance_step(
    data: Mapping[str, Any],
    available_milestones: Optional[Collection[Any]] = None,
) -> Dict[str, str]:
    """
    Validate step 3 (UPFRONT_BALANCE balance configuration).

    A milestone-based balance needs a milestone only when the proposal
    already has milestones; otherwise the check is deferred.
    """
    errors: Dict[str, str] = {}
    balance_type = data.get("balance_payment_type")
    if not balance_type:
        errors["balance_payment_type"] = MSG_SELECT_BALANCE_TYPE
    elif balance_type == BalancePaymentType.TIME_BASED:
        if not data.get("balance_due_date"):
            errors["balance_due_date"] = MSG_SELECT_DUE_DATE
    elif balance_type == BalancePaymentType.MILESTONE_BASED and available_milestones:
        errors.update(_milestone_errors(data.get("milestone_ids"), available_milestones))
    return errors


def validate_payment_term(
    structure: Optional[PaymentStructure],
    data: Mapping[str, Any],
    available_milestones: Optional[Collection[Any]] = None,
) -> Tuple[bool, Dict[str, str]]:
    """
    Run every step's validation for a structure.

    Used for terms submitted in one piece (API payloads, item-level terms).

    Args:
        structure: Chosen structure (None fails step 1)
        data: Field values
        available_milestones: Ids that milestone selections may reference;
            None skips the membership check

    Returns:
        ``(valid, {field: message})``
    """
    if structure is None:
        return False, {"structure": MSG_SELECT_STRUCTURE}
    errors = validate_structure_step(structure, data, available_milestones)
    if structure == PaymentStructure.UPFRONT_BALANCE:
        errors.update(validate_balance_step(data, available_milestones))
    return not errors, errors


# ============================================================================
# Commit
# ============================================================================


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in ("installment_maturity_dates", "milestone_ids"):
        items = tuple(value)
        if name == "installment_maturity_dates":
            items = tuple(_as_date(d) for d in items)
        return items
    if name == "upfront_value":
        return to_decimal(value)
    if name in ("recurring_custom_months", "installment_count"):
        return int(value)
    return value


def normalize_for_structure(
    structure: PaymentStructure, data: Mapping[str, Any]
) -> PaymentTermValues:
    """
    Build the committed value for a structure.

    Fields of other structures are dropped, and so are fields of the chosen
    structure that its sub-options make irrelevant (e.g. a balance due date
    on a milestone-based balance). Non-RECURRING terms always carry
    ``recurring_enabled=False``.
    """
    if structure == PaymentStructure.RECURRING and not data.get("recurring_enabled"):
        # Recurring switched off leaves a plain one-time term
        structure = PaymentStructure.ONE_TIME

    kept = {
        name: _coerce(name, data.get(name))
        for name in STRUCTURE_FIELDS[structure]
        if name in data
    }

    if structure == PaymentStructure.UPFRONT_BALANCE:
        balance_type = kept.get("balance_payment_type")
        if balance_type != BalancePaymentType.TIME_BASED:
            kept.pop("balance_due_date", None)
        if balance_type != BalancePaymentType.MILESTONE_BASED:
            kept.pop("milestone_ids", None)

    elif structure == PaymentStructure.RECURRING:
        kept["recurring_enabled"] = True
        if kept.get("recurring_frequency") != RecurringFrequency.CUSTOM:
            kept.pop("recurring_custom_months", None)

    elif structure == PaymentStructure.INSTALLMENTS:
        if kept.get("installment_type") == InstallmentType.MILESTONE_BASED:
            for name in ("installment_count", "installment_frequency", "installment_maturity_dates"):
                kept.pop(name, None)
        else:
            kept.pop("milestone_ids", None)

    return PaymentTermValues(**kept)


def commit_payment_term(
    structure: Optional[PaymentStructure],
    data: Mapping[str, Any],
    available_milestones: Optional[Collection[Any]] = None,
) -> Tuple[Optional[PaymentTermValues], Dict[str, str]]:
    """
    Validate and normalize in one go.

    Returns:
        ``(values, {})`` on success, ``(None, errors)`` otherwise
    """
    valid, errors = validate_payment_term(structure, data, available_milestones)
    if not valid:
        return None, errors
    return normalize_for_structure(structure, data), {}


# ============================================================================
# Wizard
# ============================================================================


@dataclass
class StepResult:
    ok: bool
    step: WizardStep
    errors: Dict[str, str] = field(default_factory=dict)


class PaymentTermsWizard:
    """
    Interactive builder for one payment term.

    Args:
        existing: Persisted term to edit (detect-and-resume)
        available_milestones: Ids of the proposal's milestones
        resume_past_structure: When editing, open on step 2 with the
            detected structure (default) instead of step 1

    Example:
        >>> wizard = PaymentTermsWizard()
        >>> wizard.select_structure(PaymentStructure.ONE_TIME)
        >>> wizard.next().step
        <WizardStep.CONFIGURING_STRUCTURE: 2>
        >>> wizard.next().step
        <WizardStep.COMPLETE: 4>
    """

    def __init__(
        self,
        existing: Any = None,
        available_milestones: Optional[Collection[Any]] = None,
        resume_past_structure: bool = True,
    ):
        self.available_milestones = available_milestones
        self.structure: Optional[PaymentStructure] = None
        self.data: Dict[str, Any] = {}
        self.errors: Dict[str, str] = {}
        self.step = WizardStep.SELECTING_STRUCTURE
        self._result: Optional[PaymentTermValues] = None

        if existing is not None:
            values = (
                existing
                if isinstance(existing, PaymentTermValues)
                else PaymentTermValues.from_record(existing)
            )
            self.structure = values.structure
            self.data = {
                name: getattr(values, name)
                for name in STRUCTURE_FIELDS[self.structure]
                if getattr(values, name) is not None
            }
            if resume_past_structure:
                self.step = WizardStep.CONFIGURING_STRUCTURE

    @property
    def result(self) -> Optional[PaymentTermValues]:
        """The committed term, available once the wizard is COMPLETE."""
        return self._result

    def select_structure(self, structure: PaymentStructure) -> None:
        """Choose a structure; discards previously entered data and returns to step 1."""
        self.structure = structure
        self.data = {}
        self.errors = {}
        self._result = None
        self.step = WizardStep.SELECTING_STRUCTURE

    def set_field(self, name: str, value: Any) -> None:
        """
        Set a field of the selected structure.

        Raises:
            ValueError: If no structure is selected or the field belongs to
                another structure
        """
        if self.structure is None:
            raise ValueError("Select a payment structure first")
        if name not in STRUCTURE_FIELDS[self.structure]:
            raise ValueError(f"Field '{name}' does not belong to {self.structure.value}")
        self.data[name] = value
        self.errors.pop(name, None)

    def _initialize_structure_data(self) -> None:
        if self.structure == PaymentStructure.UPFRONT_BALANCE:
            self.data.setdefault("upfront_type", UpfrontType.PERCENT)
            self.data.setdefault("upfront_value", Decimal("0"))
        elif self.structure == PaymentStructure.RECURRING:
            self.data.setdefault("recurring_enabled", True)

    def _complete(self) -> StepResult:
        self._result = normalize_for_structure(self.structure, self.data)
        self.step = WizardStep.COMPLETE
        logger.debug("Payment term committed as %s", self.structure.value)
        return StepResult(ok=True, step=self.step)

    def next(self) -> StepResult:
        """
        Validate the current step and advance.

        On failure the wizard stays on the current step and the errors are
        returned (and kept in ``self.errors``).
        """
        if self.step == WizardStep.SELECTING_STRUCTURE:
            if self.structure is None:
                self.errors = {"structure": MSG_SELECT_STRUCTURE}
                return StepResult(ok=False, step=self.step, errors=dict(self.errors))
            self._initialize_structure_data()
            self.errors = {}
            self.step = WizardStep.CONFIGURING_STRUCTURE
            return StepResult(ok=True, step=self.step)

        if self.step == WizardStep.CONFIGURING_STRUCTURE:
            self.errors = validate_structure_step(
                self.structure, self.data, self.available_milestones
            )
            if self.errors:
                return StepResult(ok=False, step=self.step, errors=dict(self.errors))
            if self.structure == PaymentStructure.UPFRONT_BALANCE:
                self.step = WizardStep.CONFIGURING_BALANCE
                return StepResult(ok=True, step=self.step)
            return self._complete()

        if self.step == WizardStep.CONFIGURING_BALANCE:
            self.errors = validate_balance_step(self.data, self.available_milestones)
            if self.errors:
                return StepResult(ok=False, step=self.step, errors=dict(self.errors))
            return self._complete()

        return StepResult(ok=True, step=self.step)

    def back(self) -> WizardStep:
        """Go back one step; data entered so far is kept."""
        self.errors = {}
        if self.step == WizardStep.COMPLETE:
            self._result = None
            self.step = (
                WizardStep.CONFIGURING_BALANCE
                if self.structure == PaymentStructure.UPFRONT_BALANCE
                else WizardStep.CONFIGURING_STRUCTURE
            )
        elif self.step == WizardStep.CONFIGURING_BALANCE:
            self.step = WizardStep.CONFIGURING_STRUCTURE
        elif self.step == WizardStep.CONFIGURING_STRUCTURE:
            self.step = WizardStep.SELECTING_STRUCTURE
        return self.step
