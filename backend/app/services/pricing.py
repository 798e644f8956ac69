"""
Billing method pricing model.

WHAT: Derives line-item amounts and proposal totals from the billing method
of each item and the proposal's discount and tax configuration.

WHY: Every surface that prices a proposal (draft quotes, saves, invoice
creation) goes through this one module, so an item priced in a quote is
priced identically when saved.

HOW:
- One ``BillingMethodRule`` strategy per billing method, carrying
  capability flags instead of scattered ``if method == ...`` checks
- Mutually exclusive discounts are a tagged variant
  (``PercentDiscount`` | ``AmountDiscount``), so "only one is set" holds
  structurally
- Totals are recomputed from scratch on every call, never incrementally

Everything here is synchronous and pure apart from mutating the LineItem
passed in to the ``recalculate``/``set_*`` helpers.
"""

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.models.proposal import BillingMethod, HourlyRateTableType, ProposalType
from app.models.user import ProfileTier
from app.services.money import (
    HUNDRED,
    ZERO,
    non_negative,
    percent_of,
    round_money,
    sum_money,
    to_decimal,
)


class SubtotalPolicy(str, enum.Enum):
    """
    Which item value feeds the proposal subtotal.

    NET_OF_ITEM_DISCOUNTS sums ``amount − item discount``;
    GROSS_ITEM_AMOUNTS sums raw ``amount`` and only the client-level
    discount reduces the total.
    """

    NET_OF_ITEM_DISCOUNTS = "net_of_item_discounts"
    GROSS_ITEM_AMOUNTS = "gross_item_amounts"


# ============================================================================
# Discounts
# ============================================================================


@dataclass(frozen=True)
class PercentDiscount:
    percent: Decimal

    def value_on(self, base: Decimal) -> Decimal:
        return percent_of(base, self.percent)


@dataclass(frozen=True)
class AmountDiscount:
    amount: Decimal

    def value_on(self, base: Decimal) -> Decimal:
        return to_decimal(self.amount)


Discount = Union[PercentDiscount, AmountDiscount]


def discount_from_fields(
    percent: Optional[Decimal], amount: Optional[Decimal]
) -> Optional[Discount]:
    """
    Build a discount variant from the two nullable storage columns.

    Raises:
        ValueError: If both fields are set
    """
    if percent is not None and amount is not None:
        raise ValueError("Only one of discount percent or discount amount may be set")
    if percent is not None:
        return PercentDiscount(to_decimal(percent))
    if amount is not None:
        return AmountDiscount(to_decimal(amount))
    return None


def discount_fields(discount: Optional[Discount]) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """Inverse of :func:`discount_from_fields`: ``(percent, amount)``."""
    if isinstance(discount, PercentDiscount):
        return discount.percent, None
    if isinstance(discount, AmountDiscount):
        return None, discount.amount
    return None, None


# ============================================================================
# Line items and configuration
# ============================================================================


@dataclass
class LineItem:
    """
    In-memory line item the engine prices.

    ``milestone_ids`` may hold durable ids (int) or temporary ids
    (``temp-...``) issued by the milestone allocator.
    """

    billing_method: Optional[BillingMethod] = None
    description: str = ""
    quantity: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Decimal = ZERO
    discount: Optional[Discount] = None
    person_id: Optional[int] = None
    milestone_ids: List[Union[int, str]] = field(default_factory=list)
    is_estimate: bool = False
    is_capped: bool = False
    capped_hours: Optional[Decimal] = None
    capped_amount: Optional[Decimal] = None
    expense_id: Optional[int] = None

    @property
    def discount_percent(self) -> Optional[Decimal]:
        return discount_fields(self.discount)[0]

    @property
    def discount_amount(self) -> Optional[Decimal]:
        return discount_fields(self.discount)[1]


@dataclass(frozen=True)
class PricingConfig:
    """Proposal-level settings that influence item amounts and totals."""

    proposal_type: ProposalType
    use_blended_rate: bool = False
    blended_rate: Optional[Decimal] = None
    hourly_rate_table_type: Optional[HourlyRateTableType] = None
    # Profile tier value -> hourly rate
    hourly_rate_table: Mapping[str, Decimal] = field(default_factory=dict)
    hourly_rate_range_min: Optional[Decimal] = None
    hourly_rate_range_max: Optional[Decimal] = None
    client_discount: Optional[Discount] = None
    tax_rate: Decimal = ZERO
    tax_inclusive: bool = False
    subtotal_policy: SubtotalPolicy = SubtotalPolicy.NET_OF_ITEM_DISCOUNTS

    @property
    def blended_rate_active(self) -> bool:
        """A zero blended rate is treated as unset."""
        return self.use_blended_rate and to_decimal(self.blended_rate) > ZERO


@dataclass(frozen=True)
class ProposalTotals:
    """Snapshot of a priced proposal; every value is rounded to cents."""

    subtotal: Decimal
    item_discount_total: Decimal
    client_discount: Decimal
    after_discount: Decimal
    tax: Decimal
    grand_total: Decimal
    # Item discounts that actually reduced the subtotal (0 under GROSS policy)
    applied_item_discount: Decimal = ZERO

    @property
    def discount_total(self) -> Decimal:
        """Every discount that reduced the priced total."""
        return self.client_discount + self.applied_item_discount


# ============================================================================
# Billing method strategies
# ============================================================================


class BillingMethodRule:
    """
    Pricing strategy for one billing method.

    Flags:
        auto_calculates: amount is derived from other fields
        requires_milestones: a proposal of this type offers milestone billing
        supports_cap: items may carry an informational cap
    """

    method: Optional[BillingMethod] = None
    auto_calculates = False
    requires_milestones = False
    supports_cap = False

    def compute_amount(self, item: LineItem) -> Decimal:
        """Directly entered amount is authoritative."""
        return round_money(item.amount)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(method={self.method})>"


class DirectAmountRule(BillingMethodRule):
    """RETAINER, SUCCESS_FEE, CAPPED_FEE and RECURRING items."""

    def __init__(self, method: BillingMethod):
        self.method = method


class HourlyRule(BillingMethodRule):
    """``amount = quantity × rate``."""

    method = BillingMethod.HOURLY
    auto_calculates = True
    supports_cap = True

    def compute_amount(self, item: LineItem) -> Decimal:
        return round_money(to_decimal(item.quantity) * to_decimal(item.rate))


class UnitPriceRule(BillingMethodRule):
    """
    Fixed fee: ``amount = quantity × unit_price`` with quantity defaulting
    to 1. Without a unit price the amount is entered directly.
    """

    method = BillingMethod.FIXED_FEE
    auto_calculates = True
    requires_milestones = True

    def compute_amount(self, item: LineItem) -> Decimal:
        if item.unit_price is None:
            return round_money(item.amount)
        quantity = Decimal("1") if item.quantity is None else to_decimal(item.quantity)
        return round_money(quantity * to_decimal(item.unit_price))


class MixedModelRule(BillingMethodRule):
    """
    Items of a MIXED_MODEL proposal that did not pick a method: priced as
    ``quantity × rate`` when both are given, otherwise entered directly.
    """

    auto_calculates = True
    requires_milestones = True

    def compute_amount(self, item: LineItem) -> Decimal:
        if item.quantity is not None and item.rate is not None:
            return round_money(to_decimal(item.quantity) * to_decimal(item.rate))
        return round_money(item.amount)


RULES: Dict[BillingMethod, BillingMethodRule] = {
    BillingMethod.HOURLY: HourlyRule(),
    BillingMethod.FIXED_FEE: UnitPriceRule(),
    BillingMethod.RETAINER: DirectAmountRule(BillingMethod.RETAINER),
    BillingMethod.SUCCESS_FEE: DirectAmountRule(BillingMethod.SUCCESS_FEE),
    BillingMethod.CAPPED_FEE: DirectAmountRule(BillingMethod.CAPPED_FEE),
    BillingMethod.RECURRING: DirectAmountRule(BillingMethod.RECURRING),
}
MIXED_MODEL_RULE = MixedModelRule()


def default_billing_method(proposal_type: ProposalType) -> Optional[BillingMethod]:
    """
    Billing method a new item inherits from its proposal.

    MIXED_MODEL proposals have no default: each item chooses independently.
    """
    if proposal_type == ProposalType.MIXED_MODEL:
        return None
    return BillingMethod(proposal_type.value)


def effective_method(item: LineItem, proposal_type: ProposalType) -> Optional[BillingMethod]:
    return item.billing_method or default_billing_method(proposal_type)


def rule_for(item: LineItem, proposal_type: ProposalType) -> BillingMethodRule:
    method = effective_method(item, proposal_type)
    if method is None:
        return MIXED_MODEL_RULE
    return RULES[method]


def rule_for_proposal_type(proposal_type: ProposalType) -> BillingMethodRule:
    """Rule whose flags describe the proposal as a whole."""
    method = default_billing_method(proposal_type)
    return MIXED_MODEL_RULE if method is None else RULES[method]


# ============================================================================
# Item operations
# ============================================================================


def compute_item_amount(item: LineItem, config: PricingConfig) -> Decimal:
    """
    Amount the item would carry after recalculation, without mutating it.
    """
    rule = rule_for(item, config.proposal_type)
    if isinstance(rule, HourlyRule) and config.blended_rate_active:
        return round_money(to_decimal(item.quantity) * to_decimal(config.blended_rate))
    return rule.compute_amount(item)


def recalculate_item(item: LineItem, config: PricingConfig) -> LineItem:
    """
    Recalculate an item in place and return it.

    Fills in the inherited billing method, applies the blended rate to
    HOURLY items when enabled and recomputes the amount of auto-calculating
    methods. Running it twice yields the same item.
    """
    if item.billing_method is None:
        item.billing_method = default_billing_method(config.proposal_type)
    rule = rule_for(item, config.proposal_type)
    if isinstance(rule, HourlyRule) and config.blended_rate_active:
        item.rate = config.blended_rate
    if rule.auto_calculates:
        item.amount = rule.compute_amount(item)
    else:
        item.amount = round_money(item.amount)
    return item


def rate_table_from(rates: Optional[Mapping[Any, Any]]) -> Dict[str, Decimal]:
    """Normalize a stored or submitted rate table to ``{tier value: Decimal}``."""
    return {
        str(getattr(tier, "value", tier)): to_decimal(rate)
        for tier, rate in (rates or {}).items()
        if rate is not None
    }


def resolve_person_rate(
    config: PricingConfig,
    profile_tier: Optional[ProfileTier],
    default_rate: Optional[Decimal],
) -> Optional[Decimal]:
    """
    Hourly rate a person bills on this proposal.

    First positive value wins:
    1. the blended rate, when enabled
    2. the rate table entry for the person's profile tier (HOURLY_TABLE)
    3. the average of the rate range (RATE_RANGE, both bounds set)
    4. the person's default hourly rate
    """
    if config.blended_rate_active:
        return to_decimal(config.blended_rate)

    if config.hourly_rate_table_type == HourlyRateTableType.HOURLY_TABLE and profile_tier:
        table_rate = to_decimal(config.hourly_rate_table.get(ProfileTier(profile_tier).value))
        if table_rate > ZERO:
            return table_rate

    if (
        config.hourly_rate_table_type == HourlyRateTableType.RATE_RANGE
        and config.hourly_rate_range_min
        and config.hourly_rate_range_max
    ):
        average = round_money(
            (to_decimal(config.hourly_rate_range_min) + to_decimal(config.hourly_rate_range_max)) / 2
        )
        if average > ZERO:
            return average

    return None if default_rate is None else to_decimal(default_rate)


def apply_person_rate(
    item: LineItem,
    person_id: Optional[int],
    default_rate: Optional[Decimal],
    config: PricingConfig,
    profile_tier: Optional[ProfileTier] = None,
) -> LineItem:
    """
    Assign a person to an item and auto-fill the rate.

    The rate comes from :func:`resolve_person_rate`, so the blended rate
    wins over every per-person source, including when a person is
    re-selected. Without any source the item keeps its rate.
    """
    item.person_id = person_id
    rule = rule_for(item, config.proposal_type)
    if isinstance(rule, HourlyRule):
        rate = resolve_person_rate(config, profile_tier, default_rate)
        if rate is not None:
            item.rate = rate
    return recalculate_item(item, config)


def set_item_discount_percent(item: LineItem, percent: Optional[Decimal]) -> LineItem:
    """Set a percent discount, replacing any fixed-amount discount."""
    item.discount = None if percent is None else PercentDiscount(to_decimal(percent))
    return item


def set_item_discount_amount(item: LineItem, amount: Optional[Decimal]) -> LineItem:
    """Set a fixed-amount discount, replacing any percent discount."""
    item.discount = None if amount is None else AmountDiscount(to_decimal(amount))
    return item


def item_discount_value(item: LineItem) -> Decimal:
    if item.discount is None:
        return ZERO
    return item.discount.value_on(to_decimal(item.amount))


def effective_amount(item: LineItem) -> Decimal:
    """``amount − discount``, where discount is ``discount_amount`` or ``amount × discount_percent / 100``"""
    return to_decimal(item.amount) - item_discount_value(item)


def capped_ceiling(item: LineItem) -> Optional[Decimal]:
    """
    Informational ceiling of a capped hourly item.

    ``capped_amount`` when given, else ``capped_hours × rate``; None when
    the item is not capped or the ceiling is undetermined.
    """
    if not item.is_capped:
        return None
    if item.capped_amount is not None:
        return round_money(item.capped_amount)
    if item.capped_hours is not None and item.rate is not None:
        return round_money(to_decimal(item.capped_hours) * to_decimal(item.rate))
    return None


def success_fee_estimate(
    percent: Optional[Decimal],
    amount: Optional[Decimal],
    value: Optional[Decimal],
) -> Optional[Decimal]:
    """
    Informational estimate of a success fee.

    A fixed success-fee amount wins; otherwise ``value × percent / 100``.
    """
    if amount is not None:
        return round_money(amount)
    if percent is not None and value is not None:
        return round_money(percent_of(value, percent))
    return None


# ============================================================================
# Totals
# ============================================================================


def apply_adjustments(
    subtotal: Decimal,
    discount: Optional[Discount],
    tax_rate: Decimal,
    tax_inclusive: bool,
) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """
    Apply a document-level discount and tax to a subtotal.

    Shared by proposal totals and bill amounts.

    Returns:
        ``(client_discount, after_discount, tax, grand_total)``. With
        inclusive tax the tax is informational and the grand total equals
        the discounted subtotal. A fixed discount is capped at the
        subtotal so the total never goes below zero.
    """
    client_discount = round_money(discount.value_on(subtotal)) if discount is not None else ZERO
    if isinstance(discount, AmountDiscount):
        client_discount = min(client_discount, non_negative(subtotal))
    after_discount = subtotal - client_discount

    rate = to_decimal(tax_rate)
    if rate == ZERO:
        tax = ZERO
    elif tax_inclusive:
        tax = after_discount * rate / (HUNDRED + rate)
    else:
        tax = after_discount * rate / HUNDRED
    tax = round_money(tax)

    grand_total = after_discount if tax_inclusive else after_discount + tax
    return client_discount, round_money(after_discount), tax, round_money(grand_total)


def compute_totals(items: Iterable[LineItem], config: PricingConfig) -> ProposalTotals:
    """
    Price a whole proposal.

    Args:
        items: Line items (already recalculated)
        config: Proposal pricing configuration

    Returns:
        ProposalTotals for the configured subtotal policy
    """
    items = list(items)
    item_discount_total = round_money(sum_money(item_discount_value(i) for i in items))
    if config.subtotal_policy == SubtotalPolicy.GROSS_ITEM_AMOUNTS:
        subtotal = round_money(sum_money(i.amount for i in items))
        applied_item_discount = ZERO
    else:
        subtotal = round_money(sum_money(effective_amount(i) for i in items))
        applied_item_discount = item_discount_total

    client_discount, after_discount, tax, grand_total = apply_adjustments(
        subtotal, config.client_discount, config.tax_rate, config.tax_inclusive
    )
    return ProposalTotals(
        subtotal=subtotal,
        item_discount_total=item_discount_total,
        client_discount=client_discount,
        after_discount=after_discount,
        tax=tax,
        grand_total=grand_total,
        applied_item_discount=applied_item_discount,
    )


# ============================================================================
# Validation
# ============================================================================


def validate_line_item(
    item: LineItem, proposal_type: Optional[ProposalType] = None
) -> Tuple[bool, Dict[str, str]]:
    """
    Validate a single line item.

    Returns:
        ``(valid, {field: message})``; never raises
    """
    errors: Dict[str, str] = {}

    for name in ("quantity", "rate", "unit_price", "amount"):
        value = getattr(item, name)
        if value is not None and to_decimal(value) < ZERO:
            errors[name] = f"{name.replace('_', ' ').capitalize()} cannot be negative"

    if isinstance(item.discount, PercentDiscount):
        if not ZERO <= to_decimal(item.discount.percent) <= HUNDRED:
            errors["discount_percent"] = "Discount percentage must be between 0 and 100"
    elif isinstance(item.discount, AmountDiscount):
        if to_decimal(item.discount.amount) < ZERO:
            errors["discount_amount"] = "Discount amount cannot be negative"
        elif item.amount is not None and to_decimal(item.discount.amount) > to_decimal(item.amount):
            errors["discount_amount"] = "Discount cannot exceed the item amount"

    if item.is_capped:
        if proposal_type is not None and not rule_for(item, proposal_type).supports_cap:
            errors["is_capped"] = "Only hourly items can be capped"
        for name in ("capped_hours", "capped_amount"):
            value = getattr(item, name)
            if value is not None and to_decimal(value) < ZERO:
                errors[name] = f"{name.replace('_', ' ').capitalize()} cannot be negative"

    return not errors, errors

