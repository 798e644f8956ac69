"""
Milestone allocator.

WHAT: Keeps a proposal's milestones and the milestone links of its line
items consistent while a proposal is being edited.

WHY: Milestones are created before they have a database id, yet items and
milestone-based payment terms already point at them. New milestones get a
temporary ``temp-...`` id that is swapped for the durable id once the
milestone row exists. Removing a milestone must also remove it from every
item that referenced it.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from app.models.proposal import ProposalType
from app.services.money import HUNDRED, ZERO, to_decimal
from app.services.pricing import LineItem, rule_for_proposal_type

TEMP_ID_PREFIX = "temp-"

MilestoneId = Union[int, str]

MSG_NO_MILESTONES = "Please define at least one milestone or disable milestone payments"


def is_temporary_id(value: MilestoneId) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


def new_temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


@dataclass
class MilestoneDraft:
    """Milestone being edited; ``id`` is temporary until persisted."""

    id: MilestoneId
    name: str = ""
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    percent: Optional[Decimal] = None
    due_date: Optional[date] = None

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.id)


class MilestoneAllocator:
    """
    Milestones of one proposal plus the items that reference them.

    The allocator mutates the LineItem objects it was given.
    """

    def __init__(
        self,
        milestones: Optional[Iterable[MilestoneDraft]] = None,
        items: Optional[Iterable[LineItem]] = None,
        use_milestones: bool = False,
    ):
        self.milestones: List[MilestoneDraft] = list(milestones or [])
        self.items: List[LineItem] = list(items or [])
        self.use_milestones = use_milestones

    @property
    def ids(self) -> List[MilestoneId]:
        return [m.id for m in self.milestones]

    def get(self, milestone_id: MilestoneId) -> Optional[MilestoneDraft]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def add_milestone(
        self,
        name: str = "",
        description: Optional[str] = None,
        amount: Optional[Decimal] = None,
        percent: Optional[Decimal] = None,
        due_date: Optional[date] = None,
        milestone_id: Optional[MilestoneId] = None,
    ) -> MilestoneDraft:
        """
        Add a milestone.

        Without ``milestone_id`` a fresh temporary id is issued.
        """
        milestone = MilestoneDraft(
            id=milestone_id if milestone_id is not None else new_temporary_id(),
            name=name,
            description=description,
            amount=amount,
            percent=percent,
            due_date=due_date,
        )
        self.milestones.append(milestone)
        return milestone

    def remove_milestone(self, milestone_id: MilestoneId) -> bool:
        """
        Remove a milestone and unlink it from every item.

        Returns:
            False (and changes nothing) when the id is unknown
        """
        milestone = self.get(milestone_id)
        if milestone is None:
            return False
        self.milestones.remove(milestone)
        for item in self.items:
            item.milestone_ids = [i for i in item.milestone_ids if i != milestone_id]
        return True

    def assign_milestones(self, item: LineItem, milestone_ids: Sequence[MilestoneId]) -> LineItem:
        """Replace the item's milestone set (order kept, duplicates dropped)."""
        seen = []
        for milestone_id in milestone_ids:
            if milestone_id not in seen:
                seen.append(milestone_id)
        item.milestone_ids = seen
        if item not in self.items:
            self.items.append(item)
        return item

    def resolve_ids(self, id_map: Dict[MilestoneId, int]) -> None:
        """
        Swap temporary ids for durable ids.

        Ids missing from ``id_map`` are left untouched.
        """
        for milestone in self.milestones:
            if milestone.id in id_map:
                milestone.id = id_map[milestone.id]
        for item in self.items:
            item.milestone_ids = [id_map.get(i, i) for i in item.milestone_ids]

    def validate(self, proposal_type: ProposalType) -> Tuple[bool, Dict[str, str]]:
        """
        Validate milestones and item links.

        At least one milestone is required only for proposal types that
        offer milestone billing and only while ``use_milestones`` is on.

        Returns:
            ``(valid, {field: message})``; never raises
        """
        errors: Dict[str, str] = {}

        if (
            self.use_milestones
            and rule_for_proposal_type(proposal_type).requires_milestones
            and not self.milestones
        ):
            errors["milestones"] = MSG_NO_MILESTONES

        for index, milestone in enumerate(self.milestones):
            prefix = f"milestones.{index}"
            if not (milestone.name or "").strip():
                errors[f"{prefix}.name"] = "Milestone name is required"
            if milestone.amount is not None and milestone.percent is not None:
                errors[prefix] = "Specify either an amount or a percentage, not both"
            if milestone.percent is not None and not ZERO <= to_decimal(milestone.percent) <= HUNDRED:
                errors[f"{prefix}.percent"] = "Milestone percentage must be between 0 and 100"
            if milestone.amount is not None and to_decimal(milestone.amount) < ZERO:
                errors[f"{prefix}.amount"] = "Milestone amount cannot be negative"

        known = set(self.ids)
        for index, item in enumerate(self.items):
            if any(i not in known for i in item.milestone_ids):
                errors[f"items.{index}.milestone_ids"] = "Unknown milestone"

        return not errors, errors
