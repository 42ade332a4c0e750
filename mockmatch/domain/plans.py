from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class InterviewPlan:
    id: str
    name: str
    price: float
    duration_minutes: int
    description: str = ""
    features: tuple[str, ...] = ()


@dataclass(frozen=True)
class AddOn:
    key: str
    name: str
    price: float
    category: str
    requires_plan: Optional[str] = None
    max_quantity: int = 1
    is_active: bool = True
    currency: str = "INR"


@dataclass(frozen=True)
class AddOnSelection:
    key: str
    quantity: int = 1
    price: float = 0.0

    @property
    def total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class AddOnValidation:
    is_valid: bool
    error_message: Optional[str] = None
    selections: tuple[AddOnSelection, ...] = field(default_factory=tuple)

    @property
    def total_price(self) -> float:
        return sum(s.total for s in self.selections)


DEFAULT_PLAN_ID = "essential"
FALLBACK_PRICE = 999.0
FALLBACK_DURATION_MINUTES = 60

INTERVIEW_PLANS: dict[str, InterviewPlan] = {
    "essential": InterviewPlan(
        id="essential",
        name="Essential",
        price=499.0,
        duration_minutes=30,
        description="Quick practice session with basic feedback",
        features=("30-minute focused mock interview session", "Basic verbal feedback during the interview"),
    ),
    "professional": InterviewPlan(
        id="professional",
        name="Professional",
        price=999.0,
        duration_minutes=60,
        description="Complete interview prep with detailed feedback",
        features=(
            "60-minute comprehensive mock interview",
            "Comprehensive feedback report (PDF)",
            "Personalized action plan for improvement",
            "Priority customer support",
        ),
    ),
    "executive": InterviewPlan(
        id="executive",
        name="Executive",
        price=1299.0,
        duration_minutes=60,
        description="Premium package with resume review and career coaching",
        features=(
            "60-minute comprehensive mock interview",
            "Professional resume feedback",
            "Comprehensive feedback report (PDF)",
            "Priority customer support",
        ),
    ),
}

DEFAULT_ADD_ONS: tuple[AddOn, ...] = (
    AddOn(key="resume_review", name="Resume Review", price=199.0, category="service"),
    AddOn(key="meeting_recording", name="Meeting Recording", price=99.0, category="enhancement"),
    AddOn(
        key="priority_support",
        name="Priority Support",
        price=149.0,
        category="premium",
        requires_plan="professional",
    ),
    AddOn(
        key="extended_feedback",
        name="Extended Feedback Report",
        price=299.0,
        category="service",
        requires_plan="professional",
    ),
)

# Checkout form flags -> add-on keys
_FLAG_TO_ADD_ON = {
    "resumeReview": "resume_review",
    "meetingRecording": "meeting_recording",
}


def get_plan(plan_id: Optional[str]) -> Optional[InterviewPlan]:
    if not plan_id:
        return None
    return INTERVIEW_PLANS.get(plan_id.strip().lower())


def plan_price(plan_id: Optional[str]) -> float:
    plan = get_plan(plan_id)
    return plan.price if plan else FALLBACK_PRICE


def plan_duration(plan_id: Optional[str]) -> int:
    plan = get_plan(plan_id)
    return plan.duration_minutes if plan else FALLBACK_DURATION_MINUTES


def add_ons_for_plan(plan_id: str, add_ons: Iterable[AddOn] = DEFAULT_ADD_ONS) -> list[AddOn]:
    return [a for a in add_ons if a.is_active and a.requires_plan in (None, plan_id)]


def merge_selections(selected: Iterable[AddOnSelection]) -> list[AddOnSelection]:
    """Collapse repeated keys into one selection, summing quantities, in first-seen order."""
    quantities: dict[str, int] = {}
    for item in selected:
        quantities[item.key] = quantities.get(item.key, 0) + item.quantity
    return [AddOnSelection(key=key, quantity=quantity) for key, quantity in quantities.items()]


def validate_add_on_selection(
    selected: Sequence[AddOnSelection],
    plan_id: str,
    available: Iterable[AddOn] = DEFAULT_ADD_ONS,
) -> AddOnValidation:
    """Check a selection against the catalogue and price it; the first problem wins.

    Repeated keys are merged first, so the quantity limit applies to the total.
    """
    catalogue = {a.key: a for a in available}
    priced = []
    for item in merge_selections(selected):
        add_on = catalogue.get(item.key)
        if add_on is None:
            return AddOnValidation(False, f"Add-on not found: {item.key}")
        if not add_on.is_active:
            return AddOnValidation(False, f"Add-on is not available: {add_on.name}")
        if add_on.requires_plan and add_on.requires_plan != plan_id:
            return AddOnValidation(False, f"{add_on.name} requires {add_on.requires_plan} plan")
        if item.quantity < 1 or item.quantity > add_on.max_quantity:
            return AddOnValidation(False, f"Quantity exceeds maximum for {add_on.name}")
        priced.append(AddOnSelection(key=item.key, quantity=item.quantity, price=add_on.price))
    return AddOnValidation(True, selections=tuple(priced))


def selection_from_flags(flags: Mapping[str, bool]) -> list[AddOnSelection]:
    """Turn checkout form toggles (``{"resumeReview": True}``) into selections."""
    return [
        AddOnSelection(key=_FLAG_TO_ADD_ON[flag])
        for flag, enabled in flags.items()
        if enabled and flag in _FLAG_TO_ADD_ON
    ]
