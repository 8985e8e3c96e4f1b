"""
Completion cost and monetization revenue.

Completion cost is charged when a ticket enters Done: each of assignee and
reviewer is costed from their CompensationStructure, hourly parties from
the hours a human reports, fixed-rate parties from their rate for the
ticket's content type.  Monetization revenue comes from the client's rate
card when one is configured for the ticket's type.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..models import Client, CompensationStructure, ContentType, CostBreakdown, TeamMember

logger = logging.getLogger("agency.workflow.costs")

FIXED = "fixed"


@dataclass(frozen=True)
class HoursRequirement:
    assignee: bool = False
    reviewer: bool = False

    @property
    def any(self) -> bool:
        return self.assignee or self.reviewer


def _compensation(member: Optional[TeamMember]) -> Optional[CompensationStructure]:
    return member.compensation if member is not None else None


def is_hourly(member: Optional[TeamMember]) -> bool:
    comp = _compensation(member)
    return comp is not None and comp.type == "hourly"


def hours_required(assignee: Optional[TeamMember], reviewer: Optional[TeamMember]) -> HoursRequirement:
    return HoursRequirement(assignee=is_hourly(assignee), reviewer=is_hourly(reviewer))


def fixed_rate(comp: CompensationStructure, content_type: ContentType, who: str = "") -> float:
    """Rate for ``content_type``, else the first configured rate, else 0."""
    exact = comp.rate_for(content_type)
    if exact:
        return exact
    for other_type, rate in comp.configured_rates():
        logger.info("No %s rate for %s, using %s rate %.2f", content_type.value, who or "member", other_type.value, rate)
        return rate
    logger.warning(
        "Fixed-rate compensation for %s has no rates configured; costing %s ticket at 0",
        who or "member",
        content_type.value,
    )
    return 0.0


def party_cost(
    member: Optional[TeamMember], content_type: ContentType, hours: Optional[float] = None
) -> Tuple[float, Union[float, str]]:
    """(cost, rate) for one party. Rate is the hourly figure or ``"fixed"``."""
    comp = _compensation(member)
    if comp is None:
        return 0.0, 0.0
    if comp.type == "hourly":
        rate = comp.hourly_rate or 0.0
        return round(rate * (hours or 0.0), 2), rate
    return fixed_rate(comp, content_type, who=member.display_name), FIXED


def completion_cost(
    content_type: ContentType,
    assignee: Optional[TeamMember],
    reviewer: Optional[TeamMember],
    assignee_hours: Optional[float] = None,
    reviewer_hours: Optional[float] = None,
) -> CostBreakdown:
    assignee_cost, assignee_rate = party_cost(assignee, content_type, assignee_hours)
    reviewer_cost, reviewer_rate = party_cost(reviewer, content_type, reviewer_hours)
    breakdown = CostBreakdown(
        assignee_cost=assignee_cost,
        reviewer_cost=reviewer_cost,
        assignee_rate=assignee_rate,
        reviewer_rate=reviewer_rate,
    )
    if _compensation(assignee) is None and _compensation(reviewer) is None:
        logger.info("Neither assignee nor reviewer has a compensation structure; total cost is 0")
    return breakdown


def monetization_revenue(client: Optional[Client], content_type: ContentType) -> Optional[float]:
    """Client's rate for this content type, or None when pricing must be entered by hand."""
    if client is None:
        return None
    rate = client.rate_for(content_type)
    if rate is not None and rate > 0:
        return float(rate)
    return None
