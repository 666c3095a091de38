"""
open_funding/models.py - Record types shared across the package.

Persisted records (FundingList, ProjectAllocation, Project, Dependency,
Contributor, Transaction) and the derived, never-persisted views produced by
the distribution calculator (AggregatedProjectView, PortfolioSummary).

Numeric fields on persisted records hold whatever the data-entry boundary
delivered (Decimal, int, float or decimal text). They are parsed and validated
by open_funding.validation when a computation reads them, so a malformed value
surfaces as a ValidationError instead of silently becoming zero.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Union

Number = Union[Decimal, int, float, str]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class Dependency:
    """
    A library a project depends on, with its relative funding weight.

    Fields:
        name:       Dependency name, e.g. "Cardano Serialization Lib".
                    Dependencies sharing a name across projects are summed in
                    the portfolio-wide view.
        weight:     Non-negative, unnormalized. Only meaningful relative to the
                    sum of weights within the same project.
        address:    Optional Cardano payout address.
        attributes: Any extra fields found in the source record.
    """

    name: str
    weight: Number = 1
    address: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Contributor:
    """A maintainer entry from a repository's contributors file."""

    name: str
    cardano_address: str
    percentage: Number
    email: Optional[str] = None
    orcid: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Project:
    """An open-source project that can be funded."""

    id: str
    name: str
    repository: str
    description: str = ""
    platform: str = "github"
    stars: int = 0
    status: str = "active"
    cardano_address: Optional[str] = None
    dependencies: list[Dependency] = field(default_factory=list)
    contributors: list[Contributor] = field(default_factory=list)


@dataclass
class ProjectAllocation:
    """Links a FundingList to a Project with a percentage share of its budget."""

    id: str
    project: Project
    distribution_percentage: Number


@dataclass
class FundingList:
    """A named, budgeted collection of project allocations owned by one wallet."""

    id: str
    name: str
    monthly_budget: Number
    owner_id: str
    description: str = ""
    project_allocations: list[ProjectAllocation] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


# ── Derived views (calculator output) ─────────────────────────────────────────

@dataclass(frozen=True)
class DependencyAllocation:
    """ADA routed to one dependency."""

    name: str
    amount: Decimal
    address: Optional[str] = None


@dataclass(frozen=True)
class DependencySplit:
    """
    A project's allocation split into its own share and its dependency funding.

    project_share + dependency_portion == allocation, and the dependency
    allocations sum to dependency_portion unless every weight is zero.
    """

    allocation: Decimal
    project_share: Decimal
    dependency_portion: Decimal
    dependency_allocations: tuple[DependencyAllocation, ...]


@dataclass(frozen=True)
class AggregatedProjectView:
    """
    One project's allocations combined across all of an owner's funding lists.

    Recomputed on every read; never persisted.
    """

    project: Project
    total_allocation: Decimal
    average_allocation: Decimal
    usage_count: int
    project_share: Decimal
    dependency_portion: Decimal
    dependency_allocations: tuple[DependencyAllocation, ...]


@dataclass(frozen=True)
class PortfolioSummary:
    """Portfolio-wide totals shown alongside the aggregated project views."""

    total_monthly_budget: Decimal
    average_lists_per_project: Decimal
    project_count: int
    dependencies: tuple[DependencyAllocation, ...]


# ── Payments ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Payout:
    """A single transaction output: lovelace sent to one address."""

    address: str
    lovelace: int


@dataclass
class PayoutPlan:
    """
    Multi-recipient payout derived from a portfolio.

    Fields:
        payouts:       Outputs to send, merged by address.
        unassigned:    name → ADA for recipients with no payout address.
        below_minimum: address → lovelace held back (under min-UTxO).
    """

    payouts: list[Payout] = field(default_factory=list)
    unassigned: dict[str, Decimal] = field(default_factory=dict)
    below_minimum: dict[str, int] = field(default_factory=dict)

    @property
    def total_lovelace(self) -> int:
        return sum(p.lovelace for p in self.payouts)


@dataclass
class Transaction:
    """A recorded donation transaction."""

    id: str
    funding_list_id: str
    amount: Decimal
    recipients: list[Payout]
    status: str = "pending"  # pending | completed | failed
    tx_hash: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
