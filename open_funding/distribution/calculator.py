"""
open_funding/distribution/calculator.py - Aggregated funding-distribution calculator.

Turns an owner's funding lists into per-project and per-dependency ADA amounts:

    contribution(list, project) = monthly_budget × distribution_percentage / 100
    total_allocation(project)   = Σ contributions across all lists
    dependency_portion          = total_allocation × dependency_share   (30%)
    dependency(d)               = dependency_portion × weight(d) / Σweight

All functions are pure: they read an in-memory snapshot of funding lists and
return freshly built values. Arithmetic is exact Decimal; rounding to display
precision happens only in round_ada().
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.models import (
    AggregatedProjectView,
    DependencyAllocation,
    DependencySplit,
    FundingList,
    PortfolioSummary,
    Project,
)
from open_funding.validation import parse_amount, parse_percentage, parse_weight

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def round_ada(amount: Decimal, places: int = DEFAULT_CONFIG.display_places) -> Decimal:
    """Quantize an ADA amount for display (half-up)."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def allocate_dependencies(
    project: Project,
    allocation: Decimal,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> DependencySplit:
    """
    Split a project's allocation between the project and its dependencies.

    The dependency portion (config.dependency_share of the allocation) is
    divided among the project's dependencies in proportion to their weights.
    If every weight is zero, each dependency receives 0; this is a degenerate
    case, not an error. A project without dependencies still reserves the
    dependency portion, its dependency_allocations are simply empty.

    Args:
        project:    Project whose Dependency.weight values drive the split.
        allocation: ADA allocated to the project.
        config:     OpenFundingConfig. Uses config.dependency_share.

    Returns:
        DependencySplit with project_share + dependency_portion == allocation.

    Raises:
        ValidationError: If a dependency weight is non-numeric or negative.
    """
    dependency_portion = allocation * config.dependency_share
    project_share = allocation - dependency_portion

    weights = [
        parse_weight(dep.weight, "weight", f"Project '{project.id}' dependency '{dep.name}'")
        for dep in project.dependencies
    ]
    total_weight = sum(weights, _ZERO)

    allocations = tuple(
        DependencyAllocation(
            name=dep.name,
            amount=(dependency_portion * weight / total_weight) if total_weight > 0 else _ZERO,
            address=dep.address,
        )
        for dep, weight in zip(project.dependencies, weights)
    )

    if project.dependencies and total_weight == 0:
        logger.debug(
            "Project '%s': all %d dependency weights are zero; no dependency receives funding.",
            project.id,
            len(project.dependencies),
        )

    return DependencySplit(
        allocation=allocation,
        project_share=project_share,
        dependency_portion=dependency_portion,
        dependency_allocations=allocations,
    )


def aggregate_project_allocations(
    lists: Iterable[FundingList],
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> list[AggregatedProjectView]:
    """
    Combine every funding list's project allocations into one view per project.

    Algorithm:
        1. For each (list, allocation) pair compute
           monthly_budget × distribution_percentage / 100.
        2. Group contributions by project id (first-seen order), counting how
           many lists reference each project (a project named twice in
           one list counts once).
        3. Derive the average and the dependency split of each total.

    Args:
        lists:  Funding lists, usually all lists of one owner.
        config: OpenFundingConfig.

    Returns:
        One AggregatedProjectView per distinct project referenced by at least
        one list, in first-seen order. Empty input gives an empty list.

    Raises:
        ValidationError: If a monthly budget or percentage is malformed. The
                         message names the FundingList / ProjectAllocation.
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    projects: dict[str, Project] = {}

    for funding_list in lists:
        context = f"FundingList '{funding_list.id}'"
        budget = parse_amount(funding_list.monthly_budget, "monthly_budget", context)

        percentage_sum = _ZERO
        seen_in_list: set[str] = set()
        for allocation in funding_list.project_allocations:
            percentage = parse_percentage(
                allocation.distribution_percentage,
                "distribution_percentage",
                f"{context} ProjectAllocation '{allocation.id}'",
            )
            percentage_sum += percentage

            project_id = allocation.project.id
            if project_id not in projects:
                projects[project_id] = allocation.project
                totals[project_id] = _ZERO
                counts[project_id] = 0
            totals[project_id] += budget * percentage / _HUNDRED
            if project_id not in seen_in_list:
                seen_in_list.add(project_id)
                counts[project_id] += 1

        if percentage_sum > config.max_list_percentage:
            logger.warning(
                "%s distributes %s%% of its budget (more than %s%%).",
                context,
                percentage_sum,
                config.max_list_percentage,
            )

    views: list[AggregatedProjectView] = []
    for project_id, project in projects.items():
        total = totals[project_id]
        split = allocate_dependencies(project, total, config)
        views.append(
            AggregatedProjectView(
                project=project,
                total_allocation=total,
                average_allocation=total / counts[project_id],
                usage_count=counts[project_id],
                project_share=split.project_share,
                dependency_portion=split.dependency_portion,
                dependency_allocations=split.dependency_allocations,
            )
        )

    logger.debug("Aggregated %d projects.", len(views))
    return views


def aggregate_dependency_allocations(
    views: Iterable[AggregatedProjectView],
) -> list[DependencyAllocation]:
    """
    Sum dependency allocations that share a name across projects.

    The first non-empty payout address seen for a name is kept.

    Returns:
        One DependencyAllocation per dependency name, in first-seen order.
    """
    amounts: dict[str, Decimal] = {}
    addresses: dict[str, Optional[str]] = {}
    for view in views:
        for dep in view.dependency_allocations:
            amounts[dep.name] = amounts.get(dep.name, _ZERO) + dep.amount
            if not addresses.get(dep.name):
                addresses[dep.name] = dep.address

    return [
        DependencyAllocation(name=name, amount=amount, address=addresses.get(name))
        for name, amount in amounts.items()
    ]


def summarize(views: Iterable[AggregatedProjectView]) -> PortfolioSummary:
    """
    Portfolio totals for a set of aggregated project views.

    total_monthly_budget sums project-level allocations only; dependency
    allocations are a subdivision of those, not additional spend.
    average_lists_per_project is Σ usage_count / project count, or 0.
    """
    views = list(views)
    total = sum((v.total_allocation for v in views), _ZERO)
    usage = sum(v.usage_count for v in views)
    average = Decimal(usage) / len(views) if views else _ZERO

    return PortfolioSummary(
        total_monthly_budget=total,
        average_lists_per_project=average,
        project_count=len(views),
        dependencies=tuple(aggregate_dependency_allocations(views)),
    )


def compute_portfolio(
    lists: Iterable[FundingList],
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> tuple[list[AggregatedProjectView], PortfolioSummary]:
    """Aggregate and summarize in one pass. Returns (views, summary)."""
    views = aggregate_project_allocations(lists, config)
    summary = summarize(views)
    logger.info(
        "Portfolio: %d projects, %s ADA/month, %d dependencies.",
        summary.project_count,
        round_ada(summary.total_monthly_budget),
        len(summary.dependencies),
    )
    return views, summary
