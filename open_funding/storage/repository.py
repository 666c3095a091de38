"""
open_funding/storage/repository.py - In-memory store for lists, projects and transactions.

Explicit service objects, constructed once and injected into the API and CLI.
Nothing in the distribution calculator touches them: callers take a snapshot
with FundingListRepository.list(owner_id) and hand it to the calculator.

Every read returns deep copies, so a caller mutating a returned FundingList
cannot change what the store holds. Every write validates numbers and the
per-list percentage cap before it is applied.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.distribution.payouts import lovelace_to_ada
from open_funding.models import (
    FundingList,
    PayoutPlan,
    Project,
    ProjectAllocation,
    Transaction,
)
from open_funding.validation import ValidationError, parse_amount, parse_percentage

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class NotFoundError(LookupError):
    """No record exists with the requested id."""


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class FundingListRepository:
    """
    Funding lists keyed by id, scoped to their owner's wallet address.

    Args:
        config: OpenFundingConfig. Uses config.max_list_percentage.
    """

    def __init__(self, config: OpenFundingConfig = DEFAULT_CONFIG) -> None:
        self._config = config
        self._lists: dict[str, FundingList] = {}

    # ── Reads ─────────────────────────────────────────────────────────────────

    def list(self, owner_id: str) -> list[FundingList]:
        """All of owner_id's funding lists, most recently updated first."""
        owned = [fl for fl in self._lists.values() if fl.owner_id == owner_id]
        owned.sort(key=lambda fl: fl.updated_at, reverse=True)
        return copy.deepcopy(owned)

    def all(self) -> list[FundingList]:
        return copy.deepcopy(list(self._lists.values()))

    def get(self, list_id: str) -> FundingList:
        return copy.deepcopy(self._require(list_id))

    def _require(self, list_id: str) -> FundingList:
        try:
            return self._lists[list_id]
        except KeyError:
            raise NotFoundError(f"FundingList '{list_id}' not found") from None

    # ── Writes ────────────────────────────────────────────────────────────────

    def create(
        self,
        name: str,
        monthly_budget,
        owner_id: str,
        description: str = "",
        project_allocations: Optional[list[ProjectAllocation]] = None,
        list_id: Optional[str] = None,
    ) -> FundingList:
        """
        Create and store a new funding list.

        Raises:
            ValidationError: Malformed budget/percentage, missing owner, or
                             percentages summing above the configured cap.
        """
        list_id = list_id or _new_id()
        if list_id in self._lists:
            raise ValidationError(f"FundingList '{list_id}' already exists", "id", list_id)
        if not owner_id:
            raise ValidationError("owner_id is required", "owner_id", owner_id)

        funding_list = FundingList(
            id=list_id,
            name=name,
            description=description,
            monthly_budget=parse_amount(monthly_budget, "monthly_budget", f"FundingList '{list_id}'"),
            owner_id=owner_id,
            project_allocations=self._validated_allocations(list_id, project_allocations or []),
        )
        self._lists[list_id] = funding_list
        logger.info("Created FundingList '%s' for owner %s.", list_id, owner_id)
        return copy.deepcopy(funding_list)

    def update(
        self,
        list_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        monthly_budget=None,
        project_allocations: Optional[list[ProjectAllocation]] = None,
    ) -> FundingList:
        """
        Update the given fields of a funding list. None leaves a field as-is;
        project_allocations, when given, replaces the whole allocation set.
        """
        current = self._require(list_id)
        updated = copy.deepcopy(current)
        if name is not None:
            updated.name = name
        if description is not None:
            updated.description = description
        if monthly_budget is not None:
            updated.monthly_budget = parse_amount(
                monthly_budget, "monthly_budget", f"FundingList '{list_id}'"
            )
        if project_allocations is not None:
            updated.project_allocations = self._validated_allocations(list_id, project_allocations)
        updated.updated_at = _utcnow()

        self._lists[list_id] = updated
        return copy.deepcopy(updated)

    def delete(self, list_id: str) -> None:
        self._require(list_id)
        del self._lists[list_id]
        logger.info("Deleted FundingList '%s'.", list_id)

    def add_project(self, list_id: str, project: Project, percentage) -> FundingList:
        """Add project to a list with the given distribution percentage."""
        current = self._require(list_id)
        if any(a.project.id == project.id for a in current.project_allocations):
            raise ValidationError(
                f"project '{project.id}' is already in this list",
                "project",
                project.id,
                f"FundingList '{list_id}'",
            )
        allocation = ProjectAllocation(
            id=_new_id(), project=copy.deepcopy(project), distribution_percentage=percentage
        )
        return self.update(list_id, project_allocations=current.project_allocations + [allocation])

    def remove_project(self, list_id: str, project_id: str) -> FundingList:
        current = self._require(list_id)
        remaining = [a for a in current.project_allocations if a.project.id != project_id]
        if len(remaining) == len(current.project_allocations):
            raise NotFoundError(f"project '{project_id}' is not in FundingList '{list_id}'")
        return self.update(list_id, project_allocations=remaining)

    def update_distribution(self, list_id: str, project_id: str, percentage) -> FundingList:
        current = self._require(list_id)
        allocations = copy.deepcopy(current.project_allocations)
        for allocation in allocations:
            if allocation.project.id == project_id:
                allocation.distribution_percentage = percentage
                break
        else:
            raise NotFoundError(f"project '{project_id}' is not in FundingList '{list_id}'")
        return self.update(list_id, project_allocations=allocations)

    def _validated_allocations(
        self, list_id: str, allocations: list[ProjectAllocation]
    ) -> list[ProjectAllocation]:
        """Parse every percentage, reject repeated projects and enforce the per-list cap."""
        context = f"FundingList '{list_id}'"
        validated = []
        seen: set[str] = set()
        total = _ZERO
        for allocation in allocations:
            if allocation.project.id in seen:
                raise ValidationError(
                    f"project '{allocation.project.id}' appears more than once",
                    "project",
                    allocation.project.id,
                    context,
                )
            seen.add(allocation.project.id)
            pct = parse_percentage(
                allocation.distribution_percentage,
                "distribution_percentage",
                f"{context} ProjectAllocation '{allocation.id}'",
            )
            total += pct
            validated.append(
                ProjectAllocation(
                    id=allocation.id,
                    project=copy.deepcopy(allocation.project),
                    distribution_percentage=pct,
                )
            )
        if total > self._config.max_list_percentage:
            raise ValidationError(
                f"distribution percentages sum to {total}, above {self._config.max_list_percentage}",
                "distribution_percentage",
                total,
                context,
            )
        return validated


class ProjectCatalog:
    """Browsable catalog of fundable projects."""

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}

    def add(self, project: Project) -> Project:
        self._projects[project.id] = copy.deepcopy(project)
        return copy.deepcopy(project)

    def get(self, project_id: str) -> Project:
        try:
            return copy.deepcopy(self._projects[project_id])
        except KeyError:
            raise NotFoundError(f"Project '{project_id}' not found") from None

    def __len__(self) -> int:
        return len(self._projects)

    def search(self, query: str = "", platform: str = "all") -> list[Project]:
        """
        Case-insensitive match on name or description, optionally filtered by
        platform ("github", "gitlab", or "all"). Ordered by stars, descending.
        """
        needle = query.strip().lower()
        results = [
            p for p in self._projects.values()
            if (not needle or needle in p.name.lower() or needle in p.description.lower())
            and (platform in ("", "all") or p.platform == platform)
        ]
        results.sort(key=lambda p: p.stars, reverse=True)
        return copy.deepcopy(results)


class TransactionLedger:
    """Record of donation transactions and their settlement status."""

    def __init__(self, config: OpenFundingConfig = DEFAULT_CONFIG) -> None:
        self._config = config
        self._transactions: dict[str, Transaction] = {}

    def record(self, funding_list_id: str, plan: PayoutPlan) -> Transaction:
        """Record a pending transaction for a payout plan."""
        tx = Transaction(
            id=_new_id(),
            funding_list_id=funding_list_id,
            amount=lovelace_to_ada(plan.total_lovelace, self._config),
            recipients=list(plan.payouts),
        )
        self._transactions[tx.id] = tx
        logger.info("Recorded pending transaction %s (%s ADA).", tx.id, tx.amount)
        return copy.deepcopy(tx)

    def _require(self, tx_id: str) -> Transaction:
        try:
            return self._transactions[tx_id]
        except KeyError:
            raise NotFoundError(f"Transaction '{tx_id}' not found") from None

    def mark_completed(self, tx_id: str, tx_hash: str) -> Transaction:
        tx = self._require(tx_id)
        tx.status = "completed"
        tx.tx_hash = tx_hash
        return copy.deepcopy(tx)

    def mark_failed(self, tx_id: str) -> Transaction:
        tx = self._require(tx_id)
        tx.status = "failed"
        logger.warning("Transaction %s failed.", tx_id)
        return copy.deepcopy(tx)

    def recent(self, limit: int = 10) -> list[Transaction]:
        ordered = sorted(self._transactions.values(), key=lambda t: t.created_at, reverse=True)
        return copy.deepcopy(ordered[:limit])

    def platform_stats(self, repository: FundingListRepository) -> dict:
        """
        Platform-wide totals over completed transactions.

        Returns:
            {"total_funded": Decimal, "projects_supported": int, "active_donors": int}
        """
        completed = [t for t in self._transactions.values() if t.status == "completed"]
        lists = {fl.id: fl for fl in repository.all()}

        donors: set[str] = set()
        projects: set[str] = set()
        for tx in completed:
            funding_list = lists.get(tx.funding_list_id)
            if funding_list is None:
                continue
            donors.add(funding_list.owner_id)
            projects.update(a.project.id for a in funding_list.project_allocations)

        return {
            "total_funded": sum((t.amount for t in completed), _ZERO),
            "projects_supported": len(projects),
            "active_donors": len(donors),
        }
