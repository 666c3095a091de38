"""
open_funding/api/endpoints.py - FastAPI surface for Cardano Open Funding.

CRUD for funding lists plus read-only portfolio, payout and stats endpoints.

Endpoint summary:
    GET    /api/v1/health                                   Liveness check.
    GET    /api/v1/funding-lists?owner_id=                  Owner's lists.
    POST   /api/v1/funding-lists                            Create a list.
    GET    /api/v1/funding-lists/{list_id}                  One list.
    PUT    /api/v1/funding-lists/{list_id}                  Update a list.
    DELETE /api/v1/funding-lists/{list_id}                  Delete a list.
    POST   /api/v1/funding-lists/{list_id}/projects         Add a project.
    PATCH  /api/v1/funding-lists/{list_id}/projects/{pid}   Change its percentage.
    DELETE /api/v1/funding-lists/{list_id}/projects/{pid}   Remove a project.
    GET    /api/v1/projects?query=&platform=                Browse projects.
    GET    /api/v1/portfolio/{owner_id}                     Aggregated portfolio.
    GET    /api/v1/payouts/{owner_id}                       Wallet outputs.
    GET    /api/v1/stats                                    Platform totals.
    GET    /api/v1/transactions/recent                      Latest transactions.

The store objects are injected through create_app() so tests and production
can share the endpoint logic.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from open_funding import __version__
from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.distribution.calculator import compute_portfolio, round_ada
from open_funding.distribution.payouts import build_payout_plan, to_wallet_outputs
from open_funding.models import AggregatedProjectView, DependencyAllocation
from open_funding.storage.repository import (
    FundingListRepository,
    NotFoundError,
    ProjectCatalog,
    TransactionLedger,
)
from open_funding.validation import (
    ValidationError,
    funding_list_from_dict,
    funding_list_to_dict,
    project_to_dict,
)

logger = logging.getLogger(__name__)


# ── Request / Response models ─────────────────────────────────────────────────

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ProjectAllocationIn(BaseModel):
    """A project to include in a list. Either project_id (catalog) or project."""
    project_id: Optional[str] = None
    project: Optional[dict[str, Any]] = None
    distribution_percentage: Any = Field(default=0)


class FundingListIn(BaseModel):
    """Request body for creating or updating a funding list."""
    name: Optional[str] = None
    description: Optional[str] = None
    monthly_budget: Any = None
    owner_id: Optional[str] = None
    projects: Optional[list[ProjectAllocationIn]] = None


class DistributionIn(BaseModel):
    """Request body for changing one project's percentage."""
    distribution_percentage: Any


def _dependency_json(dep: DependencyAllocation, places: int) -> dict:
    return {"name": dep.name, "amount": str(round_ada(dep.amount, places))}


def _view_json(view: AggregatedProjectView, places: int) -> dict:
    return {
        "project": project_to_dict(view.project),
        "total_allocation": str(round_ada(view.total_allocation, places)),
        "average_allocation": str(round_ada(view.average_allocation, places)),
        "usage_count": view.usage_count,
        "project_share": str(round_ada(view.project_share, places)),
        "dependency_portion": str(round_ada(view.dependency_portion, places)),
        "dependency_allocations": [
            _dependency_json(d, places) for d in view.dependency_allocations
        ],
    }


def create_app(
    repository: Optional[FundingListRepository] = None,
    catalog: Optional[ProjectCatalog] = None,
    ledger: Optional[TransactionLedger] = None,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> FastAPI:
    """
    Create and return the Cardano Open Funding FastAPI application.

    Args:
        repository: Funding list store. A fresh empty one if None.
        catalog:    Project catalog. A fresh empty one if None.
        ledger:     Transaction ledger. A fresh empty one if None.
        config:     OpenFundingConfig.

    Returns:
        Configured FastAPI application instance. The injected store objects
        are exposed on app.state for callers that need them.
    """
    repository = repository or FundingListRepository(config)
    catalog = catalog or ProjectCatalog()
    ledger = ledger or TransactionLedger(config)
    places = config.display_places

    app = FastAPI(
        title="Cardano Open Funding API",
        version=__version__,
        description=(
            "Funding lists, aggregated portfolio distribution and multi-recipient "
            "payouts for open-source projects funded in ADA."
        ),
    )
    app.state.repository = repository
    app.state.catalog = catalog
    app.state.ledger = ledger

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _allocations_from(items: list[ProjectAllocationIn], list_id: str) -> list:
        """Resolve request allocations against the catalog, via the dict parser."""
        entries = []
        for index, item in enumerate(items):
            if item.project is not None:
                project_payload = item.project
            elif item.project_id is not None:
                project_payload = project_to_dict(catalog.get(item.project_id))
            else:
                raise ValidationError(
                    f"allocation #{index} needs 'project_id' or 'project'",
                    "projects",
                    None,
                    f"FundingList '{list_id}'",
                )
            entries.append(
                {
                    "id": f"{list_id}-{index}",
                    "project": project_payload,
                    "distribution_percentage": item.distribution_percentage,
                }
            )
        parsed = funding_list_from_dict(
            {"id": list_id, "owner_id": "-", "monthly_budget": 0, "projects": entries}
        )
        return parsed.project_allocations

    def _handle(exc: Exception) -> HTTPException:
        logger.debug("Request rejected: %s", exc)
        if isinstance(exc, NotFoundError):
            return HTTPException(status_code=404, detail=str(exc))
        return HTTPException(status_code=422, detail=str(exc))

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.get("/api/v1/health", response_model=HealthResponse, tags=["system"])
    async def health() -> dict:
        """Liveness check - returns service status and version."""
        return {"status": "ok", "version": __version__}

    @app.get("/api/v1/funding-lists", tags=["funding-lists"])
    async def list_funding_lists(owner_id: Optional[str] = Query(default=None)) -> list:
        """Return all of an owner's funding lists. owner_id is required."""
        if not owner_id:
            raise HTTPException(status_code=400, detail="owner_id is required")
        return [funding_list_to_dict(fl) for fl in repository.list(owner_id)]

    @app.post("/api/v1/funding-lists", status_code=201, tags=["funding-lists"])
    async def create_funding_list(body: FundingListIn) -> dict:
        """Create a funding list, optionally with initial project allocations."""
        if not body.owner_id:
            raise HTTPException(status_code=400, detail="owner_id is required")
        list_id = uuid.uuid4().hex[:12]
        try:
            created = repository.create(
                name=body.name or "",
                description=body.description or "",
                monthly_budget=body.monthly_budget,
                owner_id=body.owner_id,
                project_allocations=_allocations_from(body.projects or [], list_id),
                list_id=list_id,
            )
        except (ValidationError, NotFoundError) as exc:
            raise _handle(exc) from exc
        return funding_list_to_dict(created)

    @app.get("/api/v1/funding-lists/{list_id}", tags=["funding-lists"])
    async def get_funding_list(list_id: str) -> dict:
        try:
            return funding_list_to_dict(repository.get(list_id))
        except NotFoundError as exc:
            raise _handle(exc) from exc

    @app.put("/api/v1/funding-lists/{list_id}", tags=["funding-lists"])
    async def update_funding_list(list_id: str, body: FundingListIn) -> dict:
        """Update name/description/budget; projects, when given, replace all allocations."""
        try:
            allocations = (
                _allocations_from(body.projects, list_id) if body.projects is not None else None
            )
            updated = repository.update(
                list_id,
                name=body.name,
                description=body.description,
                monthly_budget=body.monthly_budget,
                project_allocations=allocations,
            )
        except (ValidationError, NotFoundError) as exc:
            raise _handle(exc) from exc
        return funding_list_to_dict(updated)

    @app.delete("/api/v1/funding-lists/{list_id}", tags=["funding-lists"])
    async def delete_funding_list(list_id: str) -> dict:
        try:
            repository.delete(list_id)
        except NotFoundError as exc:
            raise _handle(exc) from exc
        return {"success": True}

    @app.post("/api/v1/funding-lists/{list_id}/projects", tags=["funding-lists"])
    async def add_project(list_id: str, body: ProjectAllocationIn) -> dict:
        try:
            allocation = _allocations_from([body], list_id)[0]
            updated = repository.add_project(
                list_id, allocation.project, allocation.distribution_percentage
            )
        except (ValidationError, NotFoundError) as exc:
            raise _handle(exc) from exc
        return funding_list_to_dict(updated)

    @app.patch("/api/v1/funding-lists/{list_id}/projects/{project_id}", tags=["funding-lists"])
    async def update_distribution(list_id: str, project_id: str, body: DistributionIn) -> dict:
        try:
            updated = repository.update_distribution(
                list_id, project_id, body.distribution_percentage
            )
        except (ValidationError, NotFoundError) as exc:
            raise _handle(exc) from exc
        return funding_list_to_dict(updated)

    @app.delete("/api/v1/funding-lists/{list_id}/projects/{project_id}", tags=["funding-lists"])
    async def remove_project(list_id: str, project_id: str) -> dict:
        try:
            updated = repository.remove_project(list_id, project_id)
        except NotFoundError as exc:
            raise _handle(exc) from exc
        return funding_list_to_dict(updated)

    @app.get("/api/v1/projects", tags=["projects"])
    async def search_projects(query: str = "", platform: str = "all") -> list:
        return [project_to_dict(p) for p in catalog.search(query, platform)]

    @app.get("/api/v1/portfolio/{owner_id}", tags=["portfolio"])
    async def get_portfolio(owner_id: str) -> dict:
        """
        Aggregated distribution across all of an owner's funding lists.

        Returns:
            {"projects": [...], "summary": {...}} with ADA amounts as strings
            rounded to display precision.
        """
        try:
            views, summary = compute_portfolio(repository.list(owner_id), config)
        except ValidationError as exc:
            raise _handle(exc) from exc
        return {
            "projects": [_view_json(v, places) for v in views],
            "summary": {
                "total_monthly_budget": str(round_ada(summary.total_monthly_budget, places)),
                "average_lists_per_project": str(round_ada(summary.average_lists_per_project, 1)),
                "project_count": summary.project_count,
                "dependencies": [_dependency_json(d, places) for d in summary.dependencies],
            },
        }

    @app.get("/api/v1/payouts/{owner_id}", tags=["portfolio"])
    async def get_payouts(owner_id: str) -> dict:
        """Multi-recipient wallet outputs for an owner's monthly distribution."""
        try:
            views, _ = compute_portfolio(repository.list(owner_id), config)
        except ValidationError as exc:
            raise _handle(exc) from exc
        plan = build_payout_plan(views, config)
        return {
            "outputs": to_wallet_outputs(plan),
            "total_lovelace": plan.total_lovelace,
            "unassigned": {k: str(round_ada(v, places)) for k, v in plan.unassigned.items()},
            "below_minimum": plan.below_minimum,
        }

    @app.get("/api/v1/stats", tags=["system"])
    async def get_stats() -> dict:
        stats = ledger.platform_stats(repository)
        stats["total_funded"] = str(round_ada(Decimal(stats["total_funded"]), places))
        return stats

    @app.get("/api/v1/transactions/recent", tags=["system"])
    async def recent_transactions(limit: int = Query(default=10, ge=1, le=100)) -> list:
        return [
            {
                "id": tx.id,
                "funding_list_id": tx.funding_list_id,
                "amount": str(round_ada(tx.amount, places)),
                "recipients": [
                    {"address": p.address, "lovelace": p.lovelace} for p in tx.recipients
                ],
                "status": tx.status,
                "tx_hash": tx.tx_hash,
                "created_at": tx.created_at.isoformat(),
            }
            for tx in ledger.recent(limit)
        ]

    return app
