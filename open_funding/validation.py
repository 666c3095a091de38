"""
open_funding/validation.py - Parse-and-validate at the data-entry boundary.

Every number that reaches the distribution calculator passes through one of
the parse_* helpers below. Malformed input raises ValidationError naming the
record it came from; nothing is silently coerced to zero.

The *_from_dict helpers accept the JSON shapes the web front-end posts
(camelCase: monthlyBudget, distributionPercentage, ...) as well as snake_case.
"""

import re
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from open_funding.models import (
    Contributor,
    Dependency,
    FundingList,
    Project,
    ProjectAllocation,
)

_HUNDRED = Decimal("100")

# Well-formed digit grouping only: "1,000" and "12,345.5", never "1,5".
_THOUSANDS_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")

# Largest accepted power of ten. Far above the ADA supply, low enough that
# budget arithmetic never overflows the decimal context.
_MAX_ADJUSTED_EXPONENT = 18


class ValidationError(ValueError):
    """
    A numeric or structural field failed validation.

    Attributes:
        field:   Name of the offending field, e.g. "monthly_budget".
        value:   The rejected value as received.
        context: Human-readable owner of the field, e.g. "FundingList 'l1'".
    """

    def __init__(self, message: str, field: str = "", value: Any = None, context: str = ""):
        self.field = field
        self.value = value
        self.context = context
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}{message}")


def _to_decimal(value: Any, field: str, context: str) -> Decimal:
    """Convert value to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number, got a boolean", field, value, context)
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        # str() keeps the shortest repr, so 0.9 stays 0.9 rather than 0.900000000000000022...
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValidationError(f"{field} is empty", field, value, context)
        if "," in text:
            if not _THOUSANDS_RE.match(text):
                raise ValidationError(
                    f"{field} has misplaced thousands separators: {value!r}", field, value, context
                )
            text = text.replace(",", "")
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValidationError(
                f"{field} is not a number: {value!r}", field, value, context
            ) from None
    else:
        raise ValidationError(
            f"{field} must be a number, got {type(value).__name__}", field, value, context
        )

    if not number.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}", field, value, context)
    if number and number.adjusted() > _MAX_ADJUSTED_EXPONENT:
        raise ValidationError(f"{field} is out of range: {value!r}", field, value, context)
    return number


def parse_amount(value: Any, field: str = "amount", context: str = "") -> Decimal:
    """
    Parse a non-negative ADA amount.

    Accepts Decimal, int, float or decimal text. Thousands separators ("1,000")
    and surrounding whitespace are tolerated in text.

    Raises:
        ValidationError: If value is not a finite, non-negative number.
    """
    number = _to_decimal(value, field, context)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0, got {value!r}", field, value, context)
    return number


def parse_percentage(value: Any, field: str = "distribution_percentage", context: str = "") -> Decimal:
    """
    Parse a percentage in [0, 100].

    Raises:
        ValidationError: If value is not a number or lies outside [0, 100].
    """
    number = _to_decimal(value, field, context)
    if number < 0 or number > _HUNDRED:
        raise ValidationError(
            f"{field} must be between 0 and 100, got {value!r}", field, value, context
        )
    return number


def parse_weight(value: Any, field: str = "weight", context: str = "") -> Decimal:
    """
    Parse a dependency weight (non-negative, unnormalized).

    Raises:
        ValidationError: If value is not a finite, non-negative number.
    """
    number = _to_decimal(value, field, context)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0, got {value!r}", field, value, context)
    return number


# ── Dict → record parsing ─────────────────────────────────────────────────────

def _pick(payload: dict, *keys: str, default: Any = None) -> Any:
    """Return the first key present in payload."""
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def dependency_from_dict(payload: Any, context: str = "") -> Dependency:
    """
    Build a Dependency from a bare name or a {name, weight, address, ...} dict.

    A bare name gets weight 1. Keys outside the core schema are kept in
    Dependency.attributes.
    """
    if isinstance(payload, str):
        return Dependency(name=payload, weight=Decimal(1))
    if not isinstance(payload, dict) or not payload.get("name"):
        raise ValidationError("dependency must be a name or a dict with 'name'", "dependency", payload, context)

    name = str(payload["name"])
    dep_context = f"{context} dependency '{name}'".strip()
    weight = parse_weight(payload.get("weight", 1), "weight", dep_context)
    core = {"name", "weight", "address", "cardano_address", "cardanoAddress"}
    return Dependency(
        name=name,
        weight=weight,
        address=_pick(payload, "address", "cardano_address", "cardanoAddress"),
        attributes={k: v for k, v in payload.items() if k not in core},
    )


def contributor_from_dict(payload: dict, context: str = "") -> Contributor:
    """
    Build a Contributor from a contributors-file entry.

    Required: name, cardano_address, percentage. Optional: email, orcid.
    Everything else goes into Contributor.attributes.
    """
    if not isinstance(payload, dict):
        raise ValidationError("contributor entry must be an object", "contributor", payload, context)

    name = payload.get("name")
    address = _pick(payload, "cardano_address", "cardanoAddress")
    if not name or not address:
        raise ValidationError(
            "contributor needs 'name' and 'cardano_address'", "contributor", payload, context
        )
    percentage = parse_percentage(
        payload.get("percentage"), "percentage", f"{context} contributor '{name}'".strip()
    )
    core = {f.name for f in fields(Contributor)} | {"cardanoAddress"}
    return Contributor(
        name=str(name),
        cardano_address=str(address),
        percentage=percentage,
        email=payload.get("email"),
        orcid=payload.get("orcid"),
        attributes={k: v for k, v in payload.items() if k not in core},
    )


def project_from_dict(payload: dict) -> Project:
    """Build a Project from an API/JSON payload, validating dependency weights."""
    if not isinstance(payload, dict):
        raise ValidationError("project must be an object", "project", payload)

    project_id = _pick(payload, "id")
    name = _pick(payload, "name")
    if project_id is None or not name:
        raise ValidationError("project needs 'id' and 'name'", "project", payload)

    context = f"Project '{project_id}'"
    stars_raw = _pick(payload, "stars", default=0)
    stars_text = str(stars_raw).strip()
    if "," in stars_text and _THOUSANDS_RE.match(stars_text):
        stars_text = stars_text.replace(",", "")
    try:
        stars = int(stars_text)
    except ValueError:
        raise ValidationError(f"stars is not an integer: {stars_raw!r}", "stars", stars_raw, context) from None

    return Project(
        id=str(project_id),
        name=str(name),
        repository=str(_pick(payload, "repository", "repositoryUrl", "repository_url", "repositoryRef", default="")),
        description=str(_pick(payload, "description", default="")),
        platform=str(_pick(payload, "platform", default="github")),
        stars=stars,
        status=str(_pick(payload, "status", default="active")),
        cardano_address=_pick(payload, "cardano_address", "cardanoAddress", "fundingAddress"),
        dependencies=[
            dependency_from_dict(dep, context) for dep in _pick(payload, "dependencies", default=[])
        ],
        contributors=[
            contributor_from_dict(c, context) for c in _pick(payload, "contributors", default=[])
        ],
    )


def funding_list_from_dict(payload: dict, owner_id: Optional[str] = None) -> FundingList:
    """
    Build a FundingList from an API/JSON payload.

    Args:
        payload:  Dict with id, name, description, monthlyBudget, ownerId and a
                  list of {id, project, distributionPercentage} entries under
                  "projects" (snake_case keys are accepted too).
        owner_id: Overrides the owner found in the payload.

    Raises:
        ValidationError: On a missing id/owner or any malformed number.
    """
    if not isinstance(payload, dict):
        raise ValidationError("funding list must be an object", "funding_list", payload)

    list_id = _pick(payload, "id")
    if list_id is None:
        raise ValidationError("funding list needs an 'id'", "id", payload)
    context = f"FundingList '{list_id}'"

    owner = owner_id or _pick(payload, "owner_id", "ownerId", "userId", "user_id")
    if not owner:
        raise ValidationError("funding list needs an owner", "owner_id", None, context)

    budget = parse_amount(
        _pick(payload, "monthly_budget", "monthlyBudget"), "monthly_budget", context
    )

    allocations: list[ProjectAllocation] = []
    for index, entry in enumerate(_pick(payload, "project_allocations", "projectAllocations", "projects", default=[])):
        if not isinstance(entry, dict) or "project" not in entry:
            raise ValidationError(
                f"allocation #{index} needs a 'project'", "project_allocations", entry, context
            )
        alloc_id = str(_pick(entry, "id", default=f"{list_id}-{index}"))
        percentage = parse_percentage(
            _pick(entry, "distribution_percentage", "distributionPercentage"),
            "distribution_percentage",
            f"{context} ProjectAllocation '{alloc_id}'",
        )
        allocations.append(
            ProjectAllocation(
                id=alloc_id,
                project=project_from_dict(entry["project"]),
                distribution_percentage=percentage,
            )
        )

    return FundingList(
        id=str(list_id),
        name=str(_pick(payload, "name", default="")),
        description=str(_pick(payload, "description", default="")),
        monthly_budget=budget,
        owner_id=str(owner),
        project_allocations=allocations,
    )


def project_to_dict(project: Project) -> dict:
    """Serialize a Project to a JSON-friendly dict (numbers as strings)."""
    return {
        "id": project.id,
        "name": project.name,
        "repository": project.repository,
        "description": project.description,
        "platform": project.platform,
        "stars": project.stars,
        "status": project.status,
        "cardano_address": project.cardano_address,
        "dependencies": [
            {"name": d.name, "weight": str(d.weight), "address": d.address, **d.attributes}
            for d in project.dependencies
        ],
        "contributors": [
            {
                "name": c.name,
                "cardano_address": c.cardano_address,
                "percentage": str(c.percentage),
                "email": c.email,
                "orcid": c.orcid,
                **c.attributes,
            }
            for c in project.contributors
        ],
    }


def funding_list_to_dict(funding_list: FundingList) -> dict:
    """Serialize a FundingList to a JSON-friendly dict (numbers as strings)."""
    return {
        "id": funding_list.id,
        "name": funding_list.name,
        "description": funding_list.description,
        "monthly_budget": str(funding_list.monthly_budget),
        "owner_id": funding_list.owner_id,
        "projects": [
            {
                "id": a.id,
                "distribution_percentage": str(a.distribution_percentage),
                "project": project_to_dict(a.project),
            }
            for a in funding_list.project_allocations
        ],
        "created_at": funding_list.created_at.isoformat(),
        "updated_at": funding_list.updated_at.isoformat(),
    }
