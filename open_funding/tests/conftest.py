"""
open_funding/tests/conftest.py - Shared pytest fixtures for the Cardano Open Funding test suite.

Fixtures:
    make_project      - Builder: Project from (name, weight) dependency pairs.
    make_list         - Builder: FundingList from (project, percentage) pairs.
    scenario_project  - Project with dependency weights 0.9 / 0.5 / 0.7.
    scenario_list     - 300 ADA list giving 40% to scenario_project.
    owner_lists       - Two lists of one owner sharing a project.
    repository        - FundingListRepository pre-loaded with owner_lists.
    catalog           - ProjectCatalog with three projects.
    github_token      - GitHub PAT from GITHUB_TOKEN env var (or None).
"""

import os
from decimal import Decimal

import pytest

from open_funding.models import (
    Contributor,
    Dependency,
    FundingList,
    Project,
    ProjectAllocation,
)
from open_funding.storage.repository import FundingListRepository, ProjectCatalog

OWNER = "addr1qowner"
OTHER_OWNER = "addr1qother"


# ── Live-host tests ───────────────────────────────────────────────────────────
# Tests marked "integration" talk to GitHub or GitLab and are skipped unless
# requested with --run-integration or a -m expression naming the marker.

def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: hits the live GitHub/GitLab APIs; opt in with --run-integration",
    )


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Also run tests that scrape live repository hosts.",
    )


def pytest_collection_modifyitems(config, items):
    """Mark live-host tests as skipped when the run did not ask for them."""
    wanted = config.getoption("--run-integration") or "integration" in config.getoption("-m", default="")
    if wanted:
        return
    offline = pytest.mark.skip(reason="needs live repository hosts (--run-integration)")
    for item in items:
        if item.get_closest_marker("integration") is not None:
            item.add_marker(offline)


# ── Builders ──────────────────────────────────────────────────────────────────

def make_project(project_id, dependencies=(), **kwargs):
    """Project with Dependency records built from (name, weight) pairs."""
    return Project(
        id=project_id,
        name=kwargs.pop("name", project_id.title()),
        repository=kwargs.pop("repository", f"https://github.com/example/{project_id}"),
        dependencies=[Dependency(name=n, weight=w) for n, w in dependencies],
        **kwargs,
    )


def make_list(list_id, budget, allocations, owner_id=OWNER):
    """FundingList from (project, percentage) pairs."""
    return FundingList(
        id=list_id,
        name=f"List {list_id}",
        monthly_budget=budget,
        owner_id=owner_id,
        project_allocations=[
            ProjectAllocation(id=f"{list_id}-a{i}", project=p, distribution_percentage=pct)
            for i, (p, pct) in enumerate(allocations)
        ],
    )


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(name="make_project")
def make_project_fixture():
    return make_project


@pytest.fixture(name="make_list")
def make_list_fixture():
    return make_list


@pytest.fixture
def scenario_project():
    return make_project(
        "csl",
        [("dep-a", Decimal("0.9")), ("dep-b", Decimal("0.5")), ("dep-c", Decimal("0.7"))],
        name="Cardano Serialization Lib",
        cardano_address="addr1qcsl",
    )


@pytest.fixture
def scenario_list(scenario_project):
    return make_list("l1", "300", [(scenario_project, 40)])


@pytest.fixture
def owner_lists():
    """
    Two lists of OWNER:
        l1: 1000 ADA, 50% plutus, 30% mesh
        l2:  500 ADA, 20% plutus
    plutus and mesh both depend on "cardano-serialization-lib".
    """
    plutus = make_project(
        "plutus",
        [("cardano-serialization-lib", 1), ("aiken", 1)],
        cardano_address="addr1qplutus",
        stars=1500,
    )
    mesh = make_project(
        "mesh",
        [("cardano-serialization-lib", 3)],
        cardano_address="addr1qmesh",
        stars=800,
    )
    return [
        make_list("l1", "1000", [(plutus, 50), (mesh, 30)]),
        make_list("l2", "500", [(plutus, 20)]),
    ]


@pytest.fixture
def repository(owner_lists):
    repo = FundingListRepository()
    for fl in owner_lists:
        repo.create(
            name=fl.name,
            monthly_budget=fl.monthly_budget,
            owner_id=fl.owner_id,
            project_allocations=fl.project_allocations,
            list_id=fl.id,
        )
    return repo


@pytest.fixture
def catalog():
    cat = ProjectCatalog()
    cat.add(make_project("plutus", [("aiken", 1)], stars=1500, description="Smart contract platform"))
    cat.add(make_project("blockfrost", stars=400, description="API for Cardano", platform="gitlab"))
    cat.add(
        make_project(
            "mesh",
            [("cardano-serialization-lib", 1)],
            stars=800,
            description="Web3 SDK",
            contributors=[Contributor("alice", "addr1qalice", 60)],
        )
    )
    return cat


@pytest.fixture(scope="session")
def github_token():
    """GitHub PAT from environment (for integration tests only)."""
    return os.environ.get("GITHUB_TOKEN")
