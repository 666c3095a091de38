"""
open_funding/reports/portfolio_report.py - Donor portfolio report.

Captures one owner's funding portfolio as a timestamped PortfolioSnapshot
(JSON) and a human-readable Markdown report, with pandas tables for the
per-project and per-dependency breakdowns.

All ADA figures in the snapshot are strings rounded to display precision, so
the JSON round-trips without float drift.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

import pandas as pd

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.distribution.calculator import compute_portfolio, round_ada
from open_funding.graph.funding_flow import build_funding_flow_graph, shared_dependencies
from open_funding.models import AggregatedProjectView, FundingList, PortfolioSummary

logger = logging.getLogger(__name__)


@dataclass
class PortfolioSnapshot:
    """Timestamped summary of one owner's funding portfolio."""

    snapshot_date: str                  # ISO 8601 date string
    owner_id: str

    list_count: int
    project_count: int
    dependency_count: int

    total_monthly_budget: str           # ADA, rounded
    total_project_share: str
    total_dependency_funding: str
    average_lists_per_project: str     # one decimal place

    top_projects: list                  # [{name, total, usage_count}]
    top_dependencies: list              # [{name, amount}]
    shared_dependencies: list           # [{name, funders, amount}]

    narrative: str


def projects_dataframe(
    views: Iterable[AggregatedProjectView],
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> pd.DataFrame:
    """
    One row per aggregated project.

    Columns: project_id, name, repository, usage_count, total_allocation,
    average_allocation, project_share, dependency_portion (ADA floats rounded
    to display precision).
    """
    places = config.display_places
    rows = [
        {
            "project_id": v.project.id,
            "name": v.project.name,
            "repository": v.project.repository,
            "usage_count": v.usage_count,
            "total_allocation": float(round_ada(v.total_allocation, places)),
            "average_allocation": float(round_ada(v.average_allocation, places)),
            "project_share": float(round_ada(v.project_share, places)),
            "dependency_portion": float(round_ada(v.dependency_portion, places)),
        }
        for v in views
    ]
    columns = [
        "project_id", "name", "repository", "usage_count", "total_allocation",
        "average_allocation", "project_share", "dependency_portion",
    ]
    return pd.DataFrame(rows, columns=columns)


def dependencies_dataframe(
    summary: PortfolioSummary,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> pd.DataFrame:
    """One row per dependency name, sorted by amount descending."""
    df = pd.DataFrame(
        [
            {"name": d.name, "amount": float(round_ada(d.amount, config.display_places))}
            for d in summary.dependencies
        ],
        columns=["name", "amount"],
    )
    return df.sort_values("amount", ascending=False, kind="stable").reset_index(drop=True)


def generate_portfolio_narrative(snapshot: PortfolioSnapshot) -> str:
    """Two or three sentences describing where the monthly budget goes."""
    if snapshot.project_count == 0:
        return "No projects are funded yet. Add projects to a funding list to start distributing ADA."

    parts = [
        f"{snapshot.list_count} funding "
        f"{'list distributes' if snapshot.list_count == 1 else 'lists distribute'} "
        f"{snapshot.total_monthly_budget} ADA per month across "
        f"{snapshot.project_count} {'project' if snapshot.project_count == 1 else 'projects'}.",
        f"{snapshot.total_dependency_funding} ADA of that flows on to "
        f"{snapshot.dependency_count} upstream "
        f"{'dependency' if snapshot.dependency_count == 1 else 'dependencies'}.",
    ]
    if snapshot.shared_dependencies:
        top = snapshot.shared_dependencies[0]
        parts.append(
            f"The most widely shared dependency is {top['name']}, "
            f"funded through {len(top['funders'])} projects."
        )
    return " ".join(parts)


def build_portfolio_snapshot(
    owner_id: str,
    lists: list[FundingList],
    config: OpenFundingConfig = DEFAULT_CONFIG,
    top_n: int = 10,
) -> tuple[PortfolioSnapshot, list[AggregatedProjectView], PortfolioSummary]:
    """
    Compute an owner's portfolio and capture it as a snapshot.

    Args:
        owner_id: Wallet address the lists belong to.
        lists:    The owner's funding lists.
        config:   OpenFundingConfig.
        top_n:    Entries kept in the top_projects / top_dependencies tables.

    Returns:
        (snapshot, views, summary)

    Raises:
        ValidationError: Propagated from the calculator.
    """
    views, summary = compute_portfolio(lists, config)
    shared = shared_dependencies(build_funding_flow_graph(lists, config))
    places = config.display_places

    ranked_projects = sorted(views, key=lambda v: v.total_allocation, reverse=True)[:top_n]
    ranked_deps = sorted(summary.dependencies, key=lambda d: d.amount, reverse=True)[:top_n]

    snapshot = PortfolioSnapshot(
        snapshot_date=datetime.now(tz=timezone.utc).strftime("%Y-%m-%d"),
        owner_id=owner_id,
        list_count=len(lists),
        project_count=summary.project_count,
        dependency_count=len(summary.dependencies),
        total_monthly_budget=str(round_ada(summary.total_monthly_budget, places)),
        total_project_share=str(round_ada(sum((v.project_share for v in views), Decimal(0)), places)),
        total_dependency_funding=str(round_ada(sum((d.amount for d in summary.dependencies), Decimal(0)), places)),
        average_lists_per_project=str(round_ada(summary.average_lists_per_project, 1)),
        top_projects=[
            {
                "name": v.project.name,
                "total": str(round_ada(v.total_allocation, places)),
                "usage_count": v.usage_count,
            }
            for v in ranked_projects
        ],
        top_dependencies=[
            {"name": d.name, "amount": str(round_ada(d.amount, places))} for d in ranked_deps
        ],
        shared_dependencies=[
            {"name": s["name"], "funders": s["funders"], "amount": str(round_ada(s["amount"], places))}
            for s in shared
        ],
        narrative="",
    )
    snapshot.narrative = generate_portfolio_narrative(snapshot)
    return snapshot, views, summary


def save_snapshot(snapshot: PortfolioSnapshot, output_dir: str) -> Optional[str]:
    """
    Write the snapshot to {output_dir}/{date}_{owner prefix}.json.

    Creates output_dir if needed. Returns the path, or None if the write failed.
    """
    os.makedirs(output_dir, exist_ok=True)
    filename = f"{snapshot.snapshot_date}_{snapshot.owner_id[:16]}.json"
    filepath = os.path.join(output_dir, filename)
    try:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(asdict(snapshot), f, indent=2, default=str)
    except OSError as e:
        logger.error("Failed to write snapshot to %s: %s", filepath, e)
        return None
    logger.info("Portfolio snapshot saved to: %s", filepath)
    return filepath


def export_portfolio_markdown(
    snapshot: PortfolioSnapshot,
    views: list[AggregatedProjectView],
    summary: PortfolioSummary,
    output_path: Optional[str] = None,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> str:
    """
    Render the portfolio report as Markdown.

    Structure:
        # Cardano Open Funding: Portfolio Report
        ## Summary              (narrative + key figures)
        ## Project Allocations  (per-project table)
        ## Dependency Funding   (per-dependency table)
        ## Shared Dependencies  (only if any)

    Writes to output_path when given and returns the Markdown string.
    """
    lines: list[str] = [
        "# Cardano Open Funding: Portfolio Report",
        "",
        f"**Date:** {snapshot.snapshot_date} | **Owner:** `{snapshot.owner_id}`",
        "",
        "---",
        "",
        "## Summary",
        "",
        snapshot.narrative,
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Funding Lists | {snapshot.list_count} |",
        f"| Projects | {snapshot.project_count} |",
        f"| Monthly Budget | {snapshot.total_monthly_budget} ADA |",
        f"| Kept by Projects | {snapshot.total_project_share} ADA |",
        f"| Passed to Dependencies | {snapshot.total_dependency_funding} ADA |",
        f"| Avg. Lists per Project | {snapshot.average_lists_per_project} |",
        "",
    ]

    df_projects = projects_dataframe(views, config)
    lines += [
        "## Project Allocations",
        "",
        "| Project | Lists | Total (ADA) | Average (ADA) | Project Share (ADA) | Dependencies (ADA) |",
        "|---------|-------|-------------|---------------|---------------------|--------------------|",
    ]
    for row in df_projects.itertuples(index=False):
        lines.append(
            f"| {row.name} | {row.usage_count} | {row.total_allocation:.2f} | "
            f"{row.average_allocation:.2f} | {row.project_share:.2f} | {row.dependency_portion:.2f} |"
        )
    lines.append("")

    df_deps = dependencies_dataframe(summary, config)
    lines += ["## Dependency Funding", ""]
    if df_deps.empty:
        lines += ["_No dependency funding._", ""]
    else:
        lines += ["| Dependency | Amount (ADA) |", "|------------|--------------|"]
        for row in df_deps.itertuples(index=False):
            lines.append(f"| {row.name} | {row.amount:.2f} |")
        lines.append("")

    if snapshot.shared_dependencies:
        lines += [
            "## Shared Dependencies",
            "",
            "| Dependency | Funded Through | Amount (ADA) |",
            "|------------|----------------|--------------|",
        ]
        for s in snapshot.shared_dependencies:
            lines.append(f"| {s['name']} | {', '.join(s['funders'])} | {s['amount']} |")
        lines.append("")

    markdown = "\n".join(lines)

    if output_path:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(markdown)
        logger.info("Portfolio report written to: %s", output_path)

    return markdown
