"""
open_funding - Funding-distribution backbone for Cardano Open Funding.

Donors build funding lists that split a monthly ADA budget across open-source
projects; each project passes a fixed share of what it receives on to its
weighted library dependencies. This package computes those distributions and
provides the store, scraper, payout planner, reports and API around them.

Subpackages:
- open_funding.distribution : Aggregated distribution calculator + payout planner.
- open_funding.storage      : In-memory funding list / project / transaction store.
- open_funding.ingestion    : GitHub/GitLab repository scraper.
- open_funding.graph        : NetworkX funding-flow graph.
- open_funding.reports      : Portfolio report (pandas, Markdown, JSON).
- open_funding.api          : FastAPI endpoints.
"""

__version__ = "0.1.0"
