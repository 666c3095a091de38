"""
open_funding.graph - NetworkX funding-flow layer.

Modules:
    funding_flow - Build the FundingList → Project → Dependency flow graph
                   and query shared dependencies and per-project balances.

Node types : FundingList, Project, Dependency
Edge types : allocates, funds_dependency
"""
