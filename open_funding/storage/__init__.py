"""
open_funding.storage - Persistence layer.

Modules:
    repository - In-memory FundingListRepository, ProjectCatalog and
                 TransactionLedger, injected into the API and CLI.

The store is an explicit object rather than a global: callers pass it where
it is needed and hand read-only snapshots to the distribution calculator.
"""
