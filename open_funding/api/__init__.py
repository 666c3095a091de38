"""
open_funding.api - FastAPI endpoints for funding lists, portfolios and payouts.

Modules:
    endpoints - create_app() factory; store objects are injected.
"""
