"""
open_funding.reports - Portfolio report generation.

Modules:
    portfolio_report - PortfolioSnapshot (JSON), pandas breakdown tables and
                       a Markdown report for one owner's funding lists.
"""
