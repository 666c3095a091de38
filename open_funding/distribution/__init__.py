"""
open_funding.distribution - Funding-distribution arithmetic.

Modules:
    calculator - Aggregate funding lists into per-project and per-dependency
                 ADA amounts plus portfolio summary statistics.
    payouts    - Turn a computed portfolio into multi-recipient lovelace outputs.

All thresholds and ratios live in open_funding.config.OpenFundingConfig.
"""
