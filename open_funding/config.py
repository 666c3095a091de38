"""
open_funding/config.py - All tunable parameters for Cardano Open Funding.

No split ratio, rounding precision or rate limit should be hardcoded in a
module. Every constant lives here so that a policy change is a single-file diff.
"""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class OpenFundingConfig:
    """
    Immutable configuration for the distribution calculator and its surroundings.

    Override by constructing a new OpenFundingConfig with the desired values.
    """

    # ── Distribution ──────────────────────────────────────────────────────────
    dependency_share: Decimal = Decimal("0.30")
    # Fraction of each project's allocation passed on to its dependencies.
    # The project keeps the remaining 70%.

    max_list_percentage: Decimal = Decimal("100")
    # Upper bound on the sum of distribution percentages within one funding
    # list. Enforced by the store on writes; the calculator only warns.

    display_places: int = 2
    # Decimal places used when presenting ADA amounts.

    # ── Payouts ───────────────────────────────────────────────────────────────
    lovelace_per_ada: int = 1_000_000

    min_output_lovelace: int = 1_000_000
    # Transaction outputs below this are held back rather than sent.
    # Cardano ledgers reject outputs under the min-UTxO value (~1 ADA).

    # ── Repository hosts ──────────────────────────────────────────────────────
    github_api_base: str = "https://api.github.com"
    gitlab_api_base: str = "https://gitlab.com/api/v4"

    github_rate_limit_per_hr: int = 5000
    # GitHub REST API: 5000 req/hr authenticated, 60/hr unauthenticated.

    request_timeout_s: float = 30.0

    manifest_files: tuple[str, ...] = ("package.json", "requirements.txt", "Cargo.toml")
    # Tried in order; the first manifest found wins.

    contributors_files: tuple[str, ...] = ("contributors.txt", "CONTRIBUTORS.txt")

    funding_files: tuple[str, ...] = ("funding.txt", ".funding", "FUNDING.yml", "contributors.txt")


# Singleton default, import this everywhere instead of constructing anew.
DEFAULT_CONFIG = OpenFundingConfig()
