"""
open_funding/distribution/payouts.py - Multi-recipient payout planning.

Converts a computed portfolio into the transaction outputs a Cardano wallet
sends in one transaction: {address: lovelace}. Building, signing and
submitting the transaction belong to the wallet SDK; this module only decides
who receives how much.

Routing:
    project_share      → project contributors by percentage (if the project
                         publishes a contributors file), remainder to the
                         project's own cardano_address.
    dependency amounts → each dependency's payout address.

Recipients without an address are reported in PayoutPlan.unassigned instead of
being dropped silently. Outputs below the min-UTxO threshold are held back in
PayoutPlan.below_minimum.
"""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Iterable

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.models import AggregatedProjectView, Contributor, Payout, PayoutPlan
from open_funding.validation import ValidationError, parse_percentage

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


class InsufficientFundsError(ValidationError):
    """The wallet balance does not cover the planned payout."""


def ada_to_lovelace(amount: Decimal, config: OpenFundingConfig = DEFAULT_CONFIG) -> int:
    """Convert ADA to whole lovelace, rounding down so payouts never exceed the budget."""
    return int((amount * config.lovelace_per_ada).to_integral_value(rounding=ROUND_DOWN))


def lovelace_to_ada(lovelace: int, config: OpenFundingConfig = DEFAULT_CONFIG) -> Decimal:
    return Decimal(lovelace) / config.lovelace_per_ada


def split_among_contributors(
    amount: Decimal,
    contributors: Iterable[Contributor],
) -> tuple[dict[str, Decimal], Decimal]:
    """
    Split amount among contributors by their percentage.

    Percentages are taken as-is (not renormalized). Whatever they leave
    over is returned as the remainder; if they sum above 100, the shares are
    scaled down so the total never exceeds amount.

    Returns:
        (address → ADA, remainder)
    """
    contributors = list(contributors)
    percentages = [
        parse_percentage(c.percentage, "percentage", f"Contributor '{c.name}'")
        for c in contributors
    ]
    total_pct = sum(percentages, _ZERO)
    scale = _HUNDRED / total_pct if total_pct > _HUNDRED else Decimal(1)

    shares: dict[str, Decimal] = {}
    for contributor, pct in zip(contributors, percentages):
        share = amount * pct * scale / _HUNDRED
        shares[contributor.cardano_address] = shares.get(contributor.cardano_address, _ZERO) + share

    remainder = amount - sum(shares.values(), _ZERO)
    return shares, remainder


def build_payout_plan(
    views: Iterable[AggregatedProjectView],
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> PayoutPlan:
    """
    Build the multi-recipient payout for a set of aggregated project views.

    Args:
        views:  Output of aggregate_project_allocations().
        config: OpenFundingConfig. Uses lovelace_per_ada and min_output_lovelace.

    Returns:
        PayoutPlan with outputs merged by address in first-seen order.
    """
    by_address: dict[str, Decimal] = {}
    unassigned: dict[str, Decimal] = {}

    def credit(address, name, ada):
        if ada <= 0:
            return
        if address:
            by_address[address] = by_address.get(address, _ZERO) + ada
        else:
            unassigned[name] = unassigned.get(name, _ZERO) + ada

    for view in views:
        project = view.project
        shares, remainder = split_among_contributors(view.project_share, project.contributors)
        for address, ada in shares.items():
            credit(address, project.name, ada)
        credit(project.cardano_address, project.name, remainder)

        for dep in view.dependency_allocations:
            credit(dep.address, dep.name, dep.amount)

    plan = PayoutPlan(unassigned=unassigned)
    for address, ada in by_address.items():
        lovelace = ada_to_lovelace(ada, config)
        if lovelace < config.min_output_lovelace:
            plan.below_minimum[address] = lovelace
            continue
        plan.payouts.append(Payout(address=address, lovelace=lovelace))

    if plan.unassigned:
        logger.warning(
            "%d recipients have no payout address: %s",
            len(plan.unassigned),
            ", ".join(sorted(plan.unassigned)),
        )
    if plan.below_minimum:
        logger.info(
            "%d outputs below %d lovelace held back.",
            len(plan.below_minimum),
            config.min_output_lovelace,
        )
    logger.info(
        "Payout plan: %d outputs, %d lovelace total.", len(plan.payouts), plan.total_lovelace
    )
    return plan


def wallet_balance(utxos: Iterable[dict], config: OpenFundingConfig = DEFAULT_CONFIG) -> Decimal:
    """
    Total ADA held in a wallet's UTxOs.

    Each UTxO has the wallet SDK shape
    {"output": {"amount": [{"unit": "lovelace", "quantity": "..."}]}}.
    Native assets are ignored.
    """
    total = 0
    for utxo in utxos:
        for asset in utxo.get("output", {}).get("amount", []):
            if asset.get("unit") == "lovelace":
                total += int(asset.get("quantity", 0))
    return lovelace_to_ada(total, config)


def check_balance(
    plan: PayoutPlan,
    balance_ada: Decimal,
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> None:
    """
    Raise InsufficientFundsError if balance_ada cannot cover the plan.

    Transaction fees are not included; the wallet adds them when it builds
    the transaction.
    """
    required = lovelace_to_ada(plan.total_lovelace, config)
    if plan.total_lovelace <= 0:
        raise ValidationError("payout plan has no outputs", "payouts", plan.total_lovelace)
    if required > balance_ada:
        raise InsufficientFundsError(
            f"insufficient balance: {required} ADA required, {balance_ada} ADA available",
            "balance",
            balance_ada,
        )


def to_wallet_outputs(plan: PayoutPlan) -> dict[str, list[dict[str, str]]]:
    """Render the plan as {address: [{"unit": "lovelace", "quantity": "<int>"}]}."""
    return {
        p.address: [{"unit": "lovelace", "quantity": str(p.lovelace)}]
        for p in plan.payouts
    }
