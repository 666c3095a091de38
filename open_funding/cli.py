"""
open_funding/cli.py - Command-line interface for Cardano Open Funding.

Works on a JSON export of funding lists (a list of funding-list objects, or
an object with a "lists" key), in the same shape the web front-end posts.

Usage:
    python -m open_funding summary lists.json --owner addr1...
    python -m open_funding report lists.json --owner addr1... --output-dir reports/
    python -m open_funding payouts lists.json --owner addr1... --balance 500
    python -m open_funding payouts lists.json --owner addr1... --utxos wallet_utxos.json
    python -m open_funding deps https://github.com/owner/repo

GITHUB_TOKEN and GITLAB_TOKEN are read from .env in the repo root (or the
path given by --env-file) before falling back to the environment.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from open_funding.validation import ValidationError

EXIT_VALIDATION_ERROR = 2


# ── Token file ────────────────────────────────────────────────────────────────

def _find_env_file() -> str | None:
    """Nearest .env at or above the checkout that holds this package."""
    checkout = Path(__file__).resolve().parent.parent
    for directory in (checkout, *checkout.parents):
        if (directory / ".env").is_file():
            return str(directory / ".env")
    return None


def _parse_env_line(line: str) -> tuple[str, str] | None:
    """Split one KEY=VALUE line; None for blanks, comments and junk."""
    line = line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    key, _, value = (part.strip() for part in line.partition("="))
    if value[:1] in ("'", '"') and len(value) >= 2 and value[-1] == value[0]:
        value = value[1:-1]
    return (key, value) if key else None


def _load_dotenv(env_file: str | None = None) -> dict[str, str]:
    """Export GITHUB_TOKEN, GITLAB_TOKEN and friends from a .env file.

    Variables already set in the process win over the file. Returns only
    the variables this call exported.
    """
    env_file = env_file or _find_env_file()
    if not env_file or not Path(env_file).is_file():
        return {}

    exported: dict[str, str] = {}
    with open(env_file, encoding="utf-8") as fh:
        for pair in filter(None, map(_parse_env_line, fh)):
            key, value = pair
            if key not in os.environ:
                os.environ[key] = exported[key] = value
    logger.debug("Exported %d variables from %s.", len(exported), env_file)
    return exported


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with timestamps, writing to stderr."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s  %(levelname)-8s  %(name)s - %(message)s"
    datefmt = "%H:%M:%S"
    logging.basicConfig(level=numeric, format=fmt, datefmt=datefmt, stream=sys.stderr)
    logging.getLogger("urllib.request").setLevel(logging.WARNING)


logger = logging.getLogger("open_funding.cli")


# ── Input ─────────────────────────────────────────────────────────────────────

def _load_lists(path: str, owner: str | None):
    """Parse funding lists from a JSON file, keeping only owner's lists if given."""
    from open_funding.validation import funding_list_from_dict

    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("lists", [])
    if not isinstance(data, list):
        raise ValidationError("expected a list of funding lists", "lists", type(data).__name__, path)

    lists = [funding_list_from_dict(item) for item in data]
    if owner:
        lists = [fl for fl in lists if fl.owner_id == owner]
    logger.info("Loaded %d funding lists from %s.", len(lists), path)
    return lists


def _prepare(args: argparse.Namespace) -> None:
    _load_dotenv(args.env_file)
    _setup_logging(args.log_level)


# ── Subcommand: summary ───────────────────────────────────────────────────────

def cmd_summary(args: argparse.Namespace) -> int:
    """Print the aggregated portfolio: per-project split and dependency totals."""
    _prepare(args)
    from open_funding.distribution.calculator import compute_portfolio, round_ada

    views, summary = compute_portfolio(_load_lists(args.lists_json, args.owner))

    print()
    print("=" * 60)
    print("  CARDANO OPEN FUNDING - PORTFOLIO")
    print("=" * 60)
    print(f"  Projects               : {summary.project_count}")
    print(f"  Monthly budget         : {round_ada(summary.total_monthly_budget)} ADA")
    print(f"  Avg. lists per project : {round_ada(summary.average_lists_per_project, 1)}")
    print()
    for view in views:
        print(
            f"  {view.project.name:<28} {round_ada(view.total_allocation):>12} ADA"
            f"  ({view.usage_count} {'list' if view.usage_count == 1 else 'lists'})"
        )
        print(f"    project share        : {round_ada(view.project_share)} ADA")
        for dep in view.dependency_allocations:
            print(f"    -> {dep.name:<20}: {round_ada(dep.amount)} ADA")
    if summary.dependencies:
        print()
        print("  Dependency totals:")
        for dep in summary.dependencies:
            print(f"    {dep.name:<28} {round_ada(dep.amount):>12} ADA")
    print("=" * 60)
    return 0


# ── Subcommand: report ────────────────────────────────────────────────────────

def cmd_report(args: argparse.Namespace) -> int:
    """Write a Markdown portfolio report and a JSON snapshot for one owner."""
    _prepare(args)
    from open_funding.reports.portfolio_report import (
        build_portfolio_snapshot,
        export_portfolio_markdown,
        save_snapshot,
    )

    lists = _load_lists(args.lists_json, args.owner)
    snapshot, views, summary = build_portfolio_snapshot(args.owner, lists)

    json_path = save_snapshot(snapshot, args.output_dir)
    md_path = os.path.join(args.output_dir, f"{snapshot.snapshot_date}_{args.owner[:16]}.md")
    export_portfolio_markdown(snapshot, views, summary, output_path=md_path)

    print()
    print("=" * 60)
    print("  PORTFOLIO REPORT COMPLETE")
    print("=" * 60)
    print(f"  {snapshot.narrative}")
    print()
    print(f"  Report   : {md_path}")
    print(f"  Snapshot : {json_path or 'not written (see log)'}")
    print("=" * 60)
    return 0


# ── Subcommand: payouts ───────────────────────────────────────────────────────

def cmd_payouts(args: argparse.Namespace) -> int:
    """Print multi-recipient wallet outputs as JSON, optionally checking the wallet can cover them."""
    _prepare(args)
    from open_funding.distribution.calculator import compute_portfolio, round_ada
    from open_funding.distribution.payouts import (
        build_payout_plan,
        check_balance,
        to_wallet_outputs,
        wallet_balance,
    )
    from open_funding.validation import parse_amount

    views, _ = compute_portfolio(_load_lists(args.lists_json, args.owner))
    plan = build_payout_plan(views)
    if args.utxos is not None:
        with open(args.utxos, encoding="utf-8") as fh:
            check_balance(plan, wallet_balance(json.load(fh)))
    elif args.balance is not None:
        check_balance(plan, parse_amount(args.balance, "balance", "--balance"))

    print(
        json.dumps(
            {
                "outputs": to_wallet_outputs(plan),
                "total_lovelace": plan.total_lovelace,
                "unassigned": {k: str(round_ada(v)) for k, v in plan.unassigned.items()},
                "below_minimum": plan.below_minimum,
            },
            indent=2,
        )
    )
    return 0


# ── Subcommand: deps ──────────────────────────────────────────────────────────

def cmd_deps(args: argparse.Namespace) -> int:
    """Scrape a repository's dependency manifest, contributors and funding file."""
    _prepare(args)
    from open_funding.ingestion.repo_client import (
        RepositoryHostClient,
        dependencies_with_uniform_weights,
        parse_repository_url,
    )

    ref = parse_repository_url(args.repo_url)
    if ref is None:
        raise ValidationError(f"not a repository URL: {args.repo_url!r}", "repo_url", args.repo_url)

    client = RepositoryHostClient(
        github_token=os.environ.get("GITHUB_TOKEN"),
        gitlab_token=os.environ.get("GITLAB_TOKEN"),
    )
    dependencies = dependencies_with_uniform_weights(client.get_dependencies(ref))
    contributors = client.get_contributors(ref)
    funding = client.get_funding_info(ref)

    print()
    print("=" * 60)
    print(f"  {ref.platform.upper()}  {ref.path}")
    print("=" * 60)
    print(f"  Dependencies ({len(dependencies)}):")
    for dep in dependencies:
        print(f"    {dep.name:<28} weight {dep.weight}")
    print(f"  Contributors ({len(contributors)}):")
    for c in contributors:
        print(f"    {c.name:<24} {c.percentage}%  {c.cardano_address}")
    print(f"  Funding address : {funding.funding_address or 'none'}")
    if funding.maintainers:
        print(f"  Maintainers     : {', '.join(funding.maintainers)}")
    print("=" * 60)
    return 0


# ── Argument parser ───────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="open-funding",
        description=(
            "Cardano Open Funding - aggregated funding distribution for open source.\n"
            "Reads GITHUB_TOKEN / GITLAB_TOKEN from .env automatically."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Aggregated portfolio for one wallet
  python -m open_funding summary lists.json --owner addr1...

  # Markdown report + JSON snapshot
  python -m open_funding report lists.json --owner addr1... --output-dir reports/

  # Wallet outputs, refusing if the balance is too low
  python -m open_funding payouts lists.json --owner addr1... --balance 500
  python -m open_funding payouts lists.json --owner addr1... --utxos wallet_utxos.json

  # Dependencies and contributors of a repository
  python -m open_funding deps https://github.com/Emurgo/cardano-serialization-lib
        """,
    )

    # Global flags
    parser.add_argument(
        "--env-file",
        default=None,
        metavar="PATH",
        help="Path to .env file (default: auto-detect .env in repo root)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    def add_lists_args(p: argparse.ArgumentParser, owner_required: bool = False) -> None:
        p.add_argument("lists_json", metavar="LISTS_JSON", help="Path to funding lists JSON")
        p.add_argument(
            "--owner",
            default=None,
            required=owner_required,
            metavar="ID",
            help="Only include lists owned by this wallet address",
        )

    # summary
    p_summary = subparsers.add_parser("summary", help="Print the aggregated portfolio")
    add_lists_args(p_summary)
    p_summary.set_defaults(func=cmd_summary)

    # report
    p_report = subparsers.add_parser("report", help="Write Markdown report + JSON snapshot")
    add_lists_args(p_report, owner_required=True)
    p_report.add_argument(
        "--output-dir",
        default="reports",
        metavar="DIR",
        help="Directory for the report files (default: reports/)",
    )
    p_report.set_defaults(func=cmd_report)

    # payouts
    p_payouts = subparsers.add_parser("payouts", help="Print wallet outputs as JSON")
    add_lists_args(p_payouts)
    p_payouts.add_argument(
        "--balance",
        default=None,
        metavar="ADA",
        help="Wallet balance in ADA; exit with an error if it does not cover the payout",
    )
    p_payouts.add_argument(
        "--utxos",
        default=None,
        metavar="PATH",
        help="JSON dump of the wallet's UTxOs; the balance is summed from it (overrides --balance)",
    )
    p_payouts.set_defaults(func=cmd_payouts)

    # deps
    p_deps = subparsers.add_parser("deps", help="Scrape a repository's dependencies")
    p_deps.add_argument("repo_url", metavar="REPO_URL", help="GitHub or GitLab repository URL")
    p_deps.set_defaults(func=cmd_deps)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR


if __name__ == "__main__":
    sys.exit(main())
