"""
open_funding/graph/funding_flow.py - NetworkX funding-flow graph.

Represents where an owner's monthly budget goes as a three-layer DiGraph:

    FundingList ──allocates──► Project ──funds_dependency──► Dependency

Edge 'amount' attributes are taken from the distribution calculator; the
graph never re-derives the arithmetic. Dependency nodes are keyed by name, so
a library used by several projects becomes a single node with several
funders, which is what shared_dependencies() reports.
"""

import logging
from decimal import Decimal
from typing import Iterable

import networkx as nx

from open_funding.config import DEFAULT_CONFIG, OpenFundingConfig
from open_funding.distribution.calculator import aggregate_project_allocations
from open_funding.models import FundingList

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


def list_node(list_id: str) -> str:
    return f"list:{list_id}"


def project_node(project_id: str) -> str:
    return f"project:{project_id}"


def dependency_node(name: str) -> str:
    return f"dependency:{name}"


def build_funding_flow_graph(
    lists: Iterable[FundingList],
    config: OpenFundingConfig = DEFAULT_CONFIG,
) -> nx.DiGraph:
    """
    Build the funding-flow graph for a set of funding lists.

    Node types and attributes:
        FundingList  node_type, name, owner_id
        Project      node_type, name, repository, retained (project share)
        Dependency   node_type, name

    Edge types:
        allocates:         FundingList → Project, amount = list contribution.
        funds_dependency:  Project → Dependency, amount = dependency allocation.

    Args:
        lists:  Funding lists to include.
        config: OpenFundingConfig, forwarded to the calculator.

    Returns:
        G: nx.DiGraph. G.graph['total_allocation'] holds the portfolio total.

    Raises:
        ValidationError: Propagated from the calculator on malformed numbers.
    """
    lists = list(lists)
    G = nx.DiGraph()

    # ── Layer 1: list → project contributions (one calculator pass per list) ─
    for funding_list in lists:
        lnode = list_node(funding_list.id)
        G.add_node(
            lnode,
            node_type="FundingList",
            name=funding_list.name,
            owner_id=funding_list.owner_id,
        )
        for view in aggregate_project_allocations([funding_list], config):
            pnode = project_node(view.project.id)
            if pnode not in G:
                G.add_node(
                    pnode,
                    node_type="Project",
                    name=view.project.name,
                    repository=view.project.repository,
                )
            G.add_edge(lnode, pnode, edge_type="allocates", amount=view.total_allocation)

    # ── Layer 2: project → dependency from the aggregated portfolio ─────────
    total = _ZERO
    for view in aggregate_project_allocations(lists, config):
        pnode = project_node(view.project.id)
        G.nodes[pnode]["retained"] = view.project_share
        total += view.total_allocation
        for dep in view.dependency_allocations:
            dnode = dependency_node(dep.name)
            if dnode not in G:
                G.add_node(dnode, node_type="Dependency", name=dep.name)
            if G.has_edge(pnode, dnode):
                # Same dependency listed twice by one project.
                G.edges[pnode, dnode]["amount"] += dep.amount
            else:
                G.add_edge(pnode, dnode, edge_type="funds_dependency", amount=dep.amount)

    G.graph["total_allocation"] = total
    logger.debug(
        "Funding-flow graph: %d nodes, %d edges.", G.number_of_nodes(), G.number_of_edges()
    )
    return G


def shared_dependencies(G: nx.DiGraph) -> list[dict]:
    """
    Dependencies funded by more than one project.

    Returns:
        [{name, funders, amount}] sorted by funder count, then amount, descending.
    """
    shared = []
    for node, data in G.nodes(data=True):
        if data.get("node_type") != "Dependency":
            continue
        funders = sorted(G.nodes[u]["name"] for u in G.predecessors(node))
        if len(funders) < 2:
            continue
        amount = sum((d["amount"] for _, _, d in G.in_edges(node, data=True)), _ZERO)
        shared.append({"name": data["name"], "funders": funders, "amount": amount})

    shared.sort(key=lambda s: (len(s["funders"]), s["amount"]), reverse=True)
    return shared


def flow_balance(G: nx.DiGraph) -> dict[str, dict[str, Decimal]]:
    """
    Inflow, outflow and retained share for every Project node.

    inflow == retained + outflow + unallocated for every project. unallocated
    is the dependency portion of a project whose dependencies are missing or
    all weighted zero; dependency funding is never extra spend.

    Returns:
        {project_id: {"inflow", "outflow", "retained", "unallocated"}}
    """
    balance: dict[str, dict[str, Decimal]] = {}
    for node, data in G.nodes(data=True):
        if data.get("node_type") != "Project":
            continue
        inflow = sum((d["amount"] for _, _, d in G.in_edges(node, data=True)), _ZERO)
        outflow = sum((d["amount"] for _, _, d in G.out_edges(node, data=True)), _ZERO)
        retained = data.get("retained", _ZERO)
        balance[node.split(":", 1)[1]] = {
            "inflow": inflow,
            "outflow": outflow,
            "retained": retained,
            "unallocated": inflow - retained - outflow,
        }
    return balance
