"""
Tests for open_funding/graph/funding_flow.py

Builds the three-layer funding-flow DiGraph from in-memory funding lists and
checks edge amounts, shared-dependency detection and per-project balance.
"""

from decimal import Decimal

import networkx as nx

from open_funding.graph.funding_flow import (
    build_funding_flow_graph,
    dependency_node,
    flow_balance,
    list_node,
    project_node,
    shared_dependencies,
)


def test_graph_node_types(owner_lists):
    G = build_funding_flow_graph(owner_lists)
    assert isinstance(G, nx.DiGraph)
    types = nx.get_node_attributes(G, "node_type")
    assert types[list_node("l1")] == "FundingList"
    assert types[project_node("plutus")] == "Project"
    assert types[dependency_node("aiken")] == "Dependency"


def test_allocates_edges_carry_list_contribution(owner_lists):
    G = build_funding_flow_graph(owner_lists)
    assert G.edges[list_node("l1"), project_node("plutus")]["amount"] == Decimal("500")
    assert G.edges[list_node("l2"), project_node("plutus")]["amount"] == Decimal("100")
    assert G.edges[list_node("l1"), project_node("mesh")]["edge_type"] == "allocates"


def test_dependency_edges_and_total(owner_lists):
    G = build_funding_flow_graph(owner_lists)
    edge = G.edges[project_node("mesh"), dependency_node("cardano-serialization-lib")]
    assert edge["edge_type"] == "funds_dependency"
    assert edge["amount"] == Decimal("90")
    assert G.graph["total_allocation"] == Decimal("900")


def test_shared_dependencies(owner_lists):
    shared = shared_dependencies(build_funding_flow_graph(owner_lists))
    assert len(shared) == 1
    entry = shared[0]
    assert entry["name"] == "cardano-serialization-lib"
    assert entry["funders"] == ["Mesh", "Plutus"]
    assert entry["amount"] == Decimal("180")


def test_flow_balance_conserves(owner_lists, make_project, make_list):
    lists = owner_lists + [make_list("l3", "50", [(make_project("bare"), 100)])]
    balance = flow_balance(build_funding_flow_graph(lists))
    for entry in balance.values():
        assert entry["inflow"] == entry["retained"] + entry["outflow"] + entry["unallocated"]
    assert balance["plutus"]["inflow"] == Decimal("600")
    assert balance["plutus"]["unallocated"] == Decimal("0")
    assert balance["bare"]["unallocated"] == Decimal("15")


def test_empty_graph():
    G = build_funding_flow_graph([])
    assert G.number_of_nodes() == 0
    assert G.graph["total_allocation"] == Decimal("0")
    assert shared_dependencies(G) == []
