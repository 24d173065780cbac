# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Validation

Advisory checks run when a workflow is saved. The executor never refuses to
run a graph; anomalies found here are returned as warnings.
"""

from typing import List, Set, Dict
from collections import deque

from .models import NodeType, WorkflowDefinition
from .templates import sanitize_node_id
from .exceptions import WorkflowValidationError


def validate_workflow(workflow_def: WorkflowDefinition) -> List[str]:
    """
    Validate workflow structure.

    Returns a list of human-readable warnings.

    Raises WorkflowValidationError for duplicate node IDs, which would make
    the graph ambiguous.
    """
    warnings: List[str] = []

    # 1. Duplicate node IDs
    node_ids = [node.id for node in workflow_def.nodes]
    if len(node_ids) != len(set(node_ids)):
        duplicates = sorted({nid for nid in node_ids if node_ids.count(nid) > 1})
        raise WorkflowValidationError(f"Duplicate node IDs found: {duplicates}", field="nodes")

    # 2. Edges referencing missing nodes
    node_id_set = set(node_ids)
    for edge in workflow_def.edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in node_id_set:
                warnings.append(f"Edge {edge.id} references non-existent node: {endpoint}")

    # 3. Ids that collide once sanitized share one outputs slot
    by_key: Dict[str, List[str]] = {}
    for nid in node_ids:
        by_key.setdefault(sanitize_node_id(nid), []).append(nid)
    for key, ids in by_key.items():
        if len(ids) > 1:
            warnings.append(f"Node IDs {ids} collide as template key {key}; only one output is referenceable")

    # 4. Trigger roots
    targets = {edge.target for edge in workflow_def.edges}
    roots = [
        node for node in workflow_def.nodes
        if node.type == NodeType.TRIGGER.value and node.id not in targets
    ]
    if workflow_def.nodes and not roots:
        warnings.append("Workflow has no trigger node without incoming edges; nothing will run")

    # 5. Action configuration
    for node in workflow_def.nodes:
        if node.type == NodeType.ACTION.value and not node.action_type:
            warnings.append(f'Action node "{node.label or node.id}" has no action type configured')
        elif node.type not in (NodeType.TRIGGER.value, NodeType.ACTION.value):
            warnings.append(f"Unknown node type: {node.type} (node {node.id})")

    # 6. Cycles
    cyclic = find_cycle_nodes(workflow_def)
    if cyclic:
        warnings.append(
            f"Cycle detected involving nodes: {sorted(cyclic)}; each node still runs at most once"
        )

    return warnings


def find_cycle_nodes(workflow_def: WorkflowDefinition) -> Set[str]:
    """
    Nodes left over after Kahn's algorithm, i.e. nodes on or behind a cycle.

    Edges to unknown nodes are ignored.
    """
    graph: Dict[str, List[str]] = {node.id: [] for node in workflow_def.nodes}
    in_degree: Dict[str, int] = {node.id: 0 for node in workflow_def.nodes}

    for edge in workflow_def.edges:
        if edge.source not in graph or edge.target not in graph:
            continue
        graph[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque([node_id for node_id, degree in in_degree.items() if degree == 0])
    processed: Set[str] = set()

    while queue:
        node_id = queue.popleft()
        processed.add(node_id)

        # Reduce in-degree for neighbors
        for neighbor in graph[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return set(graph) - processed
