"""
Node types for grown trees and rules, plus leaf counting and text rendering.

A trained model is an immutable structure of frozen dataclasses:

- a tree is `LeafNode | TreeInternalNode`, where every internal node has
  both a left ("<") and a right (">=") successor;
- a rule is `LeafNode | RuleInternalNode`, a linked chain of conditions
  ending in a leaf. Rows failing any condition are not covered.
"""

from dataclasses import dataclass
from typing import List, Sequence, Union
import numpy as np


@dataclass(frozen=True)
class LeafNode:
    prediction: float


@dataclass(frozen=True)
class TreeInternalNode:
    """Binary test `x[attribute] < threshold` with the accepted split quality."""

    attribute: int
    threshold: float
    quality: float
    left: "TreeNode"
    right: "TreeNode"


@dataclass(frozen=True)
class RuleInternalNode:
    """
    One rule condition and the rest of the rule.

    `greater_equal` selects the condition `x[attribute] >= threshold`
    (True) or `x[attribute] < threshold` (False).
    """

    attribute: int
    threshold: float
    quality: float
    greater_equal: bool
    next: "RuleNode"


TreeNode = Union[LeafNode, TreeInternalNode]
RuleNode = Union[LeafNode, RuleInternalNode]
Node = Union[LeafNode, TreeInternalNode, RuleInternalNode]


def _unexpected(node) -> TypeError:
    return TypeError(f"Unexpected node type: {type(node).__name__}")


def count_leaves(node: Node) -> int:
    """Number of leaves; a rule always has exactly one."""
    if isinstance(node, LeafNode):
        return 1
    if isinstance(node, TreeInternalNode):
        return count_leaves(node.left) + count_leaves(node.right)
    if isinstance(node, RuleInternalNode):
        return count_leaves(node.next)
    raise _unexpected(node)


def depth(node: Node) -> int:
    """Length of the longest root-to-leaf path, counted in internal nodes."""
    if isinstance(node, LeafNode):
        return 0
    if isinstance(node, TreeInternalNode):
        return 1 + max(depth(node.left), depth(node.right))
    if isinstance(node, RuleInternalNode):
        return 1 + depth(node.next)
    raise _unexpected(node)


def format_number(value: float, num_decimal_places: int = 2) -> str:
    """Round to `num_decimal_places` and drop trailing zeros (2.50 -> 2.5, 1.00 -> 1)."""
    return np.format_float_positional(
        round(float(value), num_decimal_places), trim="-"
    )


def tree_to_string(
    node: TreeNode,
    feature_names: Sequence[str],
    num_decimal_places: int = 2
) -> str:
    """
    Render a tree with one line per branch, e.g.::

        x0 < 2.5: 1
        x0 >= 2.5: -1
    """
    lines: List[str] = []

    def branch(internal: TreeInternalNode, is_left: bool, level: int) -> None:
        name = feature_names[internal.attribute]
        op = " < " if is_left else " >= "
        text = "|   " * level + name + op + format_number(internal.threshold, num_decimal_places)
        child = internal.left if is_left else internal.right
        if isinstance(child, LeafNode):
            lines.append(text + ": " + format_number(child.prediction, num_decimal_places))
        elif isinstance(child, TreeInternalNode):
            lines.append(text)
            branch(child, True, level + 1)
            branch(child, False, level + 1)
        else:
            raise _unexpected(child)

    if isinstance(node, LeafNode):
        return ": " + format_number(node.prediction, num_decimal_places)
    if not isinstance(node, TreeInternalNode):
        raise _unexpected(node)
    branch(node, True, 0)
    branch(node, False, 0)
    return "\n".join(lines)


def rule_to_string(
    node: RuleNode,
    feature_names: Sequence[str],
    num_decimal_places: int = 2
) -> str:
    """Render a rule as ``if c1 and c2 ... then p`` (``if true then p`` when empty)."""
    conditions: List[str] = []
    while isinstance(node, RuleInternalNode):
        op = " >= " if node.greater_equal else " < "
        conditions.append(
            feature_names[node.attribute] + op + format_number(node.threshold, num_decimal_places)
        )
        node = node.next
    if not isinstance(node, LeafNode):
        raise _unexpected(node)
    body = " and ".join(conditions) if conditions else "true"
    return f"if {body} then {format_number(node.prediction, num_decimal_places)}"
