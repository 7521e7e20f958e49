"""Query Cost Limits - graphql-core validation rule capping query complexity.

Invariants:
    - 1 unit per field, 5 per inline fragment or fragment spread, summed
      over the whole operation (fragment bodies counted where spread)
    - Each fragment body is walked at most once per operation; its cost is
      reused at every further spread
    - With a limit, the walk stops as soon as the running total exceeds it,
      so the reported cost is then a lower bound
    - Fragment cycles never recurse forever
    - Exceeding the cap is a validation error; the query is never executed
"""

import math

from graphql import (
    FieldNode, FragmentDefinitionNode, FragmentSpreadNode, GraphQLError,
    InlineFragmentNode, OperationDefinitionNode, SelectionSetNode,
    ValidationRule,
)

FIELD_COST = 1
FRAGMENT_COST = 5


class _CostCounter:

    def __init__(self, fragments: dict[str, FragmentDefinitionNode]):
        self._fragments = fragments
        self._fragment_costs: dict[str, int] = {}
        self._expanding: set[str] = set()

    def cost(self, selection_set: SelectionSetNode | None, budget: float) -> int:
        if selection_set is None:
            return 0
        score = 0
        for sel in selection_set.selections:
            if isinstance(sel, FieldNode):
                score += FIELD_COST
                score += self.cost(sel.selection_set, budget - score)
            elif isinstance(sel, InlineFragmentNode):
                score += FRAGMENT_COST
                score += self.cost(sel.selection_set, budget - score)
            elif isinstance(sel, FragmentSpreadNode):
                score += FRAGMENT_COST
                score += self._fragment_cost(sel.name.value, budget - score)
            if score > budget:
                return score
        return score

    def _fragment_cost(self, name: str, budget: float) -> int:
        if name in self._fragment_costs:
            return self._fragment_costs[name]
        fragment = self._fragments.get(name)
        if fragment is None or name in self._expanding:
            return 0
        self._expanding.add(name)
        try:
            cost = self.cost(fragment.selection_set, budget)
        finally:
            self._expanding.discard(name)
        # a truncated cost already exceeds the whole operation's limit
        self._fragment_costs[name] = cost
        return cost


def selection_cost(
    selection_set: SelectionSetNode | None,
    fragments: dict[str, FragmentDefinitionNode],
    limit: int | None = None,
) -> int:
    budget = math.inf if limit is None else limit
    return _CostCounter(fragments).cost(selection_set, budget)


def max_complexity_rule(max_complexity: int) -> type[ValidationRule]:
    """Build a validation rule class rejecting operations above the cap."""

    class MaxComplexityRule(ValidationRule):
        def enter_operation_definition(
            self, node: OperationDefinitionNode, *_args,
        ) -> None:
            fragments = {
                defn.name.value: defn
                for defn in self.context.document.definitions
                if isinstance(defn, FragmentDefinitionNode)
            }
            cost = selection_cost(node.selection_set, fragments, max_complexity)
            if cost > max_complexity:
                self.report_error(GraphQLError(
                    f"Query complexity {cost} exceeds maximum "
                    f"allowed complexity {max_complexity}",
                    node,
                ))

    return MaxComplexityRule
