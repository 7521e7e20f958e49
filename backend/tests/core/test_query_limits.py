"""Query Cost Limits - complexity scoring and the validation rule."""

import time

from graphql import build_schema, parse, validate

from app.core.query_limits import max_complexity_rule, selection_cost

SCHEMA = build_schema("""
    type Query { tables: [Table!]!  version: String }
    type Table { name: String!  columns: [Column!]! }
    type Column { name: String!  type: String! }
""")


def _cost(query: str) -> int:
    doc = parse(query)
    fragments = {
        d.name.value: d for d in doc.definitions
        if d.kind == "fragment_definition"
    }
    op = next(d for d in doc.definitions if d.kind == "operation_definition")
    return selection_cost(op.selection_set, fragments)


def test_each_field_costs_one():
    assert _cost("{ version }") == 1
    assert _cost("{ tables { name columns { name type } } }") == 5


def test_fragments_cost_five_plus_their_fields():
    assert _cost("{ tables { ...T } } fragment T on Table { name }") == 7
    assert _cost("{ tables { ... on Table { name } } }") == 7


def test_rule_rejects_operations_above_cap():
    rule = max_complexity_rule(3)
    errors = validate(SCHEMA, parse("{ tables { name columns { name } } }"), [rule])
    assert len(errors) == 1
    assert "complexity 4 exceeds maximum allowed complexity 3" in errors[0].message


def test_rule_accepts_operations_at_cap():
    rule = max_complexity_rule(4)
    assert validate(SCHEMA, parse("{ tables { name columns { name } } }"), [rule]) == []


def _doubling_fragment_chain(levels: int) -> str:
    """Each fragment spreads the next one twice: 2**levels expansions."""
    fragments = [
        f"fragment F{i} on Table {{ ...F{i + 1} ...F{i + 1} }}"
        for i in range(levels - 1)
    ]
    fragments.append(f"fragment F{levels - 1} on Table {{ name }}")
    return "{ tables { ...F0 } } " + " ".join(fragments)


def test_fragment_costs_are_reused_across_spreads():
    started = time.perf_counter()
    cost = _cost(_doubling_fragment_chain(40))
    assert time.perf_counter() - started < 1.0
    assert cost > 10 ** 12


def test_rule_rejects_fragment_explosion_without_expanding_it():
    rule = max_complexity_rule(1000)
    started = time.perf_counter()
    errors = validate(SCHEMA, parse(_doubling_fragment_chain(40)), [rule])
    assert time.perf_counter() - started < 1.0
    assert len(errors) == 1
    assert "exceeds maximum allowed complexity 1000" in errors[0].message


def test_limit_stops_the_walk_early():
    query = "{ tables { name columns { name type } } version }"
    assert _cost(query) == 6
    doc = parse(query)
    op = doc.definitions[0]
    partial = selection_cost(op.selection_set, {}, limit=2)
    assert 2 < partial < 6


def test_fragment_cycles_terminate():
    query = (
        "{ tables { ...A } } "
        "fragment A on Table { name ...B } "
        "fragment B on Table { name ...A }"
    )
    assert _cost(query) == 1 + 5 + 1 + 5 + 1 + 5
