import json
import random

import pytest

from gateway import SchemaError, ValidationError
from gateway.filters import QueryParams, build_sorts, compose_filter, parse_availability
from gateway.schema import classify_properties
from helpers.fake_store import schema
from helpers.world import records_schema

_KINDS = ("title", "rich_text", "relation", "rollup", "status", "select", "number", "formula")
_NAMES = ("Owner", "Artist", "Gig", "Venue", "Event", "Status", "Summary", "Notes", "Total")


def _random_schema(rng: random.Random):
    properties = {}
    for name in rng.sample(_NAMES, rng.randint(1, len(_NAMES))):
        kind = rng.choice(_KINDS)
        properties[name] = {"name": name, "type": kind, kind: {}}
    if not any(p["type"] in ("relation", "rollup") for p in properties.values()):
        kind = rng.choice(("relation", "rollup"))
        properties["Link"] = {"name": "Link", "type": kind, kind: {}}
    return properties


def _ownership_clauses(tree):
    found = []
    if isinstance(tree, dict):
        if "relation" in tree and "property" in tree:
            found.append(("relation", tree))
        if "rollup" in tree and "property" in tree and "relation" in json.dumps(tree["rollup"]):
            found.append(("rollup", tree))
        for key in ("and", "or"):
            for item in tree.get(key, []):
                found.extend(_ownership_clauses(item))
    return found


@pytest.mark.parametrize("seed", range(40))
def test_exactly_one_ownership_shape_follows_the_introspected_kind(seed: int) -> None:
    rng = random.Random(seed)
    roles = classify_properties(_random_schema(rng))

    tree = compose_filter(roles, "owner-1", QueryParams(q="jazz"), hidden_statuses=("Draft",))

    clauses = _ownership_clauses(tree)
    assert len(clauses) == 1
    shape, clause = clauses[0]
    assert shape == roles.ownership.kind
    assert clause["property"] == roles.ownership.name
    assert tree["and"][0] is clause


def test_rollup_ownership_emits_rollup_any_relation_contains() -> None:
    roles = classify_properties(schema(Gig="title", Owner="rollup"))

    tree = compose_filter(roles, "owner-7", QueryParams())

    assert tree == {
        "and": [{"property": "Owner", "rollup": {"any": {"relation": {"contains": "owner-7"}}}}]
    }


def test_forced_ownership_kind_overrides_the_introspected_one() -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation"))

    tree = compose_filter(roles, "owner-7", QueryParams(), ownership_kind="rollup")

    assert "rollup" in tree["and"][0]
    assert "relation" not in tree["and"][0]


def test_hidden_statuses_become_one_does_not_equal_clause_each() -> None:
    roles = classify_properties(records_schema())

    tree = compose_filter(roles, "o", QueryParams(), hidden_statuses=("Draft", "Archived"))

    assert tree["and"][1:] == [
        {"property": "Status", "status": {"does_not_equal": "Draft"}},
        {"property": "Status", "status": {"does_not_equal": "Archived"}},
    ]


def test_include_hidden_and_select_status_shape() -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation", Status="select"))

    hidden = compose_filter(roles, "o", QueryParams(status="Requested"), hidden_statuses=("Draft",))
    shown = compose_filter(
        roles, "o", QueryParams(include_hidden=True), hidden_statuses=("Draft",)
    )

    assert hidden["and"][1] == {"property": "Status", "select": {"does_not_equal": "Draft"}}
    assert hidden["and"][2] == {"property": "Status", "select": {"equals": "Requested"}}
    assert shown == {"and": [{"property": "Owner", "relation": {"contains": "o"}}]}


def test_status_all_sentinel_adds_no_clause() -> None:
    roles = classify_properties(records_schema())
    tree = compose_filter(roles, "o", QueryParams(status="all"))
    assert len(tree["and"]) == 1


def test_no_visibility_clause_without_a_status_property() -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation"))
    tree = compose_filter(roles, "o", QueryParams(), hidden_statuses=("Draft",))
    assert len(tree["and"]) == 1


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("select", {"select": {"equals": "Yes"}}),
        ("status", {"status": {"equals": "Yes"}}),
        ("rich_text", {"rich_text": {"equals": "Yes"}}),
        ("formula", {"formula": {"string": {"equals": "Yes"}}}),
        ("rollup", {"rollup": {"any": {"select": {"equals": "Yes"}}}}),
    ],
)
def test_availability_clause_matches_the_property_kind(kind: str, expected) -> None:
    roles = classify_properties(
        {
            "Owner": {"type": "relation", "relation": {}},
            "Availability": {"type": kind, kind: {}},
        }
    )

    tree = compose_filter(roles, "o", QueryParams(availability="yes"))

    assert tree["and"][-1] == {"property": "Availability", **expected}


def test_availability_vocabulary() -> None:
    assert parse_availability("YES") == "Yes"
    assert parse_availability("other") == "Other"
    assert parse_availability("all") is None
    assert parse_availability("") is None
    with pytest.raises(ValidationError):
        parse_availability("maybe")
    with pytest.raises(ValidationError):
        parse_availability("all", allow_all=False)


def test_invalid_availability_is_rejected_by_the_compositor() -> None:
    roles = classify_properties(records_schema())
    with pytest.raises(ValidationError) as excinfo:
        compose_filter(roles, "o", QueryParams(availability="perhaps"))
    assert excinfo.value.status_code == 400


def test_filters_on_missing_roles_raise_schema_errors() -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation"))
    with pytest.raises(SchemaError):
        compose_filter(roles, "o", QueryParams(status="Requested"))
    with pytest.raises(SchemaError):
        compose_filter(roles, "o", QueryParams(availability="no"))


def test_free_text_searches_title_and_summary() -> None:
    roles = classify_properties(records_schema())

    tree = compose_filter(roles, "o", QueryParams(q="  berlin "))

    assert tree["and"][-1] == {
        "or": [
            {"property": "Gig", "title": {"contains": "berlin"}},
            {"property": "Summary", "rich_text": {"contains": "berlin"}},
        ]
    }


def test_free_text_without_summary_uses_only_the_title() -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation"))
    tree = compose_filter(roles, "o", QueryParams(q="berlin"))
    assert tree["and"][-1] == {"property": "Gig", "title": {"contains": "berlin"}}


def test_sorts() -> None:
    roles = classify_properties(records_schema())
    assert build_sorts("", roles) == []
    assert build_sorts("title_asc", roles) == [{"property": "Gig", "direction": "ascending"}]
    assert build_sorts("gig_desc", roles) == [{"property": "Gig", "direction": "descending"}]
    assert build_sorts("recency", roles) == [
        {"timestamp": "last_edited_time", "direction": "descending"}
    ]
    with pytest.raises(ValidationError):
        build_sorts("random", roles)


@pytest.mark.parametrize("summary_kind", ["rollup", "formula"])
def test_free_text_skips_summaries_of_unconfirmed_inner_kind(summary_kind: str) -> None:
    roles = classify_properties(schema(Gig="title", Owner="relation", Summary=summary_kind))
    assert roles.summary.kind == summary_kind

    tree = compose_filter(roles, "o", QueryParams(q="berlin"))

    assert tree["and"][-1] == {"property": "Gig", "title": {"contains": "berlin"}}
    assert summary_kind not in json.dumps(tree)


def test_free_text_without_any_searchable_property_adds_no_clause() -> None:
    roles = classify_properties(schema(Owner="relation", Summary="rollup"))
    tree = compose_filter(roles, "o", QueryParams(q="berlin"))
    assert tree == {"and": [{"property": "Owner", "relation": {"contains": "o"}}]}
