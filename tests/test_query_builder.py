"""
Tests for the search query builder.

Statements are compiled with the PostgreSQL dialect; no database required.

Covers:
    - Fixed predicate order pubkey → kind → tags for every filter subset
    - Omitted filters contribute no clause; the ranked query always
      requires a non-null embedding, the count query filters only
    - User values only ever appear as bound parameters
    - One shared query_vector parameter in projection and ORDER BY
    - Count query: same WHERE, no vector term, no limit/offset
"""

from itertools import combinations

import pytest
from pydantic import ValidationError
from sqlalchemy.dialects import postgresql

from nostr_search.schemas import SearchFilters, TagFilters
from nostr_search.search.query_builder import (
    QUERY_VECTOR_PARAM,
    KindEquals,
    PubkeyEquals,
    TagsContain,
    build_search_query,
    build_similar_query,
    predicate_clause,
    predicates_from_filters,
)

VECTOR = [0.1, 0.2, 0.3]

# Clause fragment per filter name, in required SQL order
_FRAGMENTS = {
    "pubkey": "events.pubkey =",
    "kind": "events.kind =",
    "tags": "events.tags @>",
}
_EMBEDDED = "events.embedding IS NOT NULL"
_FILTER_VALUES = {
    "pubkey": "p1",
    "kind": 1,
    "tags": TagFilters(exact={"t": "v"}),
}


def _compile(stmt):
    compiled = stmt.compile(dialect=postgresql.dialect())
    return str(compiled), compiled.params


def _filters(*names) -> SearchFilters:
    return SearchFilters(**{name: _FILTER_VALUES[name] for name in names})


def _where_part(sql: str) -> str:
    if "WHERE" not in sql:
        return ""
    tail = sql.split("WHERE", 1)[1]
    return tail.split("ORDER BY", 1)[0]


_ALL_SUBSETS = [
    subset
    for size in range(0, 4)
    for subset in combinations(["pubkey", "kind", "tags"], size)
]


# ── Predicate list ───────────────────────────────────────────────────────────


class TestPredicatesFromFilters:
    def test_none_filters_yield_no_predicates(self):
        assert predicates_from_filters(None) == []

    def test_empty_filters_yield_no_predicates(self):
        assert predicates_from_filters(SearchFilters()) == []

    def test_all_filters_in_fixed_order(self):
        filters = SearchFilters(
            tags=TagFilters(exact={"t": "v"}),
            kind=1,
            pubkey="p1",
        )
        assert predicates_from_filters(filters) == [
            PubkeyEquals("p1"),
            KindEquals(1),
            TagsContain({"t": "v"}),
        ]

    def test_tags_without_exact_contributes_nothing(self):
        filters = SearchFilters(tags=TagFilters())
        assert predicates_from_filters(filters) == []

    def test_kind_zero_is_a_present_filter(self):
        assert predicates_from_filters(SearchFilters(kind=0)) == [KindEquals(0)]

    def test_unknown_tag_filter_rejected(self):
        with pytest.raises(ValidationError):
            SearchFilters.model_validate({"tags": {"any": ["t"]}})

    def test_unknown_filter_rejected(self):
        with pytest.raises(ValidationError):
            SearchFilters.model_validate({"author": "p1"})

    def test_unsupported_predicate_type_raises(self):
        with pytest.raises(TypeError):
            predicate_clause(object())


# ── WHERE composition ────────────────────────────────────────────────────────


class TestWhereComposition:
    def test_no_filters_ranks_only_embedded_rows(self):
        built = build_search_query(None, VECTOR, 10, 0)
        sql, _ = _compile(built.statement)
        count_sql, _ = _compile(built.count_statement)

        assert _where_part(sql).strip() == _EMBEDDED
        assert "WHERE" not in count_sql

    @pytest.mark.parametrize("subset", _ALL_SUBSETS, ids=lambda s: "+".join(s) or "none")
    def test_embedding_guard_follows_filters(self, subset):
        built = build_search_query(_filters(*subset), VECTOR, 10, 0)
        where = _where_part(_compile(built.statement)[0])

        assert where.strip().endswith(_EMBEDDED)
        assert where.count(_EMBEDDED) == 1
        assert _EMBEDDED not in _compile(built.count_statement)[0]

    @pytest.mark.parametrize("subset", _ALL_SUBSETS, ids=lambda s: "+".join(s) or "none")
    def test_predicate_order_for_every_subset(self, subset):
        built = build_search_query(_filters(*subset), VECTOR, 10, 0)

        for stmt, guards in ((built.statement, 1), (built.count_statement, 0)):
            sql, _ = _compile(stmt)
            where = _where_part(sql)

            positions = [where.find(_FRAGMENTS[name]) for name in subset]
            assert all(p >= 0 for p in positions)
            assert positions == sorted(positions)

            for name in {"pubkey", "kind", "tags"} - set(subset):
                assert _FRAGMENTS[name] not in sql

            clauses = len(subset) + guards
            assert sql.count("WHERE") == (1 if clauses else 0)
            assert where.count(" AND ") == max(clauses - 1, 0)

    def test_identical_filter_sets_render_identical_sql(self):
        first = build_search_query(
            SearchFilters(pubkey="alice", kind=1, tags=TagFilters(exact={"t": "a"})),
            VECTOR, 10, 0,
        )
        second = build_search_query(
            SearchFilters(tags=TagFilters(exact={"x": "y"}), kind=7, pubkey="bob"),
            [0.9, 0.8, 0.7], 25, 50,
        )
        assert _compile(first.statement)[0] == _compile(second.statement)[0]
        assert _compile(first.count_statement)[0] == _compile(second.count_statement)[0]


# ── Parameter binding ────────────────────────────────────────────────────────


class TestBoundParameters:
    def test_values_are_bound_not_interpolated(self):
        hostile = "p1'; DROP TABLE events; --"
        built = build_search_query(
            SearchFilters(pubkey=hostile, tags=TagFilters(exact={"t": "'; --"})),
            VECTOR, 10, 0,
        )
        for stmt in (built.statement, built.count_statement):
            sql, params = _compile(stmt)
            assert "DROP TABLE" not in sql
            assert hostile in params.values()
            assert {"t": "'; --"} in params.values()

    def test_query_vector_is_one_shared_parameter(self):
        built = build_search_query(None, VECTOR, 10, 0)
        sql, params = _compile(built.statement)

        placeholder = f"%({QUERY_VECTOR_PARAM})s"
        assert sql.count(placeholder) == 2
        assert params[QUERY_VECTOR_PARAM] == VECTOR

    def test_similarity_and_order_use_cosine_distance(self):
        built = build_search_query(None, VECTOR, 10, 0)
        sql, _ = _compile(built.statement)

        assert f"1 - (events.embedding <=> %({QUERY_VECTOR_PARAM})s) AS similarity" in sql
        order_by = sql.split("ORDER BY", 1)[1]
        assert f"events.embedding <=> %({QUERY_VECTOR_PARAM})s" in order_by
        assert "ASC" in order_by

    def test_limit_and_offset_passed_through_unvalidated(self):
        built = build_search_query(None, VECTOR, -1, -5)
        sql, params = _compile(built.statement)

        assert "LIMIT" in sql and "OFFSET" in sql
        assert -1 in params.values()
        assert -5 in params.values()
        assert built.limit == -1
        assert built.offset == -5

    def test_vector_values_coerced_to_float(self):
        built = build_search_query(None, [1, 0, 0], 10, 0)
        assert built.query_vector == [1.0, 0.0, 0.0]
        assert all(isinstance(v, float) for v in built.query_vector)


# ── Count statement ──────────────────────────────────────────────────────────


class TestCountStatement:
    def test_count_has_no_vector_or_pagination(self):
        built = build_search_query(_filters("pubkey", "kind"), VECTOR, 10, 20)
        sql, params = _compile(built.count_statement)

        assert sql.startswith("SELECT count(*)")
        assert "<=>" not in sql
        assert "LIMIT" not in sql
        assert "OFFSET" not in sql
        assert "ORDER BY" not in sql
        assert QUERY_VECTOR_PARAM not in params

    def test_count_where_matches_ranked_where(self):
        built = build_search_query(_filters("pubkey", "kind", "tags"), VECTOR, 10, 0)
        ranked_sql, ranked_params = _compile(built.statement)
        count_sql, count_params = _compile(built.count_statement)

        assert _where_part(ranked_sql).strip() == (
            _where_part(count_sql).strip() + " AND " + _EMBEDDED
        )
        for key, value in count_params.items():
            assert ranked_params[key] == value

    def test_count_independent_of_pagination(self):
        first = build_search_query(_filters("pubkey"), VECTOR, 10, 0)
        second = build_search_query(_filters("pubkey"), VECTOR, 2, 40)

        assert _compile(first.count_statement) == _compile(second.count_statement)


# ── Similar-events statement ─────────────────────────────────────────────────


class TestSimilarQuery:
    def test_excludes_reference_and_unembedded_rows(self):
        sql, params = _compile(build_similar_query("e1", 5))

        assert "events.id !=" in sql
        assert "events.embedding IS NOT NULL" in sql
        assert "<=> (SELECT events_1.embedding" in sql
        assert "FROM events AS events_1" in sql
        assert "e1" in params.values()
        assert 5 in params.values()
