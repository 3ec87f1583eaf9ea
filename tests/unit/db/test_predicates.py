"""Tests for tenant predicate injection."""

import pytest

from tenantstore.core.errors import MissingPlaceholderError
from tenantstore.db.predicates import append_site_ulid, is_site_scoped, site_filter

SITE = "01HZXQ8M3V7K2Y5R9T4B6N0C1D"


@pytest.mark.unit
class TestAppendSiteUlid:
    """Rewriting $SITEULID placeholders."""

    def test_bare_placeholder_gets_next_position(self) -> None:
        where, args = append_site_ulid(SITE, "where status = $1 and $SITEULID", "open")

        assert where == "where status = $1 and  site_ulid = $2"
        assert args == ["open", SITE]

    def test_placeholder_with_no_prior_args(self) -> None:
        where, args = append_site_ulid(SITE, "where $SITEULID")

        assert where == "where  site_ulid = $1"
        assert args == [SITE]

    def test_table_qualified_placeholder(self) -> None:
        where, args = append_site_ulid(
            SITE, "where p.status = $1 and p.kind = $2 p.$SITEULID", "open", "job"
        )

        assert where == "where p.status = $1 and p.kind = $2  and p.site_ulid = $3"
        assert args == ["open", "job", SITE]

    def test_exactly_one_predicate_and_one_new_argument(self) -> None:
        original_args = (1, 2, 3)
        where, args = append_site_ulid(
            SITE, "where a = $1 and b = $2 and c = $3 and $SITEULID", *original_args
        )

        assert where.count("site_ulid = $") == 1
        assert len(args) == len(original_args) + 1
        assert args[3] == SITE
        assert where.endswith("site_ulid = $4")

    def test_already_scoped_clause_is_returned_unchanged(self) -> None:
        clause = "where status = $1 and site_ulid = $2"

        where, args = append_site_ulid(SITE, clause, "open", SITE)

        assert where == clause
        assert args == ["open", SITE]

    @pytest.mark.parametrize(
        "clause",
        [
            "where $SITEULID",
            "where x = $1 $SITEULID",
            "where x = $1 t.$SITEULID",
        ],
    )
    def test_rewriting_own_output_is_idempotent(self, clause: str) -> None:
        args_in = ["x"] if "$1" in clause else []
        first_where, first_args = append_site_ulid(SITE, clause, *args_in)

        second_where, second_args = append_site_ulid(SITE, first_where, *first_args)

        assert second_where == first_where
        assert second_args == first_args

    def test_missing_placeholder_raises_with_clause(self) -> None:
        with pytest.raises(MissingPlaceholderError) as exc_info:
            append_site_ulid(SITE, "where status = $1", "open")

        assert exc_info.value.clause == "where status = $1"
        assert "No $SITEULID placeholder defined in where status = $1" in str(exc_info.value)

    def test_missing_placeholder_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            append_site_ulid(SITE, "")

    def test_custom_column(self) -> None:
        where, args = append_site_ulid(SITE, "where $SITEULID", column="tenant_id")

        assert where == "where  tenant_id = $1"
        assert args == [SITE]

    def test_input_args_are_not_mutated(self) -> None:
        original = ["open"]

        append_site_ulid(SITE, "where status = $1 and $SITEULID", *original)

        assert original == ["open"]


@pytest.mark.unit
class TestScopeDetection:
    """Recognising finished predicates."""

    @pytest.mark.parametrize(
        ("clause", "expected"),
        [
            ("where site_ulid = $1", True),
            ("where p.site_ulid = $4", True),
            ("site_ulid = $1", True),
            ("where other_site_ulid = $1", False),
            ("where site_ulid = 'abc'", False),
            ("where $SITEULID", False),
        ],
    )
    def test_is_site_scoped(self, clause: str, expected: bool) -> None:
        assert is_site_scoped(clause) is expected


@pytest.mark.unit
def test_site_filter_builds_structured_fragment() -> None:
    fragment, args = site_filter(SITE, "open", alias="p")

    assert fragment == "p.site_ulid = $2"
    assert args == ["open", SITE]


@pytest.mark.unit
def test_site_filter_without_alias() -> None:
    fragment, args = site_filter(SITE)

    assert fragment == "site_ulid = $1"
    assert args == [SITE]
