"""Tests for query options."""

from stackvault.application.repository import (
    FindOptions,
    PagingOptions,
    SortDirection,
    SortField,
)
from tests.fixtures.documents import utc


def test_no_predicates_build_empty_query():
    assert FindOptions().build_query(exclude_soft_deleted=False) == {}


def test_single_predicate_is_not_wrapped():
    options = FindOptions().with_filter({"signature_hash": "abc"})

    assert options.build_query(exclude_soft_deleted=False) == {"signature_hash": "abc"}


def test_soft_deleted_documents_are_excluded_unless_requested():
    options = FindOptions()

    assert options.build_query(exclude_soft_deleted=True) == {"is_deleted": {"$ne": True}}
    assert options.with_soft_deleted().build_query(exclude_soft_deleted=True) == {}


def test_every_predicate_is_combined():
    start, end = utc(2024, 1, 1), utc(2024, 2, 1)
    options = (
        FindOptions()
        .with_query({"type": "error"})
        .with_system_filter({"is_hidden": False})
        .with_filter({"tags": "web"})
        .with_ids(["s1", "s2"])
        .with_organization_id("org-1")
        .with_project_id("project-1")
        .with_date_range(start, end, "last_occurrence")
    )

    assert options.build_query(exclude_soft_deleted=True) == {
        "$and": [
            {"type": "error"},
            {"is_hidden": False},
            {"tags": "web"},
            {"id": {"$in": ["s1", "s2"]}},
            {"organization_id": {"$in": ["org-1"]}},
            {"project_id": {"$in": ["project-1"]}},
            {"last_occurrence": {"$gte": start, "$lte": end}},
            {"is_deleted": {"$ne": True}},
        ]
    }


def test_open_date_range():
    options = FindOptions().with_date_range(None, utc(2024, 1, 1), "date")

    assert options.build_query(exclude_soft_deleted=False) == {"date": {"$lte": utc(2024, 1, 1)}}
    assert FindOptions().with_date_range(None, None, "date").build_query(False) == {}


def test_limit_is_clamped():
    assert FindOptions().with_limit(5000).get_limit() == 1000
    assert FindOptions().with_limit(0).get_limit() == 1
    assert FindOptions().get_limit(default=25) == 25


def test_id_lookup_returns_every_id():
    options = FindOptions().with_ids([str(i) for i in range(40)])

    assert options.get_limit() == 40
    assert not options.use_limit


def test_paging():
    options = FindOptions().with_paging(PagingOptions(page=3, limit=20))

    assert options.use_limit
    assert options.get_limit() == 20
    assert options.get_skip() == 40


def test_without_paging_nothing_is_skipped():
    options = FindOptions().with_paging(None).with_limit(20)

    assert not options.use_paging
    assert options.get_skip() == 0


def test_empty_sort_field_is_ignored():
    options = FindOptions().with_sort(None).with_sort("").with_sort("date", SortDirection.DESC)

    assert options.sort_by == [SortField("date", SortDirection.DESC)]


def test_cache_key_enables_caching():
    assert not FindOptions().use_cache
    assert FindOptions().with_cache_key("recent").use_cache
