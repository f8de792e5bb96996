from datetime import date
from threading import Event

import pytest

from taskboard.errors import OperationCancelled
from taskboard.models import Priority, SortField, SortOrder
from taskboard.query import TaskQuery, build_query, run_query

from .factories import make_task, titles


def seed_mixed():
    return [
        make_task("Low home", 1, Priority.LOW, tags=["home"]),
        make_task("Med work", 2, Priority.MED, tags=["work"]),
        make_task("High work", 3, Priority.HIGH, tags=["Work", "urgent"]),
        make_task("High errands", 4, Priority.HIGH, description="Pick up eggs", tags=["errands"]),
        make_task("Low work", 5, Priority.LOW, tags=["work"]),
    ]


class TestBuildQuery:
    def test_defaults(self):
        q = build_query()
        assert q.page == 1
        assert q.page_size == 20
        assert q.sort is SortField.CREATED_AT
        assert q.order is SortOrder.DESC
        assert q.priorities == frozenset()
        assert q.tags == ()

    def test_coerces_paging(self):
        assert build_query(page=0, page_size=999).page == 1
        assert build_query(page=-5).page == 1
        assert build_query(page_size=999).page_size == 100
        assert build_query(page_size=0).page_size == 1

    def test_trims_search_and_tags(self):
        q = build_query(search="  eggs ", tags=[" work ", "", "WORK", "home"])
        assert q.search == "eggs"
        assert q.tags == ("work", "home")
        assert build_query(search="   ").search is None


class TestFiltering:
    def test_search_matches_title_or_description_case_insensitively(self):
        res = run_query(seed_mixed(), build_query(search="EGGS"))
        assert titles(res.items) == ["High errands"]

        res = run_query(seed_mixed(), build_query(search="work"))
        assert set(titles(res.items)) == {"Med work", "High work", "Low work"}

    def test_missing_description_never_matches(self):
        records = [make_task("Alpha", 1, description=None), make_task("Beta", 2, description="alpha notes")]
        res = run_query(records, build_query(search="notes"))
        assert titles(res.items) == ["Beta"]

    def test_priority_set_uses_or_semantics(self):
        res = run_query(seed_mixed(), build_query(priorities=[Priority.HIGH, Priority.LOW]))
        assert all(t["priority"] in (Priority.HIGH, Priority.LOW) for t in res.items)
        assert "Med work" not in titles(res.items)
        assert res.total == 4

    def test_filters_combine_with_and(self):
        q = build_query(priorities=[Priority.HIGH, Priority.LOW], tags=["work"], search="work")
        res = run_query(seed_mixed(), q)
        assert set(titles(res.items)) == {"High work", "Low work"}
        assert all(t["priority"] is not Priority.MED for t in res.items)

    def test_tags_match_any_case_insensitively(self):
        res = run_query(seed_mixed(), build_query(tags=["URGENT", "home"]))
        assert set(titles(res.items)) == {"High work", "Low home"}

    def test_empty_filters_return_everything(self):
        res = run_query(seed_mixed(), build_query(page_size=100))
        assert res.total == 5


class TestSorting:
    def test_default_is_created_at_descending(self):
        res = run_query(seed_mixed(), TaskQuery())
        assert titles(res.items) == ["Low work", "High errands", "High work", "Med work", "Low home"]

    def test_created_at_ascending(self):
        res = run_query(seed_mixed(), build_query(sort=SortField.CREATED_AT, order=SortOrder.ASC))
        assert titles(res.items)[0] == "Low home"

    def test_due_date_ascending_puts_sooner_first(self):
        records = [
            make_task("Later", 1, due_date=date(2025, 3, 2)),
            make_task("Undated", 2),
            make_task("Sooner", 3, due_date=date(2025, 3, 1)),
        ]
        res = run_query(records, build_query(sort=SortField.DUE_DATE, order=SortOrder.ASC))
        assert titles(res.items) == ["Sooner", "Later", "Undated"]

    def test_due_date_descending_keeps_undated_last(self):
        records = [
            make_task("Undated", 1),
            make_task("Sooner", 2, due_date=date(2025, 3, 1)),
            make_task("Later", 3, due_date=date(2025, 3, 2)),
        ]
        res = run_query(records, build_query(sort=SortField.DUE_DATE, order=SortOrder.DESC))
        assert titles(res.items) == ["Later", "Sooner", "Undated"]

    def test_priority_descending_puts_high_before_low(self):
        records = [make_task("Low", 1, Priority.LOW), make_task("High", 2, Priority.HIGH)]
        res = run_query(records, build_query(sort=SortField.PRIORITY, order=SortOrder.DESC))
        assert titles(res.items) == ["High", "Low"]

    def test_ties_keep_creation_order(self):
        records = [
            make_task("second", 2, Priority.HIGH),
            make_task("first", 1, Priority.HIGH),
            make_task("low", 3, Priority.LOW),
        ]
        asc = run_query(records, build_query(sort=SortField.PRIORITY, order=SortOrder.ASC))
        desc = run_query(records, build_query(sort=SortField.PRIORITY, order=SortOrder.DESC))
        assert titles(asc.items) == ["low", "first", "second"]
        assert titles(desc.items) == ["first", "second", "low"]


class TestPagination:
    @pytest.mark.parametrize("page_size", [1, 3, 7, 100])
    def test_page_never_exceeds_page_size_and_total_is_stable(self, page_size):
        records = [make_task(f"Task {i}", i) for i in range(10)]
        seen = []
        for page in range(1, 12):
            res = run_query(records, build_query(page=page, page_size=page_size))
            assert len(res.items) <= page_size
            assert res.total == 10
            assert res.page == page
            assert res.page_size == page_size
            seen.extend(titles(res.items))
        assert sorted(seen) == sorted(f"Task {i}" for i in range(10))

    def test_page_beyond_data_is_empty(self):
        res = run_query(seed_mixed(), build_query(page=50, page_size=10))
        assert res.items == []
        assert res.total == 5

    def test_slices_in_sorted_order(self):
        records = [make_task(f"Task {i}", i) for i in range(5)]
        res = run_query(records, build_query(page=2, page_size=2, order=SortOrder.ASC))
        assert titles(res.items) == ["Task 2", "Task 3"]


class TestCancellation:
    def test_cancelled_query_raises(self):
        cancel = Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            run_query(seed_mixed(), TaskQuery(), cancel=cancel)

    def test_unset_event_does_not_interfere(self):
        res = run_query(seed_mixed(), TaskQuery(), cancel=Event())
        assert res.total == 5
