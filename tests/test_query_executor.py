from unittest.mock import MagicMock

import pytest
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from insights.core.errors import BackendError, BadFilter, ValidationError
from insights.services.connection_pool import PoolEntry
from insights.services.filter_translator import parse_filter
from insights.services.query_executor import (
    QueryExecutor,
    build_pagination,
    build_projection,
    build_sort,
)
from insights.services.report_service import ReportSnapshot

REPORT = ReportSnapshot(
    ReportID="r1",
    Name="Orders",
    ViewName="orders_view",
    ViewDBName="sales",
    SourceCollection="orders",
)


@pytest.fixture
def seeded(pool, mongo):
    mongo["sales"]["orders_view"].insert_many(
        [{"n": i, "region": "east" if i % 2 else "west", "amount": i * 3} for i in range(25)]
    )
    return QueryExecutor(pool)


def test_build_projection():
    assert build_projection(None) is None
    assert build_projection("") is None
    assert build_projection(" , ") is None
    assert build_projection("a, b,c") == {"a": 1, "b": 1, "c": 1}


def test_build_sort():
    assert build_sort(None) is None
    assert build_sort("amount") == [("amount", 1)]
    assert build_sort("-amount") == [("amount", -1)]
    with pytest.raises(ValidationError):
        build_sort("-")


def test_pagination_middle_page():
    p = build_pagination(25, 2, 10)
    assert p["totalPages"] == 3
    assert p["hasNextPage"] is True
    assert p["hasPrevPage"] is True


def test_pagination_empty_first_page():
    p = build_pagination(0, 1, 10)
    assert p["totalPages"] == 0
    assert p["hasNextPage"] is False
    assert p["hasPrevPage"] is False


def test_pagination_last_page():
    p = build_pagination(25, 3, 10)
    assert p["hasNextPage"] is False
    assert p["hasPrevPage"] is True


def test_execute_applies_offset_limit_and_total(seeded, pool):
    rows, total = seeded.execute(REPORT, {}, sort=[("n", 1)], page=2, page_size=10)
    assert total == 25
    assert [r["n"] for r in rows] == list(range(10, 20))
    assert pool.acquired[-1] == "sales"


def test_execute_last_partial_page(seeded):
    rows, total = seeded.execute(REPORT, {}, sort=[("n", 1)], page=3, page_size=10)
    assert [r["n"] for r in rows] == [20, 21, 22, 23, 24]
    assert total == 25


def test_execute_projection_sort_and_filter(seeded):
    predicate = parse_filter('{"region": "/^EAST$/"}')
    rows, total = seeded.execute(
        REPORT, predicate, projection={"n": 1}, sort=[("amount", -1)], page=1, page_size=5
    )
    assert total == 12
    assert [r["n"] for r in rows] == [23, 21, 19, 17, 15]
    assert all(set(r) <= {"_id", "n"} for r in rows)


def test_execute_caps_page_size(pool, seeded):
    capped = QueryExecutor(pool, max_page_size=4)
    rows, _ = capped.execute(REPORT, {}, page=1, page_size=50)
    assert len(rows) == 4


@pytest.mark.parametrize("page,size", [(0, 10), (1, 0), (-1, 5)])
def test_execute_rejects_bad_paging(seeded, page, size):
    with pytest.raises(ValidationError):
        seeded.execute(REPORT, {}, page=page, page_size=size)


def test_count(seeded):
    assert seeded.count(REPORT, {}) == 25
    assert seeded.count(REPORT, {"region": "west"}) == 13


def _broken_pool(exc):
    collection = MagicMock()
    collection.find.side_effect = exc
    collection.count_documents.side_effect = exc
    db = MagicMock()
    db.__getitem__.return_value = collection
    pool = MagicMock()
    pool.acquire.return_value = PoolEntry(client=MagicMock(), db=db)
    return pool


def test_driver_failures_become_backend_errors():
    executor = QueryExecutor(_broken_pool(ServerSelectionTimeoutError("down")))
    with pytest.raises(BackendError):
        executor.execute(REPORT, {})
    with pytest.raises(BackendError):
        executor.count(REPORT, {})


def test_server_side_regex_errors_become_bad_filters():
    executor = QueryExecutor(_broken_pool(OperationFailure("Regular expression is invalid")))
    with pytest.raises(BadFilter):
        executor.count(REPORT, {})
