from unittest.mock import MagicMock

import pytest
from pymongo.errors import OperationFailure

from insights.core.errors import BackendError, BadFilter, NotFound, ValidationError
from insights.models import ReportDefinition
from insights.schemas.reports import CreateReportRequest
from insights.services.cache import LRUCache
from insights.services.connection_pool import PoolEntry
from insights.services.query_executor import QueryExecutor
from insights.services.report_service import ReportService


def _payload(name="Open Tickets", view="open_tickets"):
    return CreateReportRequest.model_validate(
        {
            "view": {
                "viewName": view,
                "viewDBName": "support",
                "sourceCollection": "tickets",
                "pipeline": [{"$match": {"status": "open"}}],
            },
            "report": {
                "name": name,
                "description": "Tickets awaiting an answer",
                "fields": [
                    {"key": "ref", "label": "Reference"},
                    {"key": "opened", "label": "Opened", "type": "date", "format": "YYYY-MM-DD"},
                ],
                "searchable": ["ref"],
            },
        }
    )


def _mock_pool(existing=()):
    db = MagicMock()
    db.list_collection_names.return_value = list(existing)
    pool = MagicMock()
    pool.acquire.return_value = PoolEntry(client=MagicMock(), db=db)
    return pool, db


def _service(session_factory, pool, report_cache=None, result_cache=None):
    return ReportService(
        session_factory,
        pool,
        QueryExecutor(pool),
        report_cache or LRUCache(10, 600),
        result_cache,
    )


def test_create_report_defines_view_and_persists(session_factory):
    pool, db = _mock_pool()
    service = _service(session_factory, pool)

    report_id = service.create_report(_payload())

    pool.acquire.assert_called_once_with("support")
    db.drop_collection.assert_not_called()
    db.create_collection.assert_called_once_with(
        "open_tickets", viewOn="tickets", pipeline=[{"$match": {"status": "open"}}]
    )
    definition = service.get_definition(report_id)
    assert definition.Name == "Open Tickets"
    assert definition.ViewDBName == "support"
    assert definition.Fields[1] == {
        "key": "opened",
        "label": "Opened",
        "type": "date",
        "format": "YYYY-MM-DD",
    }


def test_create_report_replaces_existing_view(session_factory):
    pool, db = _mock_pool(existing=["open_tickets"])
    _service(session_factory, pool).create_report(_payload())
    db.drop_collection.assert_called_once_with("open_tickets")
    db.create_collection.assert_called_once()


def test_duplicate_name_is_rejected_before_touching_views(session_factory):
    pool, db = _mock_pool()
    service = _service(session_factory, pool)
    service.create_report(_payload())
    db.create_collection.reset_mock()

    with pytest.raises(ValidationError):
        service.create_report(_payload(view="other_view"))
    db.create_collection.assert_not_called()


def test_view_failure_is_a_backend_error_and_nothing_is_stored(session_factory):
    pool, db = _mock_pool()
    db.create_collection.side_effect = OperationFailure("not authorized")
    service = _service(session_factory, pool)

    with pytest.raises(BackendError):
        service.create_report(_payload())
    assert service.list_reports() == []


def test_list_reports_returns_summaries(report_service, orders_report):
    reports = report_service.list_reports()
    assert [r["id"] for r in reports] == [orders_report]
    assert reports[0]["name"] == "Active Orders"
    assert reports[0]["searchable"] == ["region", "customer.name"]
    assert "ViewName" not in reports[0]


def test_get_definition_is_served_from_cache(report_service, orders_report, session_factory):
    first = report_service.get_definition(orders_report)
    assert report_service.report_cache.get(f"report:{orders_report}") is first

    # Later lookups do not need the store
    with session_factory() as db:
        db.query(ReportDefinition).delete()
        db.commit()
    assert report_service.get_definition(orders_report) is first

    report_service.invalidate(orders_report)
    with pytest.raises(NotFound):
        report_service.get_definition(orders_report)


def test_unknown_report_is_not_found(report_service, session_factory):
    with pytest.raises(NotFound):
        report_service.get_definition("nope")
    with pytest.raises(NotFound):
        report_service.get_definition("")


def test_read_returns_rows_and_pagination(report_service, orders_report):
    rows, pagination = report_service.read(
        orders_report, filter_text='{"region": "/^east/"}', sort="-amount", page=1, count=5
    )
    # East, eastern-hub and EAST-2 match; West and North do not
    assert pagination["total"] == 15
    assert pagination["totalPages"] == 3
    assert pagination["hasNextPage"] is True
    assert pagination["hasPrevPage"] is False
    assert [r["amount"] for r in rows] == [240, 210, 200, 190, 160]
    assert all(isinstance(r["_id"], str) for r in rows)


def test_read_with_selection(report_service, orders_report):
    rows, _ = report_service.read(orders_report, select="orderNo", sort="orderNo", count=2)
    assert [set(r) for r in rows] == [{"_id", "orderNo"}] * 2
    assert rows[0]["orderNo"] == "SO-000"


def test_read_rejects_bad_filter(report_service, orders_report):
    with pytest.raises(BadFilter):
        report_service.read(orders_report, filter_text="{oops")


def test_count(report_service, orders_report):
    assert report_service.count(orders_report) == 25
    assert report_service.count(orders_report, '{"region": "West"}') == 5


def test_result_cache_short_circuits_repeat_reads(session_factory, pool, orders_report, mongo):
    service = _service(session_factory, pool, result_cache=LRUCache(10, 60))
    first = service.read(orders_report, page=1, count=5)
    mongo["sales"]["active_orders"].delete_many({})

    assert service.read(orders_report, page=1, count=5) == first
    assert service.count(orders_report) == 0
