import os

# Use the in-memory SQLite metadata store and keep logs on the console only.
# Must run before `db`/`main` are imported anywhere.
os.environ.setdefault("TEST_SQLITE", "1")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from db import SessionLocal, engine  # noqa: E402
from insights.core.container import Services  # noqa: E402
from insights.models import Base, ReportDefinition  # noqa: E402
from insights.services.archive_storage import LocalArchiveStorage  # noqa: E402
from insights.services.cache import LRUCache  # noqa: E402
from insights.services.connection_pool import PoolEntry  # noqa: E402
from insights.services.export_service import ExportService  # noqa: E402
from insights.services.query_executor import QueryExecutor  # noqa: E402
from insights.services.report_service import ReportService  # noqa: E402


class FakePool:
    """Pool double handing out databases from one mongomock client."""

    def __init__(self, client):
        self.client = client
        self.acquired = []
        self.closed = False

    def acquire(self, db_name):
        self.acquired.append(db_name)
        return PoolEntry(client=self.client, db=self.client[db_name])

    def close_all(self):
        self.closed = True

    def stats(self):
        return {"size": len(set(self.acquired)), "databases": sorted(set(self.acquired))}


class InlineWorker:
    """Runs submitted jobs immediately on the calling thread."""

    def __init__(self):
        self.submitted = []

    def submit(self, fn, *args):
        self.submitted.append(args)
        return fn(*args)

    def pending(self):
        return 0

    def shutdown(self, wait=False):
        pass


class DeferredWorker(InlineWorker):
    """Records submissions without running them, like a saturated pool."""

    def submit(self, fn, *args):
        self.submitted.append((fn, args))

    def pending(self):
        return len(self.submitted)

    def run_all(self):
        jobs, self.submitted = self.submitted, []
        for fn, args in jobs:
            fn(*args)


@pytest.fixture
def session_factory():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mongo():
    return mongomock.MongoClient()


@pytest.fixture
def pool(mongo):
    return FakePool(mongo)


@pytest.fixture
def orders_report(session_factory, mongo):
    """A report over the `active_orders` view of database `sales`.

    mongomock has no views, so the view is seeded as a plain collection holding
    what `[{$match: {active: true}}]` over `orders` would produce.
    """
    row = ReportDefinition(
        ReportID="rep-orders",
        Name="Active Orders",
        Description="Orders that are still active",
        ViewName="active_orders",
        ViewDBName="sales",
        SourceCollection="orders",
        Pipeline=[{"$match": {"active": True}}],
        IsCrossDB=False,
        Fields=[
            {"key": "orderNo", "label": "Order", "type": "string"},
            {"key": "region", "label": "Region", "type": "string"},
            {"key": "amount", "label": "Amount", "type": "number"},
            {"key": "customer.name", "label": "Customer", "type": "string"},
        ],
        Filters=[{"key": "region", "type": "string"}],
        Searchable=["region", "customer.name"],
    )
    with session_factory() as db:
        db.add(row)
        db.commit()

    regions = ["East", "eastern-hub", "West", "North", "EAST-2"]
    docs = [
        {
            "orderNo": f"SO-{i:03d}",
            "region": regions[i % len(regions)],
            "amount": 10 * i,
            "active": True,
            "customer": {"name": f"Customer {i}"},
        }
        for i in range(25)
    ]
    mongo["sales"]["active_orders"].insert_many(docs)
    return "rep-orders"


@pytest.fixture
def report_service(session_factory, pool):
    return ReportService(session_factory, pool, QueryExecutor(pool), LRUCache(100, 600))


@pytest.fixture
def storage(tmp_path):
    return LocalArchiveStorage(str(tmp_path / "storage"))


@pytest.fixture
def worker():
    return InlineWorker()


@pytest.fixture
def deferred_worker():
    return DeferredWorker()


@pytest.fixture
def make_export_service(session_factory, report_service, storage):
    """Build an ExportService over the shared fixtures with a chosen worker."""

    def make(worker, **kwargs):
        return ExportService(
            session_factory, report_service, report_service.executor, storage, worker, **kwargs
        )

    return make


@pytest.fixture
def export_service(session_factory, report_service, storage, worker):
    return ExportService(
        session_factory,
        report_service,
        report_service.executor,
        storage,
        worker,
        batch_size=1000,
    )


@pytest.fixture
def client(pool, report_service, export_service, worker):
    # Import the app here so the environment above is applied first
    from main import app

    app.state.services = Services(
        pool=pool,
        report_cache=report_service.report_cache,
        result_cache=LRUCache(50, 60),
        reports=report_service,
        exports=export_service,
        worker=worker,
    )
    try:
        yield TestClient(app)
    finally:
        app.state.services = None
