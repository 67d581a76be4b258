"""
Unit Tests - Aggregation Query Builder

Runs the generated statements against a file-backed SQLite event store.
"""
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import MetaData
from sqlalchemy.dialects import postgresql, sqlite

from src.analytics.columns import LogicalField
from src.analytics.exceptions import QueryExecutionError
from src.analytics.filters import FilterSet, compile_filters
from src.analytics.query_builder import AnalyticsQueryBuilder, to_store_time
from src.analytics.time_range import resolve_time_range
from src.database.connection import SqlColumnStore
from src.database.models import build_events_table

from tests.conftest import NOW

NO_FILTERS = FilterSet()


@pytest.fixture
def queries(column_store) -> AnalyticsQueryBuilder:
    return AnalyticsQueryBuilder(column_store)


@pytest.fixture
def last_day():
    return resolve_time_range("24h", "UTC", now=NOW)


class TestScalarCounts:
    """Tests for scalar_counts"""
    
    async def test_weighted_counts(self, queries, seed, make_event, last_day):
        """Rows count once per sampled event; other sites and old rows excluded"""
        await seed(
            make_event(new_visitor=1, bounce=1),
            make_event(path="/a"),
            make_event(new_visitor=1, sample_interval=10),
            make_event(site_id="other", new_visitor=1),
            make_event(timestamp=NOW - timedelta(days=2), new_visitor=1),
        )
        
        counts = await queries.scalar_counts("site1", last_day, NO_FILTERS)
        
        assert (counts.views, counts.visitors, counts.bounces) == (12, 11, 1)
    
    async def test_retracted_bounce(self, queries, seed, make_event, last_day):
        """A -1 bounce cancels an earlier bounce in the same session"""
        await seed(
            make_event(new_visitor=1, bounce=1),
            make_event(bounce=-1),
        )
        
        counts = await queries.scalar_counts("site1", last_day, NO_FILTERS)
        
        assert counts.bounces == 0
        assert counts.views == 2
    
    async def test_filters_are_conjunctive(self, queries, seed, make_event, last_day):
        await seed(
            make_event(path="/a", country="DE"),
            make_event(path="/a", country="FR"),
            make_event(path="/b", country="DE"),
        )
        
        counts = await queries.scalar_counts(
            "site1", last_day, compile_filters({"path": "/a", "country": "DE"})
        )
        
        assert counts.views == 1
    
    async def test_end_is_exclusive(self, queries, seed, make_event, last_day):
        await seed(
            make_event(timestamp=last_day.start),
            make_event(timestamp=last_day.end),
        )
        
        counts = await queries.scalar_counts("site1", last_day, NO_FILTERS)
        
        assert counts.views == 1
    
    async def test_empty_store(self, queries, last_day):
        counts = await queries.scalar_counts("site1", last_day, NO_FILTERS)
        assert (counts.views, counts.visitors, counts.bounces) == (0, 0, 0)


class TestEarliestEvents:
    """Tests for earliest_events"""
    
    async def test_all_time_and_unfiltered(self, queries, seed, make_event):
        first_event = NOW - timedelta(days=400)
        first_bounce = NOW - timedelta(days=30)
        await seed(
            make_event(timestamp=first_event, path="/old"),
            make_event(timestamp=first_event + timedelta(days=1), bounce=-1),
            make_event(timestamp=first_bounce, bounce=1),
            make_event(timestamp=NOW - timedelta(hours=2), bounce=1),
            make_event(site_id="other", timestamp=NOW - timedelta(days=900), bounce=1),
        )
        
        earliest = await queries.earliest_events("site1")
        
        assert earliest.earliest_event == first_event
        assert earliest.earliest_bounce == first_bounce
        assert earliest.earliest_event.tzinfo is not None
    
    async def test_no_bounces(self, queries, seed, make_event):
        await seed(make_event())
        
        earliest = await queries.earliest_events("site1")
        
        assert earliest.earliest_event == NOW - timedelta(hours=1)
        assert earliest.earliest_bounce is None
    
    async def test_unknown_site(self, queries):
        earliest = await queries.earliest_events("nobody")
        assert earliest.earliest_event is None
        assert earliest.earliest_bounce is None


class TestTimeSeries:
    """Tests for time_series"""
    
    async def test_hourly_zero_fill(self, queries, seed, make_event):
        today = resolve_time_range("today", "UTC", now=NOW)
        await seed(
            make_event(timestamp=datetime(2024, 6, 15, 1, 30, tzinfo=UTC)),
            make_event(timestamp=datetime(2024, 6, 15, 1, 59, tzinfo=UTC), new_visitor=1),
            make_event(timestamp=datetime(2024, 6, 15, 5, 10, tzinfo=UTC), new_visitor=1),
        )
        
        points = await queries.time_series("site1", today, NO_FILTERS)
        
        assert len(points) == 12
        assert (points[1].views, points[1].visitors) == (2, 1)
        assert (points[5].views, points[5].visitors) == (1, 1)
        assert sum(p.views for p in points) == 3
        assert points[0].label == "2024-06-15T00:00:00+00:00"
    
    async def test_buckets_follow_timezone(self, queries, seed, make_event):
        """Buckets are laid out on the New York wall clock"""
        yesterday = resolve_time_range("yesterday", "America/New_York", now=NOW)
        await seed(
            make_event(timestamp=datetime(2024, 6, 14, 3, 30, tzinfo=UTC)),  # 23:30 the day before
            make_event(timestamp=datetime(2024, 6, 14, 4, 30, tzinfo=UTC)),  # 00:30 EDT
            make_event(timestamp=datetime(2024, 6, 15, 3, 59, tzinfo=UTC)),  # 23:59 EDT
        )
        
        points = await queries.time_series("site1", yesterday, NO_FILTERS)
        
        assert len(points) == 24
        assert points[0].views == 1
        assert points[0].label == "2024-06-14T00:00:00-04:00"
        assert points[23].views == 1
        assert sum(p.views for p in points) == 2
    
    async def test_daily_buckets(self, queries, seed, make_event):
        week = resolve_time_range("7d", "UTC", now=NOW)
        await seed(
            make_event(timestamp=datetime(2024, 6, 10, 8, 0, tzinfo=UTC), sample_interval=4),
            make_event(timestamp=datetime(2024, 6, 10, 23, 0, tzinfo=UTC)),
        )
        
        points = await queries.time_series("site1", week, NO_FILTERS)
        
        assert [p.label for p in points][:3] == ["2024-06-08", "2024-06-09", "2024-06-10"]
        assert points[2].views == 5
        assert len(points) == 8
    
    async def test_filters_applied(self, queries, seed, make_event):
        today = resolve_time_range("today", "UTC", now=NOW)
        await seed(
            make_event(timestamp=datetime(2024, 6, 15, 3, 0, tzinfo=UTC), browser_name="Chrome"),
            make_event(timestamp=datetime(2024, 6, 15, 3, 0, tzinfo=UTC), browser_name="Safari"),
        )
        
        points = await queries.time_series(
            "site1", today, compile_filters({"browserName": "Safari"})
        )
        
        assert points[3].views == 1


class TestTopBreakdown:
    """Tests for top_breakdown"""
    
    async def test_orders_by_count_then_label(self, queries, seed, make_event, last_day):
        await seed(
            make_event(path="/b"),
            make_event(path="/a"),
            make_event(path="/c"),
            make_event(path="/c"),
            make_event(path="/d", sample_interval=5),
        )
        
        rows = await queries.top_breakdown("site1", last_day, NO_FILTERS, LogicalField.PATH)
        
        assert [(r.label, r.count) for r in rows] == [("/d", 5), ("/c", 2), ("/a", 1), ("/b", 1)]
    
    async def test_pagination_is_stable(self, queries, seed, make_event, last_day):
        """Page 1 + page 2 equals the first 20 rows"""
        records = []
        for i in range(25):
            records.extend(make_event(path=f"/page-{i:02d}") for _ in range(i % 3 + 1))
        await seed(*records)
        
        page_one = await queries.top_breakdown(
            "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=10, offset=0
        )
        page_two = await queries.top_breakdown(
            "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=10, offset=10
        )
        first_twenty = await queries.top_breakdown(
            "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=20, offset=0
        )
        
        assert page_one + page_two == first_twenty
        assert len(first_twenty) == 20
        assert len(set(r.label for r in first_twenty)) == 20
    
    async def test_case_variants_page_in_code_point_order(self, queries, seed, make_event, last_day):
        """Equal counts split across pages in the same order as the full listing"""
        await seed(*[make_event(path=p) for p in ("/b", "/B", "/a", "/\u00e9")])
        
        pages = []
        for offset in range(4):
            pages += await queries.top_breakdown(
                "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=1, offset=offset
            )
        
        assert [r.label for r in pages] == ["/B", "/a", "/b", "/\u00e9"]
    
    async def test_limit_caps_rows(self, queries, seed, make_event, last_day):
        await seed(*[make_event(path=f"/{i}") for i in range(15)])
        
        rows = await queries.top_breakdown("site1", last_day, NO_FILTERS, LogicalField.PATH, limit=10)
        
        assert len(rows) == 10
    
    async def test_unknown_label(self, queries, seed, make_event, last_day):
        await seed(
            make_event(referrer=""),
            make_event(referrer=""),
            make_event(referrer="https://news.ycombinator.com"),
        )
        
        rows = await queries.top_breakdown("site1", last_day, NO_FILTERS, LogicalField.REFERRER)
        
        assert [(r.label, r.count) for r in rows] == [(None, 2), ("https://news.ycombinator.com", 1)]
    
    async def test_browser_versions_across_browsers(self, queries, seed, make_event, last_day):
        """Without a browserName filter, versions of every browser are listed"""
        await seed(
            *[make_event(browser_name="Firefox", browser_version="126") for _ in range(3)],
            *[make_event(browser_name="Chrome", browser_version="125") for _ in range(2)],
            make_event(browser_name="Firefox", browser_version="125"),
            make_event(browser_name="Safari", browser_version=""),
        )
        fields = (LogicalField.BROWSER_NAME, LogicalField.BROWSER_VERSION)
        
        rows = await queries.top_breakdown("site1", last_day, NO_FILTERS, fields)
        
        assert [(r.label, r.count) for r in rows] == [
            ("Firefox 126", 3),
            ("Chrome 125", 2),
            ("Firefox 125", 1),
            ("Safari", 1),
        ]
        
        firefox = await queries.top_breakdown(
            "site1", last_day, compile_filters({"browserName": "Firefox"}), fields
        )
        assert [r.label for r in firefox] == ["Firefox 126", "Firefox 125"]
    
    async def test_exclude_unknown(self, queries, seed, make_event, last_day):
        """Pageviews carry no event name and drop out of the events breakdown"""
        await seed(
            make_event(),
            make_event(),
            make_event(event_name="signup"),
            make_event(event_name="signup"),
            make_event(event_name="click"),
        )
        
        rows = await queries.top_breakdown(
            "site1", last_day, NO_FILTERS, LogicalField.EVENT_NAME, exclude_unknown=True
        )
        
        assert [(r.label, r.count) for r in rows] == [("signup", 2), ("click", 1)]
    
    @pytest.mark.parametrize("limit,offset", [(0, 0), (10, -1)])
    async def test_invalid_window(self, queries, last_day, limit, offset):
        with pytest.raises(ValueError):
            await queries.top_breakdown(
                "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=limit, offset=offset
            )


class TestStatements:
    """Tests for generated SQL"""
    
    def test_values_are_bound(self, queries, last_day):
        """Filter values never appear inline in the SQL text"""
        hostile = "'; DROP TABLE analytics_events; --"
        statement = queries.scalar_counts_statement(
            "site1", last_day, compile_filters({"path": hostile})
        )
        compiled = statement.compile()
        
        assert hostile not in str(compiled)
        assert hostile in compiled.params.values()
    
    def test_physical_columns_only(self, queries, last_day):
        sql = str(queries.breakdown_statement(
            "site1", last_day, NO_FILTERS, LogicalField.COUNTRY, limit=10
        ))
        
        assert "blob4" in sql
        assert "blob8" in sql
        assert "country" not in sql
    
    def test_postgres_orders_labels_by_code_point(self, queries, last_day):
        """The database locale must not decide where a page boundary falls"""
        statement = queries.breakdown_statement(
            "site1", last_day, NO_FILTERS, LogicalField.PATH, limit=10
        )
        
        sql = str(statement.compile(dialect=postgresql.dialect()))
        
        assert 'grouped.label COLLATE "C" ASC' in sql
        assert 'COLLATE' not in str(statement.compile(dialect=sqlite.dialect()))
    
    def test_store_time_is_naive_utc(self):
        moment = datetime(2024, 6, 15, 14, 0, tzinfo=UTC).astimezone()
        assert to_store_time(moment) == datetime(2024, 6, 15, 14, 0)


class TestQueryFailure:
    async def test_store_error_names_endpoint(self, store_engine, last_day):
        missing = build_events_table("missing_events", MetaData())
        queries = AnalyticsQueryBuilder(SqlColumnStore(store_engine, missing))
        
        with pytest.raises(QueryExecutionError) as exc_info:
            await queries.top_breakdown(
                "site1", last_day, NO_FILTERS, LogicalField.PATH, endpoint="paths"
            )
        
        assert exc_info.value.endpoint == "paths"
        assert exc_info.value.to_dict()["context"] == {"endpoint": "paths"}
