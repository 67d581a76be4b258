"""
Unit Tests - Analytics Engine
"""
from datetime import timedelta

import pytest

from src.analytics.engine import AnalyticsEngine, serialize_result
from src.analytics.exceptions import QueryExecutionError
from src.analytics.requests import build_request

from tests.conftest import NOW, RecordingStore


def request_for(**params):
    return build_request({"siteId": "site1", **params}, now=NOW)


class TestStats:
    """Tests for the stats endpoint"""
    
    async def test_lookups_run_concurrently(self):
        store = RecordingStore()
        
        await AnalyticsEngine(store).run(request_for())
        
        assert store.calls == 2
        assert store.max_in_flight == 2
    
    async def test_partial_failure_fails_request(self):
        """Counts alone are never returned without the bounce gate"""
        store = RecordingStore(fail_on_call=2)
        
        with pytest.raises(QueryExecutionError) as exc_info:
            await AnalyticsEngine(store).run(request_for())
        
        assert exc_info.value.endpoint == "stats"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
    
    async def test_empty_site(self):
        result = await AnalyticsEngine(RecordingStore()).run(request_for())
        
        assert serialize_result(result) == {
            "views": 0,
            "visitors": 0,
            "hasSufficientBounceData": False,
        }
    
    async def test_stats_end_to_end(self, analytics_engine, seed, make_event):
        first = NOW - timedelta(days=60)
        await seed(
            make_event(timestamp=first, new_visitor=1, bounce=1),
            *[make_event(new_visitor=1) for _ in range(3)],
            make_event(new_visitor=1, bounce=1),
            make_event(path="/pricing"),
        )
        
        result = await analytics_engine.run(request_for(interval="7d"))
        
        assert serialize_result(result) == {
            "views": 5,
            "visitors": 4,
            "bounceRate": 0.25,
            "hasSufficientBounceData": True,
        }
    
    async def test_filters_do_not_touch_gate(self, analytics_engine, seed, make_event):
        """The gate is all-time and unfiltered even when the counts are filtered"""
        await seed(
            make_event(timestamp=NOW - timedelta(days=60), path="/old", bounce=1),
            make_event(path="/new", new_visitor=1),
        )
        
        result = await analytics_engine.run(request_for(path="/new"))
        
        assert result.views == 1
        assert result.has_sufficient_bounce_data is True


class TestDispatch:
    """Tests for endpoint dispatch"""
    
    async def test_timeseries(self, analytics_engine, seed, make_event):
        await seed(make_event())
        
        result = await analytics_engine.run(request_for(endpoint="timeseries", interval="today"))
        
        assert len(result) == 12
        assert serialize_result(result)[11]["views"] == 1
    
    async def test_breakdown_pagination(self, analytics_engine, seed, make_event):
        await seed(*[make_event(country=c) for c in ("DE", "DE", "FR", "US", "US", "US")])
        
        page = await analytics_engine.run(
            request_for(endpoint="countries", limit="2", offset="1")
        )
        
        assert serialize_result(page) == [
            {"label": "DE", "count": 2},
            {"label": "FR", "count": 1},
        ]
    
    @pytest.mark.parametrize(
        "endpoint,field,value",
        [
            ("paths", "path", "/docs"),
            ("referrers", "referrer", "https://example.org"),
            ("browsers", "browser_name", "Firefox"),
            ("devices", "device_model", "iPhone"),
        ],
    )
    async def test_breakdown_endpoints(self, analytics_engine, seed, make_event, endpoint, field, value):
        await seed(make_event(**{field: value}), make_event(**{field: value}))
        
        rows = await analytics_engine.run(request_for(endpoint=endpoint))
        
        assert rows[0].label == value
        assert rows[0].count == 2
    
    async def test_events_endpoint_excludes_pageviews(self, analytics_engine, seed, make_event):
        await seed(make_event(), make_event(event_name="download"))
        
        rows = await analytics_engine.run(request_for(endpoint="events"))
        
        assert [(r.label, r.count) for r in rows] == [("download", 1)]
    
    async def test_error_names_breakdown_endpoint(self):
        store = RecordingStore(fail_on_call=1)
        
        with pytest.raises(QueryExecutionError) as exc_info:
            await AnalyticsEngine(store).run(request_for(endpoint="referrers"))
        
        assert exc_info.value.endpoint == "referrers"


def test_serialize_empty_list():
    assert serialize_result([]) == []
