"""
Synthetic Event Seeder

Fills the event store with realistic-looking pageviews and custom events
for local development and demos.

Usage:
    python -m src.ingestion.seed_db --site-id demo --days 30 --visitors 500
"""

import argparse
import asyncio
import json
import random
from datetime import UTC, datetime, timedelta
from typing import List, Optional

import structlog
from faker import Faker

from src.config.logging import configure_logging
from src.database.connection import close_database, get_column_store, init_database
from src.ingestion.writer import EventRecord, write_events

logger = structlog.get_logger(__name__)

PATHS = ["/", "/pricing", "/docs", "/docs/getting-started", "/blog", "/about", "/signup"]
BROWSERS = [
    ("Chrome", ["120", "121", "122"]),
    ("Safari", ["16", "17"]),
    ("Firefox", ["121", "122"]),
    ("Edge", ["120"]),
]
DEVICES = [
    ("desktop", ["Mac", "PC"]),
    ("mobile", ["iPhone", "Pixel 8", "Galaxy S23"]),
    ("tablet", ["iPad"]),
]
EVENT_NAMES = ["signup_click", "download", "video_play", "newsletter_subscribe"]

SESSION_GAP = timedelta(minutes=30)


class EventGenerator:
    """
    Generates visitor sessions.
    
    Each visitor gets one or more sessions; the first hit of the visitor's day
    is flagged newVisitor, the first hit of a session newSession, and a
    session's first pageview is flagged as a bounce which is retracted (-1)
    when a second pageview follows.
    """
    
    def __init__(self, site_id: str, seed: Optional[int] = 42):
        self.site_id = site_id
        self.fake = Faker()
        self.random = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)
        self.referrers = [""] * 4 + [f"https://{self.fake.domain_name()}" for _ in range(6)]
    
    def _session(self, start: datetime, visitor: dict, new_visitor: bool) -> List[EventRecord]:
        records = []
        pageviews = self.random.choices([1, 2, 3, 5], weights=[45, 25, 20, 10])[0]
        referrer = self.random.choice(self.referrers)
        ts = start
        for i in range(pageviews):
            records.append(
                EventRecord(
                    site_id=self.site_id,
                    timestamp=ts,
                    host="https://example.com",
                    path=self.random.choice(PATHS),
                    referrer=referrer if i == 0 else "",
                    new_visitor=1 if new_visitor and i == 0 else 0,
                    new_session=1 if i == 0 else 0,
                    bounce=1 if i == 0 else (-1 if i == 1 else 0),
                    **visitor,
                )
            )
            ts += timedelta(seconds=self.random.randint(10, 300))
        
        if self.random.random() < 0.2:
            records.append(
                EventRecord(
                    site_id=self.site_id,
                    timestamp=ts,
                    host="https://example.com",
                    path=records[-1].path,
                    event_name=self.random.choice(EVENT_NAMES),
                    event_properties=json.dumps({"plan": self.random.choice(["free", "pro"])}),
                    event_category="engagement",
                    event_value=float(self.random.randint(1, 10)),
                    **visitor,
                )
            )
        return records
    
    def generate(self, days: int = 30, visitors: int = 500, now: Optional[datetime] = None) -> List[EventRecord]:
        now = now or datetime.now(UTC)
        records: List[EventRecord] = []
        for _ in range(visitors):
            browser, versions = self.random.choice(BROWSERS)
            device_type, models = self.random.choice(DEVICES)
            visitor = {
                "user_agent": self.fake.user_agent(),
                "country": self.fake.country_code(),
                "browser_name": browser,
                "browser_version": self.random.choice(versions),
                "device_type": device_type,
                "device_model": self.random.choice(models),
            }
            start = now - timedelta(seconds=self.random.randint(1, days * 86400))
            new_visitor = True
            for _ in range(self.random.randint(1, 3)):
                if start >= now:
                    break
                records.extend(self._session(start, visitor, new_visitor))
                new_visitor = False
                start += SESSION_GAP + timedelta(minutes=self.random.randint(1, 600))
        records.sort(key=lambda r: r.timestamp)
        return records


async def main(site_id: str, days: int, visitors: int, url: Optional[str] = None) -> None:
    logger.info("Starting event seeding", site_id=site_id, days=days, visitors=visitors)
    engine = await init_database(url, create_tables=True)
    
    try:
        records = EventGenerator(site_id).generate(days=days, visitors=visitors)
        written = await write_events(engine, records, get_column_store().table)
        logger.info("Event seeding completed", rows=written)
    except Exception as e:
        logger.error("Seeding failed", error=str(e))
        raise
    finally:
        await close_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the event store with synthetic traffic")
    parser.add_argument("--site-id", default="demo", help="Site id to seed (default: demo)")
    parser.add_argument("--days", type=int, default=30, help="Days of history (default: 30)")
    parser.add_argument("--visitors", type=int, default=500, help="Number of visitors (default: 500)")
    parser.add_argument("--url", default=None, help="Event store URL (default: from settings)")
    args = parser.parse_args()
    
    configure_logging(log_format="text")
    asyncio.run(main(args.site_id, args.days, args.visitors, args.url))
