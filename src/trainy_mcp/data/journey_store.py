"""SQLite persistence for merged journeys with upsert-by-key semantics.

Each journey key maps to exactly one row in `journeys`; an upsert of a known
key keeps the row id and creation time and replaces the stop rows.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import aiosqlite
from pydantic import TypeAdapter

from trainy_mcp.data.database import get_db
from trainy_mcp.models.journeys import (
    JourneyStatus,
    MergedJourney,
    MergedStop,
    StopPatch,
    StoredJourney,
)
from trainy_mcp.models.providers import ProviderId
from trainy_mcp.services.time_utils import as_utc, parse_datetime

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS journeys (
    id TEXT PRIMARY KEY,
    journey_key TEXT NOT NULL UNIQUE,
    train_number TEXT NOT NULL,
    train_type TEXT,
    operator TEXT,
    origin_station_id TEXT NOT NULL,
    origin_station_name TEXT,
    destination_station_id TEXT NOT NULL,
    destination_station_name TEXT,
    scheduled_departure TEXT,
    scheduled_arrival TEXT,
    duration_minutes INTEGER,
    status TEXT NOT NULL,
    sources TEXT NOT NULL,
    raw_ids TEXT NOT NULL,
    departure_stop TEXT NOT NULL,
    arrival_stop TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS journey_stops (
    journey_id TEXT NOT NULL REFERENCES journeys(id) ON DELETE CASCADE,
    sequence INTEGER NOT NULL,
    station_code TEXT,
    station_name TEXT,
    country TEXT,
    scheduled_arrival TEXT,
    scheduled_departure TEXT,
    actual_arrival TEXT,
    actual_departure TEXT,
    planned_platform TEXT,
    actual_platform TEXT,
    arrival_delay INTEGER,
    departure_delay INTEGER,
    cancelled INTEGER NOT NULL DEFAULT 0,
    source TEXT NOT NULL,
    PRIMARY KEY (journey_id, sequence)
);

CREATE INDEX IF NOT EXISTS idx_journeys_route
    ON journeys(origin_station_id, destination_station_id, scheduled_departure);
"""

JOURNEY_COLUMNS = (
    "id",
    "journey_key",
    "train_number",
    "train_type",
    "operator",
    "origin_station_id",
    "origin_station_name",
    "destination_station_id",
    "destination_station_name",
    "scheduled_departure",
    "scheduled_arrival",
    "duration_minutes",
    "status",
    "sources",
    "raw_ids",
    "departure_stop",
    "arrival_stop",
    "created_at",
    "updated_at",
)

STOP_COLUMNS = (
    "journey_id",
    "sequence",
    "station_code",
    "station_name",
    "country",
    "scheduled_arrival",
    "scheduled_departure",
    "actual_arrival",
    "actual_departure",
    "planned_platform",
    "actual_platform",
    "arrival_delay",
    "departure_delay",
    "cancelled",
    "source",
)

# Columns left untouched when an existing key is upserted again
PRESERVED_ON_UPSERT = {"id", "journey_key", "created_at"}

SOURCES_ADAPTER = TypeAdapter(list[ProviderId])
RAW_IDS_ADAPTER = TypeAdapter(dict[ProviderId, str])


def _iso(value: datetime | None) -> str | None:
    """Store timestamps in UTC so range queries compare correctly as text."""
    return as_utc(value).isoformat() if value else None


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _journey_values(journey_id: str, journey_key: str, journey: MergedJourney, now: str) -> tuple:
    return (
        journey_id,
        journey_key,
        journey.train_number,
        journey.train_type,
        journey.operator,
        journey.origin_station_id,
        journey.origin_station_name,
        journey.destination_station_id,
        journey.destination_station_name,
        _iso(journey.scheduled_departure),
        _iso(journey.scheduled_arrival),
        journey.duration_minutes,
        journey.status.value,
        SOURCES_ADAPTER.dump_json(journey.sources).decode(),
        RAW_IDS_ADAPTER.dump_json(journey.raw_ids).decode(),
        journey.departure.model_dump_json(),
        journey.arrival.model_dump_json(),
        now,
        now,
    )


def _stop_values(journey_id: str, sequence: int, stop: MergedStop) -> tuple:
    return (
        journey_id,
        sequence,
        stop.station_code,
        stop.station_name,
        stop.country,
        _iso(stop.scheduled_arrival),
        _iso(stop.scheduled_departure),
        _iso(stop.actual_arrival),
        _iso(stop.actual_departure),
        stop.planned_platform,
        stop.actual_platform,
        stop.arrival_delay,
        stop.departure_delay,
        int(stop.cancelled),
        stop.source.value,
    )


def _row_to_stop(row: aiosqlite.Row) -> MergedStop:
    return MergedStop(
        station_code=row["station_code"] or "",
        station_name=row["station_name"] or "",
        country=row["country"],
        scheduled_arrival=parse_datetime(row["scheduled_arrival"]),
        scheduled_departure=parse_datetime(row["scheduled_departure"]),
        actual_arrival=parse_datetime(row["actual_arrival"]),
        actual_departure=parse_datetime(row["actual_departure"]),
        planned_platform=row["planned_platform"],
        actual_platform=row["actual_platform"],
        arrival_delay=row["arrival_delay"],
        departure_delay=row["departure_delay"],
        cancelled=bool(row["cancelled"]),
        source=ProviderId(row["source"]),
    )


def _row_to_journey(row: aiosqlite.Row, stops: list[MergedStop]) -> StoredJourney:
    return StoredJourney(
        id=row["id"],
        journey_key=row["journey_key"],
        train_number=row["train_number"],
        train_type=row["train_type"] or "",
        operator=row["operator"] or "",
        origin_station_id=row["origin_station_id"],
        origin_station_name=row["origin_station_name"] or "",
        destination_station_id=row["destination_station_id"],
        destination_station_name=row["destination_station_name"] or "",
        scheduled_departure=parse_datetime(row["scheduled_departure"]),
        scheduled_arrival=parse_datetime(row["scheduled_arrival"]),
        duration_minutes=row["duration_minutes"] or 0,
        status=JourneyStatus(row["status"]),
        sources=SOURCES_ADAPTER.validate_json(row["sources"]),
        raw_ids=RAW_IDS_ADAPTER.validate_json(row["raw_ids"]),
        departure=MergedStop.model_validate_json(row["departure_stop"]),
        arrival=MergedStop.model_validate_json(row["arrival_stop"]),
        stops=stops,
        persisted=True,
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
    )


def _apply_patch(stop: MergedStop, patch: StopPatch) -> MergedStop:
    update: dict = {
        "arrival_delay": patch.arrival_delay,
        "departure_delay": patch.departure_delay,
        "cancelled": patch.cancelled,
    }
    if patch.actual_platform:
        update["actual_platform"] = patch.actual_platform
    return stop.model_copy(update=update)


class JourneyStore:
    """Journey persistence gateway over aiosqlite.

    A connection is opened per operation; the schema is created on first use.

    Usage:
        store = JourneyStore(Path("data/journeys.db"))
        journey_id = await store.upsert_by_key(journey.make_key(), journey)
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path
        self._ready = False

    async def init(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)

    async def _ensure_schema(self, db: aiosqlite.Connection) -> None:
        if self._ready:
            return
        await db.executescript(SCHEMA_SQL)
        await db.commit()
        self._ready = True

    async def upsert_by_key(self, journey_key: str, journey: MergedJourney) -> str:
        """Insert or replace the journey stored under a key.

        Returns:
            The stored id (unchanged across upserts of the same key).
        """
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            journey_id = await self._upsert(db, journey_key, journey)
            await db.commit()
        return journey_id

    async def upsert_many(self, journeys: list[MergedJourney]) -> list[StoredJourney]:
        """Upsert journeys under their own keys in one transaction.

        Returns:
            The stored journeys, in input order.
        """
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            ids = [await self._upsert(db, journey.make_key(), journey) for journey in journeys]
            await db.commit()

            stored = []
            for journey_id in ids:
                loaded = await self._load(db, "id", journey_id)
                if loaded is not None:
                    stored.append(loaded)
        logger.debug(f"Upserted {len(stored)} journeys")
        return stored

    async def find_by_key(self, journey_key: str) -> StoredJourney | None:
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            return await self._load(db, "journey_key", journey_key)

    async def get_by_id(self, journey_id: str) -> StoredJourney | None:
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            return await self._load(db, "id", journey_id)

    async def find_by_route(
        self,
        origin_station_id: str,
        destination_station_id: str,
        around: datetime,
        window_hours: float = 3.0,
    ) -> list[StoredJourney]:
        """Find stored journeys between two stations departing near a time.

        Args:
            origin_station_id: Canonical origin station id.
            destination_station_id: Canonical destination station id.
            around: Center of the departure window.
            window_hours: Half-width of the window in hours.

        Returns:
            Journeys ordered by scheduled departure.
        """
        window = timedelta(hours=window_hours)
        sql = """
            SELECT id FROM journeys
            WHERE origin_station_id = ? AND destination_station_id = ?
              AND scheduled_departure BETWEEN ? AND ?
            ORDER BY scheduled_departure
        """
        params = (
            origin_station_id,
            destination_station_id,
            _iso(around - window),
            _iso(around + window),
        )
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
            journeys = []
            for row in rows:
                loaded = await self._load(db, "id", row["id"])
                if loaded is not None:
                    journeys.append(loaded)
        return journeys

    async def apply_realtime_update(
        self,
        journey_id: str,
        status: JourneyStatus | None,
        patches: list[StopPatch],
    ) -> StoredJourney | None:
        """Apply a realtime refresh to a stored journey.

        Patches address stops by sequence; patching the first or last stop
        also updates the journey's departure or arrival stop.

        Returns:
            The updated journey, or None if the id is unknown.
        """
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            journey = await self._load(db, "id", journey_id)
            if journey is None:
                return None

            departure = journey.departure
            arrival = journey.arrival
            last_sequence = len(journey.stops) - 1
            for patch in patches:
                if not 0 <= patch.sequence <= last_sequence:
                    logger.debug(f"Ignoring patch for unknown stop {patch.sequence} of {journey_id}")
                    continue
                patched = _apply_patch(journey.stops[patch.sequence], patch)
                await db.execute(
                    "DELETE FROM journey_stops WHERE journey_id = ? AND sequence = ?",
                    (journey_id, patch.sequence),
                )
                await db.execute(
                    f"INSERT INTO journey_stops ({','.join(STOP_COLUMNS)}) "
                    f"VALUES ({','.join('?' * len(STOP_COLUMNS))})",
                    _stop_values(journey_id, patch.sequence, patched),
                )
                if patch.sequence == 0:
                    departure = _apply_patch(departure, patch)
                if patch.sequence == last_sequence:
                    arrival = _apply_patch(arrival, patch)

            await db.execute(
                """
                UPDATE journeys
                SET status = ?, departure_stop = ?, arrival_stop = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    (status or journey.status).value,
                    departure.model_dump_json(),
                    arrival.model_dump_json(),
                    _now(),
                    journey_id,
                ),
            )
            await db.commit()
            return await self._load(db, "id", journey_id)

    async def delete(self, journey_id: str) -> bool:
        async with get_db(self.db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute("DELETE FROM journeys WHERE id = ?", (journey_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def _upsert(
        self, db: aiosqlite.Connection, journey_key: str, journey: MergedJourney
    ) -> str:
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in JOURNEY_COLUMNS
            if column not in PRESERVED_ON_UPSERT
        )
        sql = (
            f"INSERT INTO journeys ({','.join(JOURNEY_COLUMNS)}) "
            f"VALUES ({','.join('?' * len(JOURNEY_COLUMNS))}) "
            f"ON CONFLICT(journey_key) DO UPDATE SET {updates}"
        )
        await db.execute(sql, _journey_values(str(uuid.uuid4()), journey_key, journey, _now()))

        async with db.execute(
            "SELECT id FROM journeys WHERE journey_key = ?", (journey_key,)
        ) as cursor:
            row = await cursor.fetchone()
        journey_id = row["id"]

        await db.execute("DELETE FROM journey_stops WHERE journey_id = ?", (journey_id,))
        await db.executemany(
            f"INSERT INTO journey_stops ({','.join(STOP_COLUMNS)}) "
            f"VALUES ({','.join('?' * len(STOP_COLUMNS))})",
            [_stop_values(journey_id, i, stop) for i, stop in enumerate(journey.stops)],
        )
        return journey_id

    async def _load(
        self, db: aiosqlite.Connection, column: str, value: str
    ) -> StoredJourney | None:
        async with db.execute(
            f"SELECT * FROM journeys WHERE {column} = ?", (value,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None

        async with db.execute(
            "SELECT * FROM journey_stops WHERE journey_id = ? ORDER BY sequence",
            (row["id"],),
        ) as cursor:
            stop_rows = await cursor.fetchall()
        return _row_to_journey(row, [_row_to_stop(stop_row) for stop_row in stop_rows])
