"""
Idempotent ingestion of webhook metrics into Airtable.

For every metric in a delivery:
  1. make sure a table named after the metric exists,
  2. load the timestamps already stored in it,
  3. map the samples to rows, dropping invalid and already-stored ones,
  4. write the new rows in batches of at most 10.

The table listing is fetched once per delivery.  Nothing is cached between
deliveries; Airtable is the only source of truth.  Remote failures never
propagate out of ``IngestionPipeline``; they are logged and the affected step
carries on with what it has.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from healthsync.models import IngestReport, MetricBatch, OutgoingRow
from healthsync.parsers.dates import normalize_timestamp
from healthsync.parsers.records import map_sample
from healthsync.schema import is_sleep_metric
from healthsync.services.airtable import MAX_RECORDS_PER_REQUEST, AirtableClient


class TableLocks:
    """Per-table ``asyncio.Lock`` registry.

    Two deliveries touching the same table are serialised so they cannot both
    create it or both miss each other's timestamps.  An entry only lives while
    some delivery holds or waits for it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._users[name] = self._users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if not self._users[name]:
                del self._users[name]
                del self._locks[name]


class IngestionPipeline:
    def __init__(
        self,
        airtable: AirtableClient,
        logger: logging.Logger,
        locks: TableLocks | None = None,
        batch_size: int = MAX_RECORDS_PER_REQUEST,
    ):
        self.airtable = airtable
        self.logger = logger
        self.locks = locks if locks is not None else TableLocks()
        self.batch_size = batch_size
        self.known_tables: set[str] = set()

    async def refresh_tables(self) -> None:
        listing = await self.airtable.list_tables()
        if not listing.complete:
            self.logger.warning("Table listing unavailable; every table will be treated as missing.")
        self.known_tables = set(listing.value)

    async def ensure_table(self, name: str, is_sleep: bool) -> None:
        if name in self.known_tables:
            self.logger.info('Table "%s" exists.', name)
            return
        self.logger.info('Table "%s" does not exist. Creating table.', name)
        result = await self.airtable.create_table(name, is_sleep)
        if not result.complete:
            self.logger.warning('Continuing with table "%s" although creation failed.', name)
        # Not retried within this delivery even if creation failed.
        self.known_tables.add(name)

    def map_rows(
        self, batch: MetricBatch, is_sleep: bool, existing: set[str], report: IngestReport
    ) -> list[OutgoingRow]:
        rows: list[OutgoingRow] = []
        for sample in batch.samples:
            row = map_sample(sample, batch.units, is_sleep, existing, self.logger, table=batch.name)
            if row is None:
                report.skipped += 1
                if normalize_timestamp(sample.date) in existing:
                    report.duplicates += 1
                continue
            rows.append(row)
            existing.add(row.timestamp)
        return rows

    async def ingest(self, batch: MetricBatch) -> IngestReport:
        """Forward one metric's samples; returns counts for logging and tests."""
        report = IngestReport(table=batch.name, received=len(batch.samples))
        if not batch.name:
            self.logger.warning("Metric name is missing. Skipping metric.")
            report.skipped = report.received
            return report

        name = batch.name
        is_sleep = is_sleep_metric(name)
        async with self.locks.hold(name):
            await self.ensure_table(name, is_sleep)

            existing = (await self.airtable.load_existing_timestamps(name)).value
            rows = self.map_rows(batch, is_sleep, existing, report)
            if not rows:
                self.logger.info('No new records to add for metric "%s".', name)
                return report

            written = await self.airtable.create_records(name, rows, self.batch_size)
            report.written = written.written
            report.failed_batches = written.failed_batches

        self.logger.info(
            'Metric "%s": %d received, %d skipped, %d written, %d failed batch(es).',
            name, report.received, report.skipped, report.written, len(report.failed_batches),
        )
        return report

    async def run(self, batches: Iterable[MetricBatch]) -> list[IngestReport]:
        """Ingest every batch of one delivery, strictly in order."""
        self.logger.info("Starting data processing...")
        await self.refresh_tables()
        reports = []
        for batch in batches:
            try:
                reports.append(await self.ingest(batch))
            except Exception:
                self.logger.exception('Failed to process metric "%s". Continuing.', batch.name)
                reports.append(IngestReport(table=batch.name, received=len(batch.samples)))
        self.logger.info("Data processing completed.")
        return reports
