"""
Airtable REST client used by the ingestion pipeline.

API Reference:
- Base URL: https://api.airtable.com/v0
- List tables:  GET  /meta/bases/{baseId}/tables
- Create table: POST /meta/bases/{baseId}/tables
- List records: GET  /{baseId}/{table}?fields[]=...&pageSize=...&offset=...
- Create rows:  POST /{baseId}/{table}  (at most 10 records per call)

None of the calls raise on remote failures.  They log the problem and return
a ``RemoteResult`` whose ``error`` is set, carrying whatever was gathered
before the failure.
"""

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Generic, List, Optional, Sequence, Set, TypeVar
from urllib.parse import quote

import httpx

from healthsync.config import settings
from healthsync.logging_setup import LOGGER_NAME
from healthsync.models import OutgoingRow
from healthsync.parsers.dates import canonicalize_stored
from healthsync.schema import DATE_COLUMN, table_fields

PAGE_SIZE = 100
MAX_RECORDS_PER_REQUEST = 10

T = TypeVar("T")


@dataclass
class RemoteResult(Generic[T]):
    """Value returned by a remote call, possibly empty or partial."""
    value: T
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None


@dataclass
class WriteResult:
    written: int = 0
    failed_batches: List[int] = field(default_factory=list)


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"Status: {exc.response.status_code}, Data: {exc.response.text[:300]}"
    return f"Error: {exc}"


class AirtableClient:
    """
    Thin wrapper over the Airtable REST API for one base.

    Usage:
        async with httpx.AsyncClient(base_url=..., headers=...) as http:
            client = AirtableClient(http, "appXXXX", logger)
            tables = await client.list_tables()
    """

    def __init__(self, http: httpx.AsyncClient, base_id: str, logger: logging.Logger):
        self.http = http
        self.base_id = base_id
        self.logger = logger

    def _table_path(self, table: str) -> str:
        return f"/{self.base_id}/{quote(table, safe='')}"

    def _meta_path(self) -> str:
        return f"/meta/bases/{self.base_id}/tables"

    async def list_tables(self) -> RemoteResult[Set[str]]:
        """Names of the tables in the base; empty on failure."""
        self.logger.info("Fetching existing tables from Airtable...")
        try:
            response = await self.http.get(self._meta_path())
            response.raise_for_status()
            names = {t["name"] for t in response.json().get("tables", [])}
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            message = _describe_error(e)
            self.logger.error("Failed to retrieve existing tables from Airtable. %s", message)
            return RemoteResult(set(), message)

        self.logger.info("Existing tables retrieved: %s", sorted(names))
        return RemoteResult(names)

    async def create_table(self, name: str, is_sleep: bool) -> RemoteResult[bool]:
        """Create *name* with the base (and optionally sleep) columns."""
        self.logger.info('Attempting to create table "%s" in Airtable...', name)
        if is_sleep:
            self.logger.info('Metric "%s" is sleep-related. Adding sleep-specific fields.', name)
        payload = {"name": name, "fields": table_fields(is_sleep)}
        self.logger.debug("Payload for table creation: %s", payload)
        try:
            response = await self.http.post(self._meta_path(), json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            message = _describe_error(e)
            self.logger.error('Failed to create table "%s". %s', name, message)
            return RemoteResult(False, message)

        self.logger.info('Table "%s" created successfully.', name)
        return RemoteResult(True)

    async def _iter_pages(self, table: str) -> AsyncIterator[List[dict]]:
        params = {"fields[]": DATE_COLUMN, "pageSize": PAGE_SIZE}
        page = 1
        while True:
            self.logger.debug('Fetching page %d of records from table "%s"...', page, table)
            response = await self.http.get(self._table_path(table), params=params)
            response.raise_for_status()
            data = response.json()
            yield data.get("records") or []

            offset = data.get("offset")
            if not offset:
                return
            params["offset"] = offset
            page += 1

    async def load_existing_timestamps(self, table: str) -> RemoteResult[Set[str]]:
        """Canonical ``Date`` values already stored in *table*.

        Pagination stops at the first failure and the timestamps collected so
        far are returned together with the error.
        """
        self.logger.info('Fetching existing dates from table "%s"...', table)
        existing: Set[str] = set()
        try:
            async for records in self._iter_pages(table):
                for record in records:
                    value = record.get("fields", {}).get(DATE_COLUMN)
                    if isinstance(value, str) and value:
                        existing.add(canonicalize_stored(value))
        except (httpx.HTTPError, ValueError, AttributeError, TypeError) as e:
            message = _describe_error(e)
            self.logger.error(
                'Failed to fetch existing records from table "%s" (kept %d dates). %s',
                table, len(existing), message,
            )
            return RemoteResult(existing, message)

        self.logger.info('Total existing dates fetched from table "%s": %d', table, len(existing))
        return RemoteResult(existing)

    async def create_records(
        self,
        table: str,
        rows: Sequence[OutgoingRow],
        batch_size: int = MAX_RECORDS_PER_REQUEST,
    ) -> WriteResult:
        """Write *rows* in order, *batch_size* per request.

        A failed batch is logged and the remaining batches are still sent.
        """
        if not 0 < batch_size <= MAX_RECORDS_PER_REQUEST:
            raise ValueError(f"batch_size must be between 1 and {MAX_RECORDS_PER_REQUEST}")

        self.logger.info('Adding %d new record(s) to table "%s"...', len(rows), table)
        result = WriteResult()
        for index, start in enumerate(range(0, len(rows), batch_size)):
            batch = rows[start:start + batch_size]
            payload = {"records": [row.to_record() for row in batch]}
            self.logger.debug("Payload for record creation: %s", payload)
            try:
                response = await self.http.post(self._table_path(table), json=payload)
                response.raise_for_status()
            except httpx.HTTPError as e:
                self.logger.error(
                    'Failed to add batch %d (%d records) to table "%s". %s',
                    index, len(batch), table, _describe_error(e),
                )
                result.failed_batches.append(index)
                continue
            result.written += len(batch)
            self.logger.info('Batch %d added to table "%s".', index, table)

        return result


def build_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Async HTTP client pre-configured with the Airtable URL and credential."""
    return httpx.AsyncClient(
        base_url=settings.AIRTABLE_API_URL,
        headers={
            "Authorization": f"Bearer {settings.AIRTABLE_API_KEY}",
            "Content-Type": "application/json",
        },
        timeout=settings.AIRTABLE_TIMEOUT,
        transport=transport,
    )


async def get_airtable_client() -> AsyncIterator[AirtableClient]:
    """FastAPI dependency yielding a client with its own connection pool."""
    async with build_http_client() as http:
        yield AirtableClient(http, settings.AIRTABLE_BASE_ID, logging.getLogger(LOGGER_NAME))
