"""
Mapping of metric samples onto Airtable rows.
"""

import logging
from typing import Any, AbstractSet, List, Optional, Tuple

from healthsync.models import MetricSample, OutgoingRow
from healthsync.parsers.dates import normalize_timestamp
from healthsync.schema import SLEEP_NUMBER_COLUMNS, SLEEP_TIME_COLUMNS, STAT_COLUMNS


def map_sample(
    sample: MetricSample,
    units: Optional[str],
    table_is_sleep: bool,
    existing: AbstractSet[str],
    logger: logging.Logger,
    table: str = "",
) -> Optional[OutgoingRow]:
    """Build the row for *sample*, or return ``None`` if it must be skipped.

    A sample is skipped when its date is missing, unparseable, or already
    present in *existing*.  Optional stats and, for sleep tables, sleep
    fields are only included when the sample carries them.
    """
    if not sample.date:
        logger.warning('Record is missing "date". Skipping record.')
        return None

    timestamp = normalize_timestamp(sample.date)
    if timestamp is None:
        logger.warning('Record date %r could not be parsed. Skipping record.', sample.date)
        return None

    if timestamp in existing:
        logger.info('Record with date "%s" already exists in table "%s". Skipping.', timestamp, table)
        return None

    extra: List[Tuple[str, Any]] = []
    for key, column in STAT_COLUMNS.items():
        value = getattr(sample, key)
        if value is not None:
            extra.append((column, value))

    if table_is_sleep:
        for key, column in SLEEP_NUMBER_COLUMNS.items():
            value = getattr(sample, key)
            if value is not None:
                extra.append((column, value))
        for key, column in SLEEP_TIME_COLUMNS.items():
            raw = getattr(sample, key)
            if raw is None:
                continue
            value = normalize_timestamp(raw)
            if value is None:
                logger.warning('Sleep field "%s" value %r could not be parsed. Omitting.', column, raw)
                continue
            extra.append((column, value))

    row = OutgoingRow(
        timestamp=timestamp,
        quantity=sample.qty,
        units=units,
        source=sample.source or "",
        extra=tuple(extra),
    )
    logger.debug("Record prepared for addition: %s", row.to_fields())
    return row
