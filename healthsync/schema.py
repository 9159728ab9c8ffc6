"""
Airtable table layout for forwarded metrics.

Every metric gets its own table named after the metric.  All tables share the
base columns; tables for sleep-related metrics carry the extra sleep-stage
columns.  Sample keys are translated to column names through the static
mapping tables below, which are checked against the field definitions when
the module is imported.
"""

from typing import Any, Dict, List

NUMBER_PRECISION = 2

DATE_COLUMN = "Date"
QUANTITY_COLUMN = "Quantity"
UNITS_COLUMN = "Units"
SOURCE_COLUMN = "Source"

DATE_TIME_OPTIONS = {"timeZone": "utc", "dateFormat": "iso"}


def _date_time(name: str) -> Dict[str, Any]:
    return {"name": name, "type": "dateTime", "options": dict(DATE_TIME_OPTIONS)}


def _number(name: str) -> Dict[str, Any]:
    return {"name": name, "type": "number", "options": {"precision": NUMBER_PRECISION}}


def _text(name: str) -> Dict[str, Any]:
    return {"name": name, "type": "singleLineText"}


BASE_FIELDS: List[Dict[str, Any]] = [
    _date_time(DATE_COLUMN),
    _number(QUANTITY_COLUMN),
    _text(UNITS_COLUMN),
    _text(SOURCE_COLUMN),
    _number("Min"),
    _number("Max"),
    _number("Avg"),
]

SLEEP_FIELDS: List[Dict[str, Any]] = [
    _number("Asleep"),
    _number("InBed"),
    _number("Awake"),
    _number("Core"),
    _number("Deep"),
    _number("Rem"),
    _date_time("Sleep Start"),
    _date_time("Sleep End"),
    _date_time("InBed Start"),
    _date_time("InBed End"),
]

# Metrics whose tables carry the sleep-stage columns.
SLEEP_METRICS = frozenset({
    "sleep_analysis_asleep_in_bed",
    "apple_sleeping_wrist_temperature",
    "resting_heart_rate",
})

# sample key -> column name
STAT_COLUMNS: Dict[str, str] = {
    "min": "Min",
    "max": "Max",
    "avg": "Avg",
}

SLEEP_NUMBER_COLUMNS: Dict[str, str] = {
    "asleep": "Asleep",
    "inbed": "InBed",
    "awake": "Awake",
    "core": "Core",
    "deep": "Deep",
    "rem": "Rem",
}

SLEEP_TIME_COLUMNS: Dict[str, str] = {
    "sleep_start": "Sleep Start",
    "sleep_end": "Sleep End",
    "inbed_start": "InBed Start",
    "inbed_end": "InBed End",
}


def is_sleep_metric(name: str) -> bool:
    """Exact membership test; no case or whitespace folding."""
    return name in SLEEP_METRICS


def table_fields(is_sleep: bool) -> List[Dict[str, Any]]:
    """Field definitions for a create-table call."""
    fields = [dict(f) for f in BASE_FIELDS]
    if is_sleep:
        fields.extend(dict(f) for f in SLEEP_FIELDS)
    return fields


def _types_by_name(fields: List[Dict[str, Any]]) -> Dict[str, str]:
    return {f["name"]: f["type"] for f in fields}


def validate_column_mappings() -> None:
    """Raise ``ValueError`` if a mapping table points at a missing or mistyped column."""
    base = _types_by_name(BASE_FIELDS)
    sleep = _types_by_name(SLEEP_FIELDS)

    checks = [
        (STAT_COLUMNS, base, "number"),
        (SLEEP_NUMBER_COLUMNS, sleep, "number"),
        (SLEEP_TIME_COLUMNS, sleep, "dateTime"),
    ]
    for mapping, columns, expected_type in checks:
        for key, column in mapping.items():
            actual = columns.get(column)
            if actual != expected_type:
                raise ValueError(
                    f"Sample key {key!r} maps to column {column!r} "
                    f"of type {actual!r}, expected {expected_type!r}"
                )

    covered = set(SLEEP_NUMBER_COLUMNS.values()) | set(SLEEP_TIME_COLUMNS.values())
    missing = set(sleep) - covered
    if missing:
        raise ValueError(f"Sleep columns without a sample key: {sorted(missing)}")


validate_column_mappings()
