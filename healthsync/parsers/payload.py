"""
Parser for Health Auto Export webhook bodies.

The accepted shape is::

    {"data": {"metrics": [{"name": ..., "units": ..., "data": [sample, ...]}]}}

Every metric and every sample is validated on its own.  Invalid items are
logged and dropped; the rest of the delivery is still processed.  The older
shape where ``data`` is a list of entries each carrying ``metrics`` is not
accepted.
"""

import logging
from typing import Any, List

from pydantic import ValidationError

from healthsync.models import MetricBatch, MetricSample


def _parse_samples(raw_samples: Any, metric_name: Any, logger: logging.Logger) -> List[MetricSample]:
    if raw_samples is None:
        return []
    if not isinstance(raw_samples, list):
        logger.warning("Metric %r: 'data' is not a list. Ignoring its samples.", metric_name)
        return []

    samples: List[MetricSample] = []
    for index, raw in enumerate(raw_samples):
        if not isinstance(raw, dict):
            logger.warning("Metric %r: sample %d is not an object. Skipping.", metric_name, index)
            continue
        try:
            samples.append(MetricSample.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "Metric %r: sample %d failed validation (%d errors). Skipping.",
                metric_name, index, e.error_count(),
            )
    return samples


def parse_webhook_payload(body: Any, logger: logging.Logger) -> List[MetricBatch]:
    """Extract metric batches from a webhook body, in delivery order."""
    if not isinstance(body, dict):
        logger.error("Invalid payload: expected a JSON object.")
        return []

    data = body.get("data")
    if isinstance(data, list):
        logger.error("Unsupported payload shape: 'data' is a list; expected {'metrics': [...]}.")
        return []
    if not isinstance(data, dict):
        logger.error("Invalid payload: 'data' object is missing.")
        return []

    raw_metrics = data.get("metrics")
    if not isinstance(raw_metrics, list):
        logger.error("Invalid payload: 'data.metrics' is missing or not a list.")
        return []

    batches: List[MetricBatch] = []
    for index, raw in enumerate(raw_metrics):
        if not isinstance(raw, dict):
            logger.warning("Metric %d is not an object. Skipping.", index)
            continue
        name = raw.get("name")
        try:
            batch = MetricBatch.model_validate({"name": name, "units": raw.get("units")})
        except ValidationError as e:
            logger.warning(
                "Metric %d (%r) failed validation (%d errors). Skipping.",
                index, name, e.error_count(),
            )
            continue
        samples = _parse_samples(raw.get("data"), name, logger)
        batches.append(batch.model_copy(update={"samples": tuple(samples)}))

    logger.info("Parsed %d metric(s) from payload.", len(batches))
    return batches
