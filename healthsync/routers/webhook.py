"""
Webhook receiver for Health Auto Export.

The endpoint always acknowledges a POST with ``{"status": "success"}`` once
the delivery has been processed, even when some metrics or rows could not be
forwarded.  Failures are only visible in the logs.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request

from healthsync.logging_setup import LOGGER_NAME
from healthsync.parsers.payload import parse_webhook_payload
from healthsync.services.airtable import AirtableClient, get_airtable_client
from healthsync.services.ingestion import IngestionPipeline

router = APIRouter(tags=["webhook"])


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    airtable: AirtableClient = Depends(get_airtable_client),
    logger: logging.Logger = Depends(get_logger),
):
    """Forward every metric in the delivery to its Airtable table."""
    raw = await request.body()
    logger.info("Received data from webhook (%d bytes).", len(raw))
    try:
        body = json.loads(raw)
    except ValueError:
        logger.error("Webhook body is not valid JSON. Nothing to process.")
        return {"status": "success"}
    logger.debug("Webhook body: %s", body)

    try:
        batches = parse_webhook_payload(body, logger)
        pipeline = IngestionPipeline(airtable, logger, locks=request.app.state.table_locks)
        await pipeline.run(batches)
    except Exception:
        logger.exception("An error occurred during data processing.")

    return {"status": "success"}
