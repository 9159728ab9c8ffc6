import uvicorn
from fastapi import FastAPI

from healthsync import __version__
from healthsync.config import ConfigurationError, settings
from healthsync.logging_setup import configure_logging
from healthsync.routers import webhook
from healthsync.services.ingestion import TableLocks

app = FastAPI(title="Health Auto Export to Airtable", version=__version__)

app.include_router(webhook.router)


@app.on_event("startup")
def on_startup():
    logger = configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    settings.require_credentials()
    logger.debug("Airtable API key is set.")
    app.state.table_locks = TableLocks()


@app.get("/health")
def health_check():
    return {"status": "ok"}


def run():
    """Console entry point: validate configuration and serve on ``PORT``."""
    logger = configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    try:
        settings.require_credentials()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1)
    logger.info("Server running on port %d", settings.PORT)
    logger.info("Webhook endpoint is available at http://localhost:%d/webhook", settings.PORT)
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
