import logging

from fastapi import FastAPI

from bridge.api.router import api_router
from bridge.core.config import settings
from bridge.core.deps import get_orchestrator
from bridge.core.message_broker import message_broker

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("bridge")

SHUTDOWN_DRAIN_SECONDS = 30.0

app = FastAPI(title="Nusantara Bridge")
app.include_router(api_router, prefix="/api")


@app.on_event("shutdown")
def shutdown_drain_settlements():
    # only wait on an orchestrator that actually served requests
    if get_orchestrator.cache_info().currsize:
        remaining = get_orchestrator().drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        if remaining:
            logger.warning("%s settlement(s) still running at shutdown", len(remaining))
    message_broker.close()
