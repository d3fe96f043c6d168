"""
CommWatch Detections Service (port 8200)
------------------------------------------
Exposes the behavioural anomaly engine over HTTP: detection runs, baseline
recompute, the anomaly review workflow and reporting stats.

Runs are triggered by the caller (cron, dashboard button, API client); the
service itself keeps no state between requests.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from commwatch.services.shared.database import create_all_tables

logging.basicConfig(level=logging.INFO)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("commwatch_detections_starting")
    create_all_tables()
    logger.info("commwatch_detections_tables_ready")
    get_engine()  # validates EngineConfig.from_env() before serving
    yield
    logger.info("commwatch_detections_stopping")


app = FastAPI(
    title="CommWatch Detections Service",
    version="0.1.0",
    description="Behavioural anomaly detection over a tenant's communication history.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

from commwatch.services.detections.routes_anomalies import get_engine, router as anomalies_router  # noqa: E402

app.include_router(anomalies_router, prefix="/api", tags=["Anomalies"])


@app.get("/health", tags=["Health"])
def health():
    return {"status": "healthy", "service": "commwatch-detections", "version": "0.1.0"}


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "commwatch.services.detections.main:app",
        host=os.getenv("DETECTIONS_HOST", "0.0.0.0"),
        port=int(os.getenv("DETECTIONS_PORT", "8200")),
    )
