from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from motor.motor_asyncio import AsyncIOMotorClient
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import REGISTRY, CONTENT_TYPE_LATEST, generate_latest
from pymongo.errors import PyMongoError
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import boto3
import psutil
import requests

from otel_sample_app.config import Config
from otel_sample_app.handlers import router
from otel_sample_app.random_metrics import RandomMetricCollector
from otel_sample_app.request_metrics import RequestMetricCollector

logger = logging.getLogger(__name__)

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Python Sample App</title>
</head>
<body>
    <p><a href="/aws-sdk-call">/aws-sdk-call</a>: make an AWS SDK call</p>
    <p><a href="/outgoing-http-call">/outgoing-http-call</a>: make an outgoing HTTP call</p>
    <p><a href="/outgoing-sampleapp">/outgoing-sampleapp</a>: make an outgoing call to another sample app</p>
    <p><a href="/outgoing-db-call">/outgoing-db-call</a>: make an outgoing call to the database</p>
</body>
</html>"""


def create_app(
    cfg: Optional[Config] = None,
    meter_provider=None,
    tracer_provider=None,
    s3_client=None,
    http_session: Optional[requests.Session] = None,
    mongo_client=None,
) -> FastAPI:
    """
    Build the sample app.

    Providers default to the globally installed ones (see
    telemetry.start_client); the outbound clients can be swapped for tests.
    """
    cfg = cfg or Config.from_env()
    app = FastAPI(title="Python Sample App")

    app.state.config = cfg
    app.state.tracer = (tracer_provider or trace.get_tracer_provider()).get_tracer(__name__)
    app.state.random_metrics = RandomMetricCollector(cfg, meter_provider)
    app.state.request_metrics = RequestMetricCollector(cfg, meter_provider)

    app.state.s3_client = s3_client or boto3.client("s3")
    app.state.http_session = http_session or requests.Session()
    # Mongo connection
    client = mongo_client or AsyncIOMotorClient(
        cfg.mongo_url, serverSelectionTimeoutMS=int(cfg.outbound_timeout * 1000)
    )
    app.state.mongo_client = client
    app.state.db = client[cfg.db_name]

    app.include_router(router)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            duration = time.time() - start
            logger.info(
                f"request method={request.method} path={request.url.path} status={status} "
                f"duration={duration:.6f}s datetime={datetime.now(timezone.utc).isoformat()}"
            )
        return response

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return INDEX_HTML

    @app.get("/health")
    async def health():
        """Lightweight health endpoint that also attempts a Mongo ping."""
        db_ok = False
        try:
            res = await app.state.db.command("ping")
            db_ok = res.get("ok", 0) == 1
        except PyMongoError as e:
            logger.warning(f"Mongo ping failed: {e}")
        return {
            "status": "ok",
            "db": "ok" if db_ok else "unavailable",
            "cpu": psutil.cpu_percent(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

    @app.on_event("startup")
    async def start_generator():
        app.state.random_metrics.start()
        logger.info(f"Listening on {cfg.host}:{cfg.port}")

    @app.on_event("shutdown")
    async def shutdown_clients():
        await app.state.random_metrics.stop()
        app.state.http_session.close()
        app.state.mongo_client.close()

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    return app
