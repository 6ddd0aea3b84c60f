"""
Endpoint logic.

Each endpoint opens a span, performs one trivial outbound operation,
updates the request metrics and answers with the X-Ray formatted trace id.
Outbound failures are logged; they never change the response.
"""

from __future__ import annotations

import logging

import requests
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Request
from pydantic import BaseModel
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from otel_sample_app.telemetry import TRACE_LABELS, xray_trace_id

logger = logging.getLogger(__name__)

AMAZON_URL = "https://aws.amazon.com/"
DB_ROUND_TRIPS = 10

router = APIRouter()


class TraceResponse(BaseModel):
    traceId: str


def _http_get(session: requests.Session, url: str, timeout: float) -> None:
    try:
        res = session.get(url, timeout=timeout)
        res.close()
    except requests.RequestException as e:
        logger.error(f"Error making request to {url}: {e}")


@router.get("/aws-sdk-call", response_model=TraceResponse)
def aws_sdk_call(request: Request):
    """S3 ListBuckets; without credentials this fails, which is fine for tracing."""
    state = request.app.state
    with state.tracer.start_as_current_span("aws-sdk-call", attributes=TRACE_LABELS) as span:
        try:
            state.s3_client.list_buckets()
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"S3 ListBuckets failed: {e}")
        state.request_metrics.record_outbound_call()
        return TraceResponse(traceId=xray_trace_id(span))


@router.get("/outgoing-http-call", response_model=TraceResponse)
def outgoing_http_call(request: Request):
    state = request.app.state
    with state.tracer.start_as_current_span("outgoing-http-call", attributes=TRACE_LABELS) as span:
        logger.info("Making request to aws.amazon.com")
        _http_get(state.http_session, AMAZON_URL, state.config.outbound_timeout)
        state.request_metrics.record_outbound_call()
        return TraceResponse(traceId=xray_trace_id(span))


def _invoke_sample_app(request: Request, port: str) -> None:
    state = request.app.state
    with state.tracer.start_as_current_span("invoke-sample-app", attributes=TRACE_LABELS):
        url = f"http://{state.config.peer_host}:{port}/outgoing-sampleapp"
        logger.info(f"Making request to sample app on port {port}")
        _http_get(state.http_session, url, state.config.outbound_timeout)


@router.get("/outgoing-sampleapp", response_model=TraceResponse)
def outgoing_sampleapp(request: Request):
    """
    Chain to the sibling sample apps listed in SAMPLE_APP_PORTS.

    With no siblings configured this instance is the leaf of the chain and
    calls aws.amazon.com itself.
    """
    state = request.app.state
    tracer = state.tracer
    with tracer.start_as_current_span("invoke-sample-apps", attributes=TRACE_LABELS) as span:
        ports = [p for p in state.config.sample_app_ports if p]
        if not ports:
            with tracer.start_as_current_span("leaf-request", attributes=TRACE_LABELS):
                _http_get(state.http_session, AMAZON_URL, state.config.outbound_timeout)
                state.request_metrics.record_outbound_call()
        else:
            for port in ports:
                _invoke_sample_app(request, port)
        return TraceResponse(traceId=xray_trace_id(span))


@router.get("/outgoing-db-call", response_model=TraceResponse)
async def outgoing_db_call(request: Request):
    state = request.app.state
    with state.tracer.start_as_current_span("outgoing-db-call", attributes=TRACE_LABELS) as span:
        for i in range(DB_ROUND_TRIPS):
            logger.info(f"Making request to database {i}")
            try:
                await state.db.command("ping")
            except PyMongoError as e:
                logger.error(f"Database request {i} failed: {e}")

        await run_in_threadpool(_http_get, state.http_session, AMAZON_URL, state.config.outbound_timeout)
        state.request_metrics.record_outbound_call()
        return TraceResponse(traceId=xray_trace_id(span))
