"""
Telemetry router.

POST /telemetry          — process a single sample
POST /telemetry/batch    — process up to BATCH_MAX_ITEMS samples
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from telesense.core.errors import BatchTooLargeError
from telesense.core.runtime import Runtime, get_processor, get_runtime
from telesense.schemas.outputs import (
    BatchItemResult,
    BatchProcessResponse,
    ProcessorOutputResponse,
)
from telesense.schemas.telemetry import TelemetryBatchRequest, TelemetryEvent
from telesense.services.processor import TelemetryProcessor

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


# ---------------------------------------------------------------------------
# POST /telemetry  — single
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ProcessorOutputResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Process a single telemetry sample",
    responses={
        422: {"description": "Validation error (wrong field types, non-object body)."},
    },
)
def process_telemetry(
    payload: TelemetryEvent,
    processor: TelemetryProcessor = Depends(get_processor),
):
    """
    Run one sample through detection, intent classification, risk scoring and
    coaching, route both records to their sinks, and return them.

    `vehicle_event` is null when no detected behavior is recordable.
    """
    return processor.handle(payload).to_response()


# ---------------------------------------------------------------------------
# POST /telemetry/batch
# ---------------------------------------------------------------------------

@router.post(
    "/batch",
    response_model=BatchProcessResponse,
    status_code=status.HTTP_207_MULTI_STATUS,
    summary="Process a batch of telemetry samples",
    responses={
        207: {"description": "Multi-status: check each item's `ok` field."},
        422: {"description": "Batch-level validation error (empty list, too many items)."},
    },
)
def process_telemetry_batch(
    payload: TelemetryBatchRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """
    Samples are processed concurrently and independently. A failure on one
    item does not affect the others; results come back in request order.
    """
    max_items = runtime.settings.BATCH_MAX_ITEMS
    if len(payload.items) > max_items:
        raise BatchTooLargeError(max_items=max_items, received=len(payload.items))

    outcomes = runtime.processor.handle_many(payload.items)
    items = [
        BatchItemResult(
            index=o.index,
            ok=o.ok,
            output=o.output.to_response() if o.ok else None,
            error=o.error,
        )
        for o in outcomes
    ]

    succeeded = sum(1 for i in items if i.ok)
    return BatchProcessResponse(
        total=len(items),
        succeeded=succeeded,
        failed=len(items) - succeeded,
        items=items,
    )
