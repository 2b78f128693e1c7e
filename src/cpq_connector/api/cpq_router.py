"""CPQ operations API router.

Exposes the operation catalogue and runs one (resource, operation) pair over
a batch of input items, the way a workflow host would feed them in.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from cpq_connector.integrations.cpq_client import CPQClient
from cpq_connector.integrations.cpq_errors import (
    CPQApiError,
    CPQInputError,
    CPQUnknownOperationError,
)
from cpq_connector.use_cases.cpq_operations import (
    CPQOperationRunner,
    OperationParams,
    get_operation_spec,
    list_operations,
)

logger = logging.getLogger(__name__)

cpq_router = APIRouter(tags=["ConnectWise CPQ"])


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------


class CPQOperationRequest(BaseModel):
    items: list[OperationParams] = Field(default_factory=lambda: [OperationParams()])
    continue_on_fail: bool = False


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_cpq_client() -> CPQClient:
    """Build a client from the environment; overridden in tests."""
    try:
        return CPQClient.from_env()
    except ValueError as e:
        logger.error(f"CPQ connector is not configured: {e}")
        raise HTTPException(status_code=500, detail=f"CPQ connector is not configured: {e}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@cpq_router.get("/cpq/operations")
async def cpq_operations():
    """List every (resource, operation) pair with its HTTP method and path."""
    return {"operations": list_operations()}


@cpq_router.post("/cpq/{resource}/{operation}")
def cpq_run_operation(
    resource: str,
    operation: str,
    body: CPQOperationRequest,
    client: CPQClient = Depends(get_cpq_client),
):
    """Run one CPQ operation for each item in the request body.

    Declared sync so FastAPI runs it in the threadpool; the client blocks on
    IO and backoff sleeps.
    """

    try:
        spec = get_operation_spec(resource, operation)
    except CPQUnknownOperationError as e:
        raise HTTPException(status_code=404, detail=str(e))

    runner = CPQOperationRunner(client)
    try:
        results = runner.run_batch(
            spec.resource,
            spec.operation,
            body.items,
            continue_on_fail=body.continue_on_fail,
        )
    except CPQInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CPQApiError as e:
        logger.error(f"CPQ {resource}/{operation} failed: {e}")
        detail: dict[str, Any] = e.to_dict()
        raise HTTPException(status_code=502, detail=detail)

    return {
        "resource": spec.resource.value,
        "operation": spec.operation.value,
        "count": len(results),
        "results": results,
    }
