"""Shared plumbing for the RPC-style routers."""

import logging
from typing import Any, Awaitable, Callable

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import session_factory_for
from ..core.dependencies import ServiceContext
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Problem
from ..services.guide_requirement_service import GuideRecalculator, GuideRequirementService

logger = logging.getLogger(__name__)

# Error documents every RPC route can answer with
PROBLEM_RESPONSES = {
    400: {"model": Problem, "description": "Business rule violation"},
    401: {"model": Problem, "description": "Missing or invalid bearer token"},
    404: {"model": Problem, "description": "Entity not found in the caller's organization"},
    422: {"model": Problem, "description": "Request body failed validation"},
}


async def execute_operation(
    operation_name: str,
    operation: Callable[[], Awaitable[BaseModel]],
    **log_context: Any,
) -> JSONResponse:
    """
    Run ``operation`` and serialize its result.

    Problem Details exceptions pass through to their handler; anything else
    is logged and reported as a 500.
    """
    try:
        response_data = await operation()
    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            f"Unexpected error in {operation_name}",
            extra={**log_context, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(
            status_code=500,
            detail="Internal server error"
        )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )


def guide_recalculator_for(db: AsyncSession, ctx: ServiceContext) -> GuideRecalculator:
    """Guide recalculation that runs on its own session after the request commits."""
    service = GuideRequirementService(session_factory_for(db), ctx.organization_id)
    return GuideRecalculator(service)
