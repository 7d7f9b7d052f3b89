from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rentals.api.deps import engine_dep
from rentals.api.rate_limit import rate_limiter
from rentals.core.config import settings
from rentals.schemas.bookings import (
    BookingFailureOut,
    BookingSubmissionIn,
    BookingSuccessOut,
)
from rentals.services.booking_submission import BookingValidationError
from rentals.services.factory import Engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["bookings"])


@router.post(
    "/bookings",
    response_model=BookingSuccessOut,
    responses={400: {}, 429: {}, 500: {}, 502: {"model": BookingFailureOut}},
    dependencies=[
        Depends(
            rate_limiter(
                "submit_booking",
                limit=settings.rate_limit_bookings_per_window,
                window_seconds=settings.rate_limit_window_seconds,
            )
        )
    ],
)
async def submit_booking(
    payload: BookingSubmissionIn,
    engine: Engine = Depends(engine_dep),
):
    try:
        engine.submitter.validate(payload)
    except BookingValidationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    if not engine.client.bookings_configured:
        logger.error("booking rejected: BOOKING_TABLE_URL or NOCODB_API_TOKEN is not set")
        return JSONResponse(status_code=500, content={"error": "Server configuration error"})

    result = await engine.submitter.write(payload)

    if not result.ok:
        body = BookingFailureOut(
            error=f"Failed to submit {len(result.failures)} of {result.total} booking records",
            details=result.failures,
            partial_success=result.partial_success,
            successful_bookings=result.successes,
        )
        return JSONResponse(status_code=502, content=body.model_dump(by_alias=True))

    return BookingSuccessOut(
        message=f"Successfully submitted {len(result.successes)} booking records",
        count=len(result.successes),
    )
