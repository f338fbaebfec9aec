"""The generic data endpoint: one POST route for select/insert/update/delete."""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from ..dispatcher import RequestDispatcher
from ..errors import MalformedEnvelope
from ..schemas import ErrorResponse, GatewaySuccess
from .dependencies import get_dispatcher

router = APIRouter(prefix="/v1", tags=["Gateway"])


@router.options("/db-api")
async def db_api_preflight():
    """Bare OPTIONS answer; real CORS preflights are served by the middleware."""
    return PlainTextResponse("ok")


@router.post(
    "/db-api",
    response_model=GatewaySuccess,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def db_api(
    request: Request,
    background_tasks: BackgroundTasks,
    dispatcher: RequestDispatcher = Depends(get_dispatcher),
):
    """
    Run one action against a table of the database the API key is bound to.

    Body: ``{"api_key", "action", "table", "data"?, "filters"?, "row_id"?, "cursor"?}``.
    The audit entry and the key's ``last_used_at`` are written after the
    response has been sent.
    """
    try:
        payload = await request.json()
    except ValueError:
        error = MalformedEnvelope("Request body must be valid JSON")
        return JSONResponse(status_code=error.status_code, content={"error": error.message})

    result = await run_in_threadpool(
        dispatcher.dispatch, payload, background_tasks.add_task
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
