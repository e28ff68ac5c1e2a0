import asyncio
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Annotated
from uuid import UUID

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError, ValidationException
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.helpers.config import CONFIG
from app.helpers.http import aiohttp_session
from app.helpers.logging import logger
from app.helpers.monitoring import start_as_current_span
from app.helpers.pydantic_types.dates import QueryDate
from app.helpers.reminders import (
    InvalidRangeError,
    MissingOwnerScopeError,
    ReminderNotFoundError,
    create_reminder,
    delete_reminder,
    get_reminder,
    list_reminders,
    update_reminder,
)
from app.models.error import ErrorInnerModel, ErrorModel
from app.models.readiness import ReadinessCheckModel, ReadinessEnum, ReadinessModel
from app.models.reminder import ReminderCreateModel, ReminderModel
from app.persistence.istore import IStore

# First log
logger.info(
    "reminder-tracker v%s",
    CONFIG.version,
)

# Timezone of the query dates
_tz = CONFIG.reminder.tz()
logger.info("Using timezone %s for query dates", CONFIG.reminder.timezone)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    yield

    # Close HTTP session
    await (await aiohttp_session()).close()


# FastAPI
api = FastAPI(
    description="Track personal reminders, recurring daily, every few days or on a day of the week. Search them by text and date range.",
    lifespan=lifespan,
    title="reminder-tracker",
    version=CONFIG.version,
)


def store() -> IStore:
    """
    Record store configured for the application.
    """
    return CONFIG.database.instance


Store = Annotated[IStore, Depends(store)]
# Authentication happens upstream, the gateway forwards the authenticated user ID
OwnerId = Annotated[str | None, Header(alias="X-User-Id")]


@api.get("/health/liveness")
@start_as_current_span("health_liveness_get")
async def health_liveness_get() -> None:
    """
    Check if the service is running.

    No parameters are expected.

    Returns a 200 OK if the service is technically running.
    """
    return


@api.get(
    "/health/readiness",
    status_code=HTTPStatus.OK,
)
@start_as_current_span("health_readiness_get")
async def health_readiness_get(db: Store) -> JSONResponse:
    """
    Check if the service is ready to serve requests.

    No parameters are expected. Services tested are: store.

    Returns a 200 OK if the service is ready to serve requests. If the service is not ready, it should return a 503 Service Unavailable.
    """
    (store_check,) = await asyncio.gather(
        db.readiness(),
    )
    readiness = ReadinessModel(
        status=ReadinessEnum.OK,
        checks=[
            ReadinessCheckModel(id="store", status=store_check),
            ReadinessCheckModel(id="startup", status=ReadinessEnum.OK),
        ],
    )
    # If one of the checks fails, the whole readiness fails
    status_code = HTTPStatus.OK
    for check in readiness.checks:
        if check.status != ReadinessEnum.OK:
            readiness.status = ReadinessEnum.FAIL
            status_code = HTTPStatus.SERVICE_UNAVAILABLE
            break
    return JSONResponse(
        content=readiness.model_dump(mode="json"),
        status_code=status_code,
    )


@api.get("/reminder")
@start_as_current_span("reminder_list_get")
async def reminder_list_get(
    db: Store,
    owner_id: OwnerId = None,
    search: str | None = None,
    start_date: QueryDate | None = None,
    end_date: QueryDate | None = None,
) -> list[ReminderModel]:
    """
    REST API to list reminders.

    Parameters:
    - search: Case-insensitive text to find in the description, recurrence type or day
    - start_date: First day of the window, inclusive
    - end_date: Last day of the window, inclusive

    Returns the reminders with at least one occurrence in the window, in JSON format.
    """
    reminders = await list_reminders(
        end_date=end_date,
        owner_id=owner_id,
        search=search,
        start_date=start_date,
        store=db,
        tz=_tz,
    )
    return TypeAdapter(list[ReminderModel]).dump_python(reminders, mode="json")


@api.post(
    "/reminder",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("reminder_post")
async def reminder_post(
    db: Store,
    reminder: ReminderCreateModel,
    owner_id: OwnerId = None,
) -> ReminderModel:
    """
    REST API to create a reminder.

    Body is a reminder `ReminderCreateModel`, its first occurrence is now.

    Returns the created reminder `ReminderModel`, in JSON format.
    """
    created = await create_reminder(
        owner_id=owner_id,
        reminder=reminder,
        store=db,
    )
    return TypeAdapter(ReminderModel).dump_python(created, mode="json")


@api.get("/reminder/{reminder_id}")
@start_as_current_span("reminder_get")
async def reminder_get(
    db: Store,
    reminder_id: UUID,
    owner_id: OwnerId = None,
) -> ReminderModel:
    """
    REST API to get a reminder by its ID.

    Returns a single reminder `ReminderModel`, in JSON format.
    """
    reminder = await get_reminder(
        owner_id=owner_id,
        reminder_id=reminder_id,
        store=db,
    )
    return TypeAdapter(ReminderModel).dump_python(reminder, mode="json")


@api.put("/reminder/{reminder_id}")
@start_as_current_span("reminder_put")
async def reminder_put(
    db: Store,
    reminder_id: UUID,
    reminder: ReminderCreateModel,
    owner_id: OwnerId = None,
) -> ReminderModel:
    """
    REST API to replace a reminder content.

    Creation date, which is the first occurrence, is kept.

    Returns the updated reminder `ReminderModel`, in JSON format.
    """
    updated = await update_reminder(
        owner_id=owner_id,
        reminder=reminder,
        reminder_id=reminder_id,
        store=db,
    )
    return TypeAdapter(ReminderModel).dump_python(updated, mode="json")


@api.delete(
    "/reminder/{reminder_id}",
    status_code=HTTPStatus.NO_CONTENT,
)
@start_as_current_span("reminder_delete")
async def reminder_delete(
    db: Store,
    reminder_id: UUID,
    owner_id: OwnerId = None,
) -> Response:
    """
    REST API to delete a reminder.

    Returns a 204 No Content.
    """
    await delete_reminder(
        owner_id=owner_id,
        reminder_id=reminder_id,
        store=db,
    )
    return Response(status_code=HTTPStatus.NO_CONTENT)


@api.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,  # noqa: ARG001
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions and return the error in a standard format.
    """
    return _standard_error(
        message=exc.detail,
        status_code=HTTPStatus(exc.status_code),
    )


@api.exception_handler(InvalidRangeError)
async def invalid_range_exception_handler(
    request: Request,  # noqa: ARG001
    exc: InvalidRangeError,
) -> JSONResponse:
    """
    Handle date range errors, the client sent a start after the end.
    """
    return _standard_error(
        message=str(exc),
        status_code=HTTPStatus.BAD_REQUEST,
    )


@api.exception_handler(MissingOwnerScopeError)
async def missing_owner_exception_handler(
    request: Request,  # noqa: ARG001
    exc: MissingOwnerScopeError,
) -> JSONResponse:
    """
    Handle requests without owner identity.
    """
    return _standard_error(
        message=str(exc),
        status_code=HTTPStatus.UNAUTHORIZED,
    )


@api.exception_handler(ReminderNotFoundError)
async def not_found_exception_handler(
    request: Request,  # noqa: ARG001
    exc: ReminderNotFoundError,
) -> JSONResponse:
    """
    Handle reminders missing or owned by someone else, both look the same to the client.
    """
    return _standard_error(
        message=str(exc),
        status_code=HTTPStatus.NOT_FOUND,
    )


@api.exception_handler(RequestValidationError)
@api.exception_handler(ValueError)
async def validation_exception_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle validation exceptions and return the error in a standard format.
    """
    return _validation_error(exc)


def _validation_error(e: ValidationError | Exception) -> JSONResponse:
    """
    Generate a standard validation error response.
    """
    messages = []
    if isinstance(e, ValidationError) or isinstance(e, ValidationException):
        messages = [
            str(x) for x in e.errors()
        ]  # Pydantic returns well formatted errors, use them
    elif isinstance(e, ValueError):
        messages = [str(e)]
    return _standard_error(
        details=messages,
        message="Validation error",
        status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
    )


def _standard_error(
    message: str,
    status_code: HTTPStatus,
    details: list[str] | None = None,
) -> JSONResponse:
    """
    Generate a standard error response.
    """
    model = ErrorModel(
        error=ErrorInnerModel(
            details=details or [],
            message=message,
        )
    )
    return JSONResponse(
        content=model.model_dump(mode="json"),
        status_code=status_code,
    )
