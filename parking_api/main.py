import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import parking_api.models  # noqa: F401
from parking_api.core.config import settings
from parking_api.core.db import init_models
from parking_api.core.errors import ErrorCode, status_for
from parking_api.core.logging import configure_logging

# Routers
from parking_api.routers.auth import router as auth_router
from parking_api.routers.me import router as me_router
from parking_api.routers.reservations import router as reservations_router
from parking_api.routers.admin_discounts import router as admin_discounts_router
from parking_api.routers.discounts import router as discounts_router

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.CREATE_TABLES_ON_STARTUP:
        await init_models()
    logger.info("parking api started")
    yield


app = FastAPI(title="Parking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed bodies/params are validation errors like any other (400, not FastAPI's 422)
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid input')}" if where else first.get("msg", "invalid input")
    logger.debug("rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(
        status_code=status_for(ErrorCode.validation_error),
        content={"detail": {"error": ErrorCode.validation_error.value, "message": message}},
    )


# Auth & users
app.include_router(auth_router)
app.include_router(me_router)

# Reservations
app.include_router(reservations_router)

# Discounts
app.include_router(admin_discounts_router)
app.include_router(discounts_router)
