# main.py
import logging
from pathlib import Path

from dotenv import load_dotenv

# Ensure repo-root .env is loaded for the running server process.
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.config import settings
from app.config import build_sqlalchemy_db_url
from app.database import Base, engine
from app.models import Profile, User  # noqa: F401 - register tables on Base.metadata
from app.api.routes.health import router as health_router
from app.routers import auth, profiles, registration
from app.services.errors import AuthorizationError, FormValidationError, RegistrationError, field_errors


logger = logging.getLogger(__name__)


async def _registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    body: dict = {"detail": exc.message}
    if isinstance(exc, FormValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, AuthorizationError):
        # Clients treat this as "access denied, go home".
        body["redirect"] = "/"
    if exc.status_code >= 500:
        logger.error("request.failed path=%s error=%s: %s", request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Same body as FormValidationError so clients read one error shape.
    return await _registration_error_handler(request, FormValidationError(field_errors(exc.errors())))


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        debug=settings.debug,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(RegistrationError, _registration_error_handler)
    application.add_exception_handler(RequestValidationError, _request_validation_handler)

    application.include_router(health_router)
    application.include_router(auth.router, prefix="/auth", tags=["auth"])
    application.include_router(registration.router)
    application.include_router(profiles.router)

    # Avoid accidental schema changes in shared databases.
    # For local/test sqlite usage, auto-create ORM tables is still convenient.
    db_url = build_sqlalchemy_db_url(settings)
    if db_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    return application


app = create_app()
