import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum

from core.config import get_settings
from core.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    InvalidArgumentError,
    InvalidStateTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    TransientError,
    UnavailableError,
)
from core.logging_config import setup_logging

from .container import ServiceContainer, build_container
from .routes import router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyExistsError: status.HTTP_409_CONFLICT,
    InsufficientFundsError: status.HTTP_400_BAD_REQUEST,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    InvalidArgumentError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
    UnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
}


async def handle_service_error(request: Request, exc: ServiceError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    message = f"[{exc.code}] {request.method} {request.url.path} -> {status_code}: {exc.message}"
    if status_code >= 500:
        logger.error(message)
    else:
        logger.warning(message)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"code": exc.code, "message": exc.message}},
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    container = container or build_container()
    app = FastAPI(
        title=container.settings.app_name,
        description="Points ledger, friend graph and notifications for the Fetch app",
        version="1.0.0",
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ServiceError, handle_service_error)
    app.include_router(router)
    return app


settings = get_settings()
setup_logging(settings.log_level)

app = create_app(build_container(settings))

handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
