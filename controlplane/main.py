from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette import status

from controlplane.routes.bootstrap import router as bootstrap_router
from controlplane.routes.tenants import router as tenants_router
from controlplane.routes.workers import router as workers_router
from controlplane.services.cloudformation_service import CloudFormationServiceError
from controlplane.services.cognito_service import CognitoServiceError
from controlplane.services.config import ConfigurationError
from controlplane.services.dynamodb_service import DynamoDBServiceError
from controlplane.services.ses_service import SESServiceError
from controlplane.services.ssm_service import SSMServiceError


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    yield


app = FastAPI(lifespan=lifespan)

app.include_router(workers_router)
app.include_router(tenants_router)
app.include_router(bootstrap_router)


async def provider_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map provider adapter failures to a consistent HTTP response.

    The adapters already log the underlying botocore error; callers only get the
    adapter's message.

    Returns:
        502 Bad Gateway with a JSON body: {"detail": "..."}
    """
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc)},
    )


for _error_type in (
    DynamoDBServiceError,
    SSMServiceError,
    CloudFormationServiceError,
    CognitoServiceError,
    SESServiceError,
):
    app.add_exception_handler(_error_type, provider_error_handler)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc)},
    )


@app.exception_handler(ValidationError)
async def payload_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    # Worker payloads are validated inside the worker table, after FastAPI's own body parsing.
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(include_url=False, include_context=False)},
    )


@app.get("/")
async def root():
    return {"message": "Control plane is running."}
