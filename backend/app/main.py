import logging
import sys

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import PortalError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)
from app.domains.users.router import (
    admin_router as users_admin_router,
    auth_router,
    router as users_router,
)
from app.domains.customers.router import (
    admin_router as customers_admin_router,
    router as customers_router,
)
from app.domains.provider_groups.router import (
    admin_router as provider_groups_admin_router,
    router as provider_groups_router,
)
from app.domains.providers.router import (
    admin_router as providers_admin_router,
    router as providers_router,
)
from app.domains.submissions.router import router as submissions_router
from app.bff.router import router as bff_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report schema failures as field-keyed errors, like ValidationFailed."""
    field_errors: dict[str, list[str]] = {}
    form_errors: list[str] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        if location:
            field_errors.setdefault(location[-1], []).append(message)
        else:
            form_errors.append(message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "field_errors": field_errors, "form_errors": form_errors},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Domain routers
app.include_router(
    auth_router,
    prefix=f"{settings.API_V1_PREFIX}/auth",
    tags=["auth"],
)
app.include_router(
    users_router,
    prefix=f"{settings.API_V1_PREFIX}/users",
    tags=["users"],
)
app.include_router(
    customers_router,
    prefix=f"{settings.API_V1_PREFIX}/customers",
    tags=["customers"],
)
app.include_router(
    provider_groups_router,
    prefix=f"{settings.API_V1_PREFIX}/provider-groups",
    tags=["provider-groups"],
)
app.include_router(
    providers_router,
    prefix=f"{settings.API_V1_PREFIX}/provider-npis",
    tags=["providers"],
)
app.include_router(
    submissions_router,
    prefix=f"{settings.API_V1_PREFIX}/submissions",
    tags=["submissions"],
)

# System admin routers
for admin_router, tag in (
    (customers_admin_router, "admin-customers"),
    (users_admin_router, "admin-users"),
    (provider_groups_admin_router, "admin-provider-groups"),
    (providers_admin_router, "admin-providers"),
):
    app.include_router(admin_router, prefix=f"{settings.API_V1_PREFIX}/admin", tags=[tag])

# BFF router
app.include_router(
    bff_router,
    prefix=f"{settings.API_V1_PREFIX}/bff",
    tags=["bff"],
)
