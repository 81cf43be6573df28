from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import time
from contextlib import asynccontextmanager

from careservices.base_microservice import BaseMicroservice
from careservices.auth.errors import ServiceError, error_body
from careservices.auth.router import router as auth_router, start_auth_service
from careservices.users.router import router as users_router, start_users_service

# Create shared base microservice instance
base_service = BaseMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    base_service.log_event("service.startup", {"service": "main", "env": base_service.app_env})

    # Initialize services; a failure here aborts startup
    await start_auth_service()
    await start_users_service()

    yield

    base_service.log_event("service.shutdown", {"service": "main"})

# Create main FastAPI app with lifespan
app = FastAPI(
    title="Care Coordination API",
    description="Authentication, authorization and user lifecycle for the care coordination back office",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Bodies carry passwords and are never logged
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    base_service.logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)"
    )
    return response


def endpoint_not_found(request: Request) -> JSONResponse:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    base_service.logger.info(f"404 - Missing endpoint: {request.method} {url}")
    return JSONResponse(
        status_code=404,
        content={
            "error": "Endpoint not found",
            "method": request.method,
            "url": url,
            "message": f"{request.method} {url} is not implemented",
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Unmatched paths and methods come from the router, not from a service
    if not isinstance(exc, ServiceError) and exc.status_code in (404, 405):
        return endpoint_not_found(request)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), getattr(exc, "details", None)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        details.append(f"{field}: {error['msg']}" if field else error["msg"])
    return JSONResponse(status_code=400, content=error_body("Invalid request body", details))

# Include routers with prefixes
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(users_router, prefix="/users", tags=["users"])


@app.get("/health", tags=["health"])
async def health_check():
    """Overall system health check."""
    return {"status": "OK", "message": "Care Coordination API is running"}

# For running directly with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("careservices.main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
