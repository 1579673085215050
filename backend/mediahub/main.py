from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from mediahub.api.v1 import auth, users, videos
from mediahub.core.config import settings
from mediahub.core.errors import AppError, ErrorKind
from mediahub.db.mongodb import close_mongo, get_mongo_db, init_mongo_indexes
from mediahub.utils.logging_config import configure_logging, RequestContextMiddleware
from mediahub.utils.responses import error_response

# Configure logging with date-based files and TTL retention
logger = configure_logging("mediahub")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # Log the internal kind and message; the client only sees the public text.
    # Refresh reuse reaches the security log from the session registry.
    if exc.kind is ErrorKind.INTERNAL:
        logger.error(f"{exc.kind.code} at {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind.code} at {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return error_response(exc.status_code, exc.public_message, exc.public_details, headers=headers)

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return error_response(ErrorKind.VALIDATION.status_code, ErrorKind.VALIDATION.public_message, errors)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error at {request.url.path}: {exc}")
    return error_response(500, ErrorKind.INTERNAL.public_message)

# Add GZip compression for larger JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware; credentials are needed for the token cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix=settings.API_V1_STR, tags=["Authentication"])
app.include_router(users.router, prefix=settings.API_V1_STR, tags=["Users"])
app.include_router(videos.router, prefix=settings.API_V1_STR, tags=["Videos"])

@app.on_event("startup")
async def startup_db_client():
    """Ensure Mongo indexes"""
    try:
        await init_mongo_indexes()
        logger.info("Mongo indexes ensured")
    except Exception as e:
        logger.warning(f"Mongo init skipped or failed: {e}")
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_db_client():
    close_mongo()
    logger.info("Application shutdown complete")

@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}

@app.get("/health")
async def health_check():
    db = get_mongo_db()
    if db is None:
        return {"status": "degraded", "database": "mongo_not_configured"}
    try:
        await db.command({"ping": 1})
    except Exception as e:
        logger.warning(f"Health Mongo check failed: {e}")
        return {"status": "degraded", "database": "mongo_unavailable"}
    return {"status": "healthy", "database": "mongo_connected"}
