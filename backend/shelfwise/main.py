from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from shelfwise.core.config import settings
from shelfwise.core.dependencies import get_cover_resolver
from shelfwise.database import init_db
from shelfwise.routers import books, covers
from shelfwise.services.book_queries import DatastoreError

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("shelfwise")
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(title="Shelfwise", debug=settings.DEBUG)

# ----------------------------
# CORS
# ----------------------------
cors_origins = settings.cors_origins_list
logger.info("[CORS] allow_origins=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _with_cors_headers(request: Request, response: JSONResponse) -> JSONResponse:
    # Error responses built here bypass CORSMiddleware
    origin = request.headers.get("origin")
    if origin and origin in cors_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


@app.exception_handler(DatastoreError)
async def datastore_exception_handler(request: Request, exc: DatastoreError):
    logger.error(
        "[DATASTORE] %s %s: %s",
        request.method,
        request.url.path,
        exc,
        extra={"error_type": type(exc).__name__},
    )
    response = JSONResponse(
        status_code=503,
        content={"detail": "Catalog temporarily unavailable", "error": type(exc).__name__},
    )
    return _with_cors_headers(request, response)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] %s %s", request.method, request.url.path)
    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"}
    )
    return _with_cors_headers(request, response)


# ----------------------------
# Routers
# ----------------------------
app.include_router(books.router, prefix="/api")
app.include_router(covers.router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    resolver = get_cover_resolver()
    if resolver.cdn_configured:
        logger.info("[BOOT] cover CDN enabled base=%s", resolver.cdn.base_url)
    else:
        logger.info("[BOOT] cover CDN disabled; storage keys fall back to external URLs")


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/health")
def api_health_check():
    return {"status": "ok"}
