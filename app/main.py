from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.authz.dependencies import AuthorizationDenied, authorization_denied_handler
from app.features.authz.grants import CachedGrantStore, SqlGrantStore
from app.features.authz.guards import FallbackRedirect, fallback_redirect_handler
from app.features.authz.modules import SqlModuleRegistry
from app.features.authz.routes import router as authz_router
from app.features.navigation.routes import router as navigation_router
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Business Suite Backend",
    description="Authorization service for the multi-tenant business suite",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"


# Rate limiter state lives on the app, apart from the authorization collaborators
limiter = Limiter(key_func=get_authorization_header)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)
app.add_exception_handler(FallbackRedirect, fallback_redirect_handler)


@app.on_event("startup")
async def startup():
    """Initialize database and authorization collaborators on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")

    sql_grants = SqlGrantStore(AsyncSessionLocal)
    if config.GRANT_CACHE_TTL_SECONDS > 0:
        log.info("Grant cache enabled, edits propagate within %ss", config.GRANT_CACHE_TTL_SECONDS)
        app.state.grant_store = CachedGrantStore(sql_grants.load_snapshot, config.GRANT_CACHE_TTL_SECONDS)
    else:
        app.state.grant_store = sql_grants
    app.state.module_registry = SqlModuleRegistry(AsyncSessionLocal)


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Business Suite Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": ["/authz/*", "/navigation/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "authz": "Role, grant matrix and compliance override decisions with module gating",
            "navigation": "Client route resolution behind permission and module gates",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Authorization routes
app.include_router(authz_router, prefix="/authz", tags=["authz"])

# Navigation routes
app.include_router(navigation_router, prefix="/navigation", tags=["navigation"])
