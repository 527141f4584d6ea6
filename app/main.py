from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.errors import ServiceError
from app.features.users.routes import router as user_router
from app.features.organizations.routes import router as organization_router
from app.features.roles.routes import router as role_router
from app.features.menus.routes import router as menu_router
from app.features.permissions.routes import router as permission_router
from app.features.users.dependencies import get_authorization_header
from app.features.users.fields import init_user_fields
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Org Menu RBAC",
    description="Organization-scoped role and menu permission service",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(
    key_func=get_authorization_header,
    default_limits=[config.RATE_LIMIT],
    enabled=config.RATE_LIMIT_ENABLED,
)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


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
        key = error["loc"][-1] if error["loc"] else "body"
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(ServiceError)
async def service_error_handler(_request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        log.error("Service error: %s", exc.detail)
    else:
        log.info("%s: %s", type(exc).__name__, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.on_event("startup")
async def startup():
    """Initialize database and user field config on application startup."""
    log.info("Initializing database...")
    await init_db()
    init_user_fields()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API description."""
    return {
        "message": "Org Menu RBAC API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "identity": {
            "info": "Authentication happens upstream; the caller is identified by the X-User-Id header",
            "organization_scope": "X-Org-Id header or org_id query parameter, primary organization otherwise",
        },
        "features": {
            "organizations": "Organization tree and user memberships with a single primary organization",
            "roles": "Role catalog and organization-scoped role assignment",
            "menus": "Hierarchical menu catalog with ordering and role bindings",
            "permissions": "Menu permission resolution with admin bypass and per-user overrides",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(organization_router, prefix="/organizations", tags=["organizations"])
app.include_router(role_router, prefix="/roles", tags=["roles"])
app.include_router(menu_router, prefix="/menus", tags=["menus"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
