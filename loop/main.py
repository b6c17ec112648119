import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from supabase import Client

from loop.config import Settings, settings as default_settings
from loop.core.errors import LoopError, OperationalError
from loop.core.events import EventBus
from loop.core.locks import GroupLockRegistry
from loop.database.supabase_client import create_supabase
from loop.modules.auth import routes as auth_routes
from loop.modules.auth.service import AuthService
from loop.modules.groups import routes as groups_routes
from loop.modules.members import routes as members_routes
from loop.modules.media import routes as media_routes

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"X-XSS-Protection", b"1; mode=block"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def install_state(app: FastAPI, settings: Settings, supabase: Client) -> None:
    app.state.settings = settings
    app.state.supabase = supabase
    app.state.auth_service = AuthService(
        supabase,
        cache_ttl_sec=settings.auth_cache_ttl_sec,
        cache_max_size=settings.auth_cache_max_size,
    )


def create_app(settings: Optional[Settings] = None, supabase: Optional[Client] = None) -> FastAPI:
    settings = settings or default_settings
    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        redirect_slashes=False,
    )
    app.state.limiter = limiter
    app.state.settings = settings
    app.state.group_locks = GroupLockRegistry()
    app.state.event_bus = EventBus()
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(LoopError)
    async def loop_error_handler(request: Request, exc: LoopError):
        if isinstance(exc, OperationalError):
            logger.error(
                "%s on %s %s [%s]: %s",
                exc.reason, request.method, request.url.path, exc.diagnostic_code, exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        if settings.is_production:
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include module routes
    app.include_router(auth_routes.router, prefix="/api/v1")
    app.include_router(members_routes.router, prefix="/api/v1")
    app.include_router(groups_routes.router, prefix="/api/v1")
    app.include_router(media_routes.router, prefix="/api/v1")

    if supabase is not None:
        install_state(app, settings, supabase)
    else:
        @app.on_event("startup")
        async def startup_event():
            install_state(app, settings, create_supabase(settings))
            logger.info("Application startup")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutdown")

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {settings.app_name}", "status": "healthy"}

    @app.get("/health")
    @limiter.exempt
    async def health():
        return {"status": "healthy"}

    @app.get("/ready")
    @limiter.exempt
    async def ready():
        """Readiness check: ready once the Supabase client is in place."""
        if not hasattr(app.state, "supabase"):
            return JSONResponse(status_code=503, content={"status": "starting"})
        return {"status": "ready"}

    return app


configure_logging(default_settings)
app = create_app()
