import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from config import PUBLIC_PATHS, Settings, load_settings
from db import get_db, init_db
from routers import auth as auth_router
from routers import symptoms as symptoms_router
from security import AuthenticationError, AuthorityUnavailable, build_authority
from tokens import _get_authenticated_principal
from ui import error_fragment
from validation import ValidationError

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Content-Security-Policy": "; ".join([
        "default-src 'self'",
        "script-src 'self' 'unsafe-inline' https://unpkg.com",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data:",
        "connect-src 'self'",
        "font-src 'self'",
        "object-src 'none'",
        "base-uri 'self'",
        "form-action 'self'",
        "frame-ancestors 'none'",
        "upgrade-insecure-requests",
    ]),
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
}

JSON_PATHS = {"/api/token", "/api/me"}


def _wants_json(request: Request) -> bool:
    return request.url.path in JSON_PATHS or "application/json" in request.headers.get("content-type", "")


def _with_security_headers(response):
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


def _unauthenticated(request: Request):
    if request.url.path.startswith("/api/"):
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    return RedirectResponse(url="/login", status_code=303)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    init_db(settings.db_path)

    app = FastAPI()
    app.state.settings = settings
    app.state.authority = build_authority(settings)
    if not settings.is_multi_user and not (settings.reference_username and settings.reference_password):
        logger.warning("TRACKME_USER or TRACKME_PASSWORD is not set; nobody will be able to log in")

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if path in PUBLIC_PATHS:
            return await call_next(request)
        principal = _get_authenticated_principal(request)
        if principal is None:
            return _unauthenticated(request)
        request.state.principal = principal
        return await call_next(request)

    # Registered last so it wraps auth_middleware and covers redirects and 401s.
    # Unhandled errors are answered outside the middleware stack, so the
    # 500 handler sets the headers itself.
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        return _with_security_headers(await call_next(request))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        if _wants_json(request):
            return JSONResponse({"error": exc.message, "field": exc.field}, status_code=400)
        return HTMLResponse(error_fragment(exc.message), status_code=400)

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return _unauthenticated(request)

    @app.exception_handler(AuthorityUnavailable)
    async def authority_unavailable_handler(request: Request, exc: AuthorityUnavailable):
        logger.error("Authority unavailable while handling %s %s", request.method, request.url.path, exc_info=exc)
        if _wants_json(request):
            return JSONResponse({"error": "Invalid credentials"}, status_code=401)
        return HTMLResponse(error_fragment("Invalid credentials"), status_code=401)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        if _wants_json(request):
            return _with_security_headers(JSONResponse({"error": "internal error"}, status_code=500))
        return _with_security_headers(HTMLResponse(error_fragment("Server error"), status_code=500))

    @app.get("/api/health")
    def health():
        checked_at = datetime.now(timezone.utc).isoformat()
        try:
            with get_db(settings.db_path) as conn:
                conn.execute("SELECT 1").fetchone()
        except Exception:
            logger.exception("Health check failed")
            return JSONResponse(
                {"status": "unhealthy", "timestamp": checked_at, "service": "trackme", "database": "disconnected"},
                status_code=503,
            )
        return {"status": "healthy", "timestamp": checked_at, "service": "trackme", "database": "connected"}

    app.include_router(auth_router.router)
    app.include_router(symptoms_router.router)
    return app


app = create_app()
