import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rideshare.api import payment_router, ride_router
from rideshare.config import Settings
from rideshare.db.session import Database
from rideshare.services.errors import HTTP_STATUS_BY_KIND, RideshareError
from rideshare.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


def _error(status_code: int, kind: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "kind": kind, "message": message},
    )


def create_app(settings: Settings = None, database: Database = None, gateway=None) -> FastAPI:
    """Wire settings, the database and the payment gateway into one app.

    Tests pass their own ``database`` and a fake ``gateway``.
    """
    settings = settings or Settings.from_env()
    database = database or Database(settings.database_url)
    gateway = gateway or PaymentGateway(settings.shop_id, settings.secret_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await database.dispose()

    app = FastAPI(title="Rideshare", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.gateway = gateway

    app.include_router(ride_router.router, prefix="/api")
    app.include_router(payment_router.router, prefix="/api")

    @app.exception_handler(RideshareError)
    async def handle_rideshare_error(request: Request, exc: RideshareError):
        status_code = HTTP_STATUS_BY_KIND.get(exc.kind, 500)
        return _error(status_code, exc.kind, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else "invalid request"
        return _error(400, "validation", message)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "internal", "internal error")

    @app.get("/health")
    async def health():
        try:
            await database.ping()
        except Exception:
            logger.exception("Health check: database unreachable")
            return JSONResponse(status_code=503, content={"status": "error", "database": "unreachable"})
        return {"status": "ok", "database": "ok"}

    return app


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
app = create_app()
logging.getLogger().setLevel(app.state.settings.log_level)
