import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from inventory_ledger.api import inventory, reports
from inventory_ledger.config import settings
from inventory_ledger.database import init_db
from inventory_ledger.errors import InventoryError

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info("%s started", settings.APP_NAME)
    yield


app = FastAPI(
    title="Inventory Ledger API",
    description="Atomic stock mutations with an append-only audit ledger",
    version="1.0.0",
    lifespan=lifespan,
)


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    if exc.status_code >= 500:
        logger.error("Inventory error on %s: %s", request.url.path, exc.message)
    return _error(exc.status_code, exc.error, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        details.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return _error(400, "ValidationError", "; ".join(details) or "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, "HTTPError", str(exc.detail))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log the real failure, answer with a generic body that hides storage details."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return _error(500, "InternalServerError", "An unexpected error occurred")


app.include_router(inventory.router)
app.include_router(reports.router)


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("inventory_ledger.main:app", host="0.0.0.0", port=8000)
