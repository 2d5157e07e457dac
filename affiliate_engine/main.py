"""
Главная FastAPI аппликация.
Интегрирует:
- Трекинг переходов и кабинет партнёра
- Платёжные вебхуки
- Admin panel (выплаты, фрод)
- Health check
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from affiliate_engine.config import get_settings
from affiliate_engine.logger import setup_logging, log_api
from affiliate_engine.db.session import init_db
from affiliate_engine.api.admin_panel import router as admin_router
from affiliate_engine.api.routes_affiliate import router as affiliate_router
from affiliate_engine.api.routes_webhooks import router as webhook_router
from affiliate_engine.services.errors import (
    AffiliateError, AlreadyExists, AlreadyReferred, CodeGenerationExhausted,
    CodeTaken, InvalidStateTransition, NotActive, SelfReferral,
    TransientLedgerError, ValidationError,
)

settings = get_settings()

# Порядок важен: берётся первый подходящий класс
ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (SelfReferral, 400),
    (AlreadyExists, 409),
    (CodeTaken, 409),
    (AlreadyReferred, 409),
    (NotActive, 409),
    (InvalidStateTransition, 409),
    (TransientLedgerError, 503),
    (CodeGenerationExhausted, 503),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    log_api.info("=" * 50)
    log_api.info("🚀 Приложение стартует")
    log_api.info(f"PORT: {settings.port}")
    log_api.info(f"DEBUG: {settings.debug}")
    log_api.info("=" * 50)

    await init_db()
    log_api.info("✅ База данных инициализирована")

    yield

    log_api.info("🛑 Приложение останавливается")


app = FastAPI(
    title="Affiliate Engine",
    version="0.1.0",
    lifespan=lifespan,
)

setup_logging()


@app.exception_handler(AffiliateError)
async def affiliate_error_handler(request: Request, exc: AffiliateError):
    status_code = 500
    for error_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            status_code = code
            break

    if status_code >= 500:
        log_api.error(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    else:
        log_api.info(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ============= ROUTES =============

# Health check
@app.get("/health")
async def health_check():
    return {"status": "ok", "version": "0.1.0"}


app.include_router(affiliate_router)
app.include_router(webhook_router, prefix="/webhooks")
app.include_router(admin_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "affiliate_engine.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
