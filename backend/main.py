import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chapterpay.api.endpoints import admin, chapter_access, users, writer_earning
from chapterpay.core.database import Base, SessionLocal, engine
from chapterpay.core.errors import ChapterPayError, InternalError, ValidationError
from chapterpay.core.settings import settings
from chapterpay.models import (  # noqa: F401  registers tables on Base.metadata
    ad_unlock_log,
    chapter,
    chapter_access as chapter_access_model,
    coin_transaction,
    novel,
    subscription,
    unlock_history,
    user,
    writer_earning as writer_earning_model,
)
from chapterpay.services.subscriptions import seed_default_plans

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("chapterpay")

app = FastAPI(title="Chapter Monetization API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.is_production and not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET must be set in production")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
        db = SessionLocal()
        try:
            seed_default_plans(db)
        finally:
            db.close()
    logger.info("app.startup env=%s earnings_dispatch=%s", settings.environment, settings.earnings_dispatch)


@app.exception_handler(ChapterPayError)
async def chapterpay_error_handler(request: Request, exc: ChapterPayError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error("request.failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append({"field": ".".join(loc), "message": str(err.get("msg") or "")})
    first = fields[0] if fields else {"field": "", "message": "Invalid request"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    logger.info("request.invalid path=%s fields=%s", request.url.path, [f["field"] for f in fields])
    error = ValidationError(message, code="invalid_request", fields=fields)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled path=%s", request.url.path)
    return JSONResponse(status_code=500, content=InternalError("Internal server error").to_payload())


# API Routes
app.include_router(chapter_access.router, prefix="/api", tags=["chapter-access"])
app.include_router(writer_earning.router, prefix="/api", tags=["writer-earning"])
app.include_router(users.router, prefix="/api", tags=["users"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
