import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from adscope.api.deps import failure
from adscope.api.routes import jobs, workflows
from adscope.config import settings
from adscope.core.service import get_service
from adscope.errors import AdScopeError, AlreadyFinished, RecordNotFound
from adscope.services import logger as log_service


async def _evict_periodically(interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await get_service().evict_expired()
        except Exception as exc:
            logger.warning(f"Record eviction failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log_service.log_event("startup", "AdScope API starting", adapters=settings.adapter_chain_list)
    eviction = asyncio.create_task(_evict_periodically(settings.store_eviction_interval_seconds))
    yield
    # Shutdown
    eviction.cancel()
    await asyncio.gather(eviction, return_exceptions=True)
    await get_service().shutdown()


app = FastAPI(
    title="AdScope",
    description="Competitive ad intelligence: page scraping with adapter fallback and AI analysis",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(jobs.router)
app.include_router(workflows.router)


@app.exception_handler(RecordNotFound)
async def not_found_handler(request: Request, exc: RecordNotFound):
    return failure(404, exc.code, str(exc))


@app.exception_handler(AlreadyFinished)
async def already_finished_handler(request: Request, exc: AlreadyFinished):
    return failure(400, exc.code, str(exc), {"status": exc.status})


@app.exception_handler(AdScopeError)
async def adscope_error_handler(request: Request, exc: AdScopeError):
    return failure(400, exc.code, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return failure(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")} for err in exc.errors()]
    return failure(400, "VALIDATION_ERROR", "Invalid request", {"errors": errors})


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "adscope"}
