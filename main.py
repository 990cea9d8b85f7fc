# main.py
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from fastapi_limiter import FastAPILimiter
import routes
from util.enums import Environment, Color
from fastapi import FastAPI, Request
from starlette.middleware.cors import CORSMiddleware
from config.settings import settings
from config.cache import close_redis, get_redis
from controller.controller_dependencies import get_conversion_tracker
from fastapi.responses import JSONResponse
from service.janitor_service import TempFileJanitor
from util.errors import ConverterError
from util.logger import init_logger

logger = logging.getLogger(__name__)


async def _real_ip(request: Request) -> str:
    if settings.TRUST_PROXY:
        fwd = request.headers.get("x-forwarded-for")
        if fwd:
            return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@asynccontextmanager
async def lifespan(fastApi: FastAPI):
    try:
        # Warm Redis
        init_logger()
        print(f"{Color.GREEN}Initializing...{Color.RESET}")
        redis = await get_redis()
        if settings.RATE_LIMIT_ENABLED:
            await FastAPILimiter.init(redis, identifier=_real_ip)
        Path(settings.SCRATCH_DIR).mkdir(parents=True, exist_ok=True)
        janitor_task = asyncio.create_task(TempFileJanitor().run(), name="janitor")
        print(f"{Color.BLUE}Server Started{Color.RESET}")
    except Exception as e:
        print("Failed to connect to Redis:", e)
        raise

    try:
        yield
    finally:
        janitor_task.cancel()
        with suppress(asyncio.CancelledError):
            await janitor_task
        try:
            await get_conversion_tracker().shutdown()
        except Exception as e:
            print("Error stopping conversions:", e)
        try:
            await close_redis()
        except Exception as e:
            print("Error closing Redis:", e)

        print(f"{Color.RED}Server Shutdown{Color.RESET}")


app: FastAPI = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN],
    allow_credentials=True,  # Allow cookies and other credentials
    allow_methods=["GET", "POST", "DELETE"],  # Allowed HTTP Methods
    allow_headers=["Authorization", "Content-Type", "Accept"],  # Allowed HTTP Headers
    expose_headers=["Content-Disposition"],
)


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.exception_handler(ConverterError)
async def converter_error_handler(request: Request, exc: ConverterError):
    if exc.http_status >= 500:
        logger.error("request.error path=%s code=%s", request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.http_status,
        content={"ok": False, "error": exc.code, "message": exc.detail},
    )


@app.exception_handler(429)
async def ratelimit_handler(request: Request, exc):
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "error": "rate_limited",
            "message": f"Too many requests. Try again in {settings.RATE_LIMIT_SECONDS}s.",
        },
        headers={"Retry-After": str(settings.RATE_LIMIT_SECONDS)},
    )


routes.register_routes(app)

if __name__ == "__main__":
    import uvicorn

    reload = settings.APP_ENV == Environment.DEV
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=reload)
