import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, DisconnectionError, TimeoutError as PoolTimeoutError

from marketplace.core.config import settings
from marketplace.core.database import engine, init_models, is_in_memory
from marketplace.core.exceptions import AppError, TransientIOError
from marketplace.routers import (
    proposal_router, chat_router, message_router,
    review_router, notification_router, user_router
)

# 設定基礎日誌
logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__) # 建立一個 logger 實例


@asynccontextmanager
async def lifespan(app: FastAPI):
    mode = "in-memory" if is_in_memory(settings.DATABASE_URL) else "durable"
    if settings.AUTO_CREATE_TABLES:
        await init_models()
    logger.info(f"Store ready ({mode}).")
    yield
    await engine.dispose()


app = FastAPI(title="Marketplace Negotiation API", lifespan=lifespan)

# --- 設定 CORS (跨來源資源共用) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # 允許所有來源
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- 錯誤處理：統一輸出 {"detail": ..., "error": ...} ---
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.error_code},
        headers=exc.headers,
    )

@app.exception_handler(OperationalError)
@app.exception_handler(DisconnectionError)
@app.exception_handler(PoolTimeoutError)
@app.exception_handler(asyncio.TimeoutError)
async def transient_io_handler(request: Request, exc: Exception):
    logger.warning(f"Storage unavailable on {request.url.path}: {exc}")
    error = TransientIOError()
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.detail, "error": error.error_code},
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": "INTERNAL_ERROR"},
    )


# --- 根路徑 ---
@app.get("/")
def read_root():
    return {"status": "success", "message": "Backend is running!"}

@app.get("/health", tags=["Health"])
async def health():
    """
    資料庫探測 (有逾時上限) 與輪詢間隔建議值
    """
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await asyncio.wait_for(
                conn.execute(text("SELECT 1")),
                timeout=settings.HEALTH_CHECK_TIMEOUT_SECONDS
            )
    except (OperationalError, DisconnectionError, PoolTimeoutError, asyncio.TimeoutError, OSError) as e:
        logger.warning(f"Health check failed: {e}")
        db_status = "unavailable"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "db": db_status,
        "mode": "in-memory" if is_in_memory(settings.DATABASE_URL) else "durable",
        "polling": {
            "chat_interval_seconds": settings.CHAT_POLL_INTERVAL_SECONDS,
            "session_list_interval_seconds": settings.SESSION_LIST_POLL_INTERVAL_SECONDS,
        },
    }

# --- 載入 API 路由 ---
app.include_router(user_router.router)
app.include_router(proposal_router.router)
app.include_router(chat_router.router)
app.include_router(message_router.router)
app.include_router(review_router.router)
app.include_router(notification_router.router)
