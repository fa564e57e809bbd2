from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from marketplace.core.config import settings


def is_in_memory(database_url: str) -> bool:
    return database_url.startswith("sqlite") and ":memory:" in database_url


def engine_options(database_url: str) -> dict:
    """依連線字串決定引擎參數 (記憶體 SQLite / 檔案 SQLite / 其他資料庫)"""
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"timeout": settings.DB_TIMEOUT_SECONDS}}
        if is_in_memory(database_url):
            # 記憶體資料庫只存在於單一連線中，必須共用同一條連線
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True, # 每次從連線池取連線前，先 PING 一次，確保連線有效
        "pool_timeout": settings.DB_TIMEOUT_SECONDS,
    }


# 建立非同步引擎
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    **engine_options(settings.DATABASE_URL),
)

# 建立非同步 Session
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# 建立 ORM Model 基底類別
Base = declarative_base()


async def init_models() -> None:
    """啟動時建立所有資料表 (記憶體模式必須執行)"""
    # 確保所有 Model 都已註冊到 Base.metadata
    from marketplace.models import user, proposal, negotiation, review, ledger, notification  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# (重要) 取得 DB Session 的 Dependency
async def get_db() -> AsyncSession:
    """FastAPI Dependency: 取得非同步資料庫 session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
