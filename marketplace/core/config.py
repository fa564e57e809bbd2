# marketplace/core/config.py
# 應用程式設定 (資料庫連線字串、JWT 秘鑰、業務常數等)
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # 資料庫設定：未設定時使用記憶體內的 SQLite (開發 / 降級模式)
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"
    SQL_ECHO: bool = False
    # 啟動時自動建立資料表
    AUTO_CREATE_TABLES: bool = True
    # 連線池取連線 / driver busy timeout (秒)
    DB_TIMEOUT_SECONDS: float = 10.0
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 3.0

    # JWT 設定 (與身分提供者共用)
    JWT_SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # 案件列表 (feed)
    FEED_PAGE_SIZE: int = 10
    FEED_MAX_PAGE_SIZE: int = 50
    DEFAULT_SEARCH_RADIUS_KM: float = 50.0

    # 完成案件時的獎勵
    COMPLETION_XP_BONUS: int = 500
    FALLBACK_PAYOUT_AMOUNT: float = 100.00

    # 輪詢 (polling) 後備機制的建議間隔
    CHAT_POLL_INTERVAL_SECONDS: int = 3
    SESSION_LIST_POLL_INTERVAL_SECONDS: int = 30

    LOG_LEVEL: str = "INFO"

    # 環境變數檔案
    class Config:
        env_file = ".env"

# 建立設定實例
settings = Settings()
