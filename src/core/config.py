# aura-spa/backend/src/core/config.py
import logging
from typing import Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置 - 使用 Pydantic 进行类型校验和设置管理
    所有敏感信息都从环境变量或 .env 文件加载
    """
    # --- 环境配置 ---
    ENVIRONMENT: Literal["dev", "test", "prod"] = "dev"
    LOG_LEVEL: str = "INFO"

    # --- 核心安全配置 ---
    SECRET_KEY: str = "change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # --- 应用运行配置 ---
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8002

    # --- 数据库配置 ---
    # 设置 DATABASE_URL 时直接使用 (例如测试环境的 sqlite+aiosqlite)
    DATABASE_URL: Optional[str] = None
    MYSQL_USERNAME: str = "root"
    MYSQL_PASSWORD: str = ""
    MYSQL_HOST: str = "localhost"
    MYSQL_PORT: int = 3306
    DB_NAME: str = "aura_dev"
    SQL_ECHO: bool = False

    # --- redis 配置 ---
    REDIS_URL: str = "redis://localhost:6379"
    SLOT_CACHE_ENABLED: bool = False
    NOTIFICATIONS_ENABLED: bool = False

    # --- 业务时区 ---
    LOCAL_UTC_OFFSET_HOURS: int = 7
    LOCAL_TIMEZONE_NAME: str = "Asia/Ho_Chi_Minh"

    # --- 预约规则 ---
    BUSINESS_OPEN_TIME: str = "09:00"
    BUSINESS_CLOSE_TIME: str = "21:00"
    BREAK_START_TIME: Optional[str] = "12:00"
    BREAK_END_TIME: Optional[str] = "14:00"
    SLOT_INTERVAL_MINUTES: int = 15
    CANCEL_DEADLINE_MINUTES: int = 30
    RESCHEDULE_DEADLINE_MINUTES: int = 30
    AUTO_CONFIRM_APPOINTMENTS: bool = False

    @property
    def DATABASE_URI(self) -> str:
        """计算属性：根据其他配置动态拼接出完整的数据库连接 URI。"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+asyncmy://{self.MYSQL_USERNAME}:{self.MYSQL_PASSWORD}@"
            f"{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.DB_NAME}"
        )

    class Config:
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

logger.info("--- 应用运行在 %s 模式 ---", settings.ENVIRONMENT.upper())
