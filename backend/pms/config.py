"""
应用配置
从环境变量读取配置
"""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "PMS Occupancy Engine"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./pms.db"

    # JWT 配置
    SECRET_KEY: str = "pms-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # 事务超时（秒）：入住涉及多次写入，单独放宽
    CHECKIN_TRANSACTION_TIMEOUT_SECONDS: int = 15
    TRANSACTION_TIMEOUT_SECONDS: int = 5

    # 业务参数
    MAX_STAY_DAYS: int = 365
    PAYMENT_OVERDUE_DAYS: int = 3
    DEFAULT_BOOKING_SOURCE: str = "WALK_IN"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# 全局设置实例
settings = Settings()
