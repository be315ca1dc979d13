"""
数据库配置 - SQLAlchemy 持久化层
所有写操作通过服务层的事务完成
"""
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from pms.config import settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

_connect_args = {"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=_connect_args)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """依赖注入：获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """初始化数据库表"""
    from pms.models import ontology  # noqa
    Base.metadata.create_all(bind=engine)

    if engine.dialect.name == "sqlite":
        # 启用 WAL 模式以提高并发性能
        with engine.connect() as conn:
            conn.execute(text("PRAGMA journal_mode=WAL"))
            conn.execute(text("PRAGMA synchronous=NORMAL"))
            conn.commit()


def transaction_timeout(db: Session, seconds: int) -> None:
    """
    为当前事务设置超时上限

    PostgreSQL 使用 SET LOCAL（事务结束自动失效），
    SQLite 设置等待写锁的 busy_timeout。其他方言忽略。
    """
    dialect = db.get_bind().dialect.name
    millis = int(seconds * 1000)
    if dialect == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {millis}"))
    elif dialect == "sqlite":
        db.execute(text(f"PRAGMA busy_timeout = {millis}"))
    else:
        logger.debug(f"transaction timeout not supported for dialect {dialect}")
