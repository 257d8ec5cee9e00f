# src/core/database.py

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator

from src.core.config import settings

# MySQL: 1205 锁等待超时, 1213 死锁
MYSQL_LOCK_ERROR_CODES = (1205, 1213)


def is_write_conflict(exc: Exception) -> bool:
    """
    判断存储层异常是否属于并发写冲突。
    唯一约束冲突、MySQL 锁等待超时/死锁、SQLite 的 "database is locked" 都算；
    可能出现在事务开启、FOR UPDATE 读取或提交的任意一步。
    """
    if isinstance(exc, IntegrityError):
        return True
    orig = getattr(exc, "orig", None)
    args = getattr(orig, "args", None) or ()
    if args and args[0] in MYSQL_LOCK_ERROR_CODES:
        return True
    message = str(exc).lower()
    return "deadlock" in message or "database is locked" in message


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """
    SQLite 下接管事务的开启方式：每个事务都以 BEGIN IMMEDIATE 开始，
    这样并发的预约请求在数据库层面被串行化（先检查后写入保持原子）。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # 关闭驱动自带的 BEGIN，由下面的 begin 事件统一发出
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_uri: str, echo: bool = False, lock_timeout: float = 30) -> AsyncEngine:
    """根据 URI 创建异步引擎，并按数据库类型设置事务隔离方式。"""
    if database_uri.startswith("sqlite"):
        engine = create_async_engine(
            database_uri,
            echo=echo,
            connect_args={"timeout": lock_timeout},
        )
        _install_sqlite_transaction_hooks(engine)
        return engine

    # MySQL: READ COMMITTED 保证加锁之后的读取能看到上一个持锁事务提交的数据
    return create_async_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


# 1. 创建异步引擎
engine = build_engine(settings.DATABASE_URI, echo=settings.SQL_ECHO)

# 2. 创建异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # 异步会话中推荐
)


# 3. 创建所有模型都将继承的 Base 类
class Base(DeclarativeBase):
    pass


# 4. 数据库依赖项 (异步版本)
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 依赖项，用于获取异步数据库会话。
    Service 层负责 commit 或 rollback。
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
