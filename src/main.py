# aura-spa/backend/src/main.py
import logging
import time
from contextlib import asynccontextmanager

from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.modules.admin.router import router as admin_router
from src.modules.schedule.router import router as schedule_router
from src.modules.technician.router import router as technician_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.arq_pool = None
    if settings.NOTIFICATIONS_ENABLED:
        try:
            app.state.arq_pool = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
            logger.info("arq 连接池已创建")
        except (RedisError, OSError) as exc:
            # 通知不可用时预约流程照常进行
            logger.warning("无法连接 Redis，预约通知已停用: %s", exc)

    yield

    if app.state.arq_pool is not None:
        await app.state.arq_pool.close()


# 根据不同环境动态设置 API 根路径
api_root_path = ""
if settings.ENVIRONMENT and settings.ENVIRONMENT.lower() not in ("prod", "test"):
    api_root_path = f"/{settings.ENVIRONMENT}"

app = FastAPI(
    title="Aura Spa 预约后端服务",
    description="Aura Spa 预约调度后端，提供技师排期、资源分配与预约生命周期接口。",
    version="0.1.0",
    lifespan=lifespan,
    root_path=api_root_path,
    # 仅在非生产环境下启用文档
    docs_url="/docs" if settings.ENVIRONMENT != "prod" else None,
)

register_exception_handlers(app)

# 定义允许的跨域来源
origins = [
    "http://localhost",
    "http://localhost:8000",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 健康检查
@app.get("/status", summary="服务根路径", tags=["Default"])
async def read_root():
    """
    欢迎信息或健康检查端点
    """
    status = {
        "service": "Aura Spa Scheduling Backend",
        "status": "running",
        "environment": settings.ENVIRONMENT,
        "timestamp": time.time()
    }
    return status

app.include_router(schedule_router, prefix="/schedule") # 客户预约相关路由
app.include_router(technician_router, prefix="/technician") # 技师相关路由
app.include_router(admin_router, prefix="/admin") # 管理后台相关路由
