"""
PMS 入住引擎应用入口
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pms.config import settings
from pms.database import init_db
from pms.routers import checkin, checkout, occupancies, payments

logger = logging.getLogger(__name__)


def setup_logging(level: str = settings.LOG_LEVEL):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    setup_logging()
    init_db()

    # 注册事件处理器
    from pms.services.event_handlers import register_event_handlers
    register_event_handlers()

    logger.info(f"{settings.APP_NAME} started")
    yield
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="入住生命周期与房间分配引擎：入住、收款、住宿修改、退房",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkin.router)
app.include_router(occupancies.router)
app.include_router(payments.router)
app.include_router(checkout.router)


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy", "app": settings.APP_NAME}
