import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journalflow")

_SENTRY_ENABLED = False
try:
    from journalflow.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry(storage_backend=os.environ.get("JOURNALFLOW_STORAGE_BACKEND") or "supabase")
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: 零崩溃原则 — Sentry 任何异常不得阻塞启动
    logger.warning(f"[sentry] init failed (ignored): {e}")

from journalflow.api.v1 import reviews, submissions, system
from journalflow.core.middleware import ExceptionHandlerMiddleware, register_exception_handlers
from journalflow.services.workflow import reset_workflow


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # 中文注释: 关闭时等待后台通知线程投递完毕
    reset_workflow()


app = FastAPI(
    title="JournalFlow API",
    description="Submission lifecycle and peer-review assignment backend",
    version="1.0.0",
    lifespan=lifespan,
)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    if many:
        for part in many.split(","):
            o = (part or "").strip().rstrip("/")
            if o:
                origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    # 去重保持顺序
    return list(dict.fromkeys(origins))


# === 中间件配置 ===
# 1. 跨域资源共享 (CORS) - 允许前端访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. 统一异常处理：领域错误 -> 4xx，未处理异常 -> 500
app.add_middleware(ExceptionHandlerMiddleware)
register_exception_handlers(app)

# === 路由注册 ===
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(system.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalFlow API is running", "docs": "/docs"}
