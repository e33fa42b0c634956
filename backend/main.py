"""
笔记树服务 - 主入口
基于FastAPI：笔记/任务树的增删改移、整树导入、提醒调度与多端同步
"""

import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.errors import ErrorCode, register_exception_handlers
from core.lifespan import lifespan
from modules.notes.notes_router import router as notes_router
from routers import websocket

settings = get_settings()

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def create_app() -> FastAPI:
    """创建应用"""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="个人笔记/任务树与提醒服务",
        lifespan=lifespan,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json"
    )

    # ==================== 中间件配置 ====================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 生产环境应限制为具体域名
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    # ==================== 异常处理器 ====================
    register_exception_handlers(app)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """全局异常捕获"""
        logger.error(f"未处理异常: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "服务器内部错误，请稍后重试",
                "data": None
            }
        )

    # ==================== 注册路由 ====================
    app.include_router(notes_router, prefix="/api/v1/notes", tags=["笔记"])
    app.include_router(websocket.router, tags=["实时通信"])

    @app.get("/health")
    async def health():
        """健康检查"""
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()


# ==================== 启动入口 ====================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
