"""FastAPI应用"""

from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .events import EventType
from .exceptions import (
    CommitError, EventValidationError, HistoryFetchError, MissingAssetError, RegistrationError
)
from .service import JobReceiptService

# URL中的阶段名到事件类型
STAGES: Dict[str, EventType] = {
    "scheduled": EventType.JOB_SCHEDULED,
    "started": EventType.JOB_STARTED,
    "progress": EventType.JOB_PROGRESS_UPDATE,
    "completed": EventType.JOB_COMPLETED,
    "failed": EventType.JOB_FAILED,
}

ERROR_STATUS: Dict[str, int] = {
    EventValidationError.__name__: 400,
    MissingAssetError.__name__: 400,
    RegistrationError.__name__: 502,
    CommitError.__name__: 502,
    HistoryFetchError.__name__: 502,
}


def _respond(envelope: Dict[str, Any]) -> JSONResponse:
    if envelope["success"]:
        return JSONResponse(envelope)
    return JSONResponse(envelope, status_code=ERROR_STATUS.get(envelope.get("errorType"), 500))


def create_app(settings: Optional[Settings] = None, service: Optional[JobReceiptService] = None) -> FastAPI:
    """创建FastAPI应用

    Args:
        settings: 应用配置，为None时从配置文件加载
        service: 任务回执服务，为None时根据配置创建
    """
    settings = settings or load_settings()
    service = service or JobReceiptService.from_settings(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="GPU job receipt pipeline anchored to an external ledger",
        version=settings.VERSION
    )
    app.state.settings = settings
    app.state.service = service

    # 配置CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    def close_service():
        service.close()

    @app.get("/health")
    def health():
        """健康检查"""
        return {
            "status": "ok",
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION
        }

    @app.post("/api/jobs/submit")
    def submit_job(request: Request, payload: Dict[str, Any] = Body(default={})):
        """提交GPU任务"""
        return _respond(request.app.state.service.submit_job(payload))

    @app.post("/api/jobs/{nid}/{stage}")
    def record_transition(request: Request, nid: str, stage: str, payload: Dict[str, Any] = Body(default={})):
        """记录任务状态转换"""
        event_type = STAGES.get(stage)
        if event_type is None:
            raise HTTPException(status_code=404, detail=f"Unknown job stage: {stage}")
        return _respond(request.app.state.service.record_transition(nid, event_type.value, payload))

    @app.get("/api/jobs/{nid}/history")
    def get_history(request: Request, nid: str):
        """获取任务历史"""
        return _respond(request.app.state.service.get_history(nid))

    return app
