"""对外服务接口

将生命周期和历史操作包装为传输层通用的结果信封：
成功 {"success": True, ...}，失败 {"success": False, "error": ..., "errorType": ...}
"""

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

from .config import Settings
from .exceptions import ComputeProofError
from .history import HistoryReconstructor
from .ledger import LedgerClient
from .lifecycle import JobLifecycle

logger = logging.getLogger(__name__)


def success_envelope(result: BaseModel) -> Dict[str, Any]:
    body = {"success": True}
    # 按原样解码的事件字段可能与模型声明的类型不同
    body.update(result.model_dump(mode="json", by_alias=True, warnings=False))
    return body


def failure_envelope(error: ComputeProofError) -> Dict[str, Any]:
    return {
        "success": False,
        "error": str(error),
        "errorType": type(error).__name__,
    }


class JobReceiptService:
    """任务回执服务

    Args:
        lifecycle: 生命周期编排器
        history: 历史重建器
    """

    def __init__(self, lifecycle: JobLifecycle, history: HistoryReconstructor):
        self.lifecycle = lifecycle
        self.history = history

    @classmethod
    def from_settings(cls, settings: Settings, ledger: Optional[LedgerClient] = None) -> "JobReceiptService":
        """根据配置创建服务，生命周期编排器和历史重建器共用同一个账本客户端"""
        ledger = ledger or LedgerClient(settings)
        return cls(JobLifecycle(settings, ledger), HistoryReconstructor(settings, ledger))

    def close(self) -> None:
        self.lifecycle.ledger.close()

    def submit_job(self, data: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """提交任务"""
        try:
            return success_envelope(self.lifecycle.submit(data))
        except ComputeProofError as e:
            logger.error(f"Error submitting job: {e}")
            return failure_envelope(e)

    def record_transition(
        self,
        job_asset_id: Optional[str],
        kind: str,
        data: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """记录状态转换"""
        try:
            return success_envelope(self.lifecycle.record(job_asset_id, kind, data))
        except ComputeProofError as e:
            logger.error(f"Error recording {kind} for {job_asset_id}: {e}")
            return failure_envelope(e)

    def get_history(self, job_asset_id: str) -> Dict[str, Any]:
        """获取任务历史"""
        try:
            return success_envelope(self.history.get_history(job_asset_id))
        except ComputeProofError as e:
            logger.error(f"Error fetching history for {job_asset_id}: {e}")
            return failure_envelope(e)
