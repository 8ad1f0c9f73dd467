"""任务生命周期编排

将状态转换请求变成经过校验的事件，提交到外部账本并返回回执：
1. JobSubmitted - 注册资产、分配资产标识，再提交事件
2. 其他事件 - 必须已有资产标识，直接提交事件

不保存任何跨请求的状态，也不强制状态转换顺序
(submitted -> scheduled -> started -> progress* -> completed | failed 仅作参考)，
读取历史时再按timestamp重建顺序。
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union
from urllib.parse import quote

from .config import Settings
from .events import BaseEvent, EventContext, EventType, build_event, parse_event_type
from .exceptions import EventValidationError, MissingAssetError
from .ledger import LedgerClient
from .schemas import Receipt, SubmissionReceipt

logger = logging.getLogger(__name__)

# 提交说明，仅用于审计，不会被解析
COMMIT_MESSAGES: Dict[EventType, Callable[[Any], str]] = {
    EventType.JOB_SUBMITTED: lambda e: "Job submitted to queue",
    EventType.JOB_SCHEDULED: lambda e: f"Job scheduled on {e.scheduled_node}",
    EventType.JOB_STARTED: lambda e: "Job execution started",
    EventType.JOB_PROGRESS_UPDATE: lambda e: f"Progress checkpoint at {e.progress:g}%",
    EventType.JOB_COMPLETED: lambda e: (
        "Job completed successfully" if e.completion_status == "success"
        else f"Job completed with status {e.completion_status}"
    ),
    EventType.JOB_FAILED: lambda e: f"Job failed: {e.error_code}",
}

RECEIPT_MESSAGES: Dict[EventType, str] = {
    EventType.JOB_SUBMITTED: "Job submitted successfully",
    EventType.JOB_SCHEDULED: "Job scheduled",
    EventType.JOB_STARTED: "Job started",
    EventType.JOB_PROGRESS_UPDATE: "Progress updated",
    EventType.JOB_COMPLETED: "Job completed",
    EventType.JOB_FAILED: "Job failure recorded",
}

DEFAULT_DOCKER_IMAGE = "pytorch/pytorch:2.0-cuda11.7"


class JobLifecycle:
    """任务生命周期编排器

    Args:
        settings: 应用配置
        ledger: 账本客户端
        context: 时钟和随机源，为None时使用系统时间
    """

    def __init__(self, settings: Settings, ledger: LedgerClient, context: Optional[EventContext] = None):
        self.settings = settings
        self.ledger = ledger
        self.context = context or EventContext()

    def reference_url(self, job_id: str) -> str:
        """构造任务的内容引用URL，只用于满足外部服务的格式要求"""
        base = self.settings.ASSET_FILE_BASE_URL.rstrip("/")
        return f"{base}/{quote(job_id, safe='')}.json"

    def explorer_url(self, tx_hash: str) -> Optional[str]:
        if self.settings.MOCK_NUMBERS_API:
            return None
        return f"{self.settings.EXPLORER_BASE_URL.rstrip('/')}/{tx_hash}"

    def _build(self, kind: EventType, data: Mapping[str, Any], **fields: Any) -> BaseEvent:
        """构造事件，时间戳总是取服务端观察到的时间"""
        values = {k: v for k, v in data.items() if k != "timestamp"}
        values.update(fields)
        return build_event(kind, values, self.context)

    def _commit(self, job_asset_id: str, event: BaseEvent) -> str:
        return self.ledger.commit(job_asset_id, event, COMMIT_MESSAGES[event.kind](event))

    def submit(self, data: Optional[Mapping[str, Any]] = None) -> SubmissionReceipt:
        """提交新任务

        注册资产获得资产标识后提交JobSubmitted事件，这是唯一会分配资产标识的操作

        Args:
            data: 任务信息，必须包含jobId

        Returns:
            带资产标识的回执

        Raises:
            EventValidationError: 缺少jobId或字段不合法
            RegistrationError: 资产注册失败
            CommitError: 事件提交失败
        """
        data = dict(data or {})
        job_id = data.pop("job_id", None) or data.get("jobId")
        if not job_id:
            raise EventValidationError("jobId is required to submit a job")
        job_id = str(job_id)
        docker_image = data.pop("dockerImage", None) or data.pop("docker_image", None) or DEFAULT_DOCKER_IMAGE

        event = self._build(EventType.JOB_SUBMITTED, data, jobId=job_id)
        custom_fields = dict(event.to_payload())
        custom_fields.update({"dockerImage": docker_image, "status": "submitted"})

        job_asset_id = self.ledger.register_asset(
            self.reference_url(job_id),
            f"GPU Job: {job_id}",
            custom_fields
        )
        logger.info(f"Registered job {job_id} as asset {job_asset_id}")

        tx_hash = self._commit(job_asset_id, event)
        return SubmissionReceipt(
            tx_hash=tx_hash,
            explorer_url=self.explorer_url(tx_hash),
            event_type=EventType.JOB_SUBMITTED,
            message=RECEIPT_MESSAGES[EventType.JOB_SUBMITTED],
            job_nid=job_asset_id,
            job_id=job_id
        )

    def record(
        self,
        job_asset_id: Optional[str],
        kind: Union[str, EventType],
        data: Optional[Mapping[str, Any]] = None
    ) -> Receipt:
        """记录已有任务的状态转换

        对JobSubmitted只提交事件，不会重新注册资产

        Raises:
            EventValidationError: 事件类型无法识别或字段不合法
            MissingAssetError: 没有资产标识
            CommitError: 事件提交失败
        """
        event_type = parse_event_type(kind)
        if not job_asset_id:
            raise MissingAssetError(f"{event_type.value} requires an existing job asset id")

        if event_type is EventType.JOB_SUBMITTED:
            event = self._build(event_type, data or {})
        else:
            event = self._build(event_type, data or {}, jobNid=job_asset_id)

        tx_hash = self._commit(job_asset_id, event)
        logger.info(f"Recorded {event_type.value} for asset {job_asset_id}: {tx_hash}")

        if event_type is EventType.JOB_SUBMITTED:
            return SubmissionReceipt(
                tx_hash=tx_hash,
                explorer_url=self.explorer_url(tx_hash),
                event_type=event_type,
                message=RECEIPT_MESSAGES[event_type],
                job_nid=job_asset_id,
                job_id=event.job_id
            )
        return Receipt(
            tx_hash=tx_hash,
            explorer_url=self.explorer_url(tx_hash),
            event_type=event_type,
            message=RECEIPT_MESSAGES[event_type]
        )

    def transition(
        self,
        kind: Union[str, EventType],
        job_asset_id: Optional[str],
        data: Optional[Mapping[str, Any]] = None
    ) -> Receipt:
        """执行一次状态转换

        没有资产标识的JobSubmitted走注册流程，其余情况提交到已有资产
        """
        event_type = parse_event_type(kind)
        if event_type is EventType.JOB_SUBMITTED and not job_asset_id:
            return self.submit(data)
        return self.record(job_asset_id, event_type, data)
