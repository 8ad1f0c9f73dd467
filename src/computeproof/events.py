"""任务生命周期事件模型

定义六种生命周期事件、字段默认值以及事件的构造和解码。
事件一旦提交即不可变，载荷字段名使用账本上的camelCase形式。
调用方提供的额外字段随事件一起保留。
"""

import json
import time
import random
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .digest import digest
from .exceptions import EventValidationError

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class EventType(str, Enum):
    """事件类型"""
    JOB_SUBMITTED = "JobSubmitted"
    JOB_SCHEDULED = "JobScheduled"
    JOB_STARTED = "JobStarted"
    JOB_PROGRESS_UPDATE = "JobProgressUpdate"
    JOB_COMPLETED = "JobCompleted"
    JOB_FAILED = "JobFailed"


class EventModel(BaseModel):
    """事件模型基类"""
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")


class GpuRequirement(EventModel):
    """GPU需求"""
    type: str = Field("NVIDIA-A100", description="GPU型号")
    count: int = Field(1, description="GPU数量")
    memory: str = Field("40GB", description="显存")


class NodeSpecs(EventModel):
    """节点规格"""
    gpu_model: str = Field("NVIDIA A100 80GB", alias="gpuModel", description="GPU型号")
    cpu_cores: int = Field(32, alias="cpuCores", description="CPU核数")
    ram_gb: int = Field(256, alias="ramGB", description="内存(GB)")


class GpuUtilization(EventModel):
    """GPU分配与温度"""
    allocated: int = Field(1, description="已分配GPU数量")
    temperature: List[float] = Field(default_factory=lambda: [65, 66], description="各GPU温度")


class BaseEvent(EventModel):
    """事件公共字段"""
    kind: ClassVar[EventType]

    event_type: EventType = Field(..., alias="eventType", description="事件类型")
    timestamp: int = Field(..., description="事件时间(秒)")
    executor: str = Field("system", description="执行者: 节点名、用户地址或子系统名")

    def to_payload(self) -> Dict[str, Any]:
        """转换为提交到账本的载荷"""
        return self.model_dump(mode="json", by_alias=True)


class JobSubmitted(BaseEvent):
    """任务提交"""
    kind: ClassVar[EventType] = EventType.JOB_SUBMITTED

    event_type: EventType = Field(EventType.JOB_SUBMITTED, alias="eventType")
    job_id: Optional[str] = Field(None, alias="jobId", description="调用方提供的任务ID")
    job_type: str = Field("training", alias="jobType", description="任务类型")
    submitted_by: str = Field("0xDefaultAddress", alias="submittedBy", description="提交者地址")
    gpu_requirement: GpuRequirement = Field(default_factory=GpuRequirement, alias="gpuRequirement")
    estimated_duration: int = Field(3600, alias="estimatedDuration", description="预计时长(秒)")
    input_data_hash: Optional[str] = Field(None, alias="inputDataHash", description="输入数据摘要")
    priority: str = Field("medium", description="优先级")


class JobScheduled(BaseEvent):
    """任务调度"""
    kind: ClassVar[EventType] = EventType.JOB_SCHEDULED

    event_type: EventType = Field(EventType.JOB_SCHEDULED, alias="eventType")
    job_nid: Optional[str] = Field(None, alias="jobNid", description="资产标识")
    scheduled_node: str = Field("gpu-node-01", alias="scheduledNode", description="调度节点")
    node_specs: NodeSpecs = Field(default_factory=NodeSpecs, alias="nodeSpecs")
    scheduled_time: Optional[str] = Field(None, alias="scheduledTime", description="调度时间")
    queue_position: int = Field(1, alias="queuePosition", description="队列位置")


class JobStarted(BaseEvent):
    """任务开始执行"""
    kind: ClassVar[EventType] = EventType.JOB_STARTED

    event_type: EventType = Field(EventType.JOB_STARTED, alias="eventType")
    job_nid: Optional[str] = Field(None, alias="jobNid", description="资产标识")
    executor_node: str = Field("gpu-node-01", alias="executorNode", description="执行节点")
    actual_start_time: Optional[str] = Field(None, alias="actualStartTime", description="实际开始时间")
    container_id: Optional[str] = Field(None, alias="containerId", description="容器ID")
    gpu_utilization: GpuUtilization = Field(default_factory=GpuUtilization, alias="gpuUtilization")
    process_id: Optional[int] = Field(None, alias="processId", description="进程号")


class JobProgressUpdate(BaseEvent):
    """任务进度检查点"""
    kind: ClassVar[EventType] = EventType.JOB_PROGRESS_UPDATE

    event_type: EventType = Field(EventType.JOB_PROGRESS_UPDATE, alias="eventType")
    job_nid: Optional[str] = Field(None, alias="jobNid", description="资产标识")
    progress: float = Field(50, description="进度,0-100")
    current_epoch: int = Field(15, alias="currentEpoch", description="当前轮次")
    total_epochs: int = Field(30, alias="totalEpochs", description="总轮次")
    avg_gpu_utilization: float = Field(92.5, alias="avgGpuUtilization", description="平均GPU利用率")
    memory_usage: str = Field("32GB/40GB", alias="memoryUsage", description="显存占用")


class JobCompleted(BaseEvent):
    """任务完成"""
    kind: ClassVar[EventType] = EventType.JOB_COMPLETED

    event_type: EventType = Field(EventType.JOB_COMPLETED, alias="eventType")
    job_nid: Optional[str] = Field(None, alias="jobNid", description="资产标识")
    completion_status: str = Field("success", alias="completionStatus", description="完成状态")
    actual_end_time: Optional[str] = Field(None, alias="actualEndTime", description="实际结束时间")
    total_duration: int = Field(3600, alias="totalDuration", description="总时长(秒)")
    gpu_hours_used: Optional[float] = Field(None, alias="gpuHoursUsed", description="GPU小时数")
    exit_code: int = Field(0, alias="exitCode", description="退出码")
    output_artifacts: List[Any] = Field(default_factory=list, alias="outputArtifacts", description="输出产物")
    final_metrics: Dict[str, Any] = Field(
        default_factory=lambda: {"accuracy": 0.945, "loss": 0.032},
        alias="finalMetrics",
        description="最终指标"
    )
    c2pa_verified: bool = Field(True, alias="c2paVerified", description="C2PA校验结果")


class JobFailed(BaseEvent):
    """任务失败"""
    kind: ClassVar[EventType] = EventType.JOB_FAILED

    event_type: EventType = Field(EventType.JOB_FAILED, alias="eventType")
    job_nid: Optional[str] = Field(None, alias="jobNid", description="资产标识")
    failure_time: Optional[str] = Field(None, alias="failureTime", description="失败时间")
    error_code: str = Field("UNKNOWN_ERROR", alias="errorCode", description="错误码")
    error_message: str = Field("Job execution failed", alias="errorMessage", description="错误信息")
    stack_trace: str = Field("No stack trace available", alias="stackTrace", description="堆栈")
    partial_output_nid: Optional[str] = Field(None, alias="partialOutputNid", description="部分输出的资产标识")
    retry_attempt: int = Field(1, alias="retryAttempt", description="重试次数")


Event = Union[JobSubmitted, JobScheduled, JobStarted, JobProgressUpdate, JobCompleted, JobFailed]

EVENT_MODELS: Dict[EventType, Type[BaseEvent]] = {
    EventType.JOB_SUBMITTED: JobSubmitted,
    EventType.JOB_SCHEDULED: JobScheduled,
    EventType.JOB_STARTED: JobStarted,
    EventType.JOB_PROGRESS_UPDATE: JobProgressUpdate,
    EventType.JOB_COMPLETED: JobCompleted,
    EventType.JOB_FAILED: JobFailed,
}

# 未指定executor时各事件的默认执行者
DEFAULT_EXECUTORS: Dict[EventType, str] = {
    EventType.JOB_SCHEDULED: "scheduler",
    EventType.JOB_PROGRESS_UPDATE: "monitoring-system",
    EventType.JOB_COMPLETED: "gpu-node-01",
    EventType.JOB_FAILED: "error-handler",
}


class EventHeader(BaseModel):
    """解码载荷时必须具备的字段"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_type: EventType = Field(..., alias="eventType")
    timestamp: int


class EventContext:
    """事件构造所需的时钟和随机源

    Args:
        clock: 返回当前时间(秒)的函数
        rng: 随机数生成器，用于processId等随机默认值
    """

    def __init__(self, clock: Callable[[], float] = time.time, rng: Optional[random.Random] = None):
        self.clock = clock
        self.rng = rng or random.Random()

    def now(self) -> int:
        return int(self.clock())

    def random_process_id(self) -> int:
        return self.rng.randint(10000, 99999)


def parse_event_type(kind: Union[str, EventType]) -> EventType:
    """解析事件类型

    Raises:
        EventValidationError: 不是六种事件类型之一
    """
    try:
        return EventType(kind)
    except ValueError:
        raise EventValidationError(f"Unknown event type: {kind}")


def format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(TIME_FORMAT)


def _normalize_fields(model: Type[BaseEvent], data: Mapping[str, Any]) -> Dict[str, Any]:
    """统一使用别名作为键，值为None的字段视为未提供"""
    aliases = {name: field.alias or name for name, field in model.model_fields.items()}
    fields = {}
    for key, value in data.items():
        if value is None:
            continue
        fields[aliases.get(key, key)] = value
    fields.pop("eventType", None)
    return fields


def _fill_defaults(kind: EventType, fields: Dict[str, Any], context: EventContext) -> None:
    """填充依赖时间、随机数或其他字段的默认值"""
    fields.setdefault("timestamp", context.now())
    try:
        event_time = format_time(int(fields["timestamp"]))
    except (TypeError, ValueError, OverflowError, OSError):
        raise EventValidationError(f"Invalid timestamp: {fields['timestamp']!r}")

    if kind is EventType.JOB_SUBMITTED:
        fields.setdefault("inputDataHash", digest({"job": fields.get("jobId")}))
        fields.setdefault("executor", fields.get("submittedBy", "0xDefaultAddress"))
    elif kind is EventType.JOB_SCHEDULED:
        fields.setdefault("scheduledTime", event_time)
    elif kind is EventType.JOB_STARTED:
        fields.setdefault("actualStartTime", event_time)
        fields.setdefault("containerId", f"docker://{digest({'nid': fields.get('jobNid')})[:12]}")
        fields.setdefault("processId", context.random_process_id())
        fields.setdefault("executor", fields.get("executorNode", "gpu-node-01"))
    elif kind is EventType.JOB_COMPLETED:
        fields.setdefault("actualEndTime", event_time)
        fields.setdefault("totalDuration", 3600)
        if "gpuHoursUsed" not in fields:
            try:
                fields["gpuHoursUsed"] = float(fields["totalDuration"]) / 3600
            except (TypeError, ValueError):
                pass  # totalDuration本身不合法，交给模型校验报错
    elif kind is EventType.JOB_FAILED:
        fields.setdefault("failureTime", event_time)

    if kind in DEFAULT_EXECUTORS:
        fields.setdefault("executor", DEFAULT_EXECUTORS[kind])


def build_event(
    kind: Union[str, EventType],
    data: Optional[Mapping[str, Any]] = None,
    context: Optional[EventContext] = None
) -> Event:
    """根据调用方输入构造事件

    缺失的字段一律使用默认值；只有事件类型无法识别或字段值类型不合法时才失败。

    Args:
        kind: 事件类型
        data: 调用方提供的字段，camelCase或snake_case均可
        context: 时钟和随机源，为None时使用系统时间

    Returns:
        对应类型的事件

    Raises:
        EventValidationError: 事件类型无法识别或字段值不合法
    """
    event_type = parse_event_type(kind)
    model = EVENT_MODELS[event_type]
    fields = _normalize_fields(model, data or {})
    _fill_defaults(event_type, fields, context or EventContext())

    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise EventValidationError(f"Invalid {event_type.value} event: {e}") from e


def decode_event(raw: Union[str, Mapping[str, Any]]) -> Event:
    """将账本中的载荷解码为事件

    只要求可识别的eventType和整数timestamp。其余字段与当前模型不一致时
    (例如旧版本写入的载荷)按原样保留，不因此丢弃事件。

    Raises:
        EventValidationError: 载荷不是合法的事件
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise EventValidationError(f"Payload is not valid JSON: {e}") from e

    if not isinstance(raw, Mapping):
        raise EventValidationError("Payload is not an object")

    event_type = parse_event_type(raw.get("eventType"))
    try:
        header = EventHeader.model_validate(raw)
    except ValidationError as e:
        raise EventValidationError(f"Invalid {event_type.value} event: {e}") from e

    model = EVENT_MODELS[event_type]
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Keeping {event_type.value} payload as recorded: {e}")

    fields = dict(raw)
    fields.update({"eventType": event_type, "timestamp": header.timestamp})
    return model.model_construct(**fields)
