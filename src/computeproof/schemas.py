"""结果Schema定义"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .events import Event, EventType


class Receipt(BaseModel):
    """提交回执"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool = True
    tx_hash: str = Field(..., alias="txHash", description="交易引用")
    explorer_url: Optional[str] = Field(None, alias="explorerUrl", description="浏览器地址，离线模式下为空")
    event_type: EventType = Field(..., alias="eventType", description="事件类型")
    message: str = Field("", description="结果说明")


class SubmissionReceipt(Receipt):
    """任务提交回执，附带新分配的资产标识"""
    job_nid: str = Field(..., alias="jobNid", description="资产标识")
    job_id: Optional[str] = Field(None, alias="jobId", description="任务ID")


class JobMetrics(BaseModel):
    """由历史推导出的指标"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    duration: int = Field(..., description="完成时间减提交时间(秒)")
    gpu_hours_used: float = Field(..., alias="gpuHoursUsed", description="GPU小时数")
    cost: float = Field(..., description="费用")
    efficiency: int = Field(..., description="成功为100，否则为0")


class JobHistory(BaseModel):
    """任务历史，每次查询重新计算"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    job_asset_id: str = Field(..., alias="jobNid", description="资产标识")
    events: List[Event] = Field(default_factory=list, description="按时间升序的事件")
    metrics: Optional[JobMetrics] = Field(None, description="指标，缺少提交或完成事件时为空")
    total_events: int = Field(0, alias="totalEvents", description="事件数量")
    discarded: int = Field(0, alias="discardedCommits", description="无法解码而丢弃的提交数量")
