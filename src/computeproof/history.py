"""任务历史重建

从账本读取资产的全部提交，解码为事件并按时间排序，再推导指标。
历史每次查询都重新计算，不做缓存。
"""

import logging
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from .config import Settings
from .events import BaseEvent, EventType, decode_event
from .exceptions import EventValidationError
from .ledger import LedgerClient
from .schemas import JobHistory, JobMetrics

logger = logging.getLogger(__name__)


class DecodeResult(NamedTuple):
    """解码结果"""
    events: List[BaseEvent]
    discarded: int


def decode_commits(commits: Iterable[Mapping[str, Any]]) -> DecodeResult:
    """解码提交记录

    账本中可能存在其他系统写入的非事件提交，无法解码的记录直接丢弃并计数
    """
    events = []
    discarded = 0
    for commit in commits:
        raw = commit.get("custom") if isinstance(commit, Mapping) else None
        if raw is None:
            discarded += 1
            continue
        try:
            events.append(decode_event(raw))
        except EventValidationError:
            discarded += 1
    return DecodeResult(events, discarded)


def sort_events(events: Iterable[BaseEvent]) -> List[BaseEvent]:
    """按timestamp升序排序，时间相同的保持到达顺序"""
    return sorted(events, key=lambda e: e.timestamp)


def _first(events: Sequence[BaseEvent], event_type: EventType) -> Optional[BaseEvent]:
    return next((e for e in events if e.event_type is event_type), None)


def derive_metrics(events: Sequence[BaseEvent], rate: float) -> Optional[JobMetrics]:
    """推导指标

    只有同时存在JobSubmitted和JobCompleted时才计算，多次出现时取排序后的第一个

    Args:
        events: 已排序的事件
        rate: 每GPU小时费用

    Returns:
        指标，缺少任一事件时为None
    """
    submitted = _first(events, EventType.JOB_SUBMITTED)
    completed = _first(events, EventType.JOB_COMPLETED)
    if submitted is None or completed is None:
        return None

    duration = completed.timestamp - submitted.timestamp
    gpu_hours_used = duration / 3600
    if completed.gpu_hours_used is not None:
        # 按原样解码的事件中gpuHoursUsed可能不是数值
        try:
            gpu_hours_used = float(completed.gpu_hours_used)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric gpuHoursUsed: {completed.gpu_hours_used!r}")

    return JobMetrics(
        duration=duration,
        gpu_hours_used=gpu_hours_used,
        cost=gpu_hours_used * rate,
        efficiency=100 if completed.completion_status == "success" else 0
    )


class HistoryReconstructor:
    """任务历史重建器

    Args:
        settings: 应用配置，提供计费费率
        ledger: 账本客户端
    """

    def __init__(self, settings: Settings, ledger: LedgerClient):
        self.settings = settings
        self.ledger = ledger

    def get_history(self, job_asset_id: str) -> JobHistory:
        """获取任务历史

        没有任何事件时返回空历史而不是报错

        Raises:
            HistoryFetchError: 读取账本失败
        """
        commits = self.ledger.list_commits(job_asset_id)
        result = decode_commits(commits)
        if result.discarded:
            logger.debug(f"Discarded {result.discarded} undecodable commits for {job_asset_id}")

        events = sort_events(result.events)
        return JobHistory(
            job_asset_id=job_asset_id,
            events=events,
            metrics=derive_metrics(events, self.settings.GPU_HOUR_RATE),
            total_events=len(events),
            discarded=result.discarded
        )
