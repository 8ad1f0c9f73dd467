"""异常定义

所有异常对单次操作都是终止性的，内部不做重试
"""

from typing import Optional


class ComputeProofError(Exception):
    """computeproof异常基类

    用于区分业务错误和其他系统错误
    """
    pass


class EventValidationError(ComputeProofError):
    """事件校验错误

    事件类型无法识别、字段值类型不合法或提交任务时缺少job id时抛出
    """
    pass


class MissingAssetError(ComputeProofError):
    """缺少资产标识错误

    在没有资产标识的情况下尝试提交以外的状态转换时抛出
    """
    pass


class LedgerError(ComputeProofError):
    """外部账本调用失败

    Args:
        message: 错误描述
        detail: 上游返回的错误文本
        status_code: 上游HTTP状态码，传输层错误时为None
    """

    def __init__(self, message: str, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{message}: {detail}" if detail else message)


class RegistrationError(LedgerError):
    """资产注册失败"""
    pass


class CommitError(LedgerError):
    """事件提交失败"""
    pass


class HistoryFetchError(LedgerError):
    """历史记录读取失败"""
    pass
