"""内容摘要工具

对事件载荷做规范化序列化后计算SHA256，用于完整性标记，不涉及密钥
"""

import json
import hashlib
from typing import Any

from pydantic import BaseModel


def canonicalize(payload: Any) -> str:
    """将载荷序列化为稳定的JSON文本

    键按字典序排列、去掉多余空白，因此键的插入顺序不影响结果
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def digest(payload: Any) -> str:
    """计算载荷的SHA256十六进制摘要"""
    return hashlib.sha256(canonicalize(payload).encode("utf-8")).hexdigest()
