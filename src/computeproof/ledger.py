"""外部账本客户端

封装对外部锚定服务的三种操作：
1. 注册资产 - 为任务分配资产标识
2. 提交事件 - 将事件追加到资产的提交历史
3. 读取历史 - 列出资产的全部提交

离线模式下不发起任何网络请求，返回合成的标识。
"""

import time
import uuid
import logging
import threading
from functools import wraps
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from .config import Settings
from .digest import digest
from .events import BaseEvent
from .exceptions import CommitError, HistoryFetchError, RegistrationError

logger = logging.getLogger(__name__)


def retry_on_transport_error(operation: str = "default"):
    """重试装饰器

    Args:
        operation: 操作名称，用于日志

    重试策略：
    1. 传输层错误(超时、连接失败): 按Settings.RETRY重试，线性退避
    2. 其他异常: 直接抛出
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            retry = self.settings.RETRY
            max_attempts = max(retry.max_attempts, 1)
            last_exception = None
            for attempt in range(max_attempts):
                try:
                    return func(self, *args, **kwargs)
                except httpx.TransportError as e:
                    last_exception = e
                    if attempt + 1 < max_attempts:
                        logger.warning(
                            f"Ledger {operation} failed, retrying "
                            f"{attempt + 1}/{max_attempts}: {e}"
                        )
                        time.sleep(retry.delay * (attempt + 1))
            raise last_exception
        return wrapper
    return decorator


class LedgerClient:
    """外部账本客户端

    Args:
        settings: 应用配置
        client: 复用的httpx客户端，为None时按配置创建
        id_factory: 离线模式下生成随机后缀的函数
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.Client] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex
    ):
        self.settings = settings
        self._id_factory = id_factory
        self._owns_client = client is None
        self._client = client
        self._client_lock = threading.Lock()

    @property
    def offline(self) -> bool:
        return self.settings.MOCK_NUMBERS_API

    @property
    def client(self) -> httpx.Client:
        # 同步路由在线程池中执行，首次创建需要加锁
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(timeout=self.settings.REQUEST_TIMEOUT)
            return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._owns_client and self._client is not None:
                self._client.close()
                self._client = None

    def __enter__(self) -> "LedgerClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"{self.settings.AUTH_SCHEME} {self.settings.CAPTURE_TOKEN}",
            "Content-Type": "application/json",
        }

    @retry_on_transport_error(operation="post")
    def _post(self, url: str, body: Mapping[str, Any]) -> httpx.Response:
        return self.client.post(url, json=body, headers=self._headers())

    @retry_on_transport_error(operation="get")
    def _get(self, url: str) -> httpx.Response:
        return self.client.get(url, headers=self._headers())

    def register_asset(self, reference_url: str, abstract: str, custom_fields: Mapping[str, Any]) -> str:
        """注册资产

        Args:
            reference_url: 内容引用URL，只需满足外部服务的格式要求
            abstract: 资产摘要
            custom_fields: 附加字段

        Returns:
            资产标识

        Raises:
            RegistrationError: 外部服务返回非成功响应或请求失败
        """
        if self.offline:
            asset_id = f"bafyMOCK{self._id_factory()}"
            logger.debug(f"Offline mode: registered mock asset {asset_id}")
            return asset_id

        logger.info(f"Registering asset with asset_file URL: {reference_url}")
        try:
            response = self._post(f"{self.settings.API_BASE}/assets/", {
                "asset_file": reference_url,
                "abstract": abstract,
                "custom_fields": dict(custom_fields),
            })
        except httpx.HTTPError as e:
            logger.error(f"Failed to register asset: {e}")
            raise RegistrationError("Failed to register job", detail=str(e)) from e

        if not response.is_success:
            logger.error(f"Failed to register asset: {response.status_code} {response.text}")
            raise RegistrationError(
                "Failed to register job", detail=response.text, status_code=response.status_code
            )

        asset_id = _json_field(response, "nid")
        if not asset_id:
            raise RegistrationError("Failed to register job", detail="response has no valid nid")
        return asset_id

    def commit(self, asset_id: str, event: BaseEvent, commit_message: str) -> str:
        """提交事件

        每次提交都附带载荷的SHA256摘要

        Args:
            asset_id: 资产标识
            event: 事件
            commit_message: 提交说明，仅用于审计

        Returns:
            交易引用

        Raises:
            CommitError: 外部服务返回非成功响应或请求失败
        """
        if self.offline:
            tx_hash = f"0xMOCK_TX_{event.event_type.value}_{self._id_factory()[:8]}"
            logger.debug(f"Offline mode: committed {event.event_type.value} as {tx_hash}")
            return tx_hash

        payload = event.to_payload()
        body = {
            "encodingFormat": "application/json",
            "assetCid": asset_id,
            "assetTimestampCreated": event.timestamp,
            "assetCreator": event.executor or "system",
            "assetSha256": digest(payload),
            "abstract": f"Event: {event.event_type.value}",
            "commitMessage": commit_message,
            "custom": payload,
        }
        logger.info(f"Committing {event.event_type.value} to asset {asset_id}")
        try:
            response = self._post(self.settings.COMMIT_API, body)
        except httpx.HTTPError as e:
            logger.error(f"Failed to commit event: {e}")
            raise CommitError("Failed to commit event", detail=str(e)) from e

        if not response.is_success:
            logger.error(f"Failed to commit event: {response.status_code} {response.text}")
            raise CommitError(
                "Failed to commit event", detail=response.text, status_code=response.status_code
            )

        tx_hash = _json_field(response, "txHash")
        if not tx_hash:
            raise CommitError("Failed to commit event", detail="response has no valid txHash")
        return tx_hash

    def list_commits(self, asset_id: str) -> List[Dict[str, Any]]:
        """读取资产的全部提交记录

        离线模式下没有可读取的账本，返回空列表

        Raises:
            HistoryFetchError: 外部服务返回非成功响应或请求失败
        """
        if self.offline:
            logger.debug(f"Offline mode: no commit history for {asset_id}")
            return []

        try:
            response = self._get(f"{self.settings.API_BASE}/assets/{asset_id}/history/")
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch job history: {e}")
            raise HistoryFetchError("Failed to fetch job history", detail=str(e)) from e

        if not response.is_success:
            logger.error(f"Failed to fetch job history: {response.status_code} {response.text}")
            raise HistoryFetchError(
                "Failed to fetch job history", detail=response.text, status_code=response.status_code
            )

        try:
            commits = response.json().get("commits") or []
        except (ValueError, AttributeError) as e:
            raise HistoryFetchError("Failed to fetch job history", detail="malformed response") from e
        if not isinstance(commits, list):
            raise HistoryFetchError("Failed to fetch job history", detail="commits is not a list")
        return commits


def _json_field(response: httpx.Response, name: str) -> Optional[str]:
    """从JSON响应中读取字符串字段，响应不是JSON对象或字段不是字符串时返回None"""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get(name)
    return value if isinstance(value, str) else None
