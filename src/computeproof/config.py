"""配置管理模块

该模块负责加载和管理computeproof的配置信息，包括：
1. 定义不可变的Settings配置对象
2. 从YAML配置文件和环境变量加载配置
3. 初始化日志系统
"""

import os
import logging
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "../../config/config.yaml")


class RetrySettings(BaseModel):
    """账本请求重试配置

    只对传输层错误(超时、连接失败)生效，非成功响应不会重试
    """
    model_config = ConfigDict(frozen=True)

    max_attempts: int = 1  # 1表示不重试
    delay: float = 1.0  # 线性退避基数(秒)


class Settings(BaseSettings):
    """应用配置

    进程启动时构造一次，之后以参数形式传给各组件，运行期间不可修改
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    PROJECT_NAME: str = "ComputeProof API"
    VERSION: str = "0.1.0"

    # 认证配置
    CAPTURE_TOKEN: str = "YOUR_CAPTURE_TOKEN_HERE"
    AUTH_SCHEME: str = "token"

    # 账本服务配置
    API_BASE: str = "https://api.numbersprotocol.io/api/v3"
    COMMIT_API: str = "https://us-central1-numbers-protocol-api.cloudfunctions.net/nit-commit-to-jade"
    ASSET_FILE_BASE_URL: str = "https://example.com/assets"
    EXPLORER_BASE_URL: str = "https://mainnet.num.network/tx"
    REQUEST_TIMEOUT: float = 30.0

    # 离线模式: 不访问外部账本，返回合成的标识
    MOCK_NUMBERS_API: bool = False

    # 计费配置(货币单位/GPU小时)
    GPU_HOUR_RATE: float = 2.5

    # 重试配置
    RETRY: RetrySettings = RetrySettings()

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _read_config_file(config_path: str) -> Dict[str, Any]:
    """读取YAML配置文件

    Raises:
        yaml.YAMLError: 配置文件格式错误
    """
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")
    except FileNotFoundError:
        logger.warning(f"Config file not found: {config_path}, using default configuration")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config file: {e}")
        raise

    if not isinstance(data, dict):
        raise yaml.YAMLError(f"Config file {config_path} must contain a mapping")
    return data


def _merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> Settings:
    """加载配置

    优先级: overrides > 环境变量(含.env) > 配置文件 > 默认值

    Args:
        config_path: 配置文件路径，为None时依次使用环境变量COMPUTEPROOF_CONFIG和默认路径
        **overrides: 直接覆盖的配置项

    Returns:
        Settings实例
    """
    if config_path is None:
        config_path = os.environ.get("COMPUTEPROOF_CONFIG", DEFAULT_CONFIG_PATH)

    values = _read_config_file(config_path)
    # 只合并环境变量中显式设置的配置项，嵌套配置按字段合并
    _merge(values, Settings().model_dump(exclude_unset=True))
    values.update(overrides)
    return Settings(**values)


def configure_logging(settings: Settings) -> None:
    """根据配置初始化日志系统"""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format=settings.LOG_FORMAT
    )
