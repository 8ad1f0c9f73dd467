"""GPU任务回执管道

以不可变事件记录GPU任务的生命周期，事件锚定到外部账本，
并从账本重建任务历史和费用指标。
"""

from .config import Settings, load_settings
from .digest import digest
from .events import EventType, build_event, decode_event
from .exceptions import (
    ComputeProofError, EventValidationError, MissingAssetError,
    LedgerError, RegistrationError, CommitError, HistoryFetchError
)
from .history import HistoryReconstructor
from .ledger import LedgerClient
from .lifecycle import JobLifecycle

__version__ = "0.1.0"
