import json
import random

import pytest

from computeproof.config import Settings
from computeproof.events import EventContext
from computeproof.history import HistoryReconstructor
from computeproof.lifecycle import JobLifecycle
from computeproof.service import JobReceiptService


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start=1000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class EchoLedger:
    """记录所有调用，并在读取历史时原样返回已提交事件的账本桩"""

    def __init__(self):
        self.calls = []
        self.registrations = {}
        self.commits = {}

    def register_asset(self, reference_url, abstract, custom_fields):
        asset_id = f"bafyTEST{len(self.registrations) + 1}"
        self.calls.append(("register", reference_url))
        self.registrations[asset_id] = {
            "reference_url": reference_url,
            "abstract": abstract,
            "custom_fields": dict(custom_fields),
        }
        return asset_id

    def commit(self, asset_id, event, commit_message):
        self.calls.append(("commit", asset_id, commit_message))
        commits = self.commits.setdefault(asset_id, [])
        commits.append({
            "custom": json.dumps(event.to_payload()),
            "commitMessage": commit_message,
        })
        return f"0xTEST_{event.event_type.value}_{len(commits)}"

    def list_commits(self, asset_id):
        self.calls.append(("list", asset_id))
        return list(self.commits.get(asset_id, []))

    def close(self):
        pass


@pytest.fixture
def settings():
    return Settings(
        CAPTURE_TOKEN="test-token",
        API_BASE="https://ledger.test/api/v3",
        COMMIT_API="https://ledger.test/commit",
        ASSET_FILE_BASE_URL="https://example.com/assets",
        EXPLORER_BASE_URL="https://explorer.test/tx",
        MOCK_NUMBERS_API=False,
        GPU_HOUR_RATE=2.5,
        RETRY={"max_attempts": 1, "delay": 0},
    )


@pytest.fixture
def offline_settings(settings):
    return settings.model_copy(update={"MOCK_NUMBERS_API": True})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(clock):
    return EventContext(clock=clock, rng=random.Random(42))


@pytest.fixture
def ledger():
    return EchoLedger()


@pytest.fixture
def lifecycle(settings, ledger, context):
    return JobLifecycle(settings, ledger, context)


@pytest.fixture
def service(settings, ledger, lifecycle):
    return JobReceiptService(lifecycle, HistoryReconstructor(settings, ledger))
