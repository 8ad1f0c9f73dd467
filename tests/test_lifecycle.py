import json

import pytest

from computeproof.events import EventType
from computeproof.exceptions import CommitError, EventValidationError, MissingAssetError
from computeproof.ledger import LedgerClient
from computeproof.lifecycle import JobLifecycle
from computeproof.schemas import SubmissionReceipt


def committed_payloads(ledger, asset_id):
    return [json.loads(commit["custom"]) for commit in ledger.commits[asset_id]]


def test_submit_registers_asset_then_commits(lifecycle, ledger):
    receipt = lifecycle.submit({"jobId": "job 1", "priority": "high"})

    assert isinstance(receipt, SubmissionReceipt)
    assert receipt.job_nid == "bafyTEST1"
    assert receipt.job_id == "job 1"
    assert receipt.tx_hash == "0xTEST_JobSubmitted_1"
    assert receipt.explorer_url == "https://explorer.test/tx/0xTEST_JobSubmitted_1"
    assert receipt.event_type is EventType.JOB_SUBMITTED

    assert ledger.calls == [
        ("register", "https://example.com/assets/job%201.json"),
        ("commit", "bafyTEST1", "Job submitted to queue"),
    ]
    registration = ledger.registrations["bafyTEST1"]
    assert registration["abstract"] == "GPU Job: job 1"
    assert registration["custom_fields"]["status"] == "submitted"
    assert registration["custom_fields"]["dockerImage"] == "pytorch/pytorch:2.0-cuda11.7"
    assert registration["custom_fields"]["priority"] == "high"

    [payload] = committed_payloads(ledger, "bafyTEST1")
    assert payload["eventType"] == "JobSubmitted"
    assert payload["jobId"] == "job 1"
    assert payload["timestamp"] == 1000


def test_submit_requires_job_id(lifecycle, ledger):
    with pytest.raises(EventValidationError):
        lifecycle.submit({"jobType": "inference"})
    assert ledger.calls == []


@pytest.mark.parametrize(
    "kind",
    ["JobScheduled", "JobStarted", "JobProgressUpdate", "JobCompleted", "JobFailed"],
)
def test_transition_without_asset_id_fails_before_any_ledger_call(lifecycle, ledger, kind):
    with pytest.raises(MissingAssetError):
        lifecycle.transition(kind, None, {"progress": 10})
    assert ledger.calls == []


def test_unknown_kind_is_rejected_before_asset_check(lifecycle, ledger):
    with pytest.raises(EventValidationError):
        lifecycle.transition("JobPaused", None)
    assert ledger.calls == []


@pytest.mark.parametrize(
    ("kind", "data", "message"),
    [
        ("JobScheduled", {"scheduledNode": "gpu-node-09"}, "Job scheduled on gpu-node-09"),
        ("JobStarted", {}, "Job execution started"),
        ("JobProgressUpdate", {"progress": 75}, "Progress checkpoint at 75%"),
        ("JobCompleted", {}, "Job completed successfully"),
        ("JobCompleted", {"completionStatus": "partial"}, "Job completed with status partial"),
        ("JobFailed", {"errorCode": "CUDA_OOM"}, "Job failed: CUDA_OOM"),
    ],
)
def test_commit_messages_summarize_the_transition(lifecycle, ledger, kind, data, message):
    receipt = lifecycle.record("bafy1", kind, data)

    assert receipt.event_type.value == kind
    assert ledger.calls == [("commit", "bafy1", message)]


def test_record_stamps_server_time_and_asset_id(lifecycle, ledger, clock):
    clock.advance(4000)
    lifecycle.record("bafy1", "JobProgressUpdate", {"timestamp": 1, "jobNid": "other", "progress": 30})

    [payload] = committed_payloads(ledger, "bafy1")
    assert payload["timestamp"] == 5000
    assert payload["jobNid"] == "bafy1"
    assert payload["progress"] == 30


def test_submitted_with_existing_asset_does_not_register(lifecycle, ledger):
    receipt = lifecycle.transition(EventType.JOB_SUBMITTED, "bafy9", {"jobId": "job-9"})

    assert isinstance(receipt, SubmissionReceipt)
    assert receipt.job_nid == "bafy9"
    assert [call[0] for call in ledger.calls] == ["commit"]


def test_transition_submitted_without_asset_registers(lifecycle, ledger):
    receipt = lifecycle.transition("JobSubmitted", None, {"jobId": "job-2"})
    assert receipt.job_nid == "bafyTEST1"
    assert ledger.calls[0][0] == "register"


def test_ledger_errors_propagate_unchanged(settings, context):
    class FailingLedger:
        def commit(self, asset_id, event, commit_message):
            raise CommitError("Failed to commit event", detail="quota exceeded", status_code=429)

    lifecycle = JobLifecycle(settings, FailingLedger(), context)
    with pytest.raises(CommitError) as exc_info:
        lifecycle.record("bafy1", "JobStarted")
    assert exc_info.value.detail == "quota exceeded"


def test_offline_submission_returns_synthetic_receipt(offline_settings, context):
    lifecycle = JobLifecycle(offline_settings, LedgerClient(offline_settings), context)

    receipt = lifecycle.submit({"jobId": "job-1"})
    assert receipt.job_nid.startswith("bafyMOCK")
    assert receipt.tx_hash.startswith("0xMOCK_TX_JobSubmitted_")
    assert receipt.explorer_url is None

    completed = lifecycle.record(receipt.job_nid, "JobCompleted", {"completionStatus": "success"})
    assert completed.tx_hash.startswith("0xMOCK_TX_JobCompleted_")
