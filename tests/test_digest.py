from computeproof.digest import canonicalize, digest
from computeproof.events import build_event


def test_digest_is_stable():
    payload = {"eventType": "JobScheduled", "timestamp": 1000, "nodeSpecs": {"cpuCores": 32}}
    assert digest(payload) == digest(payload)


def test_digest_ignores_key_insertion_order():
    first = {"a": 1, "b": {"x": 1, "y": [1, 2]}}
    second = {"b": {"y": [1, 2], "x": 1}, "a": 1}
    assert canonicalize(first) == canonicalize(second)
    assert digest(first) == digest(second)


def test_digest_changes_with_content():
    assert digest({"job": "job-1"}) != digest({"job": "job-2"})
    # 列表顺序是有意义的
    assert digest({"t": [65, 66]}) != digest({"t": [66, 65]})


def test_digest_of_empty_object():
    assert digest({}) == "44136fa355b3678a1146ad16f7e8649e94fb4fc21fe77e8310c060f61caaff8a"


def test_digest_accepts_event_models():
    event = build_event("JobFailed", {"timestamp": 1000, "errorCode": "OOM"})
    assert digest(event) == digest(event.to_payload())
