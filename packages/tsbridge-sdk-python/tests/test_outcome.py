from __future__ import annotations

import json

import pytest

from tsbridge.core.errors import (
    BridgeError,
    BridgeIssue,
    LifecycleError,
    ProtocolError,
    RegistryError,
    TransportError,
    UnknownResultTypeError,
    UpstreamError,
    WorkerSpawnError,
)
from tsbridge.core.outcome import BridgeErrorKind, BridgeOutcome, classify_bridge_exception
from tsbridge.services.autocomplete import AutoCompleteResult


@pytest.mark.parametrize(
    "exc,kind,retryable",
    [
        (TransportError("pipe closed", code="WORKER_EOF"), BridgeErrorKind.TRANSPORT, True),
        (WorkerSpawnError("no node"), BridgeErrorKind.WORKER_SPAWN, False),
        (ProtocolError("bad line"), BridgeErrorKind.PROTOCOL, False),
        (UnknownResultTypeError("FOO"), BridgeErrorKind.UNKNOWN_RESULT_TYPE, False),
        (UpstreamError("parse error"), BridgeErrorKind.UPSTREAM, False),
        (LifecycleError("not started"), BridgeErrorKind.LIFECYCLE, False),
        (RegistryError("dup", code="DUPLICATE_RESULT_TYPE"), BridgeErrorKind.CONFIG, False),
        (ValueError("bad value"), BridgeErrorKind.CONFIG, False),
        (RuntimeError("boom"), BridgeErrorKind.UNKNOWN, False),
    ],
)
def test_classify_bridge_exception(exc: BaseException, kind: BridgeErrorKind, retryable: bool) -> None:
    outcome = classify_bridge_exception(exc)

    assert outcome.ok is False
    assert outcome.result is None
    assert outcome.error_kind is kind
    assert outcome.retryable is retryable


def test_failure_details_carry_code_and_error_details() -> None:
    outcome = BridgeOutcome.failure(TransportError("worker closed its output stream", code="WORKER_EOF", details={"pid": 42}))

    assert outcome.message == "worker closed its output stream"
    assert outcome.details == {"code": "WORKER_EOF", "pid": 42}


def test_unknown_result_type_keeps_tag_in_details() -> None:
    outcome = BridgeOutcome.failure(UnknownResultTypeError("FOO"))

    assert outcome.details == {"code": "UNKNOWN_RESULT_TYPE", "result_type": "FOO"}
    assert "FOO" in outcome.message


def test_success_payload_uses_wire_names() -> None:
    outcome = BridgeOutcome.success(AutoCompleteResult(completions=["a"]))

    assert outcome.ok is True
    payload = outcome.to_payload()
    assert payload == {"ok": True, "result": {"valid": True, "resultType": "AUTOCOMPLETE", "completions": ["a"]}}
    json.dumps(payload)


def test_failure_payload_is_json_serializable() -> None:
    payload = BridgeOutcome.failure(UpstreamError("nope")).to_payload()

    assert payload == {
        "ok": False,
        "error_kind": "upstream",
        "message": "nope",
        "retryable": False,
        "details": {"code": "UPSTREAM_ERROR"},
    }
    json.dumps(payload)


def test_error_string_and_issue() -> None:
    err = ProtocolError("response is not a valid envelope", details={"line": "x"})

    assert isinstance(err, BridgeError)
    assert str(err) == "INVALID_ENVELOPE: response is not a valid envelope"
    issue = err.to_issue()
    assert issue.code == "INVALID_ENVELOPE"
    assert issue.details == {"line": "x"}

    # 上游错误只展示 worker 原文
    assert str(UpstreamError("parse error")) == "parse error"
    assert UpstreamError("parse error").code == "UPSTREAM_ERROR"


def test_failure_is_built_from_the_error_issue() -> None:
    class RedactingError(BridgeError):
        """对外只暴露脱敏后的 issue。"""

        def to_issue(self) -> BridgeIssue:
            return BridgeIssue(code="REDACTED", message="hidden", details={"kept": 1})

    outcome = classify_bridge_exception(RedactingError("secret text", code="RAW", details={"token": "t"}))

    assert outcome.error_kind is BridgeErrorKind.UNKNOWN
    assert outcome.message == "hidden"
    assert outcome.details == {"code": "REDACTED", "kept": 1}
