from __future__ import annotations

import json
import math

import pytest

from tsbridge.core.errors import ProtocolError, UnknownResultTypeError
from tsbridge.protocol.codec import Codec
from tsbridge.protocol.registry import build_default_registry
from tsbridge.protocol.results import ErrorResult
from tsbridge.services.autocomplete import AutoCompleteRequest, AutoCompleteResult, CheckFileResult
from tsbridge.services.syntax_highlight import SyntaxHighlightRequest


def _codec() -> Codec:
    return Codec(build_default_registry())


def test_encode_request_model_as_single_camel_case_line() -> None:
    line = _codec().encode(AutoCompleteRequest(line=10, col=4))

    assert line == '{"feature":"complete","line":10,"col":4}'
    assert "\n" not in line


def test_encode_plain_mapping_and_escapes_embedded_newlines() -> None:
    line = _codec().encode({"feature": "highlight", "text": "a\nb\r\nc"})

    assert "\n" not in line and "\r" not in line
    assert json.loads(line) == {"feature": "highlight", "text": "a\nb\r\nc"}


def test_encode_keeps_non_ascii_text() -> None:
    line = _codec().encode(SyntaxHighlightRequest(text="const 名 = 1", lex_state=2))

    assert "名" in line
    assert json.loads(line) == {"feature": "highlight", "text": "const 名 = 1", "lexState": 2}


def test_encode_rejects_unserializable_request() -> None:
    codec = _codec()

    with pytest.raises(ProtocolError) as ei:
        codec.encode({"feature": "x", "blob": object()})
    assert ei.value.code == "REQUEST_NOT_SERIALIZABLE"

    with pytest.raises(ProtocolError) as ei2:
        codec.encode({"feature": "x", "n": math.nan})
    assert ei2.value.code == "REQUEST_NOT_SERIALIZABLE"


def test_decode_success_into_registered_schema() -> None:
    result = _codec().decode('{"valid":true,"resultType":"AUTOCOMPLETE","completions":["foo","bar"]}')

    assert isinstance(result, AutoCompleteResult)
    assert result.completions == ["foo", "bar"]
    assert result.result_type == "AUTOCOMPLETE"
    assert result.valid is True


def test_decode_nested_schema() -> None:
    line = json.dumps(
        {
            "valid": True,
            "resultType": "CHECK_FILE",
            "diagnostics": [{"start": 1, "length": 2, "message": "boom", "category": "error"}],
        }
    )
    result = _codec().decode(line)

    assert isinstance(result, CheckFileResult)
    assert result.diagnostics[0].message == "boom"
    assert result.ok is False


def test_decode_failure_returns_error_result_without_tag_lookup() -> None:
    codec = _codec()

    assert codec.decode('{"valid":false,"errorMessage":"parse error"}') == ErrorResult(message="parse error")
    # tag 未注册也不影响：valid=false 时不查 registry
    assert codec.decode('{"valid":false,"resultType":"NOPE","errorMessage":"x"}') == ErrorResult(message="x")
    assert codec.decode('{"valid":false}') == ErrorResult(message="")


def test_envelope_phase_ignores_unknown_fields() -> None:
    env = _codec().decode_envelope('{"valid":true,"resultType":"AUTOCOMPLETE","somethingNew":{"a":1}}')

    assert env.valid is True
    assert env.result_type == "AUTOCOMPLETE"
    assert env.error_message is None


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        "not json",
        "[1,2,3]",
        '{"resultType":"AUTOCOMPLETE"}',
        '{"valid":"true","resultType":"AUTOCOMPLETE"}',
        '{"valid":true,"resultType":1}',
    ],
)
def test_malformed_envelope_raises_protocol_error(line: str) -> None:
    with pytest.raises(ProtocolError) as ei:
        _codec().decode(line)
    assert ei.value.code == "INVALID_ENVELOPE"


def test_unknown_or_missing_tag_raises_unknown_result_type() -> None:
    codec = _codec()

    with pytest.raises(UnknownResultTypeError) as ei:
        codec.decode('{"valid":true,"resultType":"NOT_REGISTERED"}')
    assert ei.value.result_type == "NOT_REGISTERED"
    assert "NOT_REGISTERED" in str(ei.value)

    with pytest.raises(UnknownResultTypeError) as ei2:
        codec.decode('{"valid":true}')
    assert ei2.value.result_type is None


def test_strict_phase_rejects_unknown_fields_and_wrong_shapes() -> None:
    codec = _codec()

    with pytest.raises(ProtocolError) as ei:
        codec.decode('{"valid":true,"resultType":"AUTOCOMPLETE","completions":[],"unexpected":true}')
    assert ei.value.code == "RESULT_SCHEMA_MISMATCH"
    assert ei.value.details["result_type"] == "AUTOCOMPLETE"
    assert ei.value.details["errors"]

    with pytest.raises(ProtocolError) as ei2:
        codec.decode('{"valid":true,"resultType":"AUTOCOMPLETE","completions":"foo"}')
    assert ei2.value.code == "RESULT_SCHEMA_MISMATCH"


def test_unknown_result_type_is_not_a_protocol_error() -> None:
    with pytest.raises(UnknownResultTypeError) as ei:
        _codec().decode('{"valid":true,"resultType":"X"}')
    assert not isinstance(ei.value, ProtocolError)


def test_decode_tolerates_trailing_line_terminator() -> None:
    result = _codec().decode('{"valid":true,"resultType":"AUTOCOMPLETE","completions":[]}\r\n')

    assert isinstance(result, AutoCompleteResult)
    assert result.completions == []


def test_long_line_preview_is_truncated_in_details() -> None:
    line = "x" * 5000
    with pytest.raises(ProtocolError) as ei:
        _codec().decode(line)

    preview = ei.value.details["line"]
    assert len(preview) < 300
    assert preview.endswith("<truncated>")


def test_encode_rejects_lone_surrogates() -> None:
    codec = _codec()

    with pytest.raises(ProtocolError) as ei:
        codec.encode(SyntaxHighlightRequest(text="a\ud800b"))
    assert ei.value.code == "REQUEST_NOT_SERIALIZABLE"
    assert ei.value.details["request_type"] == "SyntaxHighlightRequest"

    with pytest.raises(ProtocolError):
        codec.encode({"feature": "highlight", "text": "\udfff"})


_WELL_FORMED_LINES = {
    "AUTOCOMPLETE": '{"valid":true,"resultType":"AUTOCOMPLETE","completions":["foo","bar"]}',
    "CHECK_FILE": (
        '{"valid":true,"resultType":"CHECK_FILE","diagnostics":'
        '[{"start":4,"length":3,"message":"Cannot find name \'bad\'.","category":"error"}]}'
    ),
    "SYNTAX_HIGHLIGHT": (
        '{"valid":true,"resultType":"SYNTAX_HIGHLIGHT","classifications":'
        '[{"length":5,"classification":"keyword"},{"length":1,"classification":"whitespace"}],"finalLexState":1}'
    ),
}


@pytest.mark.parametrize("tag", build_default_registry().tags())
def test_registered_schemas_round_trip_to_wire(tag: str) -> None:
    line = _WELL_FORMED_LINES[tag]
    result = _codec().decode(line)

    assert type(result) is build_default_registry().get(tag)
    assert result.to_wire() == json.loads(line)


def test_failure_envelope_ignores_malformed_tag() -> None:
    codec = _codec()

    assert codec.decode('{"valid":false,"resultType":7,"errorMessage":"rejected"}') == ErrorResult(message="rejected")
    assert codec.decode('{"valid":false,"resultType":{"x":1}}') == ErrorResult(message="")

    with pytest.raises(ProtocolError) as ei:
        codec.decode('{"valid":true,"resultType":["AUTOCOMPLETE"]}')
    assert ei.value.code == "INVALID_ENVELOPE"
