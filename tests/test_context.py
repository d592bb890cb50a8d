import base64
import json
import unittest

import pytest

from lambda_trace_context.constants import SampleMode, Source, TraceHeader
from lambda_trace_context.context import (
    TraceContext,
    b64decode_padded,
    decode_embedded_context,
    extract_embedded_context,
    parse_trace_headers,
    to_sample_mode,
)


_test_sample_mode = (
    ("-1", SampleMode.USER_REJECT),
    ("-3", SampleMode.USER_REJECT),
    ("0", SampleMode.AUTO_REJECT),
    ("1", SampleMode.AUTO_KEEP),
    ("2", SampleMode.USER_KEEP),
    (2, SampleMode.USER_KEEP),
    (SampleMode.AUTO_KEEP, SampleMode.AUTO_KEEP),
    ("1.0", None),
    ("keep", None),
    ("", None),
    (None, None),
    (True, None),
)


@pytest.mark.parametrize("priority,sample_mode", _test_sample_mode)
def test_to_sample_mode(priority, sample_mode):
    assert to_sample_mode(priority) == sample_mode


_test_parse_trace_headers_priority = (
    ("-1", SampleMode.USER_REJECT),
    ("0", SampleMode.AUTO_REJECT),
    ("1", SampleMode.AUTO_KEEP),
    ("2", SampleMode.USER_KEEP),
)


@pytest.mark.parametrize("priority,sample_mode", _test_parse_trace_headers_priority)
def test_parse_trace_headers_priority(priority, sample_mode):
    context = parse_trace_headers(
        {
            TraceHeader.TRACE_ID: "4110911582297405551",
            TraceHeader.PARENT_ID: "797643193680388251",
            TraceHeader.SAMPLING_PRIORITY: priority,
        }
    )
    assert context == TraceContext(
        trace_id="4110911582297405551",
        parent_id="797643193680388251",
        sample_mode=sample_mode,
        source=Source.EVENT,
    )


_test_int_priorities = (
    (-1, SampleMode.USER_REJECT),
    (0, SampleMode.AUTO_REJECT),
    (1, SampleMode.AUTO_KEEP),
    (2, SampleMode.USER_KEEP),
)


@pytest.mark.parametrize("priority,sample_mode", _test_int_priorities)
def test_embedded_object_int_priority(priority, sample_mode):
    embedded = {
        TraceHeader.TRACE_ID: "1",
        TraceHeader.PARENT_ID: "2",
        TraceHeader.SAMPLING_PRIORITY: priority,
    }
    assert extract_embedded_context(embedded) == TraceContext("1", "2", sample_mode)
    assert extract_embedded_context(json.dumps(embedded)) == TraceContext(
        "1", "2", sample_mode
    )


_complete_headers = {
    TraceHeader.TRACE_ID: "4110911582297405557",
    TraceHeader.PARENT_ID: "797643193680388254",
    TraceHeader.SAMPLING_PRIORITY: "2",
}


@pytest.mark.parametrize("missing", sorted(_complete_headers))
def test_parse_trace_headers_missing_field(missing):
    headers = {k: v for k, v in _complete_headers.items() if k != missing}
    assert parse_trace_headers(headers) is None


@pytest.mark.parametrize("empty", sorted(_complete_headers))
def test_parse_trace_headers_null_or_empty_field(empty):
    assert parse_trace_headers({**_complete_headers, empty: None}) is None
    assert parse_trace_headers({**_complete_headers, empty: ""}) is None


class TestParseTraceHeaders(unittest.TestCase):
    def test_mixed_casing(self):
        context = parse_trace_headers(
            {
                "X-Datadog-Parent-Id": "797643193680388254",
                "X-Datadog-Sampling-Priority": "2",
                "X-Datadog-Trace-Id": "4110911582297405557",
            }
        )
        self.assertEqual(context.trace_id, "4110911582297405557")
        self.assertEqual(context.parent_id, "797643193680388254")
        self.assertEqual(context.sample_mode, SampleMode.USER_KEEP)
        self.assertEqual(context.source, Source.EVENT)

    def test_malformed_priority(self):
        self.assertIsNone(
            parse_trace_headers(
                {**_complete_headers, TraceHeader.SAMPLING_PRIORITY: "two"}
            )
        )

    def test_invalid_ids(self):
        self.assertIsNone(
            parse_trace_headers({**_complete_headers, TraceHeader.TRACE_ID: "abc"})
        )
        self.assertIsNone(
            parse_trace_headers({**_complete_headers, TraceHeader.PARENT_ID: "-12"})
        )
        self.assertIsNone(
            parse_trace_headers(
                {**_complete_headers, TraceHeader.TRACE_ID: str(2**64)}
            )
        )

    def test_max_id(self):
        context = parse_trace_headers(
            {**_complete_headers, TraceHeader.TRACE_ID: str(2**64 - 1)}
        )
        self.assertEqual(context.trace_id, "18446744073709551615")

    def test_sampled_flag_ignored(self):
        headers = {**_complete_headers, TraceHeader.SAMPLED: "0"}
        self.assertEqual(
            parse_trace_headers(headers).sample_mode, SampleMode.USER_KEEP
        )
        del headers[TraceHeader.SAMPLING_PRIORITY]
        self.assertIsNone(parse_trace_headers(headers))

    def test_not_a_mapping(self):
        self.assertIsNone(parse_trace_headers(None))
        self.assertIsNone(parse_trace_headers("x-datadog-trace-id"))
        self.assertIsNone(parse_trace_headers([_complete_headers]))


class TestTraceContext(unittest.TestCase):
    def test_create_from_ints(self):
        context = TraceContext.create(123, 321, 1, Source.XRAY)
        self.assertEqual(
            context, TraceContext("123", "321", SampleMode.AUTO_KEEP, Source.XRAY)
        )

    def test_create_incomplete(self):
        self.assertIsNone(TraceContext.create("123", None, "1"))
        self.assertIsNone(TraceContext.create(None, "321", "1"))
        self.assertIsNone(TraceContext.create("123", "321", None))

    def test_to_metadata(self):
        context = TraceContext(
            "4110911582297405551", "797643193680388251", SampleMode.USER_KEEP
        )
        self.assertEqual(
            context.to_metadata(),
            {
                "parent-id": "797643193680388251",
                "sampling-priority": "2",
                "trace-id": "4110911582297405551",
            },
        )

    def test_source_is_string_valued(self):
        self.assertEqual(Source.EVENT, "event")
        self.assertEqual(Source.XRAY, "xray")


_embedded = {
    "x-datadog-trace-id": "6966585609680374559",
    "x-datadog-parent-id": "4297634551783724228",
    "x-datadog-sampled": "1",
    "x-datadog-sampling-priority": "1",
}
_embedded_json = json.dumps(_embedded)
_embedded_b64 = base64.b64encode(_embedded_json.encode()).decode()

_test_embedded_representations = (
    ("object", _embedded),
    ("json", _embedded_json),
    ("json in json", json.dumps(_embedded_json)),
    ("base64 json", _embedded_b64),
    ("base64 json bytes", _embedded_b64.encode()),
    ("base64 json in json", base64.b64encode(json.dumps(_embedded_json).encode())),
    ("base64 json trailing padding", _embedded_b64 + "="),
    ("base64 json missing padding", _embedded_b64.rstrip("=")),
)


@pytest.mark.parametrize("name,value", _test_embedded_representations)
def test_embedded_context_representations(name, value):
    assert decode_embedded_context(value) == _embedded
    assert extract_embedded_context(value) == TraceContext(
        "6966585609680374559", "4297634551783724228", SampleMode.AUTO_KEEP
    )


@pytest.mark.parametrize(
    "value", (None, "", "   ", "not json", "[1, 2]", 42, b"\xff\xfe", '"just text"')
)
def test_embedded_context_invalid(value):
    assert decode_embedded_context(value) is None
    assert extract_embedded_context(value) is None


def test_b64decode_padded():
    assert b64decode_padded("eyJhIjoxfQ==") == b'{"a":1}'
    assert b64decode_padded("eyJhIjoxfQ") == b'{"a":1}'
    assert b64decode_padded("eyJhIjoxfQ===") == b'{"a":1}'
    assert b64decode_padded(b"eyJhIjoxfQ") == b'{"a":1}'
