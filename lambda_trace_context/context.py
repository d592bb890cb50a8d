# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.
import base64
import binascii
import logging
import re
import ujson as json
from dataclasses import dataclass
from typing import Optional

from lambda_trace_context.constants import SampleMode, Source, TraceHeader

logger = logging.getLogger(__name__)

_DECIMAL_ID = re.compile(r"^[0-9]+$")
_MAX_ID = 2**64


def _normalize_id(value) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not _DECIMAL_ID.match(value) or int(value) >= _MAX_ID:
        return None
    return value


def to_sample_mode(priority) -> Optional[SampleMode]:
    """
    Map an integer sampling priority (or its base-10 string form) to a
    SampleMode. Returns None when the priority can't be parsed.
    """
    if isinstance(priority, bool) or priority is None:
        return None
    if isinstance(priority, str):
        try:
            priority = int(priority, 10)
        except ValueError:
            return None
    if not isinstance(priority, int):
        return None
    if priority < 0:
        return SampleMode.USER_REJECT
    if priority == 0:
        return SampleMode.AUTO_REJECT
    if priority == 1:
        return SampleMode.AUTO_KEEP
    return SampleMode.USER_KEEP


@dataclass(frozen=True)
class TraceContext:
    trace_id: str
    parent_id: str
    sample_mode: SampleMode
    source: Source = Source.EVENT

    @classmethod
    def create(cls, trace_id, parent_id, sampling_priority, source=Source.EVENT):
        """
        Build a complete TraceContext, or return None when any of the three
        fields is missing or invalid.
        """
        trace_id = _normalize_id(trace_id)
        parent_id = _normalize_id(parent_id)
        sample_mode = to_sample_mode(sampling_priority)
        if trace_id is None or parent_id is None or sample_mode is None:
            return None
        return cls(trace_id, parent_id, sample_mode, Source(source))

    def to_metadata(self) -> dict:
        return {
            "parent-id": self.parent_id,
            "sampling-priority": str(int(self.sample_mode)),
            "trace-id": self.trace_id,
        }


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_trace_headers(headers) -> Optional[TraceContext]:
    """
    Read the Datadog trace headers from a flat mapping, matching header names
    case-insensitively. All of trace id, parent id and sampling priority must
    be present, otherwise no context is returned.
    """
    if not isinstance(headers, dict):
        return None
    lowercase_headers = {
        k.lower(): v for k, v in headers.items() if isinstance(k, str)
    }
    trace_id = lowercase_headers.get(TraceHeader.TRACE_ID)
    parent_id = lowercase_headers.get(TraceHeader.PARENT_ID)
    sampling_priority = lowercase_headers.get(TraceHeader.SAMPLING_PRIORITY)
    if any(_is_missing(v) for v in (trace_id, parent_id, sampling_priority)):
        logger.debug("Incomplete trace headers: %s", sorted(lowercase_headers))
        return None
    context = TraceContext.create(trace_id, parent_id, sampling_priority)
    if context is None:
        logger.debug(
            "Invalid trace headers: trace_id=%s parent_id=%s sampling_priority=%s",
            trace_id,
            parent_id,
            sampling_priority,
        )
    return context


def b64decode_padded(data) -> bytes:
    """
    Decode a base64 string, repairing missing padding and stripping the extra
    trailing '=' some authorizer frameworks append.
    """
    if isinstance(data, bytes):
        data = data.decode("ascii")
    data = data.strip().rstrip("=")
    data += "=" * (-len(data) % 4)
    return base64.b64decode(data)


def decode_embedded_context(value) -> Optional[dict]:
    """
    Normalize an embedded trace context to a dict. The value may already be a
    dict, a JSON document, or base64 wrapping either of those.
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    try:
        decoded = json.loads(value)
    except ValueError:
        try:
            decoded = json.loads(b64decode_padded(value))
        except (ValueError, binascii.Error):
            logger.debug("Embedded trace context is neither JSON nor base64 JSON")
            return None

    # a JSON string holding the JSON object
    if isinstance(decoded, str):
        try:
            decoded = json.loads(decoded)
        except ValueError:
            return None
    if not isinstance(decoded, dict):
        return None
    return decoded


def extract_embedded_context(value) -> Optional[TraceContext]:
    return parse_trace_headers(decode_embedded_context(value))
