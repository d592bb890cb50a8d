# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.

from enum import Enum, IntEnum


# Datadog trace sampling priority
class SampleMode(IntEnum):
    USER_REJECT = -1
    AUTO_REJECT = 0
    AUTO_KEEP = 1
    USER_KEEP = 2


# Datadog trace headers
class TraceHeader(object):
    TRACE_ID = "x-datadog-trace-id"
    PARENT_ID = "x-datadog-parent-id"
    SAMPLED = "x-datadog-sampled"
    SAMPLING_PRIORITY = "x-datadog-sampling-priority"


# Key under which the trace context is embedded in message attributes,
# authorizer contexts, stream payloads and event details.
DATADOG_KEY = "_datadog"


# Origin of an extracted trace context. Used for diagnostics only.
class Source(str, Enum):
    EVENT = "event"
    XRAY = "xray"

    def __str__(self):
        return self.value


# X-Ray subsegment to save Datadog trace metadata
class XraySubsegment(object):
    NAME = "datadog-metadata"
    TRACE_KEY = "trace"
    ROOT_SPAN_METADATA_KEY = "root_span_metadata"
    NAMESPACE = "datadog"
    TYPE = "subsegment"


# X-Ray deamon
class XrayDaemon(object):
    XRAY_TRACE_ID_HEADER_NAME = "_X_AMZN_TRACE_ID"
    XRAY_DAEMON_ADDRESS = "AWS_XRAY_DAEMON_ADDRESS"
    PROTOCOL_HEADER = '{"format": "json", "version": 1}'
