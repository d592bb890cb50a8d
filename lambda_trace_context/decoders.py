# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.
"""
Per event source trace context decoders.

Every decoder takes the raw Lambda event and returns:
  - None when the event doesn't have the decoder's shape,
  - a DecodeResult with an empty context when the shape matches but no
    complete trace context could be read from it,
  - a DecodeResult holding the context otherwise.
Decoders never raise.
"""
import binascii
import hashlib
import logging
import ujson as json
from typing import NamedTuple, Optional

from lambda_trace_context.constants import DATADOG_KEY, SampleMode
from lambda_trace_context.context import (
    TraceContext,
    b64decode_padded,
    extract_embedded_context,
    parse_trace_headers,
)
from lambda_trace_context.trigger import (
    EventTypes,
    get_records,
    is_eventbridge_event,
    is_sns_notification,
    is_step_function_event,
    parse_json_object,
    unwrap_step_function_payload,
)
from lambda_trace_context.xray import parse_xray_header

logger = logging.getLogger(__name__)

DD_TRACE_JAVA_TRACE_ID_PADDING = "00000000"


class DecodeResult(NamedTuple):
    event_type: EventTypes
    context: Optional[TraceContext] = None
    root_span_metadata: Optional[dict] = None


def _scan_records(records, event_type, locate):
    """
    Run `locate` over each record in order. `locate` returns a
    (found, context) pair, found being False when the record carries no
    embedded context. The first record with a context wins.
    """
    located = False
    for index, record in enumerate(records):
        try:
            found, context = locate(record)
        except Exception as e:
            logger.debug(
                "Failed reading %s trace context from record %s: %s",
                event_type.get_string(),
                index,
                e,
            )
            continue
        if not found:
            continue
        located = True
        if context is not None:
            return DecodeResult(event_type, context)
    if located:
        logger.debug(
            "Found %s trace context without a complete trace context",
            event_type.get_string(),
        )
        return DecodeResult(event_type)
    return None


def get_injected_authorizer_data(event) -> Optional[str]:
    req_ctx = event.get("requestContext")
    if not isinstance(req_ctx, dict):
        return None
    authorizer = req_ctx.get("authorizer")
    if not isinstance(authorizer, dict):
        return None
    dd_data_raw = authorizer.get(DATADOG_KEY)
    if not dd_data_raw:
        # HTTP API wraps the lambda authorizer context in an extra `lambda` key
        lambda_hdr = authorizer.get("lambda")
        if isinstance(lambda_hdr, dict):
            dd_data_raw = lambda_hdr.get(DATADOG_KEY)
    return dd_data_raw or None


def _read_trace_from_authorizer(dd_data_raw) -> Optional[TraceContext]:
    try:
        injected_data = json.loads(b64decode_padded(dd_data_raw))
    except (ValueError, TypeError, binascii.Error) as e:
        logger.debug("Failed to decode the authorizer trace context: %s", e)
        return None
    return parse_trace_headers(injected_data)


def decode_http_event(event, decode_authorizer_context=True):
    """
    Read the trace context injected by an upstream Lambda authorizer, then the
    trace headers of API Gateway, function URL and AppSync resolver events.
    """
    dd_data_raw = get_injected_authorizer_data(event)
    if decode_authorizer_context and dd_data_raw:
        context = _read_trace_from_authorizer(dd_data_raw)
        if context is not None:
            logger.debug("Extracted trace context from authorizer context")
            return DecodeResult(EventTypes.API_GATEWAY, context)

    headers = event.get("headers")
    if not isinstance(headers, dict):
        request = event.get("request")
        if isinstance(request, dict) and isinstance(request.get("headers"), dict):
            headers = request.get("headers")
    if isinstance(headers, dict):
        return DecodeResult(EventTypes.API_GATEWAY, parse_trace_headers(headers))

    if decode_authorizer_context and dd_data_raw:
        return DecodeResult(EventTypes.API_GATEWAY)
    return None


def _read_message_attribute(dd_payload):
    # SQS uses dataType and binaryValue/stringValue
    # SNS uses Type and Value
    dd_json_data_type = dd_payload.get("Type") or dd_payload.get("dataType")
    if dd_json_data_type == "Binary":
        dd_json_data = dd_payload.get("binaryValue") or dd_payload.get("Value")
        if not dd_json_data:
            return None
        return extract_embedded_context(b64decode_padded(dd_json_data))
    if dd_json_data_type == "String":
        dd_json_data = dd_payload.get("stringValue") or dd_payload.get("Value")
        return extract_embedded_context(dd_json_data)
    logger.debug(
        "Only String or Binary message attributes carry trace context, got %s",
        dd_json_data_type,
    )
    return None


def _read_trace_from_aws_trace_header(record):
    # Datadog tracers pad the root with eight 0's when they inject the
    # trace context into AWSTraceHeader, e.g.
    # Root=1-654321ab-000000001234567890abcdef;Parent=0123456789abcdef;Sampled=1
    attrs = record.get("attributes")
    if not isinstance(attrs, dict) or not attrs.get("AWSTraceHeader"):
        return False, None
    x_ray_context = parse_xray_header(attrs.get("AWSTraceHeader"))
    if x_ray_context is None:
        return False, None
    trace_id_parts = x_ray_context["trace_id"].split("-")
    if len(trace_id_parts) < 3 or not trace_id_parts[2].startswith(
        DD_TRACE_JAVA_TRACE_ID_PADDING
    ):
        return False, None
    logger.debug("Found dd-trace injected trace context from AWSTraceHeader")
    return True, TraceContext.create(
        int(trace_id_parts[2][8:], 16),
        int(x_ray_context["parent_id"], 16),
        x_ray_context["sampled"],
    )


def _locate_sqs_context(record):
    msg_attributes = record.get("messageAttributes")
    if isinstance(msg_attributes, dict) and isinstance(
        msg_attributes.get(DATADOG_KEY), dict
    ):
        return True, _read_message_attribute(msg_attributes[DATADOG_KEY])
    return False, None


def decode_sqs_event(event):
    return _scan_records(get_records(event), EventTypes.SQS, _locate_sqs_context)


def decode_sqs_trace_header_event(event):
    """
    Last resort for SQS records: the AWSTraceHeader attribute, when a Datadog
    tracer injected the trace context into it. Runs after the SNS and
    EventBridge decoders so a context in the message body wins.
    """
    return _scan_records(
        get_records(event), EventTypes.SQS, _read_trace_from_aws_trace_header
    )


def _get_sns_notification(record):
    sns = record.get("Sns")
    if isinstance(sns, dict):
        return sns
    # logic to deal with SNS => SQS event
    body = parse_json_object(record.get("body"))
    if is_sns_notification(body):
        logger.debug("Found SNS message inside SQS event")
        return body
    return None


def _locate_sns_context(record):
    notification = _get_sns_notification(record)
    if notification is None:
        return False, None
    msg_attributes = notification.get("MessageAttributes")
    if not isinstance(msg_attributes, dict):
        return False, None
    dd_payload = msg_attributes.get(DATADOG_KEY)
    if not isinstance(dd_payload, dict):
        return False, None
    return True, _read_message_attribute(dd_payload)


def decode_sns_event(event):
    return _scan_records(get_records(event), EventTypes.SNS, _locate_sns_context)


def _locate_kinesis_context(record):
    kinesis = record.get("kinesis")
    if not isinstance(kinesis, dict) or not kinesis.get("data"):
        return False, None
    data_obj = parse_json_object(b64decode_padded(kinesis.get("data")))
    if data_obj is None or DATADOG_KEY not in data_obj:
        return False, None
    return True, extract_embedded_context(data_obj.get(DATADOG_KEY))


def decode_kinesis_event(event):
    return _scan_records(
        get_records(event), EventTypes.KINESIS, _locate_kinesis_context
    )


def _read_eventbridge_context(envelope):
    if not is_eventbridge_event(envelope):
        return False, None
    detail = envelope.get("detail")
    if DATADOG_KEY not in detail:
        return False, None
    return True, extract_embedded_context(detail.get(DATADOG_KEY))


def _locate_eventbridge_context(record):
    # EventBridge => SQS
    found, context = _read_eventbridge_context(parse_json_object(record.get("body")))
    if found:
        return found, context
    # EventBridge => SNS, or EventBridge => SNS => SQS
    notification = _get_sns_notification(record)
    if notification is not None:
        return _read_eventbridge_context(
            parse_json_object(notification.get("Message"))
        )
    return False, None


def decode_eventbridge_event(event):
    found, context = _read_eventbridge_context(event)
    if found:
        return DecodeResult(EventTypes.EVENTBRIDGE, context)
    return _scan_records(
        get_records(event), EventTypes.EVENTBRIDGE, _locate_eventbridge_context
    )


def _deterministic_md5_hash(s: str) -> str:
    """
    Hash a string to a positive 64 bit integer: the first 64 bits of its MD5
    digest with the most significant bit cleared, as a decimal string.
    """
    digest = hashlib.md5(s.encode("utf-8"), usedforsecurity=False).hexdigest()
    return str(0x7FFFFFFFFFFFFFFF & int(digest[:16], 16))


def _generate_sfn_parent_id(execution_id, state_name, state_entered_time) -> str:
    return _deterministic_md5_hash(
        f"{execution_id}#{state_name}#{state_entered_time}"
    )


def get_step_function_root_span_metadata(event: dict) -> dict:
    execution = event.get("Execution")
    state = event.get("State")
    state_machine = event.get("StateMachine")
    return {
        "step_function.execution_name": execution.get("Name"),
        "step_function.execution_id": execution.get("Id"),
        "step_function.execution_input": execution.get("Input"),
        "step_function.execution_role_arn": execution.get("RoleArn"),
        "step_function.execution_start_time": execution.get("StartTime"),
        "step_function.state_entered_time": state.get("EnteredTime"),
        "step_function.state_machine_arn": state_machine.get("Id"),
        "step_function.state_machine_name": state_machine.get("Name"),
        "step_function.state_name": state.get("Name"),
        "step_function.state_retry_count": state.get("RetryCount"),
    }


def decode_step_function_event(event):
    """
    Step Functions don't propagate a trace context, so derive a stable one from
    the execution context object: the trace id is a hash of the execution id,
    and the parent id a hash of the execution id, state name and the time the
    state was entered.
    """
    if not is_step_function_event(event):
        return None
    event = unwrap_step_function_payload(event)
    execution_id = event["Execution"].get("Id")
    state_name = event["State"].get("Name")
    if not execution_id or not state_name:
        logger.debug("Step Functions context object without execution id or state")
        return DecodeResult(EventTypes.STEPFUNCTIONS)

    context = TraceContext.create(
        _deterministic_md5_hash(execution_id),
        _generate_sfn_parent_id(
            execution_id, state_name, event["State"].get("EnteredTime")
        ),
        SampleMode.AUTO_KEEP,
    )
    return DecodeResult(
        EventTypes.STEPFUNCTIONS,
        context,
        get_step_function_root_span_metadata(event),
    )


# Priority order of the decoders, the first one matching the event wins.
DECODERS = (
    decode_http_event,
    decode_sqs_event,
    decode_sns_event,
    decode_kinesis_event,
    decode_eventbridge_event,
    decode_sqs_trace_header_event,
    decode_step_function_event,
)
