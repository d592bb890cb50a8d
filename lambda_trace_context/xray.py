# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.
import binascii
import logging
import os
import socket
import time
import ujson as json

from lambda_trace_context.constants import (
    SampleMode,
    Source,
    XrayDaemon,
    XraySubsegment,
)
from lambda_trace_context.context import TraceContext

logger = logging.getLogger(__name__)


def get_xray_host_port(address):
    if not address:
        logger.debug("X-Ray daemon env var not set, not sending sub-segment")
        return None
    parts = address.split(":")
    if len(parts) <= 1:
        logger.debug("X-Ray daemon env var not set, not sending sub-segment")
        return None
    # Older runtimes prefix the address with an extra name segment,
    # e.g. localhost:127.0.0.1:2000, only the last two parts are used.
    host = parts[-2]
    try:
        port = int(parts[-1])
    except ValueError:
        logger.debug("Invalid X-Ray daemon port in %s, not sending sub-segment", address)
        return None
    return (host, port)


def send(host_port_tuple, payload):
    sock = None
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setblocking(0)
        sock.connect(host_port_tuple)
        sock.send(payload.encode("utf-8"))
    except Exception as e_send:
        logger.error("Error occurred submitting to xray daemon: %s", str(e_send))
    finally:
        if sock is not None:
            try:
                sock.close()
            except Exception as e_close:
                logger.error("Error while closing the socket: %s", str(e_close))


def build_segment_payload(payload):
    if payload is None:
        return None
    return XrayDaemon.PROTOCOL_HEADER + "\n" + payload


def parse_xray_header(raw_trace_id):
    # Example:
    # Root=1-5e272390-8c398be037738dc042009320;Parent=94ae789b969f1cc5;Sampled=1;Lineage=c6c5b1b9:0
    logger.debug("Reading trace context from env var %s", raw_trace_id)
    if not raw_trace_id:
        return None
    fields = {}
    for part in raw_trace_id.split(";"):
        key, sep, value = part.strip().partition("=")
        if sep:
            fields[key] = value
    trace_id = fields.get("Root")
    parent_id = fields.get("Parent")
    sampled = fields.get("Sampled")
    if not trace_id or not parent_id or not sampled:
        return None
    return {
        "trace_id": trace_id,
        "parent_id": parent_id,
        "sampled": sampled,
    }


def _convert_xray_trace_id(xray_trace_id):
    """
    Convert X-Ray trace id (hex)'s last 63 bits to a Datadog trace id (int).
    """
    parts = xray_trace_id.split("-")
    if len(parts) < 3:
        raise ValueError("Malformed X-Ray trace id %s" % xray_trace_id)
    return 0x7FFFFFFFFFFFFFFF & int(parts[2][-16:], 16)


def _convert_xray_entity_id(xray_entity_id):
    """
    Convert X-Ray (sub)segement id (hex) to a Datadog span id (int).
    """
    return int(xray_entity_id, 16)


def _convert_xray_sampling(xray_sampled):
    """
    Convert X-Ray Sampled flag to its Datadog counterpart.
    """
    if xray_sampled == "1":
        return SampleMode.AUTO_KEEP
    if xray_sampled == "0":
        return SampleMode.AUTO_REJECT
    return None


def read_xray_trace_context():
    """
    Build a trace context from the X-Ray trace header Lambda sets in the
    environment for each invocation.
    """
    xray_trace_entity = parse_xray_header(
        os.environ.get(XrayDaemon.XRAY_TRACE_ID_HEADER_NAME, "")
    )
    if xray_trace_entity is None:
        return None
    try:
        trace_context = TraceContext.create(
            _convert_xray_trace_id(xray_trace_entity["trace_id"]),
            _convert_xray_entity_id(xray_trace_entity["parent_id"]),
            _convert_xray_sampling(xray_trace_entity["sampled"]),
            source=Source.XRAY,
        )
    except ValueError as e:
        logger.debug("Unable to convert X-Ray trace header: %s", e)
        return None
    logger.debug(
        "Converted trace context %s from X-Ray segment %s",
        trace_context,
        xray_trace_entity,
    )
    return trace_context


def generate_random_id():
    return binascii.b2a_hex(os.urandom(8)).decode("utf-8")


def build_segment(context, key, metadata):
    now = int(time.time())
    segment = json.dumps(
        {
            "id": generate_random_id(),
            "trace_id": context.get("trace_id"),
            "parent_id": context.get("parent_id"),
            "name": XraySubsegment.NAME,
            "start_time": now,
            "end_time": now,
            "type": XraySubsegment.TYPE,
            "metadata": {
                XraySubsegment.NAMESPACE: {
                    key: metadata,
                }
            },
        },
        escape_forward_slashes=False,
    )
    return segment


def send_segment(key, metadata):
    host_port_tuple = get_xray_host_port(
        os.environ.get(XrayDaemon.XRAY_DAEMON_ADDRESS, "")
    )
    if host_port_tuple is None:
        return None
    context = parse_xray_header(
        os.environ.get(XrayDaemon.XRAY_TRACE_ID_HEADER_NAME, "")
    )
    if context is None:
        logger.debug(
            "Failed to create segment since it was not possible to get trace context from header"
        )
        return None

    # Skip adding segment, if the xray trace is going to be sampled away.
    if context.get("sampled") != "1":
        logger.debug("Skipping sending metadata, x-ray trace was sampled out")
        return None
    segment = build_segment(context, key, metadata)
    segment_payload = build_segment_payload(segment)
    send(host_port_tuple, segment_payload)


def add_trace_context_to_xray(trace_context):
    """
    Send the extracted trace context to X-Ray as metadata on a dummy subsegment,
    so the X-Ray trace can be merged with the Datadog trace in the backend.
    """
    send_segment(XraySubsegment.TRACE_KEY, trace_context.to_metadata())


def add_step_function_context_to_xray(root_span_metadata):
    send_segment(XraySubsegment.ROOT_SPAN_METADATA_KEY, root_span_metadata)
