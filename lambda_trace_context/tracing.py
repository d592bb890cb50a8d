# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.
import inspect
import logging
from importlib import import_module
from typing import Optional

from lambda_trace_context.config import config
from lambda_trace_context.constants import DATADOG_KEY, Source
from lambda_trace_context.context import TraceContext, parse_trace_headers
from lambda_trace_context.decoders import (
    DECODERS,
    DecodeResult,
    decode_http_event,
)
from lambda_trace_context.xray import (
    add_step_function_context_to_xray,
    add_trace_context_to_xray,
    read_xray_trace_context,
)

logger = logging.getLogger(__name__)


def read_trace_from_event(
    event, decode_authorizer_context: Optional[bool] = None
) -> Optional[DecodeResult]:
    """
    Run the event source decoders in priority order and return the result of
    the first one matching the event, even when it holds no trace context.
    """
    if not isinstance(event, dict):
        return None
    if decode_authorizer_context is None:
        decode_authorizer_context = config.decode_authorizer_context

    for decoder in DECODERS:
        try:
            if decoder is decode_http_event:
                result = decoder(event, decode_authorizer_context)
            else:
                result = decoder(event)
        except Exception as e:
            logger.debug("The trace decoder %s failed with %s", decoder.__name__, e)
            continue
        if result is not None:
            logger.debug(
                "Event matched %s, trace context: %s",
                result.event_type.get_string(),
                result.context,
            )
            return result
    return None


def read_trace_from_lambda_context(lambda_context) -> Optional[TraceContext]:
    """
    Extract Datadog trace context from the `client_context` attr
    from the Lambda `context` object.

    dd_trace libraries inject this trace context on synchronous invocations
    """
    client_context = getattr(lambda_context, "client_context", None)
    custom = getattr(client_context, "custom", None)
    if not isinstance(custom, dict):
        return None
    dd_data = custom
    if DATADOG_KEY in custom:
        # Legacy trace propagation dict
        dd_data = custom.get(DATADOG_KEY)
    return parse_trace_headers(dd_data)


def load_trace_extractor(path):
    """
    Load a custom trace extractor from its dotted path, e.g.
    `my_module.extractors.extract`. Path separators in the module part are
    accepted, the way Lambda handler strings are written.
    """
    if not path:
        return None
    extractor_parts = path.rsplit(".", 1)
    if len(extractor_parts) != 2:
        logger.error("Value %s for DD_TRACE_EXTRACTOR has invalid format.", path)
        return None
    (mod_name, extractor_name) = extractor_parts
    try:
        extractor_module = import_module(mod_name.replace("/", "."))
        return getattr(extractor_module, extractor_name)
    except (ImportError, AttributeError) as e:
        logger.error("Unable to load trace extractor %s: %s", path, e)
        return None


def _as_trace_context(extracted) -> Optional[TraceContext]:
    if extracted is None:
        return None
    if isinstance(extracted, TraceContext):
        return TraceContext.create(
            extracted.trace_id,
            extracted.parent_id,
            extracted.sample_mode,
            Source.EVENT,
        )
    if not isinstance(extracted, (tuple, list)) or len(extracted) != 3:
        logger.debug(
            "The trace extractor returned an unsupported value of type %s",
            type(extracted).__name__,
        )
        return None
    trace_id, parent_id, sampling_priority = extracted
    return TraceContext.create(trace_id, parent_id, sampling_priority)


async def extract_context_custom_extractor(
    extractor, event, lambda_context, log=logger
) -> Optional[TraceContext]:
    """
    Extract Datadog trace context using a custom trace extractor function.

    The extractor may be a plain function or a coroutine function, and returns
    a TraceContext or a (trace_id, parent_id, sampling_priority) tuple.
    """
    try:
        extracted = extractor(event, lambda_context)
        if inspect.isawaitable(extracted):
            extracted = await extracted
        context = _as_trace_context(extracted)
    except Exception as e:
        log.error("The trace extractor returned with error %s", e)
        return None
    if context is None:
        log.debug("The trace extractor returned an incomplete trace context")
    return context


def _send_to_xray(context, root_span_metadata, log):
    try:
        if root_span_metadata is not None:
            add_step_function_context_to_xray(root_span_metadata)
        else:
            add_trace_context_to_xray(context)
    except Exception as e:
        log.debug("Failed to add trace context metadata to X-Ray: %s", e)


async def extract_trace_context(
    event,
    lambda_context,
    extractor=None,
    decode_authorizer_context: Optional[bool] = None,
    log: Optional[logging.Logger] = None,
) -> Optional[TraceContext]:
    """
    Extract the trace context the Lambda invocation should continue.

    The sources are tried in order and the first complete context wins:
    the custom extractor, the event, the Lambda client context and finally
    the X-Ray trace header. The winning context is then sent to the X-Ray
    daemon, best effort, so X-Ray and Datadog traces can be merged.
    """
    log = log or logger
    if isinstance(event, dict) and "headers" in event and event["headers"] is None:
        log.debug("Event headers are null, skipping trace context extraction")
        return None

    context = None
    root_span_metadata = None

    if extractor is None and config.trace_extractor:
        extractor = load_trace_extractor(config.trace_extractor)
    if extractor is not None:
        context = await extract_context_custom_extractor(
            extractor, event, lambda_context, log
        )

    if context is None:
        result = read_trace_from_event(event, decode_authorizer_context)
        if result is not None:
            context = result.context
            if context is not None:
                root_span_metadata = result.root_span_metadata

    if context is None:
        context = read_trace_from_lambda_context(lambda_context)

    if context is None:
        context = read_xray_trace_context()

    if context is None:
        log.debug("No trace context found for the invocation")
        return None

    if context.source == Source.EVENT:
        log.debug("Extracted trace context from event or context: %s", context)
    else:
        log.debug("Extracted trace context from X-Ray: %s", context)
    _send_to_xray(context, root_span_metadata, log)
    return context
