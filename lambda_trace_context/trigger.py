# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.

import logging
import ujson as json
from enum import Enum

logger = logging.getLogger(__name__)


class _stringTypedEnum(Enum):
    """
    _stringTypedEnum provides a type-hinted convenience function for getting the string value of
    an enum.
    """

    def get_string(self) -> str:
        return self.value


class EventTypes(_stringTypedEnum):
    """
    EventTypes is an enum of the Lambda event types trace context can be read from.
    """

    UNKNOWN = "unknown"
    API_GATEWAY = "api-gateway"
    EVENTBRIDGE = "eventbridge"
    KINESIS = "kinesis"
    SNS = "sns"
    SQS = "sqs"
    STEPFUNCTIONS = "states"


def get_records(event) -> list:
    """Return the dict records of a batch event, in order."""
    if not isinstance(event, dict):
        return []
    records = event.get("Records")
    if not isinstance(records, list):
        return []
    return [record for record in records if isinstance(record, dict)]


def parse_json_object(value):
    """Parse a JSON object from a string, returning None for anything else."""
    if isinstance(value, dict):
        return value
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def is_sns_notification(body) -> bool:
    return (
        isinstance(body, dict)
        and body.get("Type", "") == "Notification"
        and "TopicArn" in body
    )


def is_eventbridge_event(event) -> bool:
    return (
        isinstance(event, dict)
        and "detail-type" in event
        and "source" in event
        and isinstance(event.get("detail"), dict)
    )


def is_step_function_event(event) -> bool:
    """
    Check if the event is a step function that invoked the current lambda.

    The whole event can be wrapped in "Payload" in Legacy Lambda cases.

    The actual event must contain "Execution", "StateMachine", and "State" fields.
    """
    if not isinstance(event, dict):
        return False
    event = unwrap_step_function_payload(event)
    return (
        isinstance(event.get("Execution"), dict)
        and isinstance(event.get("StateMachine"), dict)
        and isinstance(event.get("State"), dict)
    )


def unwrap_step_function_payload(event: dict) -> dict:
    payload = event.get("Payload")
    if isinstance(payload, dict):
        return payload
    return event
