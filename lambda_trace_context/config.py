# Unless explicitly stated otherwise all files in this repository are licensed
# under the Apache License Version 2.0.
# This product includes software developed at Datadog (https://www.datadoghq.com/).
# Copyright 2019 Datadog, Inc.

import logging
import os

logger = logging.getLogger(__name__)


def _get_env(key, default=None, cast=None):
    """
    Declare a lazily resolved setting. The environment is read on first access
    and cached on the Config instance until `_reset()`.
    """

    @property
    def _getter(self):
        if key not in self._cache:
            self._cache[key] = self._resolve_env(key, default, cast)
        return self._cache[key]

    return _getter


def as_bool(val):
    return val.lower() == "true" or val == "1"


def as_extractor_path(val):
    # module.function, or module/path.function as in Lambda handler strings
    val = val.strip()
    if not val:
        return None
    if "." not in val:
        raise ValueError("expected a module and a function name")
    return val


class Config:
    def __init__(self):
        self._cache = {}

    def _resolve_env(self, key, default=None, cast=None):
        val = os.environ.get(key, default)
        if cast is None or val is None:
            return val
        try:
            return cast(val)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(
                "Invalid value '%s' for environment variable %s (%s), "
                "using default value '%s'.",
                val,
                key,
                e,
                default,
            )
            return cast(default) if default is not None else default

    # Lambda authorizers inject the trace context of the authorizer invocation
    # into requestContext.authorizer
    decode_authorizer_context = _get_env(
        "DD_DECODE_AUTHORIZER_CONTEXT", "true", as_bool
    )
    trace_extractor = _get_env("DD_TRACE_EXTRACTOR", cast=as_extractor_path)

    def _reset(self):
        self._cache.clear()


config = Config()
