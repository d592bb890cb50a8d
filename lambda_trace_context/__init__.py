from lambda_trace_context.version import __version__  # noqa: F401
from lambda_trace_context.logger import initialize_logging


initialize_logging(__name__)


from lambda_trace_context.constants import SampleMode, Source  # noqa: E402 F401
from lambda_trace_context.context import TraceContext  # noqa: E402 F401
from lambda_trace_context.tracing import (  # noqa: E402 F401
    extract_trace_context,
    read_trace_from_event,
)
