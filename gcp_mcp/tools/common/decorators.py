"""Decorators for MCP tool handlers with OpenTelemetry instrumentation."""

import functools
import inspect
import logging
import time
from collections.abc import Callable
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .telemetry import get_meter, get_tracer, truncate

logger = logging.getLogger(__name__)

tracer = get_tracer("gcp_mcp.tools")
meter = get_meter("gcp_mcp.tools")

# Injected handler dependencies, not caller input
_UNLOGGED_ARGS = frozenset({"context"})

tool_execution_duration = meter.create_histogram(
    name="gcp_mcp.tool.execution_duration",
    description="Duration of tool executions",
    unit="ms",
)
tool_execution_count = meter.create_counter(
    name="gcp_mcp.tool.execution_count",
    description="Total number of tool calls",
    unit="1",
)


def _describe_call(
    func: Callable[..., Any], span: trace.Span, args: Any, kwargs: Any
) -> str:
    try:
        bound = inspect.signature(func).bind(*args, **kwargs)
        bound.apply_defaults()
    except TypeError:
        return f"args={args}, kwargs={kwargs}"

    arguments = {
        k: v for k, v in bound.arguments.items() if k not in _UNLOGGED_ARGS
    }
    for k, v in arguments.items():
        span.set_attribute(f"arg.{k}", truncate(v, 1000))
    logger.debug(
        f"Tool '{func.__name__}' FULL ARGS: "
        + ", ".join(f"{k}={v!r}" for k, v in arguments.items())
    )
    return ", ".join(f"{k}={truncate(repr(v))}" for k, v in arguments.items())


def _record(tool_name: str, start_time: float, success: bool) -> float:
    duration_ms = (time.time() - start_time) * 1000
    attributes = {"tool.name": tool_name, "success": str(success)}
    tool_execution_duration.record(duration_ms, attributes)
    tool_execution_count.add(1, attributes)
    return duration_ms


def mcp_tool(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator for MCP tool and resource handlers.

    This decorator provides:
    - OTel Spans for every execution
    - OTel Metrics (count and duration)
    - Logging of args and results/errors
    - Errors are logged and recorded on the span, then re-raised

    Example:
        @mcp_tool
        async def get_project_id() -> str:
            ...
    """

    @functools.wraps(func)
    async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
        tool_name = func.__name__
        start_time = time.time()
        success = True

        with tracer.start_as_current_span(tool_name) as span:
            span.set_attribute("tool.name", tool_name)
            arg_str = _describe_call(func, span, args, kwargs)
            logger.info(f"🛠️  Tool Call: '{tool_name}' | Args: {arg_str}")

            try:
                result = await func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"✅ Tool Success: '{tool_name}' | Duration: {duration_ms:.2f}ms"
                )
                logger.debug(f"Tool '{tool_name}' RESULT: {truncate(repr(result), 1000)}")
                return result
            except Exception as e:
                success = False
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"❌ Tool Failed: '{tool_name}' | Duration: {duration_ms:.2f}ms | Error: {e}",
                    exc_info=True,
                )
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            finally:
                _record(tool_name, start_time, success)

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        tool_name = func.__name__
        start_time = time.time()
        success = True

        with tracer.start_as_current_span(tool_name) as span:
            span.set_attribute("tool.name", tool_name)
            arg_str = _describe_call(func, span, args, kwargs)
            logger.info(f"🛠️  Tool Call: '{tool_name}' | Args: {arg_str}")

            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"✅ Tool Success: '{tool_name}' | Duration: {duration_ms:.2f}ms"
                )
                logger.debug(f"Tool '{tool_name}' RESULT: {truncate(repr(result), 1000)}")
                return result
            except Exception as e:
                success = False
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"❌ Tool Failed: '{tool_name}' | Duration: {duration_ms:.2f}ms | Error: {e}",
                    exc_info=True,
                )
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            finally:
                _record(tool_name, start_time, success)

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
