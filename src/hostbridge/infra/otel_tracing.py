"""OpenTelemetry spans around SSH commands, uploads and GitHub calls.

Without an SDK the API package hands out non-recording spans, so callers
never branch on whether tracing is enabled.  :func:`configure` installs the
SDK with an OTLP exporter when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set.

Dependencies: opentelemetry-api (SDK + OTLP exporter via the ``otel`` extra)
Wired in: remote/executor.py, transfer/engine.py, github/client.py,
    provisioning/workflow.py, server/app.py → create_app()
"""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from hostbridge import __version__

_log = logging.getLogger(__name__)

TRACER_NAME = "hostbridge"
_configured = False


def _install_sdk(endpoint: str) -> bool:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ModuleNotFoundError:
        _log.warning(
            "OTEL_EXPORTER_OTLP_ENDPOINT is set but the SDK is not installed. "
            "Install with: pip install 'hostbridge[otel]'"
        )
        return False

    resource = Resource.create(
        {
            "service.name": os.getenv("OTEL_SERVICE_NAME", "hostbridge"),
            "service.version": __version__,
            "host.name": socket.gethostname(),
        }
    )
    provider = TracerProvider(resource=resource)
    # Plaintext gRPC unless OTEL_EXPORTER_OTLP_INSECURE=false.
    insecure = os.getenv("OTEL_EXPORTER_OTLP_INSECURE", "true").lower() == "true"
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=insecure))
    )
    trace.set_tracer_provider(provider)
    return True


def configure() -> None:
    """Install the tracing SDK if an exporter endpoint is configured.

    Only the first call has any effect.
    """
    global _configured
    if _configured:
        return
    _configured = True
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint and _install_sdk(endpoint):
        _log.info("Exporting spans to %s", endpoint)


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, str | int | float | bool] | None = None,
) -> Iterator[dict[str, Any]]:
    """Run the block inside a span called *name*.

    The yielded dict collects attributes known only at the end (exit codes,
    file counts); they are set on the span when the block finishes.  An
    exception marks the span as failed and propagates.
    """
    result_attrs: dict[str, Any] = {}
    tracer = trace.get_tracer(TRACER_NAME, __version__)
    with tracer.start_as_current_span(
        name, attributes=attributes, record_exception=False, set_status_on_exception=False
    ) as span:
        try:
            yield result_attrs
        except BaseException as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
            raise
        finally:
            for key, value in result_attrs.items():
                span.set_attribute(key, value)
