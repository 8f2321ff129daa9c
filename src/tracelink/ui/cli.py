"""CLI for inspecting trace headers and exercising the export pipeline.

Examples:
    tracelink parse 00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01
    tracelink demo --endpoint console
    tracelink demo --endpoint http://localhost:4318 --traceparent 00-...-01
    tracelink config
"""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tracelink.config import get_settings
from tracelink.telemetry import get_logger
from tracelink.tracing.propagation import HeaderCarrier, TraceContextPropagator, parse_traceparent
from tracelink.tracing.registry import TracerRegistry
from tracelink.tracing.types import SpanKind, TracingError

app = typer.Typer(help="tracelink - trace propagation and span export tools")
console = Console()

log = get_logger(__name__)


@app.command(name="parse")
def parse_command(
    traceparent: str = typer.Argument(..., help="traceparent header value"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Decode a traceparent header value.

    Exits with status 1 when the value is not a valid version-00 header.
    """
    context = parse_traceparent(traceparent)
    if context is None:
        console.print(f"[red]Invalid traceparent:[/red] {traceparent}")
        raise typer.Exit(code=1)

    fields = {
        "trace_id": context.trace_id_hex,
        "span_id": context.span_id_hex,
        "trace_flags": f"{context.trace_flags:02x}",
        "sampled": context.sampled,
    }
    if json_output:
        console.print_json(json.dumps(fields))
        return

    table = Table(title="traceparent")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in fields.items():
        table.add_row(key, str(value))
    console.print(table)


@app.command(name="demo")
def demo_command(
    endpoint: str = typer.Option(
        "console", "--endpoint", "-e", help="Sink endpoint (http://host:port, console, ...)"
    ),
    traceparent: Optional[str] = typer.Option(
        None, "--traceparent", "-t", help="Inbound traceparent to continue"
    ),
    service_name: Optional[str] = typer.Option(
        None, "--service-name", "-s", help="Service name (default from settings)"
    ),
) -> None:
    """Run one traced request through the full pipeline and flush it.

    Extracts the inbound context, starts a server span, logs with
    correlation, runs a nested child span, injects the context into an
    outgoing request and message headers, then shuts down the exporter.
    """
    settings = get_settings()
    registry = TracerRegistry()
    try:
        tracer = registry.init(service_name or settings.service_name, endpoint, config=settings)
    except TracingError as e:
        console.print(f"[red]Cannot initialize tracing:[/red] {e}")
        raise typer.Exit(code=1) from e

    inbound = HeaderCarrier({"traceparent": traceparent} if traceparent else None)
    parent = tracer.extract(inbound)
    if traceparent and parent is None:
        console.print("[yellow]Inbound traceparent is invalid; starting a new trace[/yellow]")

    outgoing = HeaderCarrier()
    message_headers = HeaderCarrier()
    with tracer.start_as_current_span(
        "Handle hello request",
        parent,
        kind=SpanKind.SERVER,
        attributes={"http.method": "GET", "http.route": "/hello"},
    ) as server_span:
        log.info("handling_hello_request", method="GET", path="/hello")
        server_span.add_event("Main span event", {"foo": "1"})

        with tracer.start_as_current_span("Call downstream", kind=SpanKind.CLIENT):
            tracer.inject(outgoing)
            log.info("downstream_request_prepared", headers=dict(outgoing))

        with tracer.start_as_current_span("Send hello message", kind=SpanKind.PRODUCER) as span:
            tracer.inject(message_headers)
            span.set_attribute("messaging.destination.name", "trace")
            log.info("hello_message_prepared", header_count=len(message_headers))

    completed = registry.shutdown()
    stats = registry.exporter.stats() if registry.exporter else None

    table = Table(title="demo request")
    table.add_column("Item", style="cyan")
    table.add_column("Value")
    table.add_row("trace_id", server_span.context.trace_id_hex)
    table.add_row("server span_id", server_span.context.span_id_hex)
    parent_span_id = server_span.parent_span_id
    table.add_row("parent span_id", format(parent_span_id, "016x") if parent_span_id else "-")
    table.add_row("outgoing traceparent", outgoing.get("traceparent", "-"))
    table.add_row("message headers", repr(message_headers.to_pairs()))
    if stats is not None:
        table.add_row("exported spans", str(stats.exported))
        table.add_row("dropped spans", str(stats.dropped))
    table.add_row("flush completed", str(completed))
    console.print(table)


@app.command(name="config")
def config_command() -> None:
    """Show the effective tracing configuration."""
    settings = get_settings()
    table = Table(title="tracelink settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    table.add_row("propagation fields", ", ".join(TraceContextPropagator.fields))
    console.print(table)


if __name__ == "__main__":
    app()
