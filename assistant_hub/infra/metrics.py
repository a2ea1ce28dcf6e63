"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Request metrics
request_count = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
)

# LLM metrics
llm_calls_total = Counter(
    "llm_calls_total",
    "Total LLM API calls",
    ["provider", "model", "status"],
)

llm_call_duration = Histogram(
    "llm_call_duration_seconds",
    "LLM API call duration in seconds",
    ["provider", "model"],
)

# Directive metrics
directives_total = Counter(
    "directives_total",
    "Directives parsed from assistant replies",
    ["endpoint", "directive_type", "state"],  # state: executed | awaiting_confirmation | cancelled
)

actions_executed_total = Counter(
    "actions_executed_total",
    "Directives executed against the data store",
    ["directive_type", "status"],
)

action_execution_duration = Histogram(
    "action_execution_duration_seconds",
    "Directive execution duration in seconds",
    ["directive_type"],
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
