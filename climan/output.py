"""climan output - human-readable run output."""

from __future__ import annotations

import json
from typing import Mapping

STATUS_MARKS = (
    (200, 300, "🟢"),
    (300, 400, "🟠"),
    (400, 500, "🔴"),
    (500, 600, "🔥"),
)


def status_mark(status_code: int) -> str:
    for low, high, mark in STATUS_MARKS:
        if low <= status_code < high:
            return mark
    return ""


def _format_body(body: bytes | None) -> str:
    """Pretty-print JSON bodies, fall back to text."""
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace")
    try:
        return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
    except ValueError:
        return text


def _format_mapping(title: str, mapping: Mapping[str, str]) -> list[str]:
    lines = [f"{title}:"]
    for key, value in mapping.items():
        lines.append(f"  {key}: {value}")
    return lines


def format_workflow_header(name: str | None, total: int) -> str:
    label = name or "workflow"
    return f"== {label} ({total} request{'s' if total != 1 else ''})"


def format_request(
    step,
    request,
    variables: Mapping[str, str] | None = None,
    total: int = 0,
    verbose: bool = False,
) -> str:
    """Format a materialized request before it is sent.

    verbose adds headers, query parameters and the variables snapshot.
    """
    lines = [f"[{step.index + 1}/{total}] {step.name}"]
    lines.append(f"{request.method} {request.url}")

    if verbose:
        if request.params:
            lines.append("QUERY:")
            lines.extend(f"  {k}={v}" for k, v in request.params)
        if request.headers:
            lines.extend(_format_mapping("HEADERS", request.headers))
        if variables:
            lines.extend(_format_mapping("VARIABLES", variables))
        if request.body:
            lines.append("REQUEST BODY:")
            lines.append(_format_body(request.body))

    return "\n".join(lines)


def format_response(result, extracted: Mapping[str, str], verbose: bool = False) -> str:
    """Format a response the same way for every step.

    STATUS: 200 🟢
    TIME: 45ms (headers 12ms)
    EXTRACTED:
      token: xyz
    BODY:
    {...}
    """
    mark = status_mark(result.status_code)
    lines = [f"STATUS: {result.status_code} {mark}".rstrip()]
    lines.append(f"TIME: {int(result.elapsed_ms)}ms (headers {int(result.headers_ms)}ms)")

    if verbose and result.headers:
        lines.extend(_format_mapping("HEADERS", result.headers))

    if extracted:
        lines.extend(_format_mapping("EXTRACTED", extracted))

    body = _format_body(result.body)
    if body:
        lines.append("BODY:")
        lines.append(body)

    return "\n".join(lines)


def format_failure(run) -> str:
    """Describe why a workflow was aborted."""
    step = run.failed_step
    phase = step.failed_in.value if step.failed_in else "unknown"
    lines = [
        f"ERROR: request {step.index + 1} ({step.name}) failed while {phase}: {run.error}",
    ]
    if step.result is not None and step.result.status_code:
        lines.append(f"STATUS: {step.result.status_code}")
    return "\n".join(lines)
