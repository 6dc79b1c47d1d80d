"""Planning and execution of the XSS risk scan tool."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit

import httpx

from .spec import (
    ExecutionError,
    InvalidInputError,
    ToolCall,
    ToolHandler,
    ToolOutput,
    ToolProgress,
    ToolProgressCallback,
    ToolSpec,
)
from .xss_analysis import (
    InputLocation,
    InputPoint,
    ObservedResponse,
    XssFinding,
    XssProbe,
    aggregate_risk,
    analyze_marker_probe,
    analyze_payload_probe,
    findings_from_probe,
    scan_checklist,
    unique_marker,
    xss_attack_types,
    xss_payloads,
    xss_remediation,
)

TOOL_NAME = "xss_risk_scan"
DEFAULT_TIMEOUT_MS = 5_000
MIN_TIMEOUT_MS = 500
MAX_TIMEOUT_MS = 15_000
MAX_RESPONSE_BYTES = 256 * 1024
MAX_REDIRECTS = 5

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

_HEADER_NAME = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
_REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError)

_PROBE_RETRY_ADVICE = (
    "Confirm method, auth headers, CSRF requirements, and target reachability before retesting."
)


class BodyFormat(str, Enum):
    """How object bodies are encoded."""

    AUTO = "auto"
    JSON = "json"
    FORM = "form"


@dataclass
class ScanPlan:
    """A validated scan: target, fields to test and request settings."""

    url: str
    method: str
    headers: dict[str, str]
    query_values: dict[str, str]
    body_values: dict[str, str]
    raw_body: Optional[str]
    body_format: BodyFormat
    input_points: list[InputPoint]
    verification_urls: list[str]
    timeout_ms: int


@dataclass(frozen=True)
class _BaselineObservation:
    status: int
    final_url: str
    content_type: Optional[str]
    body_length: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "final_url": self.final_url,
            "content_type": self.content_type,
            "body_length": self.body_length,
        }


@dataclass
class XssRiskReport:
    """The outcome of a scan, successful or not."""

    url: str
    method: str
    risk_level: str
    summary: str
    sample_coverage: list[str]
    attack_types: list[str]
    remediation: list[str]
    tested_fields: list[InputPoint]
    probes: list[XssProbe] = field(default_factory=list)
    findings: list[XssFinding] = field(default_factory=list)
    baseline: Optional[_BaselineObservation] = None
    error: Optional[str] = None

    @classmethod
    def completed(
        cls,
        plan: ScanPlan,
        baseline: ObservedResponse,
        probes: list[XssProbe],
        findings: list[XssFinding],
    ) -> "XssRiskReport":
        risk_level = aggregate_risk(findings)
        risky_fields = len({f.field for f in findings if f.risk != "low"})
        return cls(
            url=plan.url,
            method=plan.method,
            risk_level=risk_level,
            summary=(
                f"XSS risk scan completed: {risky_fields} risky field(s), "
                f"{len(findings)} finding(s), overall risk {risk_level}."
            ),
            sample_coverage=_sample_coverage(plan, baseline, probes),
            attack_types=xss_attack_types(findings),
            remediation=xss_remediation(findings, risk_level),
            tested_fields=list(plan.input_points),
            probes=probes,
            findings=findings,
            baseline=_BaselineObservation(
                status=baseline.status,
                final_url=baseline.final_url,
                content_type=baseline.content_type,
                body_length=len(baseline.body.encode("utf-8")),
            ),
        )

    @classmethod
    def failed(cls, plan: ScanPlan, error: str) -> "XssRiskReport":
        return cls(
            url=plan.url,
            method=plan.method,
            risk_level="unknown",
            summary=f"XSS risk scan failed: {error}",
            sample_coverage=[f"Attempted baseline request: {plan.method} {plan.url}"],
            attack_types=["XSS scan coverage validation"],
            remediation=[
                "Confirm URL, method, auth headers, CSRF requirements, and testable "
                "fields before retrying."
            ],
            tested_fields=list(plan.input_points),
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "risk_level": self.risk_level,
            "summary": self.summary,
            "sample_coverage": list(self.sample_coverage),
            "attack_types": list(self.attack_types),
            "remediation": list(self.remediation),
            "tested_fields": [point.to_dict() for point in self.tested_fields],
            "probes": [probe.to_dict() for probe in self.probes],
            "findings": [finding.to_dict() for finding in self.findings],
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "error": self.error,
        }


def _sample_coverage(
    plan: ScanPlan, baseline: ObservedResponse, probes: Sequence[XssProbe]
) -> list[str]:
    coverage = [
        f"Baseline request: {plan.method} {plan.url}",
        f"Final baseline URL after redirects: {baseline.final_url}",
        f"Baseline HTTP status: {baseline.status}",
        f"Baseline response headers observed: {len(baseline.headers)}",
        f"Tested {len(plan.input_points)} input field(s).",
        f"Executed {len(probes)} marker/payload probe request(s).",
    ]
    if plan.verification_urls:
        coverage.append(
            f"Fetched {len(plan.verification_urls)} verification page(s) for "
            "stored-reflection signals."
        )
    return coverage


class XssRiskScanTool(ToolHandler):
    """Probes an authorized endpoint for reflected or stored XSS risk."""

    name = TOOL_NAME

    def spec(self) -> ToolSpec:
        string_map = {"type": "object", "additionalProperties": {"type": "string"}}
        return ToolSpec(
            name=self.name,
            description=(
                "Probe an authorized HTTP endpoint for reflected or stored XSS risk using "
                "unique markers and low-impact browser payloads. Requires at least one "
                "testable query/body field."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "url": {
                        "type": "string",
                        "description": "HTTP or HTTPS endpoint to probe. Query parameters "
                        "in the URL are treated as testable input points.",
                    },
                    "method": {
                        "type": "string",
                        "description": "HTTP method.",
                        "enum": list(ALLOWED_METHODS),
                        "default": "GET",
                    },
                    "headers": {
                        **string_map,
                        "description": "Optional request headers, such as Cookie or "
                        "Authorization for an authorized test session.",
                    },
                    "query_params": {
                        **string_map,
                        "description": "Additional query parameters to include and "
                        "potentially test.",
                    },
                    "body": {
                        "description": "Optional JSON/form body. Flat object fields are "
                        "testable input points."
                    },
                    "body_format": {
                        "type": "string",
                        "description": "How to send object bodies. Use form for HTML/PHP "
                        "forms, json for APIs, or auto to infer.",
                        "enum": [fmt.value for fmt in BodyFormat],
                        "default": "auto",
                    },
                    "injectable_fields": {
                        "type": "array",
                        "description": "Optional field names to test. If omitted, "
                        "existing query/body fields are tested.",
                        "items": {"type": "string"},
                    },
                    "verification_urls": {
                        "type": "array",
                        "description": "Optional pages to fetch after probes to look for "
                        "stored XSS reflection.",
                        "items": {"type": "string"},
                    },
                    "timeout_ms": {
                        "type": "integer",
                        "minimum": MIN_TIMEOUT_MS,
                        "maximum": MAX_TIMEOUT_MS,
                        "default": DEFAULT_TIMEOUT_MS,
                    },
                },
                "required": ["url"],
                "additionalProperties": False,
            },
        )

    async def handle(self, call: ToolCall) -> ToolOutput:
        return await self._run(call, None)

    async def handle_with_progress(
        self, call: ToolCall, progress: ToolProgressCallback
    ) -> ToolOutput:
        return await self._run(call, progress)

    async def _run(
        self, call: ToolCall, progress: Optional[ToolProgressCallback]
    ) -> ToolOutput:
        plan = plan_from_input(call.input, self.name)
        report = await run_scan(plan, progress)
        try:
            metadata = report.to_dict()
        except (TypeError, ValueError) as exc:
            raise ExecutionError(self.name, str(exc)) from exc
        return ToolOutput.text(call.id, report.summary).with_metadata(metadata)


def _string_map(tool: str, data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise InvalidInputError(tool, f"{key} must be an object of strings")
    return dict(value)


def _string_list(tool: str, data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidInputError(tool, f"{key} must be an array of strings")
    return list(value)


def _parse_absolute_url(tool: str, raw: str):
    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise InvalidInputError(tool, str(exc)) from exc
    if not parts.scheme:
        raise InvalidInputError(tool, "relative URL without a base")
    return parts


def _value_to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _validate_headers(tool: str, headers: Mapping[str, str]) -> dict[str, str]:
    validated: dict[str, str] = {}
    for name, value in headers.items():
        if not _HEADER_NAME.match(name):
            raise InvalidInputError(tool, f"invalid HTTP header name: {name}")
        if any((ord(ch) < 0x20 and ch != "\t") or ord(ch) == 0x7F for ch in value):
            raise InvalidInputError(tool, f"invalid HTTP header value for {name}")
        validated[name.lower()] = value
    return validated


def plan_from_input(data: Any, tool: str = TOOL_NAME) -> ScanPlan:
    """Validate raw tool input and turn it into a scan plan."""
    if not isinstance(data, dict):
        raise InvalidInputError(tool, "input must be a JSON object")
    raw_url = data.get("url")
    if raw_url is None:
        raise InvalidInputError(tool, "missing field `url`")
    if not isinstance(raw_url, str):
        raise InvalidInputError(tool, "url must be a string")

    parts = _parse_absolute_url(tool, raw_url)
    if parts.scheme not in ("http", "https"):
        raise InvalidInputError(tool, f"unsupported URL scheme: {parts.scheme}")
    if not parts.netloc:
        raise InvalidInputError(tool, "empty host")

    method = data.get("method", "GET")
    if not isinstance(method, str):
        raise InvalidInputError(tool, "method must be a string")
    method = method.upper()
    if method not in ALLOWED_METHODS:
        raise InvalidInputError(tool, f"unsupported HTTP method: {method}")

    query_values = dict(parse_qsl(parts.query, keep_blank_values=True))
    query_values.update(_string_map(tool, data, "query_params"))
    query_values = dict(sorted(query_values.items()))
    url = f"{parts.scheme}://{parts.netloc}{parts.path or '/'}"

    body_values: dict[str, str] = {}
    raw_body: Optional[str] = None
    body = data.get("body")
    if isinstance(body, dict):
        body_values = {name: _value_to_string(value) for name, value in sorted(body.items())}
    elif isinstance(body, str):
        raw_body = body
    elif body is not None:
        raw_body = _value_to_string(body)

    headers = _validate_headers(tool, _string_map(tool, data, "headers"))

    raw_format = data.get("body_format", BodyFormat.AUTO.value)
    try:
        body_format = BodyFormat(raw_format)
    except ValueError as exc:
        raise InvalidInputError(tool, f"unknown body_format: {raw_format}") from exc

    verification_urls = []
    for raw in _string_list(tool, data, "verification_urls"):
        _parse_absolute_url(tool, raw)
        verification_urls.append(raw)

    input_points = input_points_for(
        tool,
        method,
        query_values,
        body_values,
        raw_body,
        _string_list(tool, data, "injectable_fields"),
    )

    timeout_ms = data.get("timeout_ms", DEFAULT_TIMEOUT_MS)
    if (
        not isinstance(timeout_ms, int)
        or isinstance(timeout_ms, bool)
        or not MIN_TIMEOUT_MS <= timeout_ms <= MAX_TIMEOUT_MS
    ):
        raise InvalidInputError(
            tool, f"timeout_ms must be between {MIN_TIMEOUT_MS} and {MAX_TIMEOUT_MS}"
        )

    return ScanPlan(
        url=url,
        method=method,
        headers=headers,
        query_values=query_values,
        body_values=body_values,
        raw_body=raw_body,
        body_format=body_format,
        input_points=input_points,
        verification_urls=verification_urls,
        timeout_ms=timeout_ms,
    )


def input_points_for(
    tool: str,
    method: str,
    query_values: Mapping[str, str],
    body_values: Mapping[str, str],
    raw_body: Optional[str],
    injectable_fields: Sequence[str],
) -> list[InputPoint]:
    """Choose the fields to probe: existing ones, or the named injectable fields."""
    points: list[InputPoint] = []
    if not injectable_fields:
        points.extend(
            InputPoint(InputLocation.QUERY, name, value) for name, value in query_values.items()
        )
        points.extend(
            InputPoint(InputLocation.BODY, name, value) for name, value in body_values.items()
        )
    else:
        for name in injectable_fields:
            if name in query_values:
                points.append(InputPoint(InputLocation.QUERY, name, query_values[name]))
            elif name in body_values:
                points.append(InputPoint(InputLocation.BODY, name, body_values[name]))
            elif method == "GET":
                points.append(InputPoint(InputLocation.QUERY, name, ""))
            elif raw_body is None:
                points.append(InputPoint(InputLocation.BODY, name, ""))

    if not points:
        raise InvalidInputError(
            tool,
            "xss_risk_scan needs at least one testable input point: query params in the "
            "URL, query_params, object body fields, or injectable_fields",
        )
    return points


def resolved_body_format(plan: ScanPlan) -> BodyFormat:
    """The explicit body format, or JSON/form inferred from the Content-Type header."""
    if plan.body_format is not BodyFormat.AUTO:
        return plan.body_format
    if "json" in plan.headers.get("content-type", "").lower():
        return BodyFormat.JSON
    return BodyFormat.FORM


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _decode_body(content: bytes) -> str:
    return content[:MAX_RESPONSE_BYTES].decode("utf-8", errors="replace")


async def _send_request(
    client: httpx.AsyncClient,
    plan: ScanPlan,
    probe: Optional[tuple[InputPoint, str]] = None,
) -> ObservedResponse:
    query_values = dict(plan.query_values)
    body_values = dict(plan.body_values)

    if probe is not None:
        input_point, value = probe
        if input_point.location is InputLocation.QUERY:
            query_values[input_point.name] = value
        elif plan.raw_body is None:
            body_values[input_point.name] = value

    url = plan.url
    if query_values:
        url = f"{url}?{urlencode(sorted(query_values.items()))}"

    kwargs: dict[str, Any] = {"headers": plan.headers}
    if plan.method != "GET":
        if plan.raw_body is not None:
            kwargs["content"] = plan.raw_body
        elif body_values:
            if resolved_body_format(plan) is BodyFormat.JSON:
                kwargs["json"] = dict(sorted(body_values.items()))
            else:
                kwargs["data"] = dict(sorted(body_values.items()))

    response = await client.request(plan.method, url, **kwargs)
    headers = {name.lower(): value for name, value in response.headers.multi_items()}
    return ObservedResponse(
        status=response.status_code,
        final_url=str(response.url),
        headers=headers,
        content_type=headers.get("content-type"),
        body=_decode_body(response.content),
    )


async def _verify_stored_reflection(
    client: httpx.AsyncClient, plan: ScanPlan
) -> list[XssFinding]:
    markers = [(point, unique_marker(point)) for point in plan.input_points]
    findings: list[XssFinding] = []
    for verification_url in plan.verification_urls:
        response = await client.get(verification_url, headers=plan.headers)
        body = _decode_body(response.content)
        for input_point, marker in markers:
            if marker in body:
                findings.append(
                    XssFinding.medium(
                        "stored_xss_candidate",
                        input_point,
                        "stored_reflection",
                        f"`{input_point.name}` marker appeared on verification page "
                        f"`{verification_url}` after probing.",
                        "Encode untrusted stored content on output and sanitize "
                        "rich-text inputs with an allowlist policy.",
                    )
                )
    return findings


def _emit_progress(
    progress: Optional[ToolProgressCallback],
    completed: int,
    total: int,
    checklist: Sequence[str],
) -> None:
    if progress is None:
        return
    index = max(completed - 1, 0)
    checked_item = checklist[index] if index < len(checklist) else ""
    items = [
        {"label": label, "checked": position < completed}
        for position, label in enumerate(checklist)
    ]
    progress(
        ToolProgress.create(
            TOOL_NAME, f"completed {completed}/{total}: {checked_item}", completed, total
        ).with_metadata(
            {"display_type": "checklist", "checked_item": checked_item, "checklist": items}
        )
    )


async def run_scan(
    plan: ScanPlan, progress: Optional[ToolProgressCallback] = None
) -> XssRiskReport:
    """Send the baseline, marker and payload requests and assemble the report."""
    checklist = scan_checklist(plan.input_points, bool(plan.verification_urls))
    total = len(checklist)
    completed = 0

    def step() -> None:
        nonlocal completed
        completed += 1
        _emit_progress(progress, min(completed, total), total, checklist)

    _emit_progress(progress, completed, total, checklist)

    async with httpx.AsyncClient(
        timeout=plan.timeout_ms / 1000,
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
    ) as client:
        try:
            baseline = await _send_request(client, plan)
        except _REQUEST_ERRORS as exc:
            step()
            return XssRiskReport.failed(plan, _describe(exc))
        step()

        probes: list[XssProbe] = []
        findings: list[XssFinding] = []
        for input_point in plan.input_points:
            marker = unique_marker(input_point)
            try:
                observed = await _send_request(client, plan, (input_point, marker))
            except _REQUEST_ERRORS as exc:
                findings.append(
                    XssFinding.low(
                        "probe_request_error",
                        input_point,
                        "request",
                        f"Marker probe failed for `{input_point.name}`: {_describe(exc)}",
                        _PROBE_RETRY_ADVICE,
                    )
                )
            else:
                probes.append(analyze_marker_probe(input_point, marker, observed))
            step()

            for payload in xss_payloads(marker):
                try:
                    observed = await _send_request(client, plan, (input_point, payload.value))
                except _REQUEST_ERRORS as exc:
                    findings.append(
                        XssFinding.low(
                            "probe_request_error",
                            input_point,
                            "request",
                            f"{payload.name} payload probe failed for "
                            f"`{input_point.name}`: {_describe(exc)}",
                            _PROBE_RETRY_ADVICE,
                        )
                    )
                else:
                    probe = analyze_payload_probe(input_point, marker, payload, observed)
                    findings.extend(findings_from_probe(input_point, probe))
                    probes.append(probe)
                step()

        if plan.verification_urls:
            try:
                findings.extend(await _verify_stored_reflection(client, plan))
            except _REQUEST_ERRORS as exc:
                findings.append(
                    XssFinding.low(
                        "verification_request_error",
                        plan.input_points[0],
                        "verification",
                        _describe(exc),
                        "Confirm verification_urls are reachable and authenticated "
                        "before retesting stored XSS.",
                    )
                )
            step()

    return XssRiskReport.completed(plan, baseline, probes, findings)