"""Payloads, reflection analysis and findings for the XSS risk scan."""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Sequence

CONTEXT_PREVIEW_CHARS = 120
MAX_CONTEXTS = 5

_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def _ascii_lower(value: str) -> str:
    return value.translate(_ASCII_LOWER)


class InputLocation(str, Enum):
    """Where a tested field is sent."""

    QUERY = "query"
    BODY = "body"


@dataclass(frozen=True)
class InputPoint:
    """A field that receives marker and payload values during the scan."""

    location: InputLocation
    name: str
    baseline_value: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.value,
            "name": self.name,
            "baseline_value": self.baseline_value,
        }


@dataclass(frozen=True)
class XssPayload:
    name: str
    value: str


@dataclass(frozen=True)
class ReflectionContext:
    context: str
    preview: str

    def to_dict(self) -> dict[str, Any]:
        return {"context": self.context, "preview": self.preview}


@dataclass
class ObservedResponse:
    """What came back for one request."""

    status: int
    final_url: str
    headers: dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = None
    body: str = ""


@dataclass
class XssProbe:
    """Analysis of one marker or payload request."""

    field: str
    location: InputLocation
    probe_kind: str
    payload_name: Optional[str]
    status: int
    final_url: str
    content_type: Optional[str]
    reflected: bool
    executable_payload_reflected: bool
    encoded_payload_reflected: bool
    contexts: list[ReflectionContext]

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "location": self.location.value,
            "probe_kind": self.probe_kind,
            "payload_name": self.payload_name,
            "status": self.status,
            "final_url": self.final_url,
            "content_type": self.content_type,
            "reflected": self.reflected,
            "executable_payload_reflected": self.executable_payload_reflected,
            "encoded_payload_reflected": self.encoded_payload_reflected,
            "contexts": [context.to_dict() for context in self.contexts],
        }


@dataclass(frozen=True)
class XssFinding:
    category: str
    risk: str
    field: str
    location: InputLocation
    context: str
    evidence: str
    recommendation: str

    @classmethod
    def _with_risk(
        cls,
        risk: str,
        category: str,
        input_point: InputPoint,
        context: str,
        evidence: str,
        recommendation: str,
    ) -> "XssFinding":
        return cls(
            category=category,
            risk=risk,
            field=input_point.name,
            location=input_point.location,
            context=context,
            evidence=evidence,
            recommendation=recommendation,
        )

    @classmethod
    def low(cls, category, input_point, context, evidence, recommendation) -> "XssFinding":
        return cls._with_risk("low", category, input_point, context, evidence, recommendation)

    @classmethod
    def medium(cls, category, input_point, context, evidence, recommendation) -> "XssFinding":
        return cls._with_risk("medium", category, input_point, context, evidence, recommendation)

    @classmethod
    def high(cls, category, input_point, context, evidence, recommendation) -> "XssFinding":
        return cls._with_risk("high", category, input_point, context, evidence, recommendation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "risk": self.risk,
            "field": self.field,
            "location": self.location.value,
            "context": self.context,
            "evidence": self.evidence,
            "recommendation": self.recommendation,
        }


def unique_marker(input_point: InputPoint) -> str:
    return f"spa-xss-{sanitize_marker(input_point.name)}"


def sanitize_marker(value: str) -> str:
    """Lower-case ASCII alphanumerics, dashes elsewhere, trimmed; 'field' if empty."""
    mapped = "".join(
        ch.lower() if ch.isascii() and ch.isalnum() else "-" for ch in value
    ).strip("-")
    return mapped or "field"


def xss_payloads(marker: str) -> list[XssPayload]:
    return [
        XssPayload("svg_event", f'{marker}"><svg/onload=confirm(1)>'),
        XssPayload("img_event", f'{marker}"><img src=x onerror=confirm(1)>'),
        XssPayload("mixed_case_script", f'{marker}"><ScRiPt>confirm(1)</ScRiPt>'),
        XssPayload("attribute_event", f'{marker}" autofocus onfocus=confirm(1) x="'),
        XssPayload("javascript_url", f"{marker}javascript:confirm(1)"),
    ]


def classify_context(before: str) -> str:
    """Classify the HTML context that the text following ``before`` lands in."""
    lower = _ascii_lower(before)
    if lower.rfind("<script") > lower.rfind("</script"):
        return "script"

    last_lt = lower.rfind("<")
    if last_lt > lower.rfind(">"):
        tag_fragment = lower[last_lt:]
        if any(attr in tag_fragment for attr in ("href=", "src=", "action=")):
            return "url_attribute"
        if "=" in tag_fragment:
            return "html_attribute"
        return "html_tag"

    return "html_text"


def _match_indices(body: str, marker: str) -> Iterator[int]:
    start = 0
    while (index := body.find(marker, start)) != -1:
        yield index
        start = index + max(len(marker), 1)


def reflection_contexts(body: str, marker: str) -> list[ReflectionContext]:
    contexts = []
    for count, index in enumerate(_match_indices(body, marker)):
        if count >= MAX_CONTEXTS:
            break
        start = max(index - CONTEXT_PREVIEW_CHARS, 0)
        end = min(index + len(marker) + CONTEXT_PREVIEW_CHARS, len(body))
        contexts.append(
            ReflectionContext(
                context=classify_context(body[:index]),
                preview=body[start:end].replace("\n", "\\n"),
            )
        )
    return contexts


def contains_executable_xss_pattern(lower_body: str) -> bool:
    return (
        ("<svg" in lower_body and "onload=" in lower_body)
        or ("<img" in lower_body and "onerror=" in lower_body)
        or ("<script" in lower_body and "confirm(1)" in lower_body)
        or "onfocus=confirm(1)" in lower_body
        or "javascript:confirm(1)" in lower_body
    )


def analyze_marker_probe(
    input_point: InputPoint, marker: str, observed: ObservedResponse
) -> XssProbe:
    return XssProbe(
        field=input_point.name,
        location=input_point.location,
        probe_kind="marker",
        payload_name=None,
        status=observed.status,
        final_url=observed.final_url,
        content_type=observed.content_type,
        reflected=marker in observed.body,
        executable_payload_reflected=False,
        encoded_payload_reflected=False,
        contexts=reflection_contexts(observed.body, marker),
    )


def analyze_payload_probe(
    input_point: InputPoint,
    marker: str,
    payload: XssPayload,
    observed: ObservedResponse,
) -> XssProbe:
    body = observed.body
    reflected = marker in body
    lower_body = _ascii_lower(body)
    executable = payload.value in body or (
        reflected and contains_executable_xss_pattern(lower_body)
    )
    encoded = (
        "&lt;svg" in lower_body
        or "&lt;img" in lower_body
        or "&lt;script" in lower_body
        or "&quot;&gt;" in body
        or "&#34;&gt;" in body
    )
    return XssProbe(
        field=input_point.name,
        location=input_point.location,
        probe_kind="payload",
        payload_name=payload.name,
        status=observed.status,
        final_url=observed.final_url,
        content_type=observed.content_type,
        reflected=reflected,
        executable_payload_reflected=executable,
        encoded_payload_reflected=encoded,
        contexts=reflection_contexts(body, marker),
    )


def findings_from_probe(input_point: InputPoint, probe: XssProbe) -> list[XssFinding]:
    if probe.executable_payload_reflected:
        context = probe.contexts[0].context if probe.contexts else "html"
        payload_name = probe.payload_name or "payload"
        return [
            XssFinding.high(
                "reflected_xss_candidate",
                input_point,
                context,
                f"`{input_point.name}` reflected executable XSS probe `{payload_name}` "
                "without output encoding.",
                "Contextually encode untrusted output, sanitize HTML with an allowlist "
                "sanitizer, and deploy a restrictive Content-Security-Policy.",
            )
        ]
    if probe.reflected and not probe.encoded_payload_reflected:
        return [
            XssFinding.medium(
                "unencoded_reflection",
                input_point,
                "reflection",
                f"`{input_point.name}` reflected the marker and did not show clear "
                "HTML-encoded payload evidence.",
                "Review the rendering context and add output encoding for this sink "
                "before treating the field as safe.",
            )
        ]
    if probe.reflected:
        return [
            XssFinding.low(
                "encoded_reflection",
                input_point,
                "reflection",
                f"`{input_point.name}` reflected controlled input, but payload "
                "characters appeared encoded.",
                "Keep contextual output encoding in place and add regression tests for "
                "this field.",
            )
        ]
    return []


def aggregate_risk(findings: Sequence[XssFinding]) -> str:
    risks = {finding.risk for finding in findings}
    if "high" in risks:
        return "high"
    if "medium" in risks:
        return "medium"
    return "low"


def scan_checklist(input_points: Sequence[InputPoint], has_verification: bool) -> list[str]:
    checklist = ["Baseline request"]
    for input_point in input_points:
        checklist.append(f"{input_point.name}: marker reflection probe")
        checklist.extend(
            f"{input_point.name}: {payload.name} XSS probe"
            for payload in xss_payloads("marker")
        )
    if has_verification:
        checklist.append("Stored reflection verification")
    return checklist


def _push_unique(items: list[str], item: str) -> None:
    if item and item not in items:
        items.append(item)


_ATTACK_TYPE_NAMES = {
    "reflected_xss_candidate": "reflected XSS",
    "stored_xss_candidate": "stored XSS",
    "unencoded_reflection": "unsafe output reflection",
    "encoded_reflection": "XSS regression coverage",
}


def xss_attack_types(findings: Sequence[XssFinding]) -> list[str]:
    attack_types: list[str] = []
    for finding in findings:
        _push_unique(attack_types, _ATTACK_TYPE_NAMES.get(finding.category, finding.category))
    return attack_types or ["XSS probe coverage validation"]


def xss_remediation(findings: Sequence[XssFinding], risk_level: str) -> list[str]:
    remediation: list[str] = []
    for finding in findings:
        _push_unique(remediation, finding.recommendation)
    _push_unique(
        remediation,
        "Apply context-aware output encoding for HTML text, attributes, JavaScript, CSS, "
        "and URL contexts.",
    )
    _push_unique(
        remediation,
        "Sanitize any allowed rich HTML with an allowlist sanitizer and add regression "
        "tests for each reflected/stored field.",
    )
    if risk_level != "low":
        _push_unique(
            remediation,
            "Add or tighten Content-Security-Policy as defense in depth after fixing the "
            "output encoding bug.",
        )
    return remediation