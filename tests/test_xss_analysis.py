import html

import pytest

from safetyscan.xss_analysis import (
    InputLocation,
    InputPoint,
    ObservedResponse,
    XssFinding,
    aggregate_risk,
    analyze_marker_probe,
    analyze_payload_probe,
    classify_context,
    contains_executable_xss_pattern,
    findings_from_probe,
    reflection_contexts,
    sanitize_marker,
    scan_checklist,
    unique_marker,
    xss_attack_types,
    xss_payloads,
    xss_remediation,
)


def _point(name="q", location=InputLocation.QUERY, baseline="test"):
    return InputPoint(location=location, name=name, baseline_value=baseline)


def _payload(marker, name):
    return next(payload for payload in xss_payloads(marker) if payload.name == name)


def _observed(body, url="https://target.example/search"):
    return ObservedResponse(
        status=200, final_url=url, headers={}, content_type="text/html", body=body
    )


def _dvwa_high_script_filter(value):
    for needle in ("<script", "<SCRIPT", "<ScRiPt", "</script>", "</SCRIPT>", "</ScRiPt>"):
        value = value.replace(needle, "")
    return value


def test_builds_scan_checklist_for_each_field():
    fields = [
        _point("q", InputLocation.QUERY, "test"),
        _point("comment", InputLocation.BODY, "hi"),
    ]
    assert scan_checklist(fields, True) == [
        "Baseline request",
        "q: marker reflection probe",
        "q: svg_event XSS probe",
        "q: img_event XSS probe",
        "q: mixed_case_script XSS probe",
        "q: attribute_event XSS probe",
        "q: javascript_url XSS probe",
        "comment: marker reflection probe",
        "comment: svg_event XSS probe",
        "comment: img_event XSS probe",
        "comment: mixed_case_script XSS probe",
        "comment: attribute_event XSS probe",
        "comment: javascript_url XSS probe",
        "Stored reflection verification",
    ]


def test_checklist_without_verification():
    checklist = scan_checklist([_point()], False)
    assert checklist[0] == "Baseline request"
    assert checklist[-1] == "q: javascript_url XSS probe"
    assert len(checklist) == 7


@pytest.mark.parametrize(
    "before, expected",
    [
        ("<html><body>Hello ", "html_text"),
        ('<input value="', "html_attribute"),
        ('<a href="', "url_attribute"),
        ("<script>const x = '", "script"),
        ('<img src="', "url_attribute"),
        ("<div ", "html_tag"),
        ("<script>x</script><p>", "html_text"),
    ],
)
def test_classifies_reflection_contexts(before, expected):
    assert classify_context(before) == expected


def test_detects_executable_payload_reflection():
    point = _point()
    marker = unique_marker(point)
    payload = _payload(marker, "svg_event")
    observed = _observed(f"<html><body>{payload.value}</body></html>")

    probe = analyze_payload_probe(point, marker, payload, observed)

    assert probe.reflected
    assert probe.executable_payload_reflected
    assert probe.contexts[0].context == "html_text"
    assert probe.payload_name == "svg_event"


def test_detects_dvwa_high_style_script_filter_bypass():
    point = _point("name")
    marker = unique_marker(point)
    payload = _payload(marker, "img_event")
    filtered = _dvwa_high_script_filter(payload.value)
    observed = _observed(
        f"Hello {filtered}", url="https://lab.example/vulnerable/xss_r/?name=probe"
    )

    probe = analyze_payload_probe(point, marker, payload, observed)
    findings = findings_from_probe(point, probe)

    assert probe.executable_payload_reflected
    assert any(finding.risk == "high" for finding in findings)


def test_encoded_payload_yields_low_finding():
    point = _point()
    marker = unique_marker(point)
    payload = _payload(marker, "svg_event")
    observed = _observed(f"Hello {html.escape(payload.value)}")

    probe = analyze_payload_probe(point, marker, payload, observed)
    findings = findings_from_probe(point, probe)

    assert probe.reflected
    assert not probe.executable_payload_reflected
    assert probe.encoded_payload_reflected
    assert [finding.category for finding in findings] == ["encoded_reflection"]
    assert findings[0].risk == "low"


def test_plain_marker_reflection_is_medium():
    point = _point()
    marker = unique_marker(point)
    payload = _payload(marker, "svg_event")
    probe = analyze_payload_probe(point, marker, payload, _observed(f"Hello {marker}"))
    findings = findings_from_probe(point, probe)
    assert [finding.category for finding in findings] == ["unencoded_reflection"]
    assert findings[0].risk == "medium"


def test_no_reflection_no_findings():
    point = _point()
    marker = unique_marker(point)
    payload = _payload(marker, "img_event")
    probe = analyze_payload_probe(point, marker, payload, _observed("nothing here"))
    assert not probe.reflected
    assert findings_from_probe(point, probe) == []


def test_marker_probe_reports_reflection():
    point = _point("comment", InputLocation.BODY)
    marker = unique_marker(point)
    probe = analyze_marker_probe(point, marker, _observed(f'<input value="{marker}">'))
    assert probe.probe_kind == "marker"
    assert probe.payload_name is None
    assert probe.reflected
    assert probe.contexts[0].context == "html_attribute"
    data = probe.to_dict()
    assert data["location"] == "body"
    assert data["payload_name"] is None


def test_unique_marker_and_sanitize():
    assert unique_marker(_point("q")) == "spa-xss-q"
    assert sanitize_marker("User Name!") == "user-name"
    assert sanitize_marker("---") == "field"
    assert sanitize_marker("") == "field"


def test_payloads_start_with_marker():
    payloads = xss_payloads("spa-xss-q")
    assert [payload.name for payload in payloads] == [
        "svg_event",
        "img_event",
        "mixed_case_script",
        "attribute_event",
        "javascript_url",
    ]
    assert all(payload.value.startswith("spa-xss-q") for payload in payloads)


def test_reflection_contexts_limited_and_escape_newlines():
    body = "\n".join(["m"] * 10)
    contexts = reflection_contexts(body, "m")
    assert len(contexts) == 5
    assert all("\n" not in context.preview for context in contexts)
    assert "\\n" in contexts[0].preview


def test_executable_pattern_detection():
    assert contains_executable_xss_pattern("<svg/onload=confirm(1)>")
    assert contains_executable_xss_pattern("x javascript:confirm(1)")
    assert not contains_executable_xss_pattern("&lt;svg onload=")


def test_aggregate_risk():
    point = _point()
    low = XssFinding.low("c", point, "ctx", "e", "r")
    medium = XssFinding.medium("c", point, "ctx", "e", "r")
    high = XssFinding.high("c", point, "ctx", "e", "r")
    assert aggregate_risk([]) == "low"
    assert aggregate_risk([low]) == "low"
    assert aggregate_risk([low, medium]) == "medium"
    assert aggregate_risk([medium, high, low]) == "high"


def test_finding_to_dict():
    finding = XssFinding.high("reflected_xss_candidate", _point(), "html_text", "e", "r")
    assert finding.to_dict() == {
        "category": "reflected_xss_candidate",
        "risk": "high",
        "field": "q",
        "location": "query",
        "context": "html_text",
        "evidence": "e",
        "recommendation": "r",
    }


def test_attack_types():
    point = _point()
    assert xss_attack_types([]) == ["XSS probe coverage validation"]
    findings = [
        XssFinding.high("reflected_xss_candidate", point, "c", "e", "r"),
        XssFinding.high("reflected_xss_candidate", point, "c", "e", "r"),
        XssFinding.medium("stored_xss_candidate", point, "c", "e", "r"),
        XssFinding.low("probe_request_error", point, "c", "e", "r"),
    ]
    assert xss_attack_types(findings) == [
        "reflected XSS",
        "stored XSS",
        "probe_request_error",
    ]


def test_remediation_adds_csp_only_above_low():
    point = _point()
    assert len(xss_remediation([], "low")) == 2
    finding = XssFinding.high("reflected_xss_candidate", point, "c", "e", "fix it")
    remediation = xss_remediation([finding, finding], "high")
    assert remediation[0] == "fix it"
    assert len(remediation) == 4
    assert remediation[-1].startswith("Add or tighten Content-Security-Policy")