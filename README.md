# safetyscan

An asyncio library for running security checks against HTTP endpoints that
you are **authorized** to test. Checks are packaged as tools. A registry
looks them up by name, and a router sends tool calls to them. One tool ships
with the package: `xss_risk_scan`. It probes query and body fields for
reflected or stored cross-site scripting risk.

## Installation

```
pip install safetyscan
```

With the test dependencies:

```
pip install "safetyscan[test]"
```

## Modules

- `safetyscan.spec` – the shared types and errors.
- `safetyscan.registry` – `ToolRegistry` and `ToolRegistryBuilder`.
- `safetyscan.router` – `ToolRouter`.
- `safetyscan.xss_scan` – the `XssRiskScanTool`, input validation
  (`plan_from_input`) and the scan itself (`run_scan`).
- `safetyscan.xss_analysis` – payloads, reflection-context classification and
  finding rules used by the scan.

## Concepts

- `ToolSpec` – a tool's name, description and JSON input schema.
- `ToolCall` – a request to run a named tool with a JSON-like `input`. Each
  call gets a fresh UUID as its `id` unless you pass one.
- `ToolOutput` – the text result of a call plus optional structured
  `metadata`.
- `ToolProgress` – a progress update passed to a callback. `ToolProgress.create`
  works out `percent` from completed and total units, capped at 100, and gives
  0 when the total is 0.
- `ToolHandler` – the abstract base class for tools. It has a class attribute
  `name` and the methods `spec()` and async `handle(call)`.
  `handle_with_progress(call, progress)` falls back to `handle` by default.
- `ToolRegistry` / `ToolRegistryBuilder` – hold the tools by name.
  `ToolRegistry.with_builtins()` holds `xss_risk_scan`. Registering the same
  name twice raises `DuplicateToolError`. Dispatching an unknown name raises
  `UnknownToolError`. `specs()` returns the specs sorted by name.
- `ToolRouter` – routes calls through a registry with `route` and
  `route_with_progress`.

Input that fails validation raises `InvalidInputError`. `ExecutionError` is
raised if the report cannot be turned into metadata. All errors derive from
`ToolError`.

## Running the XSS scan

```python
import asyncio

from safetyscan.registry import ToolRegistry
from safetyscan.router import ToolRouter
from safetyscan.spec import ToolCall


async def main():
    router = ToolRouter(ToolRegistry.with_builtins())
    call = ToolCall(
        name="xss_risk_scan",
        input={
            "url": "https://target.example/search?q=test",
            "headers": {"Authorization": "Bearer token"},
            "verification_urls": ["https://target.example/comments"],
        },
    )
    output = await router.route_with_progress(
        call, lambda update: print(update.percent, update.message)
    )
    print(output.content)
    print(output.metadata["risk_level"])


asyncio.run(main())
```

### Inputs

| field               | meaning                                                        |
|---------------------|----------------------------------------------------------------|
| `url`               | http/https endpoint; its query parameters become input points  |
| `method`            | `GET`, `POST`, `PUT`, `PATCH` or `DELETE` (default `GET`)      |
| `headers`           | extra request headers, e.g. a session cookie                   |
| `query_params`      | additional query parameters, merged over those in the URL      |
| `body`              | object (fields become input points) or raw body                |
| `body_format`       | `auto`, `json` or `form` (default `auto`)                      |
| `injectable_fields` | the fields to test, instead of all query and body fields       |
| `verification_urls` | pages fetched afterwards to detect stored reflection           |
| `timeout_ms`        | per-request timeout, 500–15000 (default 5000)                  |

The scan needs at least one testable field and raises `InvalidInputError`
if there is none. A field named in `injectable_fields` that is not present is
added as a query field for `GET`. For other methods it is added as a body
field, unless the body is a raw string. In that case the field is skipped. A
body is not sent with `GET`. With `body_format` set to `auto`, object bodies
are sent as JSON when the `Content-Type` header mentions `json`. Otherwise
they are sent as a form.

### How it works

The scan first sends a baseline request. If that request fails, it returns a
report with `risk_level` `"unknown"` and the error, and does not raise. For
each field it then sends a unique marker (`spa-xss-<field>`) and five
low-impact payloads: an SVG event, an IMG event, a mixed-case script, an
attribute event and a `javascript:` URL. It records the context of each
reflection: `html_text`, `html_attribute`, `url_attribute`, `html_tag` or
`script`. Redirects are followed, up to 5. The scan reads at most 256 KiB of
each response body.

It reports findings at three levels:

- **high** – an executable payload came back unencoded.
- **medium** – the marker came back with no sign of HTML encoding, or a
  field's marker appeared on a verification page (a stored XSS candidate).
- **low** – the reflection was encoded, or a probe or verification request
  failed.

The overall `risk_level` is the highest level found, or `low` when there are
no findings. The output metadata holds the full report: `risk_level`,
`summary`, `sample_coverage`, `attack_types`, `remediation`,
`tested_fields`, every probe, every finding and the baseline observation.

The progress callback gets one update before the first request and one after
each step. Each update carries a checklist of all steps in
`metadata["checklist"]`.

## Writing your own tool

```python
from safetyscan.registry import ToolRegistry
from safetyscan.spec import ToolHandler, ToolOutput, ToolSpec


class Shout(ToolHandler):
    name = "shout"

    def spec(self):
        return ToolSpec(self.name, "Upper-case text.", {"type": "object"})

    async def handle(self, call):
        return ToolOutput.text(call.id, str(call.input.get("text", "")).upper())


registry = ToolRegistry.builder().register(Shout()).build()
```

## What this package does not do

This is a library only. It has no command-line program and no server that
exposes the tools to other processes. The registry's built-ins are limited to
the XSS risk scan. There are no other scanners, and no load-testing tool.