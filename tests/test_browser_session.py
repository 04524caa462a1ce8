from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from asset_bridge import default_bridge_config, start_bridge_server
from browser_session import READY_PREDICATE, RENDER_SCRIPT, BrowserSession
from conversion_errors import BridgeTimeoutError, RemoteEvaluationError
from convert_options import ConversionOptions


class FakePage:
    def __init__(self, result=None, error: Exception | None = None, ready: bool = True):
        self.result = result if result is not None else {"elements": [{"id": "n1"}]}
        self.error = error
        self.ready = ready
        self.evaluated: list[tuple[str, dict]] = []
        self.closed = False

    async def wait_for_function(self, expression: str, timeout: float):
        assert expression == READY_PREDICATE
        if not self.ready:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")

    async def evaluate(self, expression: str, arg: dict):
        self.evaluated.append((expression, arg))
        if self.error is not None:
            raise self.error
        return self.result

    async def close(self):
        self.closed = True


def session_with(page: FakePage) -> BrowserSession:
    session = BrowserSession(ready_timeout_ms=100)
    session.page = page
    return session


def test_render_marshals_text_and_options() -> None:
    page = FakePage()
    session = session_with(page)
    options = ConversionOptions(font_size=20, curve="basis")

    result = asyncio.run(session.render("flowchart LR\n A --> B", options))

    assert result == {"elements": [{"id": "n1"}], "files": {}}
    expression, payload = page.evaluated[0]
    assert expression == RENDER_SCRIPT
    assert payload == {
        "mermaidText": "flowchart LR\n A --> B",
        "opts": {"fontSize": 20, "curve": "basis", "maxEdges": 500, "maxTextSize": 50000},
    }


def test_render_script_requests_stable_ids() -> None:
    assert "regenerateIds: false" in RENDER_SCRIPT


def test_render_keeps_element_order_and_files() -> None:
    elements = [{"id": "z"}, {"id": "a"}, {"id": "m"}]
    page = FakePage(result={"elements": elements, "files": {"f1": {"mimeType": "image/png"}}})
    result = asyncio.run(session_with(page).render("graph TD", ConversionOptions()))
    assert [e["id"] for e in result["elements"]] == ["z", "a", "m"]
    assert result["files"] == {"f1": {"mimeType": "image/png"}}


def test_render_failure_is_remote_evaluation_error() -> None:
    page = FakePage(error=PlaywrightError("Error: Parse error on line 2"))
    with pytest.raises(RemoteEvaluationError) as excinfo:
        asyncio.run(session_with(page).render("graph ???", ConversionOptions()))
    assert "Parse error on line 2" in str(excinfo.value)


def test_readiness_timeout() -> None:
    with pytest.raises(BridgeTimeoutError):
        asyncio.run(session_with(FakePage(ready=False)).wait_until_ready())


def test_render_before_start() -> None:
    with pytest.raises(RuntimeError):
        asyncio.run(BrowserSession().render("graph TD", ConversionOptions()))


def test_close_releases_page_and_is_idempotent() -> None:
    page = FakePage()
    session = session_with(page)
    asyncio.run(session.close())
    asyncio.run(session.close())
    assert page.closed
    assert session.page is None


# Chromium-backed checks against stub bundles served by the real bridge.

EXCALIDRAW_STUB = """
window.ExcalidrawLib = {
  convertToExcalidrawElements: (elements, opts) =>
    elements.map((el) => ({ ...el, regenerated: opts.regenerateIds })),
};
"""

MERMAID_TO_EXCALIDRAW_STUB = """
export async function parseMermaidToExcalidraw(text, config) {
  window.lastConfig = config;
  if (text.includes("boom")) {
    throw new Error("Parse error: boom");
  }
  const ids = text.split(/\\s+/).filter((token) => /^[A-Za-z]$/.test(token));
  return { elements: ids.map((id) => ({ id, type: "rectangle" })) };
}
"""


def build_stub_assets(root: Path, ready: bool = True) -> Path:
    node_modules = root / "node_modules"
    stubs = {
        node_modules / "react" / "umd" / "react.production.min.js": "window.React = {};",
        node_modules / "react-dom" / "umd" / "react-dom.production.min.js": "window.ReactDOM = {};",
    }
    if ready:
        stubs[node_modules / "@excalidraw" / "excalidraw" / "dist" / "excalidraw.production.min.js"] = EXCALIDRAW_STUB
        stubs[node_modules / "@excalidraw" / "mermaid-to-excalidraw" / "dist" / "index.js"] = MERMAID_TO_EXCALIDRAW_STUB
    for path, text in stubs.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture(scope="module")
def chromium() -> None:
    from playwright.async_api import async_playwright

    async def probe():
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            await browser.close()

    try:
        asyncio.run(probe())
    except Exception as exc:
        pytest.skip(f"Chromium unavailable: {exc}")


def test_bridge_and_session_end_to_end(chromium, tmp_path: Path) -> None:
    server = start_bridge_server(default_bridge_config(build_stub_assets(tmp_path)))

    async def scenario():
        async with BrowserSession() as session:
            await session.start(server.url)
            options = ConversionOptions(font_size=20, curve="basis")
            first = await session.render("flowchart LR\n A --> B", options)
            second = await session.render("flowchart LR\n A --> B", options)
            config = await session.page.evaluate("() => window.lastConfig")
            with pytest.raises(RemoteEvaluationError):
                await session.render("boom", options)
            return first, second, config

    try:
        first, second, config = asyncio.run(scenario())
    finally:
        server.close()

    assert [e["id"] for e in first["elements"]] == ["A", "B"]
    assert first == second
    assert first["files"] == {}
    assert all(e["regenerated"] is False for e in first["elements"])
    assert config["flowchart"]["curve"] == "basis"
    assert config["themeVariables"]["fontSize"] == "20px"
    assert config["maxEdges"] == 500
    assert config["maxTextSize"] == 50000


def test_missing_bundles_time_out(chromium, tmp_path: Path) -> None:
    server = start_bridge_server(default_bridge_config(build_stub_assets(tmp_path, ready=False)))

    async def scenario():
        async with BrowserSession(ready_timeout_ms=1500) as session:
            await session.start(server.url)

    try:
        with pytest.raises(BridgeTimeoutError):
            asyncio.run(scenario())
    finally:
        server.close()
