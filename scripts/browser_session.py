"""
Headless browser session that runs the Mermaid-to-Excalidraw library.

One Chromium process, one page pointed at the asset bridge, and a single
``render`` call that crosses into the page and returns plain data.
"""

import sys
from typing import Any, Dict, List, Optional

try:
    from playwright.async_api import async_playwright, Browser, ConsoleMessage, Page, Playwright, Request
    from playwright.async_api import Error as PlaywrightError
    from playwright.async_api import TimeoutError as PlaywrightTimeoutError
except ImportError:
    print("ERROR: playwright not installed. Run: pip install playwright && playwright install chromium")
    raise SystemExit(1)

from conversion_errors import BridgeTimeoutError, RemoteEvaluationError
from convert_options import ConversionOptions


READY_TIMEOUT_MS = 60000

READY_PREDICATE = """() =>
    Boolean(window.parseMermaidToExcalidraw && window.ExcalidrawLib?.convertToExcalidrawElements)
"""

RENDER_SCRIPT = """async ({ mermaidText, opts }) => {
    const config = {
        flowchart: { curve: opts.curve },
        themeVariables: { fontSize: `${opts.fontSize}px` },
        maxEdges: opts.maxEdges,
        maxTextSize: opts.maxTextSize,
    };
    const { elements, files } = await window.parseMermaidToExcalidraw(mermaidText, config);
    const converted = window.ExcalidrawLib.convertToExcalidrawElements(elements, { regenerateIds: false });
    return { elements: converted, files: files ?? {} };
}"""


def log_console(message: ConsoleMessage) -> None:
    print(f"[browser:{message.type}] {message.text}")


def log_page_error(error: Exception) -> None:
    print(f"[browser:error] {getattr(error, 'message', error)}", file=sys.stderr)


def log_request_failed(request: Request) -> None:
    failure = request.failure or ""
    print(f"[browser:requestfailed] {request.url} {failure}".rstrip(), file=sys.stderr)


def attach_diagnostics(page: Page) -> None:
    page.on("console", log_console)
    page.on("pageerror", log_page_error)
    page.on("requestfailed", log_request_failed)


class BrowserSession:
    def __init__(self, headless: bool = True, ready_timeout_ms: int = READY_TIMEOUT_MS):
        self.headless = headless
        self.ready_timeout_ms = ready_timeout_ms
        self.page: Optional[Page] = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self, url: str) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        self.page = await self._browser.new_page()
        attach_diagnostics(self.page)

        await self.page.goto(url, wait_until="load")
        await self.wait_until_ready()
        return self

    async def wait_until_ready(self) -> None:
        page = self._require_page()
        try:
            await page.wait_for_function(READY_PREDICATE, timeout=self.ready_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise BridgeTimeoutError(
                f"Mermaid/Excalidraw bundles not ready after {self.ready_timeout_ms / 1000:.0f}s"
            ) from exc

    async def render(self, mermaid_text: str, options: ConversionOptions) -> Dict[str, Any]:
        """Run the diagram through the page; returns ``{"elements", "files"}``."""
        page = self._require_page()
        payload = {"mermaidText": mermaid_text, "opts": options.to_payload()}
        try:
            result = await page.evaluate(RENDER_SCRIPT, payload)
        except PlaywrightError as exc:
            raise RemoteEvaluationError(exc.message) from exc

        elements: List[Any] = result.get("elements") or []
        files: Dict[str, Any] = result.get("files") or {}
        return {"elements": elements, "files": files}

    def _require_page(self) -> Page:
        if self.page is None:
            raise RuntimeError("Browser session is not started")
        return self.page

    async def close(self) -> None:
        page, browser, driver = self.page, self._browser, self._playwright
        self.page = self._browser = self._playwright = None
        try:
            if page is not None:
                await page.close()
        finally:
            try:
                if browser is not None:
                    await browser.close()
            finally:
                if driver is not None:
                    await driver.stop()

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
