"""
Local asset bridge for the headless browser.

Serves one generated page plus a fixed set of module namespaces mapped to
on-disk bundles, so the Mermaid-to-Excalidraw library can run same-origin
without network access.
"""

import json
import posixpath
import sys
import threading
import traceback
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import unquote, urlparse

from conversion_errors import BridgeServeError


ASSET_ROOT = Path(__file__).resolve().parent.parent

CONTENT_TYPES = {
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".css": "text/css",
    ".json": "application/json",
    ".svg": "image/svg+xml",
    ".map": "application/json",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

IMPORT_MAP = {
    "imports": {
        "mermaid": "/modules/mermaid/mermaid.esm.mjs",
        "nanoid": "/modules/nanoid/index.browser.js",
        "@excalidraw/markdown-to-text": "/modules/markdown-to-text/index.mjs",
        "@excalidraw/mermaid-to-excalidraw": "/modules/mermaid-to-excalidraw/index.js",
    }
}

CLASSIC_SCRIPTS = (
    "/react/react.production.min.js",
    "/react-dom/react-dom.production.min.js",
    "/excalidraw/excalidraw.production.min.js",
)

PAGE_TEMPLATE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <script type="importmap">{import_map}</script>
{classic_scripts}
  <script type="module">
    import {{ parseMermaidToExcalidraw }} from "@excalidraw/mermaid-to-excalidraw";
    window.parseMermaidToExcalidraw = parseMermaidToExcalidraw;
  </script>
</head>
<body></body>
</html>"""


@dataclass(frozen=True)
class ModuleRoute:
    url_prefix: str
    disk_root: Path


def default_routes(asset_root: Path = ASSET_ROOT) -> Tuple[ModuleRoute, ...]:
    node_modules = asset_root / "node_modules"
    return (
        ModuleRoute("/modules/mermaid-to-excalidraw/", node_modules / "@excalidraw" / "mermaid-to-excalidraw" / "dist"),
        ModuleRoute("/modules/mermaid/", node_modules / "mermaid" / "dist"),
        ModuleRoute("/modules/nanoid/", node_modules / "nanoid"),
        ModuleRoute("/modules/markdown-to-text/", asset_root / "vendor" / "markdown-to-text"),
        ModuleRoute("/excalidraw/", node_modules / "@excalidraw" / "excalidraw" / "dist"),
        ModuleRoute("/react/", node_modules / "react" / "umd"),
        ModuleRoute("/react-dom/", node_modules / "react-dom" / "umd"),
    )


def render_page(import_map: Dict[str, Dict[str, str]]) -> str:
    scripts = "\n".join(f'  <script src="{src}"></script>' for src in CLASSIC_SCRIPTS)
    return PAGE_TEMPLATE.format(import_map=json.dumps(import_map), classic_scripts=scripts)


@dataclass(frozen=True)
class BridgeConfig:
    routes: Tuple[ModuleRoute, ...]
    import_map: Dict[str, Dict[str, str]] = field(default_factory=lambda: IMPORT_MAP)

    @property
    def page(self) -> bytes:
        return render_page(self.import_map).encode("utf-8")


def default_bridge_config(asset_root: Path = ASSET_ROOT) -> BridgeConfig:
    return BridgeConfig(routes=default_routes(asset_root))


def content_type_for(path: Path) -> str:
    return CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


def safe_join(root: Path, relative: str) -> Optional[Path]:
    """Join a URL path segment onto ``root``; None if it would land outside."""
    cleaned = unquote(relative).replace("\\", "/")
    normalized = posixpath.normpath("/" + cleaned).lstrip("/")
    if not normalized or normalized == ".":
        return None
    try:
        base = root.resolve()
        candidate = (base / normalized).resolve()
        candidate.relative_to(base)
    except ValueError:
        return None
    return candidate


class BridgeRequestHandler(BaseHTTPRequestHandler):
    server: "BridgeServer"

    def log_message(self, fmt: str, *args) -> None:
        return

    def _send_bytes(self, status: int, content_type: str, body: bytes) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        try:
            self._route(urlparse(self.path).path)
        except BridgeServeError:
            self._send_bytes(HTTPStatus.NOT_FOUND, "text/plain", b"Not found")
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True
        except Exception:
            print(f"❌ [bridge] {self.path}", file=sys.stderr)
            traceback.print_exc()
            try:
                self._send_bytes(HTTPStatus.INTERNAL_SERVER_ERROR, "text/plain", b"Server error")
            except OSError:
                self.close_connection = True

    def _route(self, pathname: str) -> None:
        config = self.server.config
        if pathname in ("/", "/index.html"):
            self._send_bytes(HTTPStatus.OK, "text/html; charset=utf-8", config.page)
            return

        for route in config.routes:
            if not pathname.startswith(route.url_prefix):
                continue
            file_path = safe_join(route.disk_root, pathname[len(route.url_prefix):])
            if file_path is None or not file_path.is_file():
                raise BridgeServeError(pathname)
            self._send_bytes(HTTPStatus.OK, content_type_for(file_path), file_path.read_bytes())
            return

        raise BridgeServeError(pathname)


class BridgeServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, config: BridgeConfig, host: str = "127.0.0.1", port: int = 0):
        super().__init__((host, port), BridgeRequestHandler)
        self.config = config
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> "BridgeServer":
        self._thread = threading.Thread(target=self.serve_forever, name="asset-bridge", daemon=True)
        self._thread.start()
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            self.shutdown()
            self._thread.join()
        self.server_close()

    def __enter__(self) -> "BridgeServer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def start_bridge_server(config: Optional[BridgeConfig] = None) -> BridgeServer:
    """Bind to a free loopback port and serve until ``close()``."""
    return BridgeServer(config or default_bridge_config()).start()
