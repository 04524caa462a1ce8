#!/usr/bin/env python3
"""
Setup script for mmd2excalidraw.
Installs Playwright, Chromium and the npm bundles served by the asset bridge;
the markdown-to-text module ships with the repository under vendor/.
"""

import shutil
import subprocess
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

NPM_PACKAGES = [
    "@excalidraw/mermaid-to-excalidraw",
    "@excalidraw/excalidraw@0.17.6",
    "mermaid",
    "nanoid",
    "react@18",
    "react-dom@18",
]

MARKDOWN_TO_TEXT_ENTRY = PROJECT_ROOT / "vendor" / "markdown-to-text" / "index.mjs"


def run_command(cmd, description):
    """Run a command and report status."""
    print(f"\n📦 {description}...")
    try:
        result = subprocess.run(cmd, shell=True, check=True, capture_output=True, text=True, cwd=PROJECT_ROOT)
        print(f"✅ {description} completed")
        if result.stdout:
            print(result.stdout)
        return True
    except subprocess.CalledProcessError as e:
        print(f"❌ {description} failed")
        if e.stderr:
            print(e.stderr)
        return False


def main():
    print("🚀 Setting up mmd2excalidraw...")

    if sys.version_info < (3, 8):
        print("❌ Python 3.8+ required")
        sys.exit(1)

    if not run_command(
        f"{sys.executable} -m pip install -e .",
        "Installing mmd2excalidraw and Playwright"
    ):
        sys.exit(1)

    if not run_command(
        f"{sys.executable} -m playwright install chromium",
        "Installing Chromium browser"
    ):
        sys.exit(1)

    if shutil.which("npm") is None:
        print("❌ npm not found; it is needed to fetch the Mermaid/Excalidraw bundles")
        sys.exit(1)

    if not run_command(
        "npm install --no-save " + " ".join(NPM_PACKAGES),
        "Installing browser bundles into node_modules"
    ):
        sys.exit(1)

    if not MARKDOWN_TO_TEXT_ENTRY.exists():
        print(f"❌ Missing {MARKDOWN_TO_TEXT_ENTRY.relative_to(PROJECT_ROOT)}; restore it from version control")
        sys.exit(1)

    print("\n✅ Setup complete! You can now run:")
    print("   mmd2excalidraw docs/diagram.mmd")


if __name__ == "__main__":
    main()
