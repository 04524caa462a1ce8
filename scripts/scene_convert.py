"""
Turn .mmd files into .excalidraw scene documents through a browser session.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from conversion_errors import FileSystemError, InvalidInputError, RemoteEvaluationError
from convert_options import ConversionOptions


MERMAID_EXTENSION = ".mmd"
SCENE_EXTENSION = ".excalidraw"

SCENE_TYPE = "excalidraw"
SCENE_VERSION = 2
SCENE_SOURCE = "https://excalidraw.com"
BACKGROUND_COLOR = "#ffffff"


@dataclass(frozen=True)
class ConversionJob:
    input_path: Path
    output_path: Path
    options: ConversionOptions
    label: str = ""


def swap_extension(path: Path) -> Path:
    if path.name.endswith(MERMAID_EXTENSION):
        return path.with_name(path.name[: -len(MERMAID_EXTENSION)] + SCENE_EXTENSION)
    return path


def resolve_output_path(input_path: Path, output_path: Optional[Path]) -> Path:
    if output_path is None:
        return swap_extension(input_path)
    if output_path.is_dir():
        return output_path / swap_extension(Path(input_path.name))
    return output_path


def list_mermaid_files(directory: Path) -> List[Path]:
    """Depth-first walk in directory listing order; symlinks are not followed."""
    found: List[Path] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            full_path = directory / entry.name
            if entry.is_dir(follow_symlinks=False):
                found.extend(list_mermaid_files(full_path))
            elif entry.is_file(follow_symlinks=False) and entry.name.endswith(MERMAID_EXTENSION):
                found.append(full_path)
    return found


def build_scene(elements: List[Any], files: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "type": SCENE_TYPE,
        "version": SCENE_VERSION,
        "source": SCENE_SOURCE,
        "elements": elements,
        "appState": {"viewBackgroundColor": BACKGROUND_COLOR},
        "files": files or {},
    }


def read_mermaid(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise FileSystemError("read", path, exc) from exc


def write_scene(path: Path, scene: Dict[str, Any]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(scene, f, ensure_ascii=False, indent=2)
    except OSError as exc:
        raise FileSystemError("write", path, exc) from exc


def plan_single_file(input_path: Path, output_path: Optional[Path], options: ConversionOptions) -> ConversionJob:
    if not input_path.name.endswith(MERMAID_EXTENSION):
        raise InvalidInputError(f"Input file must have {MERMAID_EXTENSION} extension.")
    return ConversionJob(
        input_path=input_path,
        output_path=resolve_output_path(input_path, output_path),
        options=options,
        label=input_path.name,
    )


def plan_directory(input_root: Path, output_root: Optional[Path], options: ConversionOptions) -> List[ConversionJob]:
    target_base = output_root if output_root is not None else input_root
    jobs = []
    for file_path in list_mermaid_files(input_root):
        relative = file_path.relative_to(input_root)
        jobs.append(ConversionJob(
            input_path=file_path,
            output_path=swap_extension(target_base / relative),
            options=options,
            label=str(relative),
        ))
    return jobs


async def convert_file(session, job: ConversionJob) -> Path:
    mermaid_text = read_mermaid(job.input_path)
    try:
        result = await session.render(mermaid_text, job.options)
    except RemoteEvaluationError as exc:
        raise RemoteEvaluationError(str(exc), input_path=job.input_path) from exc
    write_scene(job.output_path, build_scene(result["elements"], result.get("files")))
    return job.output_path


async def run_jobs(session, jobs: List[ConversionJob]) -> List[Path]:
    written = []
    for job in jobs:
        print(f"Converting {job.label or job.input_path.name}")
        written.append(await convert_file(session, job))
    return written


def plan_jobs(input_path: Path, output_path: Optional[Path], options: ConversionOptions) -> List[ConversionJob]:
    """Build the job list for one .mmd file, or every .mmd file under a directory."""
    if not input_path.is_dir():
        return [plan_single_file(input_path, output_path, options)]
    try:
        jobs = plan_directory(input_path, output_path, options)
    except OSError as exc:
        raise FileSystemError("list", input_path, exc) from exc
    if not jobs:
        print(f"No {MERMAID_EXTENSION} files found under {input_path}")
    return jobs


async def convert_path(
    session,
    input_path: Path,
    output_path: Optional[Path],
    options: ConversionOptions,
) -> List[Path]:
    jobs = plan_jobs(input_path, output_path, options)
    if not jobs:
        return []
    return await run_jobs(session, jobs)
