"""High-level API: load a glTF/GLB, externalize its resources, save it."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .config import BufferStorage, WriteOptions
from .image_codecs import ImageCodecs
from .io import load_gltf, save_glb, save_gltf
from .logging import get_logger, section
from .reporting import get_reporter, task
from .writer import write_resources_sync

__all__ = ["ProcessResult", "process_gltf"]


@dataclass(slots=True)
class ProcessResult:
    output_file: Path
    separate_files: List[Path]
    bytes_written: int


def process_gltf(
    input_path: str | Path,
    output_path: str | Path,
    options: WriteOptions | None = None,
    *,
    codecs: ImageCodecs | None = None,
) -> ProcessResult:
    """Rewrite ``input_path`` to ``output_path``.

    A ``.glb`` output keeps buffers in its BIN chunk unless buffers are
    separated; anything written separately lands next to the output file.
    """
    logger = get_logger()
    rep = get_reporter()
    input_path = Path(input_path)
    output_path = Path(output_path)
    as_glb = output_path.suffix.lower() == ".glb"

    base = options if options is not None else WriteOptions()
    storage = BufferStorage() if as_glb and not base.separate_buffers else None
    opts = dataclasses.replace(
        base,
        name=base.name if base.name is not None else output_path.stem,
        buffer_storage=storage,
        separate_resources={},
    )

    with section(f"Process {input_path.name}"):
        with task("load", f"Load {input_path.name}"):
            gltf = load_gltf(input_path)
        write_resources_sync(gltf, opts, codecs=codecs)
        with task("save", f"Save {output_path.name}") as stats:
            if as_glb:
                binary = bytes(storage.buffer) if storage is not None else b""
                paths = save_glb(
                    gltf, output_path, binary, opts.separate_resources
                )
            else:
                paths = save_gltf(gltf, output_path, opts.separate_resources)
            stats["files"] = len(paths)
            stats["bytes"] = sum(p.stat().st_size for p in paths)

    logger.info("Wrote %s (%d separate file(s))", output_path.name, len(paths) - 1)
    rep.status(
        f"Write summary: file={output_path.name} files={len(paths)} "
        f"bytes={stats['bytes']}"
    )
    return ProcessResult(
        output_file=output_path,
        separate_files=paths[1:],
        bytes_written=stats["bytes"],
    )
