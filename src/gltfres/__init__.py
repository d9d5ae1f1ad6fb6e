"""gltfres: write glTF resources as data URIs, bufferViews or separate files.

The entry point for library use is :func:`gltfres.writer.write_resources`
(or its blocking twin ``write_resources_sync``); :func:`gltfres.api.process_gltf`
wraps it with file loading and saving.
"""

from .config import BufferStorage, WriteOptions
from .errors import ResourceWriteError, TranscodeError
from .writer import write_resources, write_resources_sync

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BufferStorage",
    "WriteOptions",
    "ResourceWriteError",
    "TranscodeError",
    "write_resources",
    "write_resources_sync",
]
