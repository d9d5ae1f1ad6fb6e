import asyncio
import base64

import pytest

from gltfres.buffers import add_buffer
from gltfres.config import BufferStorage, WriteOptions
from gltfres.errors import TranscodeError
from gltfres.logging import configure_logging
from gltfres.reporting import set_reporter
from gltfres.writer import KHR_TEXTURE_BASISU, write_resources

from fakes import (
    KTX2_BYTES,
    PNG_BYTES,
    WEBP_BYTES,
    FakeCodecs,
    RecordingReporter,
    entity,
    reachable_buffer_doc,
)


def _noop(*args):
    pass


def _write(gltf, options=None, codecs=None, tmp_path=None, **kwargs):
    return asyncio.run(
        write_resources(
            gltf,
            options,
            codecs=codecs or FakeCodecs(),
            temp_dir=tmp_path,
            **kwargs,
        )
    )


def test_separate_buffer_keeps_gltf_name(tmp_path):
    sink = {}
    gltf = reachable_buffer_doc(b"\x01\x02\x03\x04")
    options = WriteOptions(
        name="scene", separate_buffers=True, separate_resources=sink
    )
    _write(gltf, options, tmp_path=tmp_path)
    assert gltf["buffers"][0]["uri"] == "scene.bin"
    assert sink == {"scene.bin": b"\x01\x02\x03\x04"}


def test_images_default_to_buffer_views(tmp_path):
    gltf = {"images": [entity(PNG_BYTES)]}
    _write(gltf, tmp_path=tmp_path)
    image = gltf["images"][0]
    assert "uri" not in image
    assert image["mimeType"] == "image/png"
    view = gltf["bufferViews"][image["bufferView"]]
    assert view["byteLength"] == len(PNG_BYTES)
    # Image bytes now live in the merged buffer, written as a data URI.
    uri = gltf["buffers"][0]["uri"]
    payload = base64.b64decode(uri.split(",", 1)[1])
    start = view["byteOffset"]
    assert payload[start : start + view["byteLength"]] == PNG_BYTES


def test_data_uris_option_embeds_images_and_shaders(tmp_path):
    gltf = {
        "images": [entity(PNG_BYTES, mimeType="image/png")],
        "shaders": [entity("void main() {}", type=35632)],
        "programs": [{"fragmentShader": 0, "vertexShader": 0}],
    }
    _write(gltf, WriteOptions(data_uris=True), tmp_path=tmp_path)
    assert gltf["images"][0]["uri"].startswith("data:image/png;base64,")
    assert "mimeType" not in gltf["images"][0]
    assert gltf["shaders"][0]["uri"].startswith("data:text/plain;base64,")
    assert "bufferViews" not in gltf


def test_shared_resource_id_written_once(tmp_path):
    appended = []

    def append(gltf, data):
        appended.append(data)
        return add_buffer(gltf, data)

    gltf = {
        "images": [
            entity(PNG_BYTES, resourceId="/textures/wood.png"),
            entity(PNG_BYTES, resourceId="/textures/wood.png"),
        ]
    }
    _write(gltf, append=append, tmp_path=tmp_path)
    assert appended == [PNG_BYTES]
    assert gltf["images"][0]["bufferView"] == gltf["images"][1]["bufferView"]


def test_separate_textures_with_name_collision(tmp_path):
    sink = {}
    gltf = {
        "images": [
            entity(PNG_BYTES, name="tex"),
            entity(PNG_BYTES + b"\x01", name="tex"),
        ]
    }
    options = WriteOptions(separate_textures=True, separate_resources=sink)
    _write(gltf, options, tmp_path=tmp_path)
    uris = sorted(image["uri"] for image in gltf["images"])
    assert uris == ["tex.png", "tex_1.png"]
    assert set(sink) == {"tex.png", "tex_1.png"}


def test_basis_encoding_marks_extension_and_textures(tmp_path):
    gltf = {
        "images": [entity(PNG_BYTES)],
        "textures": [{"source": 0, "extensions": {"EXT_other": {}}}],
    }
    codecs = FakeCodecs()
    _write(gltf, WriteOptions(encode_basis=True), codecs, tmp_path)
    image = gltf["images"][0]
    assert image["mimeType"] == "image/ktx2"
    assert KHR_TEXTURE_BASISU in gltf["extensionsRequired"]
    assert KHR_TEXTURE_BASISU in gltf["extensionsUsed"]
    extensions = gltf["textures"][0]["extensions"]
    assert extensions[KHR_TEXTURE_BASISU] == {"source": 0}
    assert "EXT_other" in extensions


def test_transcoded_relative_path_gets_new_suffix(tmp_path):
    sink = {}
    gltf = {"images": [entity(WEBP_BYTES, relativePath="maps\\albedo.webp")]}
    options = WriteOptions(
        decode_webp=True,
        encode_basis=True,
        separate_textures=True,
        separate_resources=sink,
    )
    _write(gltf, options, tmp_path=tmp_path)
    assert gltf["images"][0]["uri"] == "maps/albedo.ktx2"
    assert sink == {"maps/albedo.ktx2": KTX2_BYTES}


def test_extension_follows_final_bytes(tmp_path):
    sink = {}
    gltf = {"images": [entity(KTX2_BYTES, name="already")]}
    options = WriteOptions(
        encode_basis=True, separate_textures=True, separate_resources=sink
    )
    codecs = FakeCodecs()
    _write(gltf, options, codecs, tmp_path)
    assert gltf["images"][0]["uri"] == "already.ktx2"
    assert codecs.calls == []


def test_failed_image_aborts_write(tmp_path):
    gltf = {
        "images": [entity(PNG_BYTES)],
        "shaders": [entity("void main() {}", type=35633)],
        "programs": [{"vertexShader": 0, "fragmentShader": 0}],
    }
    with pytest.raises(TranscodeError):
        _write(
            gltf,
            WriteOptions(encode_basis=True),
            FakeCodecs(fail="basis"),
            tmp_path,
        )
    assert "bufferView" not in gltf["shaders"][0]
    assert list(tmp_path.iterdir()) == []


def test_images_complete_in_any_order(tmp_path):
    slow = PNG_BYTES + b"slow"
    fast = PNG_BYTES + b"fast"
    sink = {}
    gltf = {
        "images": [entity(slow, name="slow"), entity(fast, name="fast")]
    }
    codecs = FakeCodecs(delays={slow: 0.05})
    options = WriteOptions(
        encode_basis=True, separate_textures=True, separate_resources=sink
    )
    _write(gltf, options, codecs, tmp_path)
    assert [image["uri"] for image in gltf["images"]] == [
        "slow.ktx2",
        "fast.ktx2",
    ]
    assert list(sink) == ["fast.ktx2", "slow.ktx2"]


def test_buffer_storage_collects_merged_buffer(tmp_path):
    storage = BufferStorage()
    gltf = reachable_buffer_doc(b"\x01\x02\x03\x04")
    gltf["images"] = [entity(PNG_BYTES)]
    _write(gltf, WriteOptions(buffer_storage=storage), tmp_path=tmp_path)
    assert len(gltf["buffers"]) == 1
    assert "uri" not in gltf["buffers"][0]
    assert len(storage) == gltf["buffers"][0]["byteLength"]
    assert bytes(storage.buffer[:4]) == b"\x01\x02\x03\x04"


def test_unreachable_buffers_are_pruned_before_merge(tmp_path):
    gltf = reachable_buffer_doc(b"\x01\x02\x03\x04")
    gltf["buffers"].append(entity(b"dead", byteLength=4))
    gltf["bufferViews"].append({"buffer": 1, "byteLength": 4})
    _write(gltf, tmp_path=tmp_path)
    assert len(gltf["bufferViews"]) == 1
    assert gltf["buffers"][0]["byteLength"] == 4


def test_collaborators_can_be_replaced(tmp_path):
    calls = []
    gltf = {"buffers": [entity(b"ab", byteLength=2)]}
    _write(
        gltf,
        tmp_path=tmp_path,
        prune=lambda g, kinds: calls.append(("prune", tuple(kinds))),
        merge=lambda g, name: calls.append(("merge", name)),
    )
    assert calls == [
        ("prune", ("accessor", "bufferView", "buffer")),
        ("merge", None),
    ]
    assert gltf["buffers"][0]["uri"].startswith("data:")


def test_conflicting_options_log_warning(tmp_path):
    rep = RecordingReporter()
    set_reporter(rep)
    configure_logging(0)
    gltf = {"images": [entity(PNG_BYTES)]}
    options = WriteOptions(encode_basis=True, jpeg_compression_ratio=80)
    _write(gltf, options, tmp_path=tmp_path, prune=_noop, merge=_noop)
    warnings = [m for level, m in rep.messages if level == "warning"]
    assert len(warnings) == 1
    assert warnings[0].startswith("W_CONFIG_CONFLICT")
    assert any(
        m.startswith("Images summary: images=1 ktx2=1")
        for level, m in rep.messages
    )


def test_task_stats_count_reused_resources(tmp_path):
    rep = RecordingReporter()
    set_reporter(rep)
    gltf = {
        "images": [
            entity(PNG_BYTES, resourceId="wood"),
            entity(PNG_BYTES, resourceId="wood"),
            entity(PNG_BYTES + b"\x01", resourceId="stone"),
        ],
        "shaders": [
            entity("void main() {}", type=35632, resourceId="fs"),
            entity("void main() {}", type=35632, resourceId="fs"),
        ],
        "programs": [{"fragmentShader": 0, "vertexShader": 1}],
    }
    _write(gltf, tmp_path=tmp_path, prune=_noop, merge=_noop)
    assert rep.ended["write.images"] == {"written": 2, "reused": 1}
    assert rep.ended["write.shaders"] == {"written": 1, "reused": 1}
