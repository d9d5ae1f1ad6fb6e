import base64
import json
import struct

import pytest

from gltfres.api import process_gltf
from gltfres.cli import main
from gltfres.config import WriteOptions
from gltfres.io import GLB_MAGIC, decode_data_uri, load_gltf

from fakes import PNG_BYTES, FakeCodecs

GEOMETRY = bytes(range(12))


def _data_uri(data, mime="application/octet-stream"):
    return f"data:{mime};base64," + base64.b64encode(data).decode("ascii")


def _scene(tmp_path, **image):
    src = tmp_path / "in"
    src.mkdir()
    (src / "wood.png").write_bytes(PNG_BYTES)
    gltf = {
        "asset": {"version": "2.0"},
        "buffers": [{"byteLength": 12, "uri": _data_uri(GEOMETRY)}],
        "bufferViews": [{"buffer": 0, "byteLength": 12}],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 1, "type": "VEC3"}
        ],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0}}]}],
        "images": [{"uri": "wood.png", **image}, {"uri": "wood.png"}],
        "textures": [{"source": 0}, {"source": 1}],
    }
    path = src / "scene.gltf"
    path.write_text(json.dumps(gltf), encoding="utf-8")
    return path


def test_decode_data_uri():
    assert decode_data_uri(_data_uri(b"abc")) == b"abc"
    assert decode_data_uri("data:text/plain,a%20b") == b"a b"
    assert decode_data_uri("textures/a.png") is None


def test_load_assigns_file_identity(tmp_path):
    gltf = load_gltf(_scene(tmp_path))
    first, second = (img["extras"]["_pipeline"] for img in gltf["images"])
    assert first["resourceId"] == second["resourceId"]
    assert first["relativePath"] == "wood.png"
    assert first["source"] == PNG_BYTES
    assert "uri" not in gltf["buffers"][0]


def test_process_separate_textures_shares_one_file(tmp_path):
    out = tmp_path / "out" / "scene.gltf"
    result = process_gltf(
        _scene(tmp_path),
        out,
        WriteOptions(separate_textures=True),
        codecs=FakeCodecs(),
    )
    assert [p.name for p in result.separate_files] == ["wood.png"]
    assert (out.parent / "wood.png").read_bytes() == PNG_BYTES
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert [img["uri"] for img in doc["images"]] == ["wood.png", "wood.png"]
    assert "extras" not in doc["images"][0]
    assert decode_data_uri(doc["buffers"][0]["uri"]) == GEOMETRY


def test_process_to_glb_keeps_buffers_in_bin_chunk(tmp_path):
    out = tmp_path / "out" / "scene.glb"
    process_gltf(_scene(tmp_path), out, codecs=FakeCodecs())
    raw = out.read_bytes()
    assert raw[:4] == GLB_MAGIC
    assert struct.unpack_from("<I", raw, 8)[0] == len(raw)

    gltf = load_gltf(out)
    assert len(gltf["buffers"]) == 1
    assert gltf["buffers"][0]["name"] == "scene"
    assert "uri" not in gltf["buffers"][0]
    image = gltf["images"][0]
    assert image["mimeType"] == "image/png"
    assert image["extras"]["_pipeline"]["source"] == PNG_BYTES
    assert gltf["images"][0]["bufferView"] == gltf["images"][1]["bufferView"]


def test_cli_process_returns_zero(tmp_path):
    out = tmp_path / "out" / "scene.gltf"
    rc = main(
        ["-r", "silent", "process", str(_scene(tmp_path)), str(out), "--separate"]
    )
    assert rc == 0
    assert (out.parent / "wood.png").exists()
    assert (out.parent / "scene.bin").exists()


def test_cli_reports_errors_with_exit_code(tmp_path):
    src = tmp_path / "bad.gltf"
    src.write_text(
        json.dumps({"images": [{"uri": _data_uri(b"\x00\x01\x02", "image/png")}]}),
        encoding="utf-8",
    )
    rc = main(["-r", "silent", "process", str(src), str(tmp_path / "o.gltf")])
    assert rc == 1


def test_cli_missing_input(tmp_path):
    rc = main(
        ["-r", "silent", "process", str(tmp_path / "nope.gltf"), str(tmp_path / "o.gltf")]
    )
    assert rc == 1


def test_cli_error_goes_to_stderr(tmp_path, capsys):
    src = tmp_path / "bad.gltf"
    src.write_text(
        json.dumps({"images": [{"uri": _data_uri(b"\x00\x01\x02", "image/png")}]}),
        encoding="utf-8",
    )
    rc = main(["process", str(src), str(tmp_path / "o.gltf")])
    assert rc == 1
    err = capsys.readouterr().err
    assert "ERROR" in err
    assert "E_IMAGE_FORMAT" in err


@pytest.mark.parametrize(
    "flags",
    [["--jpeg-quality", "0"], ["--basis-quality", "999"]],
)
def test_cli_rejects_out_of_range_quality(tmp_path, capsys, flags):
    out = tmp_path / "out" / "scene.gltf"
    rc = main(["process", str(_scene(tmp_path)), str(out), *flags])
    assert rc == 1
    assert "E_INVALID_OPTION" in capsys.readouterr().err
    assert not out.exists()
