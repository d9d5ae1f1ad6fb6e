import io

import pytest
from rich.console import Console

from gltfres.reporting import (
    PlainReporter,
    RichReporter,
    TaskStatus,
    set_reporter,
    set_verbosity,
    task,
)


def test_plain_task_line_includes_stats():
    stream = io.StringIO()
    rep = PlainReporter(stream=stream, use_color=False)
    set_reporter(rep)
    with task("write.buffers", "Buffers", total=2) as stats:
        rep.advance("write.buffers")
        rep.advance("write.buffers")
        stats["bytes"] = 128
    line = stream.getvalue().strip()
    assert line.startswith("✔ Buffers 2/2")
    assert line.endswith("[bytes=128]")


def test_plain_advance_lines_need_verbosity():
    stream = io.StringIO()
    rep = PlainReporter(stream=stream, use_color=False)
    rep.start_task("t", "Images", total=1)
    rep.advance("t", current_item="wood")
    assert stream.getvalue() == ""
    set_verbosity(1)
    rep.advance("t", current_item="stone")
    assert "Images: stone (2/1)" in stream.getvalue()


def test_failed_task_is_reported_and_reraised():
    stream = io.StringIO()
    set_reporter(PlainReporter(stream=stream, use_color=False))
    with pytest.raises(RuntimeError):
        with task("t", "Images", total=1):
            raise RuntimeError("boom")
    assert "✖ Images 0/1" in stream.getvalue()


def test_rich_reporter_prints_summary():
    out = io.StringIO()
    rep = RichReporter(console=Console(file=out, force_terminal=False, width=100))
    rep.start_task("t", "Shaders", total=1)
    rep.advance("t", current_item="mainFS")
    rep.end_task("t", TaskStatus.SUCCESS, files=1)
    rep.warning("W_CONFIG_CONFLICT: basis wins")
    text = out.getvalue()
    assert "Shaders 1/1" in text
    assert "[files=1]" in text
    assert "WARN: W_CONFIG_CONFLICT" in text
    assert rep.progress is None


def test_rich_transient_progress_from_env(monkeypatch):
    monkeypatch.setenv("GLTFRES_PROGRESS_TRANSIENT", "yes")
    assert RichReporter(console=Console(file=io.StringIO()))._transient
    monkeypatch.delenv("GLTFRES_PROGRESS_TRANSIENT")
    assert not RichReporter(console=Console(file=io.StringIO()))._transient
