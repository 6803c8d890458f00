import pytest
from pathlib import Path
from dualcam.domain.exceptions import PipelineIOError
from dualcam.infrastructure.filtergraph import ConcatList, FilterGraph, filter_expr

def test_filter_expr():
    assert filter_expr("scale", -2, 720) == "scale=-2:720"
    assert filter_expr("hstack", inputs=2) == "hstack=inputs=2"
    assert filter_expr("tpad", stop_mode="clone", stop_duration=3.5) == "tpad=stop_mode=clone:stop_duration=3.5"
    assert filter_expr("null") == "null"

def test_filter_expr_float_precision():
    assert filter_expr("apad", pad_dur=10.000125) == "apad=pad_dur=10.000125"
    assert filter_expr("apad", pad_dur=1 / 3) == "apad=pad_dur=0.333333"
    assert filter_expr("apad", pad_dur=0.0) == "apad=pad_dur=0"

def test_filter_expr_rejects_graph_syntax():
    with pytest.raises(ValueError):
        filter_expr("scale", "1280;[x]")
    with pytest.raises(ValueError):
        filter_expr("drawtext", text="a=b")
    with pytest.raises(ValueError):
        filter_expr("scale[0]", 1)

def test_graph_render():
    graph = FilterGraph()
    graph.chain(["0:v"], ["null"], ["v"])
    graph.chain(["0:a"], ["anull"], ["a"])
    assert graph.render(mapped=["v", "a"]) == "[0:v]null[v];[0:a]anull[a]"

def test_graph_unknown_input_label():
    graph = FilterGraph()
    with pytest.raises(ValueError, match="not produced"):
        graph.chain(["left"], ["null"], ["v"])

def test_graph_label_consumed_twice():
    graph = FilterGraph()
    graph.chain(["0:v"], ["null"], ["left"])
    graph.chain(["left"], ["null"], ["v"])
    with pytest.raises(ValueError, match="consumed twice"):
        graph.chain(["left"], ["null"], ["w"])

def test_graph_duplicate_output_label():
    graph = FilterGraph()
    graph.chain(["0:v"], ["null"], ["v"])
    with pytest.raises(ValueError, match="produced twice"):
        graph.chain(["1:v"], ["null"], ["v"])

def test_graph_dangling_label():
    graph = FilterGraph()
    graph.chain(["0:v"], ["null"], ["left"])
    graph.chain(["0:a"], ["anull"], ["a"])
    with pytest.raises(ValueError, match="neither consumed nor mapped"):
        graph.render(mapped=["a"])

def test_graph_mapping_unknown_label():
    graph = FilterGraph()
    graph.chain(["0:v"], ["null"], ["v"])
    with pytest.raises(ValueError, match="not produced"):
        graph.render(mapped=["v", "a"])

def test_concat_list_quotes_single_quotes():
    manifest = ConcatList([Path("/uploads/a/it's here.mp4")])
    assert manifest.render() == "file '/uploads/a/it'\\''s here.mp4'\n"

def test_concat_list_keeps_shell_characters_literal():
    manifest = ConcatList([Path("/uploads/$(rm -rf) `x` & \"y\"; #1.mp4")])
    assert manifest.render() == "file '/uploads/$(rm -rf) `x` & \"y\"; #1.mp4'\n"

@pytest.mark.parametrize("name", ["bad\nname.mp4", "bad\rname.mp4"])
def test_concat_list_rejects_line_breaks(name):
    with pytest.raises(PipelineIOError, match="cannot be written"):
        ConcatList([Path("/uploads") / name])

def test_concat_list_makes_paths_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    manifest = ConcatList([Path("pair_1.mp4")])
    assert manifest.paths == [tmp_path / "pair_1.mp4"]

def test_concat_list_write(tmp_path):
    manifest = ConcatList([tmp_path / "pair_1.mp4", tmp_path / "pair_2.mp4"])
    list_path = manifest.write(tmp_path)

    assert list_path.parent == tmp_path
    assert list_path.name.startswith("ffmpeg-concat-")
    assert list_path.read_text().splitlines() == [
        f"file '{tmp_path / 'pair_1.mp4'}'",
        f"file '{tmp_path / 'pair_2.mp4'}'",
    ]

def test_concat_list_write_missing_directory(tmp_path):
    manifest = ConcatList([tmp_path / "pair_1.mp4"])
    with pytest.raises(PipelineIOError, match="Failed to prepare concatenation"):
        manifest.write(tmp_path / "missing")
