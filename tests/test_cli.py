import importlib.util
import json
from pathlib import Path

from conftest import make_bitmap, png_bytes

CLI_PATH = Path(__file__).resolve().parent.parent / "apps" / "cli_app.py"


def _load_cli():
    spec = importlib.util.spec_from_file_location("chexscan_cli", CLI_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


cli = _load_cli()


def test_graphs_lists_registry(capsys):
    assert cli.main(["graphs"]) == 0
    out = capsys.readouterr().out
    assert "chexnet_imagenet" in out
    assert "chexnet_random" in out


def test_validate_exit_codes(tmp_path, capsys):
    good = tmp_path / "xray.png"
    good.write_bytes(png_bytes(make_bitmap(120, 100)))
    bad = tmp_path / "photo.png"
    bad.write_bytes(png_bytes(make_bitmap(120, 100, rgb=(230, 40, 40))))

    assert cli.main(["validate", str(good)]) == 0
    assert cli.main(["validate", str(good), str(bad)]) == 1
    assert "color" in capsys.readouterr().out


def test_correct_writes_jpeg(tmp_path, capsys):
    src = tmp_path / "xray.png"
    src.write_bytes(png_bytes(make_bitmap(120, 100)))
    out = tmp_path / "corrected.jpg"
    assert cli.main(["correct", str(src), "-o", str(out)]) == 0
    assert out.read_bytes()[:2] == b"\xff\xd8"
    params = json.loads(capsys.readouterr().out)
    assert params["rotation"] == 0


def test_library_errors_exit_2(tmp_path):
    missing = tmp_path / "missing.png"
    assert cli.main(["correct", str(missing), "-o", str(tmp_path / "x.jpg")]) == 2


def test_unreadable_graph_exits_2(tmp_path):
    src = tmp_path / "xray.png"
    src.write_bytes(png_bytes(make_bitmap(64, 64)))
    broken = tmp_path / "broken.pth"
    broken.write_bytes(b"not a torch checkpoint")
    args = ["saliency", str(src), "-g", str(broken), "-t", "0", "-o", str(tmp_path / "o.png")]
    assert cli.main(args) == 2
