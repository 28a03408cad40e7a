from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from conftest import gray_png
from terrain_stream import cli


@pytest.fixture(autouse=True)
def _no_global_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)


def _dem(tmp_path: Path, rows: int = 17, cols: int = 17) -> Path:
    y, x = np.mgrid[0:rows, 0:cols]
    path = tmp_path / "dem.png"
    path.write_bytes(gray_png((x * 5 + y * 2) % 200))
    return path


def test_mesh_command_prints_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    dem = _dem(tmp_path)
    assert cli.main(["mesh", str(dem), "--max-error", "0.5", "--bounds", "0", "0", "32", "32"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["loaded"] is True
    assert payload["tesselator"] == "martini"
    assert payload["bounding_box"][0] == 0.0
    assert payload["bounding_box"][3] == 32.0
    assert payload["triangle_count"] >= 2
    assert list(tmp_path.iterdir()) == [dem]


def test_mesh_command_with_explicit_scalers(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    dem = _dem(tmp_path, rows=9, cols=12)
    args = ["mesh", str(dem), "--tesselator", "delatin", "--scalers", "2", "0", "0", "-10"]
    assert cli.main(args) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tesselator"] == "delatin"
    # Pixel (0, 0) is 0, so the lowest decoded height is 2 * 0 - 10.
    assert payload["bounding_box"][2] == -10.0


def test_mesh_command_reads_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    dem = _dem(tmp_path)
    config = tmp_path / "terrain-layer.yaml"
    config.write_text(f"elevationData: {dem}\nmeshMaxError: 100\n", encoding="utf-8")
    assert cli.main(["mesh", "--config", str(config)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["triangle_count"] == 2


def test_mesh_command_without_source(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["mesh"]) == 0
    assert json.loads(capsys.readouterr().out) == {"loaded": False}


def test_mesh_command_missing_file_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit, match="ElevationFetchError"):
        cli.main(["mesh", str(tmp_path / "missing.png")])


def test_tile_command_uses_template(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    tile_dir = tmp_path / "3" / "2"
    tile_dir.mkdir(parents=True)
    y, x = np.mgrid[0:16, 0:16]
    (tile_dir / "5.png").write_bytes(gray_png(x + y))

    template = str(tmp_path / "{z}" / "{x}" / "{y}.png")
    assert cli.main(["tile", template, "3/2/5", "--max-error", "1"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tile"] == "3/2/5"
    assert payload["tesselator"] == "martini"
    width = payload["bounding_box"][3] - payload["bounding_box"][0]
    assert width == pytest.approx(512.0, abs=1e-2)


def test_tile_bounds_command(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["tile-bounds", "1/0/0"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["tile"] == "1/0/0"
    assert payload["geo_bbox"][0] == pytest.approx(-180.0)
    min_x, min_y, max_x, max_y = payload["bounds"]
    assert max_x - min_x == pytest.approx(512.0)
    assert min_x == pytest.approx(-max_x)


def test_invalid_tile_argument() -> None:
    with pytest.raises(SystemExit):
        cli.main(["tile-bounds", "1/2"])
    with pytest.raises(SystemExit):
        cli.main(["tile-bounds", "1/9/0"])
