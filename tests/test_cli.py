from __future__ import annotations

import json

import pytest

from figurebuilder.cli import main

MANUSCRIPT = "<html><body><article><p>Three small words.</p></article></body></html>"


def test_validate_passes_with_warnings(write_config):
    # shapefile and manuscript are absent; neither is fatal without --strict-data-files
    assert main(["validate", "--config", str(write_config())]) == 0


def test_validate_strict_fails_without_shapefile(write_config):
    assert main(["validate", "--config", str(write_config()), "--strict-data-files"]) == 1


def test_validate_missing_input(write_config, project_dir):
    (project_dir / "data" / "civicus.csv").unlink()
    assert main(["validate", "--config", str(write_config())]) == 1


def test_render_single_figure(write_config, project_dir):
    config = write_config()
    code = main(
        ["render-figures", "--config", str(config), "--figure", "ngo-finances", "--variant", "color"]
    )
    assert code == 0
    written = sorted(path.name for path in (project_dir / "out" / "figures").iterdir())
    assert written == ["ngo-finances-color.pdf", "ngo-finances-color.png"]


def test_render_unknown_variant(write_config):
    code = main(["render-figures", "--config", str(write_config()), "--variant", "sepia"])
    assert code == 1


def test_render_rejects_unknown_figure(write_config):
    with pytest.raises(SystemExit):
        main(["render-figures", "--config", str(write_config()), "--figure", "nope"])


def test_write_tables(write_config, project_dir):
    assert main(["write-tables", "--config", str(write_config()), "--table", "finances"]) == 0
    assert (project_dir / "out" / "tables" / "tbl-finances.md").exists()
    assert not (project_dir / "out" / "tables" / "tbl-civic-space-population.md").exists()


def test_word_count(write_config, project_dir):
    manuscript = project_dir / "paper.html"
    manuscript.write_text(MANUSCRIPT, encoding="utf-8")
    config = str(write_config())
    assert main(["word-count", "--config", config, "--manuscript", str(manuscript), "--goal", "10"]) == 0


def test_word_count_missing_manuscript(write_config):
    assert main(["word-count", "--config", str(write_config())]) == 1


def test_build_with_bad_input_still_renders_other_figures(write_config, project_dir):
    (project_dir / "data" / "offices.csv").write_text(
        "Office,Country,Longitude,Latitude\nOttawa,Canada,abc,45.42\n", encoding="utf-8"
    )

    assert main(["build", "--config", str(write_config())]) == 1

    written = {path.name for path in (project_dir / "out" / "figures").iterdir()}
    assert {"ngo-finances.png", "ngo-finances-color.pdf", "partner-funding.pdf"} <= written
    assert not any(name.startswith("office-locations") for name in written)
    assert (project_dir / "out" / "tables" / "tbl-finances.md").exists()
    manifest = json.loads((project_dir / "out" / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
    assert manifest["steps"]["validate"] == "ok"
    assert manifest["steps"]["render_figures"] == "error"


def test_validate_reports_bad_input_as_error(write_config, project_dir):
    (project_dir / "data" / "offices.csv").write_text(
        "Office,Country,Longitude,Latitude\nOttawa,Canada,abc,45.42\n", encoding="utf-8"
    )
    assert main(["validate", "--config", str(write_config())]) == 1


def test_build_reports_map_failures_and_writes_manifest(write_config, project_dir):
    (project_dir / "manuscript").mkdir()
    (project_dir / "manuscript" / "paper.html").write_text(MANUSCRIPT, encoding="utf-8")

    assert main(["build", "--config", str(write_config())]) == 1

    manifest = json.loads((project_dir / "out" / "manifests" / "build_manifest.json").read_text(encoding="utf-8"))
    assert manifest["steps"]["validate"] == "ok"
    assert manifest["steps"]["render_figures"] == "error"
    assert manifest["steps"]["write_tables"] == "ok"
    assert manifest["steps"]["word_count"] == "3 words in manuscript; 7,497 words to go"
    assert "ngo-finances.png" in manifest["artifacts"]
    assert "tbl-finances.md" in manifest["artifacts"]
    assert "civic-space-map.png" not in manifest["artifacts"]
    assert all(len(digest) == 64 for digest in manifest["hashes"].values())
