"""
End-to-end tests of the command-line interface on small generated workbooks.

The `download` test patches requests.get twice:
- first for the 'latest release' lookup (returns {'tag_name': 'vX'})
- second for the actual file download (returns the file content).
"""

import json

import pandas as pd
import pytest

from click.testing import CliRunner
from unittest.mock import Mock, patch

from cohortcurator.__main__ import main
from cohortcurator.loader import load_template_grid

ORCID = "0000-0002-0736-9199"


@pytest.fixture
def write_workbook(tmp_path):
    def _write(grid, name="template.xlsx"):
        path = tmp_path / name
        with pd.ExcelWriter(path, engine="openpyxl") as w:
            pd.DataFrame(grid).to_excel(w, header=False, index=False)
        return str(path)

    return _write


@pytest.fixture
def good_template(make_grid, write_workbook):
    return write_workbook(
        make_grid(
            [
                {"individual_id": "P1", "age_of_onset": "P3Y", "terms": ["+", "+", "-"]},
                {"individual_id": "P2", "sex": "F", "terms": ["+", "-", "na"]},
            ]
        )
    )


@pytest.fixture
def bad_template(make_grid, write_workbook):
    return write_workbook(
        make_grid(
            [
                {"individual_id": "P1", "terms": ["+", "+", "-"]},
                {"individual_id": "P2", "sex": "boy", "terms": ["+", "maybe", "na"]},
            ]
        ),
        name="bad.xlsx",
    )


def test_loader_reads_strings(good_template, make_grid):
    grid = load_template_grid(good_template)
    expected = make_grid(
        [
            {"individual_id": "P1", "age_of_onset": "P3Y", "terms": ["+", "+", "-"]},
            {"individual_id": "P2", "sex": "F", "terms": ["+", "-", "na"]},
        ]
    )
    assert grid == expected


def test_validate_clean_template(good_template, fpath_hpo):
    runner = CliRunner()
    res = runner.invoke(main, ["validate", "-t", good_template, "-hpo", fpath_hpo])
    assert res.exit_code == 0, res.output
    assert "2 individuals valid, 0 rows rejected" in res.output


def test_validate_reports_errors(bad_template, fpath_hpo):
    runner = CliRunner()
    res = runner.invoke(main, ["validate", "-t", bad_template, "-hpo", fpath_hpo])
    assert res.exit_code == 1
    assert "Errors found in template:" in res.output
    assert "UnrecognizedSex: 1" in res.output
    assert "MalformedPhenotypeCell: 1" in res.output
    assert "1 individuals valid, 1 rows rejected" in res.output


def test_header_violation_exits(make_grid, write_workbook, fpath_hpo):
    grid = make_grid([{"individual_id": "P1"}])
    grid[1][0] = "str"
    path = write_workbook(grid)
    res = CliRunner().invoke(main, ["validate", "-t", path, "-hpo", fpath_hpo])
    assert res.exit_code == 1
    assert "Header contract violation" in res.output


def test_hpo_from_environment(good_template, fpath_hpo):
    res = CliRunner().invoke(main, ["validate", "-t", good_template], env={"COHORTCURATOR_HPO": fpath_hpo})
    assert res.exit_code == 0, res.output


def test_phenopackets_command(good_template, fpath_hpo, tmp_path):
    out_dir = tmp_path / "ppkt"
    res = CliRunner().invoke(
        main, ["phenopackets", "-t", good_template, "-hpo", fpath_hpo, "-o", str(out_dir)]
    )
    assert res.exit_code == 0, res.output
    files = sorted(p.name for p in out_dir.iterdir())
    assert files == ["PMID_29482508_P1.json", "PMID_29482508_P2.json"]
    data = json.loads((out_dir / "PMID_29482508_P1.json").read_text())
    assert data["metaData"]["resources"][0]["version"] == "2024-04-26"


def test_hpoa_command(good_template, fpath_hpo, tmp_path):
    res = CliRunner().invoke(
        main,
        ["hpoa", "-t", good_template, "-hpo", fpath_hpo, "--orcid", ORCID, "-o", str(tmp_path)],
    )
    assert res.exit_code == 0, res.output
    assert f"biocuration ORCID:{ORCID}[" in res.output
    out = tmp_path / "FBN1-OMIM_154700.hpoa.tsv"
    df = pd.read_csv(out, sep="\t", dtype=str, keep_default_na=False)
    assert list(df["phenotypeID"]) == ["HP:0000098", "HP:0001083", "HP:0001631", "HP:0011463"]
    assert list(df["frequency"]) == ["2/2", "0/1", "1/2", "1/1"]


def test_hpoa_rejects_bad_orcid(good_template, fpath_hpo, tmp_path):
    res = CliRunner().invoke(
        main,
        ["hpoa", "-t", good_template, "-hpo", fpath_hpo, "--orcid", "Earnest", "-o", str(tmp_path)],
    )
    assert res.exit_code == 1
    assert "Malformed biocurator" in res.output


def test_compare_command(make_grid, write_workbook, fpath_hpo, tmp_path):
    a = write_workbook(make_grid([{"individual_id": "A1", "terms": ["+", "+", "na"]}]), name="a.xlsx")
    b = write_workbook(make_grid([{"individual_id": "B1", "terms": ["-", "na", "na"]}]), name="b.xlsx")
    out = tmp_path / "cmp.tsv"
    res = CliRunner().invoke(main, ["compare", a, b, "-hpo", fpath_hpo, "--threshold", "5", "-o", str(out)])
    assert res.exit_code == 0, res.output
    df = pd.read_csv(out, sep="\t", dtype=str, keep_default_na=False)
    assert list(df["term_id"]) == ["HP:0000098", "HP:0001631"]
    assert list(df["b"]) == ["0/1 (0.0%)", "not assessed"]
    assert list(df["category"]) == ["Growth abnormality", "Abnormality of the cardiovascular system"]
    assert "2 of 2 terms differ by at least 5.0" in res.output


def test_download_mocks_network(tmp_path):
    runner = CliRunner()

    def fake_get(url, *args, **kwargs):
        if url.endswith("/releases/latest"):
            return Mock(status_code=200, json=lambda: {"tag_name": "vX"})
        return Mock(status_code=200, content=b"{}")

    with patch("cohortcurator.__main__.requests.get", side_effect=fake_get) as get:
        res = runner.invoke(main, ["download", "-d", str(tmp_path)])
        assert res.exit_code == 0
        assert (tmp_path / "hp.json").exists()
        assert get.call_args_list[-1].args[0].endswith("/releases/download/vX/hp.json")


def test_download_specific_version(tmp_path):
    with patch("cohortcurator.__main__.requests.get", return_value=Mock(content=b"{}")) as get:
        res = CliRunner().invoke(main, ["download", "-d", str(tmp_path), "-v", "2024-04-26"])
    assert res.exit_code == 0
    get.assert_called_once()
    assert "/v2024-04-26/" in get.call_args.args[0]
