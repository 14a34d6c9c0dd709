"""
Command-line interface for cohortcurator.

Reads a legacy cohort curation template and turns it into phenopackets, an
HPOA annotation table, or a comparison with a second cohort.
"""

import logging
import pathlib
import sys
import typing

from datetime import datetime

import click
import requests
from stairval.notepad import Notepad, create_notepad

from .builder import BuildResult, CohortBuilder
from .compare import compare_cohorts, comparison_dataframe
from .hpoa import HpoaTable
from .ingest import IngestionReport, TemplateIngestor, group_issues_by_kind
from .issues import HeaderContractViolation
from .loader import load_template_grid
from .ontology import HpoTermIndex, load_hpo_index
from .phenopacket import PhenopacketExporter, write_phenopackets

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "tests/data"
HPO_ENVVAR = "COHORTCURATOR_HPO"
ORCID_ENVVAR = "COHORTCURATOR_ORCID"

template_option = click.option(
    "-t",
    "--template",
    "template_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="path to the curation template workbook",
)
hpo_option = click.option(
    "-hpo",
    "--custom-hpo",
    "hpo_path",
    envvar=HPO_ENVVAR,
    type=click.Path(exists=True, dir_okay=False),
    help=f"path to an HPO JSON file (defaults to ${HPO_ENVVAR}, then {DEFAULT_DATA_DIR}/hp.json)",
)
header_rows_option = click.option(
    "--header-rows",
    type=click.IntRange(2, 3),
    default=2,
    show_default=True,
    help="number of header rows in the template",
)


@click.group()
@click.option("--verbose", is_flag=True, help="Also emit debug logs to stderr")
@click.option(
    "--log-file",
    "log_file_path",
    type=click.Path(dir_okay=False, writable=True),
    help="Append timestamped logs to this file",
)
def main(verbose: bool = False, log_file_path: typing.Optional[str] = None):
    """cohortcurator: validate cohort curation templates and export phenopackets and HPOA."""
    _configure_logging(verbose, log_file_path)


@main.command(name="download")
@click.option(
    "-d",
    "--data-path",
    "data_dir",
    default=DEFAULT_DATA_DIR,
    type=click.Path(file_okay=False),
    help=f"where to save HPO JSON (default: {DEFAULT_DATA_DIR})",
)
@click.option(
    "-v",
    "--hpo-version",
    default=None,
    type=str,
    help="exact HPO release tag (e.g. 2025-03-03 or v2025-03-03)",
)
def download(data_dir: str, hpo_version: typing.Optional[str]):
    """
    Download a specific or the latest HPO JSON release.
    """
    datadir = pathlib.Path(data_dir)
    datadir.mkdir(parents=True, exist_ok=True)
    if hpo_version:
        tag = hpo_version if hpo_version.startswith("v") else f"v{hpo_version}"
    else:
        resp = requests.get(
            "https://api.github.com/repos/obophenotype/human-phenotype-ontology/releases/latest"
        )
        resp.raise_for_status()
        tag = resp.json()["tag_name"]
    url = (
        f"https://github.com/obophenotype/human-phenotype-ontology/"
        f"releases/download/{tag}/hp.json"
    )
    click.echo(f"Downloading HPO release {tag} …")
    resp = requests.get(url)
    resp.raise_for_status()

    out = datadir / "hp.json"
    with open(out, "wb") as f:
        f.write(resp.content)
    click.echo(f"Saved HPO JSON to {out}")


@main.command(name="validate")
@template_option
@hpo_option
@header_rows_option
def validate(template_path: str, hpo_path: typing.Optional[str], header_rows: int):
    """
    Check a template and report every malformed cell and row.

    Exits with status 1 if any row was rejected.
    """
    notepad = create_notepad("template")
    index = _load_index(hpo_path)
    report, result = _build_cohort(template_path, index, header_rows, notepad)
    _report_issues(notepad)

    for kind, issues in sorted(group_issues_by_kind(report).items(), key=lambda kv: kv[0].value):
        click.echo(f"{kind.value}: {len(issues)}")
    click.echo(
        f"{len(result.cohort)} individuals valid, "
        f"{len(report.errors) + len({e.row for e in result.errors})} rows rejected"
    )
    if notepad.has_errors(include_subsections=True):
        sys.exit(1)


@main.command(name="phenopackets")
@template_option
@hpo_option
@header_rows_option
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="where to write the phenopackets (default: ./phenopackets/<timestamp>)",
)
@click.option("--created-by", default="cohortcurator", show_default=True, help="curator named in the metadata")
def phenopackets(
    template_path: str,
    hpo_path: typing.Optional[str],
    header_rows: int,
    output_dir: typing.Optional[str],
    created_by: str,
):
    """
    Write one phenopacket JSON file per valid individual.
    """
    notepad = create_notepad("template")
    index = _load_index(hpo_path)
    _, result = _build_cohort(template_path, index, header_rows, notepad)
    _report_issues(notepad)

    exporter = PhenopacketExporter(hpo_version=index.version, created_by=created_by)
    out_dir = pathlib.Path(output_dir) if output_dir else _prepare_output_dir()
    written = write_phenopackets(exporter.export_cohort(result.cohort), out_dir)
    click.echo(f"Wrote {len(written)} phenopacket files to {out_dir}")


@main.command(name="hpoa")
@template_option
@hpo_option
@header_rows_option
@click.option(
    "--orcid",
    envvar=ORCID_ENVVAR,
    required=True,
    help=f"biocurator ORCID, e.g. 0000-0002-0736-9199 (defaults to ${ORCID_ENVVAR})",
)
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="where to write the HPOA table",
)
def hpoa(
    template_path: str,
    hpo_path: typing.Optional[str],
    header_rows: int,
    orcid: str,
    output_dir: str,
):
    """
    Write the disease-to-phenotype annotations of the template as an HPOA table.
    """
    notepad = create_notepad("template")
    index = _load_index(hpo_path)
    _, result = _build_cohort(template_path, index, header_rows, notepad)
    _report_issues(notepad)

    try:
        table = HpoaTable(result.cohort, orcid, index=index)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    genes = {i.gene.symbol for i in result.cohort.individuals}
    out_dir = pathlib.Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    out = out_dir / table.file_name(genes.pop() if len(genes) == 1 else None)
    table.write_tsv(out)
    click.echo(f"Wrote {len(table.rows)} annotation rows to {out} (biocuration {table.biocuration})")


@main.command(name="compare")
@click.argument("template_a", type=click.Path(exists=True, dir_okay=False))
@click.argument("template_b", type=click.Path(exists=True, dir_okay=False))
@hpo_option
@header_rows_option
@click.option(
    "--threshold",
    type=click.FloatRange(min=0),
    default=10.0,
    show_default=True,
    help="minimum difference in percentage points to flag a term",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="write the comparison as TSV instead of printing it",
)
def compare(
    template_a: str,
    template_b: str,
    hpo_path: typing.Optional[str],
    header_rows: int,
    threshold: float,
    output_path: typing.Optional[str],
):
    """
    Compare the phenotype frequencies of two templates.
    """
    notepad = create_notepad("templates")
    index = _load_index(hpo_path)
    _, result_a = _build_cohort(template_a, index, header_rows, notepad)
    _, result_b = _build_cohort(template_b, index, header_rows, notepad)
    _report_issues(notepad)

    results = compare_cohorts(result_a.cohort, result_b.cohort, threshold, index=index)
    df = comparison_dataframe(results, pathlib.Path(template_a).stem, pathlib.Path(template_b).stem)
    if output_path:
        df.to_csv(output_path, sep="\t", index=False)
        click.echo(f"Wrote {len(df)} terms to {output_path}")
    else:
        click.echo(df.to_string(index=False))
    click.echo(f"{sum(r.significant for r in results)} of {len(results)} terms differ by at least {threshold}")


def _configure_logging(verbose: bool, log_file_path: typing.Optional[str]):
    handlers: list[logging.Handler] = []
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    if handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
        )


def _locate_hpo_file(hpo_path: typing.Optional[str]) -> pathlib.Path:
    if hpo_path:
        hpo_file = pathlib.Path(hpo_path)
    else:
        hpo_file = pathlib.Path(DEFAULT_DATA_DIR) / "hp.json"
    if not hpo_file.is_file():
        click.echo(f"Error: HPO file not found at {hpo_file}", err=True)
        sys.exit(1)
    return hpo_file


def _load_index(hpo_path: typing.Optional[str]) -> HpoTermIndex:
    index = load_hpo_index(str(_locate_hpo_file(hpo_path)))
    logger.info("Loaded HPO %s", index.version)
    return index


def _build_cohort(
    template_path: str,
    index: HpoTermIndex,
    header_rows: int,
    notepad: Notepad,
) -> tuple[IngestionReport, BuildResult]:
    grid = load_template_grid(template_path)
    try:
        report = TemplateIngestor(header_rows=header_rows).ingest(grid, notepad)
    except HeaderContractViolation as e:
        click.echo(f"Error: {template_path}: {e}", err=True)
        sys.exit(1)
    result = CohortBuilder(index).build(report, notepad)
    return report, result


def _report_issues(notepad: Notepad):
    if notepad.has_errors(include_subsections=True):
        click.echo(click.style("Errors found in template:", fg="red"))
        for err in notepad.errors():
            click.echo(f"- {err.message}")
    if notepad.has_warnings(include_subsections=True):
        click.echo(click.style("Warnings found in template:", fg="yellow"))
        for w in notepad.warnings():
            click.echo(f"- {w.message}")


def _prepare_output_dir() -> pathlib.Path:
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    out_dir = pathlib.Path.cwd() / "phenopackets" / timestamp
    out_dir.mkdir(parents=True, exist_ok=True)
    return out_dir


if __name__ == "__main__":
    main()
