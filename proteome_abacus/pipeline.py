"""Per-dataset processing stages and the worker runner.

Datasets are addressed by explicit (name, directory) contexts; nothing here
changes the process working directory. Each dataset reads its own result files
and writes its own workspace, so datasets can be processed by independent
worker processes.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from .calibration import adjust_mass_deviation, classify_psms
from .data_io import (
    Workspace,
    attach_label_intensities,
    load_label_intensities,
    serialize_pepxml,
    serialize_protxml,
    serialize_psms,
    write_model_report,
)
from .errors import DatasetStageError
from .inference import (
    apply_picked_filter,
    assign_razor_peptides,
    mark_unique_peptides,
    promote_protein_ids,
)
from .psms import PSM_LEVELS, collapse_psms
from .xml_io import read_pepxml, read_protxml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetContext:
    """A dataset identifier and the directory holding its results."""

    name: str
    path: Path

    @property
    def workspace(self) -> Workspace:
        return Workspace(self.path)


@dataclass
class DatasetSettings:
    """Settings shared by every per-dataset run."""

    decoy_tag: str = "rev_"
    weight_threshold: float = 1.0
    razor: bool = True
    picked: bool = False
    calibrate: bool = True
    protxml: str = "interact.prot.xml"  # relative to the dataset directory
    pepxml: str | None = "interact.pep.xml"
    label_file: str | None = None  # per-ion label intensities, tab-delimited
    model_report: str | None = "model_distributions.tsv"


@dataclass
class DatasetSummary:
    """What one per-dataset run produced."""

    name: str
    n_groups: int = 0
    n_proteins: int = 0
    n_promoted: int = 0
    n_unique_ions: int = 0
    n_psms: int = 0
    n_target_psms: int = 0
    n_decoy_psms: int = 0
    n_labelled_ions: int = 0
    mass_adjustment: float | None = None


def process_dataset(context: DatasetContext, settings: DatasetSettings) -> DatasetSummary:
    """Parse, resolve, calibrate and persist one dataset.

    Raises:
        ParseError: If a result file cannot be parsed or holds no records
        CalibrationUndefined: If calibration is enabled and has no anchors
        CannotSerialize: If a blob cannot be written

    """
    logger.info(f"Processing dataset '{context.name}' in {context.path}")

    workspace = context.workspace.ensure()
    summary = DatasetSummary(name=context.name)

    proteins = read_protxml(Path(context.path) / settings.protxml, decoy_tag=settings.decoy_tag)
    summary.n_groups = len(proteins.groups)
    summary.n_proteins = proteins.n_proteins

    summary.n_promoted = promote_protein_ids(proteins, settings.decoy_tag)
    summary.n_unique_ions = mark_unique_peptides(proteins, settings.weight_threshold)
    if settings.razor:
        assign_razor_peptides(proteins)
    if settings.picked:
        apply_picked_filter(proteins, settings.decoy_tag)
    if settings.label_file:
        intensities = load_label_intensities(Path(context.path) / settings.label_file)
        summary.n_labelled_ions = attach_label_intensities(proteins, intensities)

    serialize_protxml(proteins, workspace.blob("protxml"))

    if settings.pepxml:
        validation = read_pepxml(Path(context.path) / settings.pepxml, decoy_tag=settings.decoy_tag)
        if settings.calibrate and validation.psms:
            summary.mass_adjustment = adjust_mass_deviation(validation)
        summary.n_psms = len(validation.psms)
        summary.n_target_psms, summary.n_decoy_psms = classify_psms(validation, settings.decoy_tag)

        serialize_pepxml(validation, workspace.blob("pepxml"))
        if settings.model_report and validation.models:
            write_model_report(validation, Path(context.path) / settings.model_report)
        for level in PSM_LEVELS:
            serialize_psms(collapse_psms(validation.psms, level), workspace.blob(level))

    logger.info(
        f"Dataset '{context.name}': {summary.n_proteins} proteins, "
        f"{summary.n_unique_ions} unique ions, {summary.n_psms} PSMs "
        f"({summary.n_decoy_psms} decoys)"
    )

    return summary


def run_datasets(
    contexts: list[DatasetContext],
    settings: DatasetSettings,
    n_workers: int = 1,
) -> list[DatasetSummary]:
    """Run :func:`process_dataset` on every dataset and wait for all of them.

    With more than one worker each dataset runs in its own process. The first
    failure is raised once the running workers have finished; datasets that
    completed keep their persisted output.

    Returns:
        Summaries in the order of `contexts`

    Raises:
        DatasetStageError: Naming the dataset whose stage failed

    """
    names = [context.name for context in contexts]
    if len(set(names)) != len(names):
        raise ValueError(f"Dataset names must be unique: {names}")

    summaries: dict[str, DatasetSummary] = {}

    if n_workers <= 1 or len(contexts) <= 1:
        for context in contexts:
            try:
                summaries[context.name] = process_dataset(context, settings)
            except Exception as e:
                logger.error(f"Dataset '{context.name}' failed: {e}")
                raise DatasetStageError(context.name, str(e)) from e
    else:
        logger.info(f"  Using {n_workers} parallel workers")
        with ProcessPoolExecutor(max_workers=min(n_workers, len(contexts))) as executor:
            futures = {
                executor.submit(process_dataset, context, settings): context for context in contexts
            }
            for future in as_completed(futures):
                context = futures[future]
                try:
                    summaries[context.name] = future.result()
                except Exception as e:
                    logger.error(f"Worker error on dataset '{context.name}': {e}")
                    raise DatasetStageError(context.name, str(e)) from e

    return [summaries[name] for name in names]
