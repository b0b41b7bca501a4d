"""Data I/O module: per-dataset persistence blobs and combined report output.

Resolved models are stored between pipeline stages as single parquet files
written with pyarrow. Nested records (groups → proteins → peptide-ions) use
nested list/struct columns; scalar model fields travel in the parquet schema
metadata. Each dataset keeps its blobs under its own ``.meta`` directory.
"""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .clusters import Cluster
from .errors import CannotRestore, CannotSerialize, ParseError
from .proteins import (
    PeptideIonIdentification,
    ProteinGroup,
    ProteinIdentification,
    ProteinInference,
)
from .psms import PSM_LEVELS, DistributionPoint, PeptideSpectrumMatch, PeptideValidation

logger = logging.getLogger(__name__)

# Schema metadata key holding the model's scalar fields
METADATA_KEY = b'proteome_abacus'

META_DIR = '.meta'
BLOB_NAMES = ('protxml', 'pepxml') + PSM_LEVELS

# Key columns of a label intensity table; every other column is a channel
LABEL_KEY_COLUMNS = ('peptide', 'charge')

LABEL_TYPE = pa.struct([
    ('channel', pa.string()),
    ('intensity', pa.float64()),
])

PEPTIDE_ION_TYPE = pa.struct([
    ('peptide_sequence', pa.string()),
    ('modified_peptide', pa.string()),
    ('charge', pa.int64()),
    ('initial_probability', pa.float64()),
    ('weight', pa.float64()),
    ('group_weight', pa.float64()),
    ('calc_neutral_pep_mass', pa.float64()),
    ('shared_parent_proteins', pa.int64()),
    ('razor', pa.int64()),
    ('is_nondegenerate_evidence', pa.bool_()),
    ('is_unique', pa.bool_()),
    ('peptide_parent_proteins', pa.list_(pa.string())),
    ('labels', pa.list_(LABEL_TYPE)),
])

PROTEIN_TYPE = pa.struct([
    ('protein_name', pa.string()),
    ('group_number', pa.int64()),
    ('group_sibling_id', pa.string()),
    ('description', pa.string()),
    ('length', pa.int64()),
    ('percent_coverage', pa.float64()),
    ('pct_spectrum_ids', pa.float64()),
    ('group_probability', pa.float64()),
    ('probability', pa.float64()),
    ('confidence', pa.float64()),
    ('top_pep_prob', pa.float64()),
    ('total_number_peptides', pa.int64()),
    ('unique_stripped_peptides', pa.list_(pa.string())),
    ('indistinguishable_proteins', pa.list_(pa.string())),
    ('peptide_ions', pa.list_(PEPTIDE_ION_TYPE)),
    ('has_razor', pa.bool_()),
    ('picked', pa.int64()),
])

PROTEIN_GROUP_SCHEMA = pa.schema([
    ('group_number', pa.int64()),
    ('probability', pa.float64()),
    ('proteins', pa.list_(PROTEIN_TYPE)),
])

PSM_SCHEMA = pa.schema([
    ('index', pa.int64()),
    ('spectrum', pa.string()),
    ('scan', pa.int64()),
    ('peptide', pa.string()),
    ('modified_peptide', pa.string()),
    ('protein', pa.string()),
    ('alternative_proteins', pa.list_(pa.string())),
    ('assumed_charge', pa.int64()),
    ('hit_rank', pa.int64()),
    ('precursor_neutral_mass', pa.float64()),
    ('calc_neutral_pep_mass', pa.float64()),
    ('retention_time', pa.float64()),
    ('raw_mass_diff', pa.float64()),
    ('massdiff', pa.float64()),
    ('probability', pa.float64()),
    ('expectation', pa.float64()),
    ('xcorr', pa.float64()),
    ('delta_cn', pa.float64()),
    ('sp_rank', pa.float64()),
    ('mod_nterm_mass', pa.float64()),
    ('mod_positions', pa.list_(pa.int64())),
    ('assigned_mod_masses', pa.list_(pa.float64())),
    ('assigned_mass_diffs', pa.list_(pa.float64())),
    ('is_decoy', pa.bool_()),
])


@dataclass
class Workspace:
    """Locations of one dataset's persisted blobs.

    Every dataset owns a distinct root, so concurrent workers never write to
    the same blob.
    """

    root: Path

    def __post_init__(self):
        self.root = Path(self.root)

    @property
    def meta_dir(self) -> Path:
        return self.root / META_DIR

    def blob(self, name: str) -> Path:
        if name not in BLOB_NAMES:
            raise ValueError(f"Unknown blob '{name}'. Must be one of: {BLOB_NAMES}")
        return self.meta_dir / f"{name}.parquet"

    def ensure(self) -> 'Workspace':
        self.meta_dir.mkdir(parents=True, exist_ok=True)
        return self


# =============================================================================
# Low-level table I/O
# =============================================================================


def _write_table(rows: list[dict], schema: pa.Schema, metadata: dict, path: Path) -> None:
    path = Path(path)
    try:
        table = pa.Table.from_pylist(rows, schema=schema)
        table = table.replace_schema_metadata({METADATA_KEY: json.dumps(metadata).encode()})
        pq.write_table(table, path)
    except (OSError, pa.ArrowException) as e:
        raise CannotSerialize(f"Cannot save results to {path}: {e}") from e

    logger.debug(f"Wrote {len(rows)} records to {path}")


def _read_table(path: Path, schema: pa.Schema, kind: str) -> tuple[list[dict], dict]:
    path = Path(path)
    if not path.exists():
        raise CannotRestore(f"Could not restore result: {path} does not exist")

    try:
        table = pq.read_table(path)
    except (OSError, pa.ArrowException) as e:
        raise CannotRestore(f"Could not restore result from {path}: {e}") from e

    raw_metadata = (table.schema.metadata or {}).get(METADATA_KEY)
    if raw_metadata is None:
        raise CannotRestore(f"Could not restore result from {path}: not a proteome-abacus blob")

    metadata = json.loads(raw_metadata)
    if metadata.get('kind') != kind:
        raise CannotRestore(
            f"Could not restore result from {path}: expected '{kind}' blob, found '{metadata.get('kind')}'"
        )

    if table.schema.names != schema.names:
        raise CannotRestore(f"Could not restore result from {path}: columns do not match")

    return table.to_pylist(), metadata


# =============================================================================
# Protein group model
# =============================================================================


def _ion_to_row(ion: PeptideIonIdentification) -> dict:
    row = asdict(ion)
    row['labels'] = [{'channel': k, 'intensity': v} for k, v in ion.labels.items()]
    return row


def _protein_to_row(protein: ProteinIdentification) -> dict:
    row = asdict(protein)
    row['peptide_ions'] = [_ion_to_row(ion) for ion in protein.peptide_ions]
    return row


def _ion_from_row(row: dict) -> PeptideIonIdentification:
    labels = {label['channel']: label['intensity'] for label in row.pop('labels')}
    return PeptideIonIdentification(**row, labels=labels)


def _protein_from_row(row: dict) -> ProteinIdentification:
    ions = [_ion_from_row(ion) for ion in row.pop('peptide_ions')]
    return ProteinIdentification(**row, peptide_ions=ions)


def serialize_protxml(model: ProteinInference, path: Path) -> None:
    """Write a protein group model to a parquet blob."""
    rows = [
        {
            'group_number': group.group_number,
            'probability': group.probability,
            'proteins': [_protein_to_row(p) for p in group.proteins],
        }
        for group in model.groups
    ]
    metadata = {
        'kind': 'protxml',
        'file_name': model.file_name,
        'decoy_tag': model.decoy_tag,
        'run_options': model.run_options,
    }
    _write_table(rows, PROTEIN_GROUP_SCHEMA, metadata, path)


def restore_protxml(path: Path) -> ProteinInference:
    """Restore a protein group model written by :func:`serialize_protxml`.

    Raises:
        CannotRestore: If the blob is missing, corrupt or of another kind

    """
    rows, metadata = _read_table(path, PROTEIN_GROUP_SCHEMA, 'protxml')

    try:
        groups = [
            ProteinGroup(
                group_number=row['group_number'],
                probability=row['probability'],
                proteins=[_protein_from_row(p) for p in row['proteins']],
            )
            for row in rows
        ]
    except (KeyError, TypeError) as e:
        raise CannotRestore(f"Could not restore protein groups from {path}: {e}") from e

    return ProteinInference(
        file_name=metadata.get('file_name', ''),
        decoy_tag=metadata.get('decoy_tag', ''),
        run_options=metadata.get('run_options', ''),
        groups=groups,
    )


# =============================================================================
# Peptide validation model
# =============================================================================


def _psms_from_rows(rows: list[dict], path: Path) -> list[PeptideSpectrumMatch]:
    try:
        return [PeptideSpectrumMatch(**row) for row in rows]
    except TypeError as e:
        raise CannotRestore(f"Could not restore PSMs from {path}: {e}") from e


def serialize_psms(psms: list[PeptideSpectrumMatch], path: Path) -> None:
    """Write a PSM list (any granularity) to a parquet blob."""
    _write_table([asdict(psm) for psm in psms], PSM_SCHEMA, {'kind': 'psms'}, path)


def restore_psms(path: Path) -> list[PeptideSpectrumMatch]:
    """Restore a PSM list written by :func:`serialize_psms`."""
    rows, _ = _read_table(path, PSM_SCHEMA, 'psms')
    return _psms_from_rows(rows, path)


def serialize_pepxml(model: PeptideValidation, path: Path) -> None:
    """Write a peptide validation model, header data included, to a parquet blob."""
    metadata = {
        'kind': 'pepxml',
        'file_name': model.file_name,
        'spectra_file': model.spectra_file,
        'decoy_tag': model.decoy_tag,
        'database': model.database,
        'analysis': model.analysis,
        'mass_adjustment': model.mass_adjustment,
        # JSON object keys are strings; masses are restored as floats
        'defined_mod_mass_diff': {repr(k): v for k, v in model.defined_mod_mass_diff.items()},
        'defined_mod_amino_acid': {repr(k): v for k, v in model.defined_mod_amino_acid.items()},
        'models': [asdict(point) for point in model.models],
    }
    _write_table([asdict(psm) for psm in model.psms], PSM_SCHEMA, metadata, path)


def restore_pepxml(path: Path) -> PeptideValidation:
    """Restore a peptide validation model written by :func:`serialize_pepxml`."""
    rows, metadata = _read_table(path, PSM_SCHEMA, 'pepxml')

    try:
        models = [DistributionPoint(**point) for point in metadata['models']]
        model = PeptideValidation(
            file_name=metadata['file_name'],
            spectra_file=metadata['spectra_file'],
            decoy_tag=metadata['decoy_tag'],
            database=metadata['database'],
            analysis=metadata['analysis'],
            defined_mod_mass_diff={float(k): v for k, v in metadata['defined_mod_mass_diff'].items()},
            defined_mod_amino_acid={float(k): v for k, v in metadata['defined_mod_amino_acid'].items()},
            models=models,
            mass_adjustment=metadata['mass_adjustment'],
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CannotRestore(f"Could not restore peptide validation from {path}: {e}") from e

    model.psms = _psms_from_rows(rows, path)

    return model


# =============================================================================
# Label intensities and model distributions
# =============================================================================


def load_label_intensities(filepath: Path) -> pd.DataFrame:
    """Load per-ion isobaric label intensities.

    The table is tab-delimited with a ``peptide`` column (modified or plain
    sequence), a ``charge`` column and one numeric column per label channel.

    Returns:
        DataFrame indexed by (peptide, charge), one column per channel

    Raises:
        ParseError: If the table cannot be read or lacks the key columns

    """
    filepath = Path(filepath)
    try:
        table = pd.read_csv(filepath, sep='\t')
    except (OSError, ValueError) as e:
        raise ParseError(f"Cannot read label intensities {filepath}: {e}") from e

    missing = [col for col in LABEL_KEY_COLUMNS if col not in table.columns]
    if missing:
        raise ParseError(f"Label intensity table {filepath} is missing columns: {missing}")

    channels = [col for col in table.columns if col not in LABEL_KEY_COLUMNS]
    if not channels:
        raise ParseError(f"Label intensity table {filepath} has no channel columns")

    try:
        table[channels] = table[channels].apply(pd.to_numeric).fillna(0.0)
        table['charge'] = table['charge'].astype(int)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Non-numeric values in label intensity table {filepath}: {e}") from e

    table = table.drop_duplicates(subset=list(LABEL_KEY_COLUMNS), keep='first')
    logger.info(f"Loaded label intensities for {len(table)} ions ({len(channels)} channels)")

    return table.set_index(list(LABEL_KEY_COLUMNS))


def attach_label_intensities(model: ProteinInference, intensities: pd.DataFrame) -> int:
    """Copy label intensities onto matching peptide-ions of a protein model.

    Ions are matched on (modified sequence, charge), then on (plain sequence,
    charge). Every occurrence of a shared ion receives the intensities.

    Returns:
        Number of peptide-ions that received intensities

    """
    lookup = {key: row.to_dict() for key, row in intensities.iterrows()}

    n_labelled = 0
    for _, ion in model.peptide_ions():
        row = lookup.get((ion.modified_peptide, ion.charge)) if ion.modified_peptide else None
        if row is None:
            row = lookup.get((ion.peptide_sequence, ion.charge))
        if row is None:
            continue
        ion.labels = {str(channel): float(value) for channel, value in row.items()}
        n_labelled += 1

    logger.info(f"Attached label intensities to {n_labelled} peptide ions")

    return n_labelled


def model_report_table(model: PeptideValidation) -> pd.DataFrame:
    """Long-format table of the validation model distributions.

    One row per (fvalue, charge) with the observed, positive-model and
    negative-model values.
    """
    rows = []
    for point in model.models:
        for charge, (observed, positive, negative) in enumerate(
            zip(point.observed, point.model_positive, point.model_negative), start=1
        ):
            rows.append({
                'fvalue': point.fvalue,
                'charge': charge,
                'observed': observed,
                'model_positive': positive,
                'model_negative': negative,
            })
    return pd.DataFrame(
        rows, columns=['fvalue', 'charge', 'observed', 'model_positive', 'model_negative']
    )


def write_model_report(model: PeptideValidation, output_path: Path) -> Path:
    """Write the validation model distributions as a tab-delimited table."""
    output_path = Path(output_path)
    report = model_report_table(model)
    report.to_csv(output_path, sep='\t', index=False)
    logger.info(f"Saved model distributions ({len(model.models)} points) to {output_path}")
    return output_path


# =============================================================================
# Combined report
# =============================================================================


def load_annotation(filepath: Path) -> pd.DataFrame:
    """Load a tab-delimited annotation table keyed on its first column.

    Args:
        filepath: Path to the annotation table

    Returns:
        DataFrame indexed by protein identifier, all values as strings

    Raises:
        ParseError: If the table cannot be read or has a single column

    """
    filepath = Path(filepath)
    try:
        annotation = pd.read_csv(filepath, sep='\t', dtype=str).fillna('')
    except (OSError, ValueError) as e:
        raise ParseError(f"Cannot read annotation table {filepath}: {e}") from e

    if annotation.shape[1] < 2:
        raise ParseError(f"Annotation table {filepath} needs an identifier and at least one field")

    annotation = annotation.set_index(annotation.columns[0])
    annotation = annotation[~annotation.index.duplicated(keep='first')]
    logger.info(f"Loaded {len(annotation)} annotation records from {filepath.name}")

    return annotation


def combined_report_table(
    clusters: list[Cluster],
    annotation: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """Build the combined report, one row per cluster in the given order.

    Label intensity columns are added when any cluster carries them;
    annotation fields are appended for representatives found in `annotation`.
    """
    rows = [cluster.to_dict() for cluster in clusters]
    report = pd.DataFrame(rows, columns=list(Cluster(number=0, centroid='').to_dict()))

    channels: list[str] = []
    for cluster in clusters:
        for channel in cluster.label_intensities:
            if channel not in channels:
                channels.append(channel)
    for channel in channels:
        report[channel] = [c.label_intensities.get(channel, 0.0) for c in clusters]

    if annotation is not None:
        fields = annotation.reindex(report['Representative']).fillna('')
        fields.index = report.index
        report = pd.concat([report, fields], axis=1)

    return report


def write_combined_report(
    clusters: list[Cluster],
    output_path: Path,
    annotation: Optional[pd.DataFrame] = None,
) -> Path:
    """Write the combined report as a tab-delimited table."""
    output_path = Path(output_path)
    report = combined_report_table(clusters, annotation)
    report.to_csv(output_path, sep='\t', index=False)
    logger.info(f"Saved combined report with {len(report)} rows to {output_path}")
    return output_path
