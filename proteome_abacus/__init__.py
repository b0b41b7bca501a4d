"""
proteome-abacus: identification normalization and combined analysis

Reads protein inference and peptide validation results, resolves protein
ambiguity (promotion, unique and razor peptides, picked filtering), calibrates
mass deviations, and combines several resolved experiments into one report.
"""

__version__ = "0.1.0"

from .abacus import (
    AbacusConfig,
    aggregate,
    run_abacus,
)
from .calibration import (
    adjust_mass_deviation,
    classify_psms,
    is_decoy_psm,
    split_target_decoy,
)
from .clusters import (
    Cluster,
    read_cluster_file,
)
from .data_io import (
    Workspace,
    load_label_intensities,
    restore_pepxml,
    restore_protxml,
    restore_psms,
    serialize_pepxml,
    serialize_protxml,
    serialize_psms,
    write_combined_report,
)
from .errors import (
    AbacusError,
    AggregationPreconditionError,
    CalibrationUndefined,
    CannotRestore,
    CannotSerialize,
    DatasetStageError,
    NoRecordsFound,
    ParseError,
)
from .inference import (
    apply_picked_filter,
    assign_razor_peptides,
    mark_unique_peptides,
    promote_protein_ids,
)
from .pipeline import (
    DatasetContext,
    DatasetSettings,
    process_dataset,
    run_datasets,
)
from .proteins import (
    PeptideIonIdentification,
    ProteinGroup,
    ProteinIdentification,
    ProteinInference,
)
from .psms import (
    PeptideSpectrumMatch,
    PeptideValidation,
)
from .xml_io import (
    read_pepxml,
    read_protxml,
)
