"""Read and write protein and peptide identifications as CSV tables.

Protein table: one row per protein with the columns 'accession' and optionally 'score',
'is_decoy' and 'prior'. If 'is_decoy' is missing, decoys are recognized by the accession prefix.

PSM table: one row per peptide-spectrum match with the columns 'spectrum_reference', 'peptide',
'score' and 'proteins' (accessions separated by ';') and optionally 'is_decoy'. If 'is_decoy' is
missing, a PSM is a decoy if all of its proteins are decoys.
"""
from __future__ import annotations

import pandas as pd

from protbp.constants import ACCESSION_COL
from protbp.constants import DECOY_COL
from protbp.constants import DEFAULT_DECOY_PREFIX
from protbp.constants import PEPTIDE_COL
from protbp.constants import PRIOR_COL
from protbp.constants import PROTEIN_SEPARATOR
from protbp.constants import PROTEINS_COL
from protbp.constants import SCORE_COL
from protbp.constants import SPECTRUM_COL
from protbp.io.file import load_csv
from protbp.io.file import Openable
from protbp.io.file import save_csv
from protbp.models.identifications import PeptideHit
from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinHit
from protbp.models.identifications import ProteinIdentification
from protbp.utils import logger

log = logger.get(__name__)


def load_proteins(
    file_path: Openable,
    decoy_prefix: str = DEFAULT_DECOY_PREFIX,
) -> ProteinIdentification:
    """Load the protein hits of a run from a local / remote CSV file.

    Args:
        file_path: The CSV file.
        decoy_prefix: Accession prefix of decoys, used if there is no 'is_decoy' column.

    Raises:
        ValueError: If a required column is missing or an accession is duplicated.

    Returns:
        The protein identification run.
    """
    df = load_csv(file_path, dtype={ACCESSION_COL: str})
    _check_columns(df, [ACCESSION_COL], file_path)

    duplicated = df[ACCESSION_COL][df[ACCESSION_COL].duplicated()].tolist()
    if duplicated:
        raise ValueError(f"duplicated protein accessions in {file_path}: {duplicated[:5]}")

    if SCORE_COL not in df.columns:
        df[SCORE_COL] = 0.0
    if DECOY_COL not in df.columns:
        df[DECOY_COL] = df[ACCESSION_COL].str.startswith(decoy_prefix)
    if PRIOR_COL not in df.columns:
        df[PRIOR_COL] = None

    hits = [
        ProteinHit(
            accession=row[ACCESSION_COL],
            score=float(row[SCORE_COL]),
            is_decoy=bool(row[DECOY_COL]),
            prior=None if pd.isna(row[PRIOR_COL]) else float(row[PRIOR_COL]),
        )
        for _, row in df.iterrows()
    ]
    log.info(f"Loaded {len(hits)} proteins ({sum(h.is_decoy for h in hits)} decoys)")

    return ProteinIdentification(hits=hits)


def load_psms(
    file_path: Openable,
    protein_identification: ProteinIdentification | None = None,
    higher_score_better: bool = True,
) -> list[PeptideIdentification]:
    """Load peptide-spectrum matches from a local / remote CSV file.

    Args:
        file_path: The CSV file.
        protein_identification: The proteins, used to derive the decoy status of PSMs if there
            is no 'is_decoy' column.
        higher_score_better: Whether higher PSM scores are better.

    Raises:
        ValueError: If a required column is missing.

    Returns:
        One peptide identification per spectrum, in order of first appearance.
    """
    df = load_csv(file_path, dtype={SPECTRUM_COL: str, PEPTIDE_COL: str, PROTEINS_COL: str})
    _check_columns(df, [SPECTRUM_COL, PEPTIDE_COL, SCORE_COL, PROTEINS_COL], file_path)

    decoys = set()
    if protein_identification is not None:
        decoys = {hit.accession for hit in protein_identification.hits if hit.is_decoy}

    identifications: dict[str, PeptideIdentification] = {}
    for _, row in df.iterrows():
        proteins = row[PROTEINS_COL] if isinstance(row[PROTEINS_COL], str) else ""
        accessions = tuple(a.strip() for a in proteins.split(PROTEIN_SEPARATOR) if a.strip())

        if DECOY_COL in df.columns and not pd.isna(row[DECOY_COL]):
            is_decoy = bool(row[DECOY_COL])
        else:
            is_decoy = bool(accessions) and all(a in decoys for a in accessions)

        spectrum = row[SPECTRUM_COL]
        if spectrum not in identifications:
            identifications[spectrum] = PeptideIdentification(
                spectrum_reference=spectrum, higher_score_better=higher_score_better
            )
        identifications[spectrum].hits.append(
            PeptideHit(
                sequence=row[PEPTIDE_COL],
                score=float(row[SCORE_COL]),
                protein_accessions=accessions,
                is_decoy=is_decoy,
            )
        )

    log.info(f"Loaded {len(df)} PSMs from {len(identifications)} spectra")
    return list(identifications.values())


def save_proteins(
    protein_identification: ProteinIdentification,
    file_path: Openable,
    force: bool = False,
) -> None:
    """Save the protein hits (with their posteriors) to a CSV file."""
    save_csv(protein_identification.hits_to_dataframe(), file_path, force=force)


def save_psms(
    peptide_identifications: list[PeptideIdentification],
    file_path: Openable,
    force: bool = False,
) -> None:
    """Save the peptide-spectrum matches to a CSV file.

    Args:
        peptide_identifications: The peptide identifications.
        file_path: The CSV file.
        force: Overwrite the file if it already exists.
    """
    rows = [
        {
            SPECTRUM_COL: peptide_identification.spectrum_reference,
            PEPTIDE_COL: hit.sequence,
            SCORE_COL: hit.score,
            PROTEINS_COL: PROTEIN_SEPARATOR.join(hit.protein_accessions),
            DECOY_COL: hit.is_decoy,
        }
        for peptide_identification in peptide_identifications
        for hit in peptide_identification.hits
    ]
    columns = [SPECTRUM_COL, PEPTIDE_COL, SCORE_COL, PROTEINS_COL, DECOY_COL]
    save_csv(pd.DataFrame(rows, columns=columns), file_path, force=force)


def save_protein_groups(
    protein_identification: ProteinIdentification,
    file_path: Openable,
    force: bool = False,
) -> None:
    """Save the indistinguishable protein groups to a CSV file."""
    save_csv(protein_identification.groups_to_dataframe(), file_path, force=force)


def _check_columns(df: pd.DataFrame, columns: list[str], file_path: Openable) -> None:
    missing = [column for column in columns if column not in df.columns]
    if missing:
        raise ValueError(f"missing column(s) {missing} in {file_path}")
