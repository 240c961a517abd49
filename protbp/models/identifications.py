"""Domain objects holding protein and peptide identifications.

The objects are mutable on purpose: the inference writes posterior probabilities back onto the
protein hits, the indistinguishable protein groups and (optionally) the peptide hits.
"""
from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field

import pandas as pd


@dataclass(eq=False)
class ProteinHit:
    """A protein candidate of the identification run."""

    accession: str
    score: float = 0.0
    is_decoy: bool = False
    prior: float | None = None


@dataclass(eq=False)
class PeptideHit:
    """A peptide-spectrum match (PSM).

    The 'protein_accessions' are the peptide evidences, i.e., the proteins the peptide sequence
    can originate from.
    """

    sequence: str
    score: float
    protein_accessions: tuple[str, ...] = ()
    is_decoy: bool | None = None


@dataclass(eq=False)
class PeptideIdentification:
    """All peptide hits assigned to one spectrum."""

    spectrum_reference: str
    hits: list[PeptideHit] = field(default_factory=list)
    higher_score_better: bool = True

    def top_hits(self, top_psms: int) -> list[PeptideHit]:
        """Return the best hits of the spectrum.

        Args:
            top_psms: The number of hits to return, 0 returns all hits.

        Returns:
            The hits sorted from best to worst.
        """
        hits = sorted(self.hits, key=lambda hit: hit.score, reverse=self.higher_score_better)
        return hits if top_psms == 0 else hits[:top_psms]

    def convert_to_posterior_probabilities(self) -> bool:
        """Replace posterior error probabilities (lower is better) by `1 - score`.

        All hits of the spectrum are converted, so that afterwards higher scores are better.

        Returns:
            Whether the scores were converted.
        """
        if self.higher_score_better:
            return False

        for hit in self.hits:
            hit.score = 1.0 - hit.score
        self.higher_score_better = True
        return True


@dataclass(eq=False)
class IndistinguishableGroup:
    """Proteins that are supported by exactly the same peptide-spectrum matches."""

    accessions: tuple[str, ...]
    probability: float | None = None


@dataclass(eq=False)
class PeptideGroup:
    """Peptide-spectrum matches that share exactly the same parent proteins or protein groups."""

    sequences: tuple[str, ...]


@dataclass(eq=False)
class ProteinIdentification:
    """A protein identification run: the protein hits and their run-level annotations."""

    hits: list[ProteinHit] = field(default_factory=list)
    score_type: str = ""
    search_engine: str = ""
    higher_score_better: bool = True
    indistinguishable_proteins: list[IndistinguishableGroup] = field(default_factory=list)

    def hits_to_dataframe(self) -> pd.DataFrame:
        """Collect the protein hits into a dataframe.

        Returns:
            Dataframe with columns 'accession', 'score', 'is_decoy', and 'prior'.
        """
        return pd.DataFrame(
            {
                "accession": [hit.accession for hit in self.hits],
                "score": [hit.score for hit in self.hits],
                "is_decoy": [hit.is_decoy for hit in self.hits],
                "prior": [hit.prior for hit in self.hits],
            }
        )

    def groups_to_dataframe(self) -> pd.DataFrame:
        """Collect the indistinguishable protein groups into a dataframe.

        Returns:
            Dataframe with columns 'probability' and 'accessions' (';'-joined).
        """
        return pd.DataFrame(
            {
                "probability": [group.probability for group in self.indistinguishable_proteins],
                "accessions": [
                    ";".join(group.accessions) for group in self.indistinguishable_proteins
                ],
            }
        )
