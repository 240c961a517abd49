"""Target-decoy scores that measure how well posteriors discriminate targets from decoys."""
from __future__ import annotations

import numpy as np

from protbp.models.identifications import PeptideIdentification
from protbp.models.identifications import ProteinIdentification


def roc_n(scores: np.ndarray, is_decoy: np.ndarray, fp_cutoff: int = 0) -> float:
    """Area under the ROC curve up to a number of false positives.

    The curve plots the number of targets (true positives) against the number of decoys (false
    positives) when walking the identifications from the best to the worst score. Identifications
    with equal scores are added at once, i.e., their segment is linearly interpolated.

    Args:
        scores: The scores, higher is better.
        is_decoy: Whether each identification is a decoy.
        fp_cutoff: The number of false positives up to which the area is computed, 0 means all.

    Returns:
        The area normalized to [0, 1], 0 if there are no targets and 1 if there are targets but
        no decoys.
    """
    scores = np.asarray(scores, dtype=float)
    is_decoy = np.asarray(is_decoy, dtype=bool)

    n_decoys = int(is_decoy.sum())
    n_targets = len(is_decoy) - n_decoys
    if n_targets == 0:
        return 0.0
    if n_decoys == 0:
        return 1.0

    cutoff = n_decoys if fp_cutoff <= 0 else min(fp_cutoff, n_decoys)

    order = np.argsort(-scores, kind="stable")
    sorted_scores = scores[order]
    sorted_decoys = is_decoy[order]

    # last position of every block of tied scores
    block_ends = np.append(np.nonzero(np.diff(sorted_scores))[0], len(sorted_scores) - 1)
    fp = np.concatenate([[0], np.cumsum(sorted_decoys)[block_ends]]).astype(float)
    tp = np.concatenate([[0], np.cumsum(~sorted_decoys)[block_ends]]).astype(float)

    fp0, fp1, tp0, tp1 = fp[:-1], fp[1:], tp[:-1], tp[1:]
    width = np.minimum(fp1, cutoff) - np.minimum(fp0, cutoff)
    fraction = np.divide(width, fp1 - fp0, out=np.zeros_like(width), where=fp1 > fp0)
    tp_end = tp0 + fraction * (tp1 - tp0)
    area = np.sum(width * (tp0 + tp_end) / 2.0)

    return float(area / (cutoff * n_targets))


def estimated_empirical_fdr_difference(probabilities: np.ndarray, is_decoy: np.ndarray) -> float:
    """Mean absolute difference between the estimated and the empirical FDR.

    At every rank `k` (sorted by decreasing probability) the estimated FDR is the mean error
    probability `sum(1 - p) / k` of the top `k` identifications and the empirical FDR is the
    fraction of decoys among them. Well calibrated posteriors give a difference close to 0.

    Args:
        probabilities: The posterior probabilities.
        is_decoy: Whether each identification is a decoy.

    Returns:
        The difference in [0, 1], 0 for an empty list.
    """
    probabilities = np.asarray(probabilities, dtype=float)
    is_decoy = np.asarray(is_decoy, dtype=bool)
    if len(probabilities) == 0:
        return 0.0

    order = np.argsort(-probabilities, kind="stable")
    ranks = np.arange(1, len(probabilities) + 1, dtype=float)

    estimated = np.cumsum(1.0 - probabilities[order]) / ranks
    empirical = np.cumsum(is_decoy[order]) / ranks

    return float(np.mean(np.abs(estimated - empirical)))


def evaluate_protein_ids(
    protein_identification: ProteinIdentification,
    aucweight: float = 0.2,
    fp_cutoff: int = 0,
) -> float:
    """Score protein posteriors by discrimination and calibration.

    Args:
        protein_identification: The proteins with posterior probabilities as scores.
        aucweight: The weight of the ROC-N area, the calibration gets `1 - aucweight`.
        fp_cutoff: The number of false positives for the ROC-N.

    Returns:
        `aucweight * roc_n + (1 - aucweight) * (1 - fdr_difference)`, higher is better.
    """
    hits = protein_identification.hits
    scores = np.array([hit.score for hit in hits], dtype=float)
    is_decoy = np.array([hit.is_decoy for hit in hits], dtype=bool)

    auc = roc_n(scores, is_decoy, fp_cutoff)
    difference = estimated_empirical_fdr_difference(scores, is_decoy)

    return aucweight * auc + (1.0 - aucweight) * (1.0 - difference)


def peptide_roc_n(
    peptide_identifications: list[PeptideIdentification],
    fp_cutoff: int = 0,
) -> float:
    """ROC-N area of the best PSM of every spectrum."""
    scores = []
    is_decoy = []
    for peptide_identification in peptide_identifications:
        best = peptide_identification.top_hits(1)
        if best:
            hit = best[0]
            scores.append(hit.score if peptide_identification.higher_score_better else -hit.score)
            is_decoy.append(bool(hit.is_decoy))

    return roc_n(np.array(scores), np.array(is_decoy, dtype=bool), fp_cutoff)
