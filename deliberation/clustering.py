"""Opinion grouping

Clusters participants by their voting patterns so comments can be scored
with group informed consensus.

Algorithm:
1. Build vote matrix (participants x comments)
2. Impute missing votes with column averages
3. K-means clustering with dynamic K selection
4. Name groups "Group 1" .. "Group K"

The resulting participant -> group mapping feeds tallies.tally_votes.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np
from sklearn.cluster import KMeans

from config import config, get_logger
from deliberation.models import RawVote
from deliberation.tallies import normalize_vote

logger = get_logger(__name__).bind(component="opinion_grouping")


@dataclass
class OpinionGroups:
    """Participant -> opinion group assignments"""
    assignments: Dict[str, str]
    k: int
    n_participants: int
    n_comments: int


def compute_opinion_groups(
    votes: Sequence[RawVote],
    max_k: Optional[int] = None,
    random_state: int = 42,
) -> Optional[OpinionGroups]:
    """Cluster participants into opinion groups from their votes.

    Args:
        votes: Raw votes; vote values are canonicalized (1, -1, 0)
        max_k: Maximum number of groups (default: DELIBERATION_CLUSTER_MAX_K)
        random_state: K-means seed, for reproducible groups

    Returns:
        OpinionGroups, or None if there is too little data to cluster
        (fewer than 3 participants or fewer than 2 comments)
    """
    max_k = config.CLUSTER_MAX_K if max_k is None else max_k

    participant_ids = sorted({str(vote.voter_id) for vote in votes})
    comment_ids = sorted({str(vote.comment_id) for vote in votes})
    n_participants, n_comments = len(participant_ids), len(comment_ids)

    if n_participants < 3:
        logger.debug("insufficient participants for clustering", n=n_participants)
        return None

    if n_comments < 2:
        logger.debug("insufficient comments for clustering", n=n_comments)
        return None

    matrix = _build_vote_matrix(votes, participant_ids, comment_ids)
    matrix = _impute_missing_votes(matrix)

    k = _determine_k(n_participants, max_k)
    labels = _compute_kmeans(matrix, k, random_state)

    assignments = {
        participant_id: f"Group {int(label) + 1}"
        for participant_id, label in zip(participant_ids, labels)
    }

    logger.info(
        "computed opinion groups",
        n_participants=n_participants,
        n_comments=n_comments,
        k=k,
    )

    return OpinionGroups(
        assignments=assignments,
        k=k,
        n_participants=n_participants,
        n_comments=n_comments,
    )


def _build_vote_matrix(
    votes: Sequence[RawVote],
    participant_ids: List[str],
    comment_ids: List[str],
) -> np.ndarray:
    """Participants x comments matrix of 1 / -1 / 0 votes, NaN where unvoted.

    A participant's last vote on a comment wins.
    """
    row = {participant_id: i for i, participant_id in enumerate(participant_ids)}
    column = {comment_id: j for j, comment_id in enumerate(comment_ids)}

    matrix = np.full((len(participant_ids), len(comment_ids)), np.nan)
    for vote in votes:
        matrix[row[str(vote.voter_id)], column[str(vote.comment_id)]] = normalize_vote(vote.vote)
    return matrix


def _impute_missing_votes(matrix: np.ndarray) -> np.ndarray:
    """Impute missing votes (NaN) with column averages.

    Args:
        matrix: Vote matrix with NaN for missing votes

    Returns:
        Matrix with NaN replaced by column averages
    """
    # Every column has at least one vote, since columns come from the votes
    col_means = np.nanmean(matrix, axis=0)

    result = matrix.copy()
    nan_rows, nan_cols = np.where(np.isnan(result))
    result[nan_rows, nan_cols] = col_means[nan_cols]
    return result


def _determine_k(n_participants: int, max_k: int = 5) -> int:
    """Determine number of clusters.

    Formula: K = min(max_k, 2 + floor(n/12))

    Examples:
        - 12 participants -> K = 3
        - 24 participants -> K = 4
        - 60+ participants -> K = 5 (capped)
    """
    k = 2 + n_participants // 12
    return max(2, min(k, max_k, n_participants))


def _compute_kmeans(matrix: np.ndarray, k: int, random_state: int) -> np.ndarray:
    """Run k-means clustering on the imputed vote matrix.

    Returns:
        Cluster labels (0 to k-1) for each participant
    """
    kmeans = KMeans(
        n_clusters=k,
        n_init=10,
        max_iter=100,
        random_state=random_state,
    )
    return kmeans.fit_predict(matrix)
