"""Vote rate estimation

Agree, disagree and pass rates for a single VoteTally, and the same rates
pooled across opinion groups for either VoteInfo variant.

With as_probability_estimate=True every rate adds +1 to the numerator and
+2 to the denominator (a pseudo-count prior, i.e. a simple MAP estimate):

    P(agree) = (A + 1) / (N + 2)

so zero-evidence tallies sit at 0.5 and no estimate is ever 0, 1 or
undefined. With the prior off, rates are plain ratios and a zero total
raises ZeroDivisionError; callers must guard.

For grouped vote data the counts are summed across groups first and the
prior is applied once to the aggregate.
"""

from typing import Optional, Sequence

import numpy as np

from deliberation.models import Comment, GroupVoteTallies, VoteInfo, VoteTally


def _rate(count: int, total: int, as_probability_estimate: bool) -> float:
    if as_probability_estimate:
        return (count + 1) / (total + 2)
    return count / total


def get_agree_rate(
    vote_tally: VoteTally,
    include_passes: bool,
    as_probability_estimate: bool = True,
) -> float:
    """Probability of an agree vote for one tally"""
    return _rate(
        vote_tally.agree_count,
        vote_tally.get_total_count(include_passes),
        as_probability_estimate,
    )


def get_disagree_rate(
    vote_tally: VoteTally,
    include_passes: bool,
    as_probability_estimate: bool = True,
) -> float:
    """Probability of a disagree vote for one tally"""
    return _rate(
        vote_tally.disagree_count,
        vote_tally.get_total_count(include_passes),
        as_probability_estimate,
    )


def get_pass_rate(vote_tally: VoteTally, as_probability_estimate: bool = True) -> float:
    """Probability of a pass vote for one tally (passes always count toward the total)"""
    return _rate(
        vote_tally.pass_count or 0,
        vote_tally.get_total_count(True),
        as_probability_estimate,
    )


def _pooled(vote_info: VoteInfo) -> VoteTally:
    if isinstance(vote_info, VoteTally):
        return vote_info
    if isinstance(vote_info, GroupVoteTallies):
        return vote_info.combined()
    raise TypeError(f"Unsupported vote info type: {type(vote_info).__name__}")


def get_total_agree_rate(
    vote_info: VoteInfo,
    include_passes: bool,
    as_probability_estimate: bool = True,
) -> float:
    """Agree rate across all groups (or of the single tally)"""
    return get_agree_rate(_pooled(vote_info), include_passes, as_probability_estimate)


def get_total_disagree_rate(
    vote_info: VoteInfo,
    include_passes: bool,
    as_probability_estimate: bool = True,
) -> float:
    """Disagree rate across all groups (or of the single tally)"""
    return get_disagree_rate(_pooled(vote_info), include_passes, as_probability_estimate)


def get_total_pass_rate(vote_info: VoteInfo, as_probability_estimate: bool = True) -> float:
    """Pass rate across all groups (or of the single tally)"""
    return get_pass_rate(_pooled(vote_info), as_probability_estimate)


def get_comment_vote_count(comment: Comment, include_passes: bool = True) -> int:
    """Total votes on a comment, summed across opinion groups.

    Votes from participants outside every opinion group are not part of the
    grouped tallies and so are not counted. Comments without vote data count 0.
    """
    vote_info = comment.vote_info
    if vote_info is None:
        return 0
    return _pooled(vote_info).get_total_count(include_passes)


def get_standard_deviation(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1 denominator); 0 for fewer than two values"""
    if len(values) <= 1:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=1))


def get_percentile(values: Sequence[float], percentile: float) -> Optional[float]:
    """Percentile with linear interpolation between the bracketing sorted values.

    Returns None for an empty sequence.
    """
    if len(values) == 0:
        return None
    return float(np.percentile(np.asarray(values, dtype=float), percentile))
