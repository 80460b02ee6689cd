"""Cross-group consensus metrics

All metrics here need the grouped VoteInfo variant (GroupVoteTallies) and
raise GroupDataRequiredError, a TypeError, for anything else. Callers must
check Comment.is_grouped before asking for them.

- group informed consensus: product of per-group agree rates. Low when any
  single group disagrees, even if the pooled agree rate is high.
- min agree/disagree prob: the worst-case group.
- group agree prob difference: one group's agree rate minus that of every
  other group combined. Signed; measures polarization of one group.
"""

from functools import reduce

from deliberation.models import Comment, GroupVoteTallies
from deliberation.rates import get_agree_rate, get_disagree_rate
from exceptions import GroupDataRequiredError


def _group_tallies(comment: Comment, metric: str) -> GroupVoteTallies:
    vote_info = comment.vote_info
    if not isinstance(vote_info, GroupVoteTallies):
        raise GroupDataRequiredError(
            f"Group information is required for calculating {metric}.",
            comment_id=comment.id,
            metric=metric,
        )
    if len(vote_info) == 0:
        raise GroupDataRequiredError(
            f"At least one opinion group is required for calculating {metric}.",
            comment_id=comment.id,
            metric=metric,
        )
    return vote_info


def get_group_informed_consensus(comment: Comment, as_probability_estimate: bool = True) -> float:
    """Product of the agree probabilities across groups"""
    tallies = _group_tallies(comment, "group informed consensus")
    return reduce(
        lambda product, tally: product * get_agree_rate(tally, True, as_probability_estimate),
        tallies.values(),
        1.0,
    )


def get_group_informed_disagree_consensus(
    comment: Comment, as_probability_estimate: bool = True
) -> float:
    """Product of the disagree probabilities across groups"""
    tallies = _group_tallies(comment, "group informed disagree consensus")
    return reduce(
        lambda product, tally: product * get_disagree_rate(tally, True, as_probability_estimate),
        tallies.values(),
        1.0,
    )


def get_min_agree_prob(comment: Comment, as_probability_estimate: bool = True) -> float:
    """Minimum agree probability across groups"""
    tallies = _group_tallies(comment, "minimum agree probability")
    return min(get_agree_rate(tally, True, as_probability_estimate) for tally in tallies.values())


def get_min_disagree_prob(comment: Comment, as_probability_estimate: bool = True) -> float:
    """Minimum disagree probability across groups"""
    tallies = _group_tallies(comment, "minimum disagree probability")
    return min(
        get_disagree_rate(tally, True, as_probability_estimate) for tally in tallies.values()
    )


def get_group_agree_prob_difference(
    comment: Comment, group: str, as_probability_estimate: bool = True
) -> float:
    """Agree probability of `group` minus that of all other groups pooled together.

    Raises:
        GroupDataRequiredError: comment has no grouped vote data
        KeyError: `group` is not one of the comment's opinion groups
    """
    tallies = _group_tallies(comment, "group agreement probability difference")
    group_agree_prob = get_agree_rate(tallies[group], True, as_probability_estimate)
    other_agree_prob = get_agree_rate(tallies.combined(exclude=group), True, as_probability_estimate)
    return group_agree_prob - other_agree_prob


def get_max_group_agree_prob_difference(
    comment: Comment, as_probability_estimate: bool = True
) -> float:
    """Largest absolute group agree prob difference over the comment's groups"""
    tallies = _group_tallies(comment, "maximum group agreement probability difference")
    return max(
        abs(get_group_agree_prob_difference(comment, group, as_probability_estimate))
        for group in tallies
    )
