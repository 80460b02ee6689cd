"""Vote tally computation from raw participant votes"""

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Union

from deliberation.models import GroupVoteTallies, RawVote, VoteInfo, VoteTally
from exceptions import ValidationError

AGREE = 1
DISAGREE = -1
PASS = 0

# Canonical vote value mappings
VOTE_MAP = {
    "1": AGREE,
    "agree": AGREE,
    "a": AGREE,
    "-1": DISAGREE,
    "disagree": DISAGREE,
    "d": DISAGREE,
    "0": PASS,
    "pass": PASS,
    "p": PASS,
}


def normalize_vote(vote: Union[int, str]) -> int:
    """Map a raw vote value to AGREE, DISAGREE or PASS"""
    normalized = VOTE_MAP.get(str(vote).lower().strip())
    if normalized is None:
        raise ValidationError(f"Unknown vote value: {vote!r}", field="vote", value=vote)
    return normalized


def compute_vote_tally(votes: Iterable[Union[int, str]]) -> VoteTally:
    """Compute a vote tally from raw vote values."""
    tally = {AGREE: 0, DISAGREE: 0, PASS: 0}
    for vote in votes:
        tally[normalize_vote(vote)] += 1
    return VoteTally(tally[AGREE], tally[DISAGREE], tally[PASS])


def tally_votes(
    votes: Iterable[RawVote],
    group_of: Optional[Mapping[str, str]] = None,
) -> Dict[str, VoteInfo]:
    """Build each comment's VoteInfo from raw votes.

    Without group_of every comment gets a single VoteTally. With a
    participant -> opinion group mapping every comment gets GroupVoteTallies;
    votes from participants outside every group are dropped.
    """
    if group_of is None:
        by_comment: Dict[str, List[Union[int, str]]] = defaultdict(list)
        for vote in votes:
            by_comment[str(vote.comment_id)].append(vote.vote)
        return {comment_id: compute_vote_tally(values) for comment_id, values in by_comment.items()}

    by_comment_group: Dict[str, Dict[str, List[Union[int, str]]]] = defaultdict(lambda: defaultdict(list))
    for vote in votes:
        group = group_of.get(str(vote.voter_id))
        if group is None:
            continue
        by_comment_group[str(vote.comment_id)][group].append(vote.vote)

    return {
        comment_id: GroupVoteTallies(
            {group: compute_vote_tally(values) for group, values in sorted(groups.items())}
        )
        for comment_id, groups in by_comment_group.items()
    }
