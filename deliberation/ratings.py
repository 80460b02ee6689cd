"""Ratings for matrix factorization, built from raw votes

Voter and comment ids are remapped to contiguous indices before training,
so no model rows are allocated for ids that never voted or were never voted
on. Ids sort numerically when they are all numeric, otherwise as strings.

Encodings (vote is 1 agree, -1 disagree, 0 pass):
- verbatim: the vote value itself
- agree: 1 for agree, else 0
- disagree: 1 for disagree, else 0 ("common ground against")
- pass: 1 for pass, else 0 (a possible uncertainty signal)
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from config import get_logger
from deliberation.matrix_factorization import MatrixFactorizationTrainer
from deliberation.models import Rating, RawVote
from deliberation.tallies import AGREE, DISAGREE, PASS, normalize_vote
from exceptions import ValidationError

logger = get_logger(__name__).bind(component="ratings")

ENCODINGS: Dict[str, Callable[[int], float]] = {
    "verbatim": lambda vote: float(vote),
    "agree": lambda vote: 1.0 if vote == AGREE else 0.0,
    "disagree": lambda vote: 1.0 if vote == DISAGREE else 0.0,
    "pass": lambda vote: 1.0 if vote == PASS else 0.0,
}


@dataclass
class RatingSet:
    """Encoded ratings plus the id mappings used to build them"""
    ratings: List[Rating]
    user_index: Dict[str, int]
    note_index: Dict[str, int]


def _sorted_ids(ids: Iterable[str]) -> List[str]:
    unique = set(ids)
    if all(_is_int(value) for value in unique):
        return sorted(unique, key=int)
    return sorted(unique)


def _is_int(value: str) -> bool:
    try:
        int(value)
    except ValueError:
        return False
    return True


def build_ratings(votes: Sequence[RawVote], encoding: str = "verbatim") -> RatingSet:
    """Encode raw votes as ratings over contiguous user and note indices"""
    encode = ENCODINGS.get(encoding)
    if encode is None:
        raise ValidationError(f"Unknown rating encoding: {encoding}", field="encoding", value=encoding)

    user_index = {voter_id: i for i, voter_id in enumerate(_sorted_ids(str(v.voter_id) for v in votes))}
    note_index = {comment_id: i for i, comment_id in enumerate(_sorted_ids(str(v.comment_id) for v in votes))}

    ratings = [
        Rating(
            user_index[str(vote.voter_id)],
            note_index[str(vote.comment_id)],
            encode(normalize_vote(vote.vote)),
        )
        for vote in votes
    ]
    return RatingSet(ratings=ratings, user_index=user_index, note_index=note_index)


def helpfulness_by_comment(
    votes: Sequence[RawVote],
    encodings: Sequence[str] = ("verbatim", "agree", "disagree", "pass"),
    trainer: Optional[MatrixFactorizationTrainer] = None,
) -> Dict[str, Dict[str, float]]:
    """Train one model per encoding; scores keyed "helpfulness-<encoding>" per comment id"""
    trainer = trainer or MatrixFactorizationTrainer()
    scores: Dict[str, Dict[str, float]] = {}

    for encoding in encodings:
        rating_set = build_ratings(votes, encoding)
        helpfulness = trainer.train(rating_set.ratings).helpfulness_scores
        for comment_id, index in rating_set.note_index.items():
            scores.setdefault(comment_id, {})[f"helpfulness-{encoding}"] = helpfulness[index]
        logger.info("scored comment helpfulness", encoding=encoding, comments=len(rating_set.note_index))

    return scores
