"""
Deliberation data models - votes, comments, topics and ratings

Value objects use pydantic for runtime validation. Vote counts are
NonNegativeInt, so a negative tally fails at construction.

VoteInfo is an explicit tagged union:
- VoteTally: one tally for the whole conversation (ungrouped)
- GroupVoteTallies: one tally per opinion group (grouped)
Consumers match on the concrete type; group-based metrics reject VoteTally.
"""

from dataclasses import asdict
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, NonNegativeInt
from pydantic.dataclasses import dataclass


@dataclass(frozen=True)
class VoteTally:
    """Agree/disagree/pass counts for one comment (or one group on one comment)"""
    agree_count: NonNegativeInt
    disagree_count: NonNegativeInt
    pass_count: Optional[NonNegativeInt] = None

    def get_total_count(self, include_passes: bool = True) -> int:
        total = self.agree_count + self.disagree_count
        if include_passes:
            total += self.pass_count or 0
        return total

    def __add__(self, other: "VoteTally") -> "VoteTally":
        return VoteTally(
            self.agree_count + other.agree_count,
            self.disagree_count + other.disagree_count,
            (self.pass_count or 0) + (other.pass_count or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GroupVoteTallies:
    """Vote tallies broken down by opinion group name"""
    tallies: Dict[str, VoteTally]

    def __iter__(self) -> Iterator[str]:
        return iter(self.tallies)

    def __len__(self) -> int:
        return len(self.tallies)

    def __getitem__(self, group: str) -> VoteTally:
        return self.tallies[group]

    def items(self) -> List[Tuple[str, VoteTally]]:
        return list(self.tallies.items())

    def values(self) -> List[VoteTally]:
        return list(self.tallies.values())

    def combined(self, exclude: Optional[str] = None) -> VoteTally:
        """Sum the tallies of every group except `exclude`"""
        total = VoteTally(0, 0, 0)
        for name, tally in self.tallies.items():
            if name != exclude:
                total = total + tally
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {name: tally.to_dict() for name, tally in self.tallies.items()}


VoteInfo = Union[VoteTally, GroupVoteTallies]


class Topic(BaseModel):
    """A topic node; subtopics nest recursively"""
    model_config = ConfigDict(frozen=True)

    name: str
    subtopics: Optional[List["Topic"]] = None


class Comment(BaseModel):
    """A statement participants voted on"""
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    vote_info: Optional[VoteInfo] = None
    topics: Optional[List[Topic]] = None

    @property
    def is_grouped(self) -> bool:
        return isinstance(self.vote_info, GroupVoteTallies)


@dataclass(frozen=True)
class Rating:
    """One vote event for the matrix factorization pathway"""
    user_id: int
    note_id: int
    rating: float


@dataclass(frozen=True)
class RawVote:
    """A single participant's vote on a comment, as exported upstream

    vote is 1 (agree), -1 (disagree) or 0 (pass); string spellings are
    canonicalized by deliberation.tallies.
    """
    voter_id: Union[int, str]
    comment_id: Union[int, str]
    vote: Union[int, str]


@dataclass
class GroupStats:
    """Votes cast by one opinion group across all comments"""
    name: str
    vote_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
