"""Deliberation module - consensus scoring for participant votes

Turns agree/disagree/pass votes on comments into calibrated scores:
- Vote rate estimation with a pseudo-count prior
- Consensus detection across opinion groups
- Comment selection for common ground, differences of opinion, uncertainty
- Topic / subtopic aggregation with relative context
- Matrix factorization "helpfulness" scores
"""

from deliberation.models import Comment, GroupVoteTallies, Rating, RawVote, Topic, VoteTally
from deliberation.selection import (
    GroupInformedStrategy,
    MajorityVoteStrategy,
    SelectionConfig,
    create_strategy,
)
from deliberation.topics import build_topic_stats
from deliberation.relative_context import RelativeContext
from deliberation.matrix_factorization import (
    MatrixFactorizationTrainer,
    community_notes_matrix_factorization,
)

__all__ = [
    "Comment",
    "GroupVoteTallies",
    "Rating",
    "RawVote",
    "Topic",
    "VoteTally",
    "GroupInformedStrategy",
    "MajorityVoteStrategy",
    "SelectionConfig",
    "create_strategy",
    "build_topic_stats",
    "RelativeContext",
    "MatrixFactorizationTrainer",
    "community_notes_matrix_factorization",
]
