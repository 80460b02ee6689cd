"""Relative context across a topic tree

Describes how one topic or subtopic compares with every other node of the
same tree, so a report can say "high engagement" or "low alignment".

Alignment: a node's high-agreement rate is the mean, over its filtered
comments, of max(agree rate, disagree rate). Nodes without filtered
comments have no rate and are reported as "unknown".

Engagement: vote count normalized to 0-1 by the largest node vote count,
plus comment count normalized the same way, for a number in 0-2.

Buckets (same for both): value > mean + sd is "high", value < mean - sd is
"low", anything else is "average". Standard deviations are sample (n - 1)
standard deviations.
"""

from typing import List, Optional

import numpy as np

from config import get_logger
from deliberation.rates import get_standard_deviation
from deliberation.selection import SelectionStrategy
from deliberation.topics import TopicStats, iter_topic_stats

logger = get_logger(__name__).bind(component="relative_context")

HIGH = "high"
AVERAGE = "average"
LOW = "low"
UNKNOWN = "unknown"


def _bucket(value: float, mean: float, std_deviation: float) -> str:
    if value > mean + std_deviation:
        return HIGH
    if value < mean - std_deviation:
        return LOW
    return AVERAGE


class RelativeContext:
    """Population statistics of agreement and engagement over a topic tree"""

    def __init__(self, topic_stats: List[TopicStats]):
        strategies = [stat.strategy for stat in iter_topic_stats(topic_stats)]

        self.max_comment_count = max((s.comment_count for s in strategies), default=0)
        self.max_vote_count = max((s.vote_count for s in strategies), default=0)

        high_agree_rates = [
            rate for rate in (self.get_high_agreement_rate(s) for s in strategies) if rate is not None
        ]
        self.average_high_agree_rate = float(np.mean(high_agree_rates)) if high_agree_rates else 0.0
        self.high_agree_std_deviation = get_standard_deviation(high_agree_rates)

        engagements = [self.get_engagement_number(s) for s in strategies]
        self.average_engagement = float(np.mean(engagements)) if engagements else 0.0
        self.engagement_std_deviation = get_standard_deviation(engagements)

        logger.debug(
            "computed relative context",
            nodes=len(strategies),
            average_high_agree_rate=self.average_high_agree_rate,
            average_engagement=self.average_engagement,
        )

    @staticmethod
    def get_high_agreement_rate(strategy: SelectionStrategy) -> Optional[float]:
        """Mean of max(agree rate, disagree rate) over the node's filtered comments"""
        if not strategy.filtered_comments:
            return None
        return float(
            np.mean(
                [
                    max(strategy.get_agree_rate(comment), strategy.get_disagree_rate(comment))
                    for comment in strategy.filtered_comments
                ]
            )
        )

    def get_engagement_number(self, strategy: SelectionStrategy) -> float:
        """Normalized vote count plus normalized comment count, from 0 to 2"""
        vote_part = strategy.vote_count / self.max_vote_count if self.max_vote_count else 0.0
        comment_part = strategy.comment_count / self.max_comment_count if self.max_comment_count else 0.0
        return vote_part + comment_part

    def get_relative_engagement(self, strategy: SelectionStrategy) -> str:
        return _bucket(
            self.get_engagement_number(strategy),
            self.average_engagement,
            self.engagement_std_deviation,
        )

    def get_relative_agreement(self, strategy: SelectionStrategy) -> str:
        rate = self.get_high_agreement_rate(strategy)
        if rate is None:
            return UNKNOWN
        return _bucket(rate, self.average_high_agree_rate, self.high_agree_std_deviation)
