"""Comment selection strategies

Ranks and selects comments for the three report categories:
- common ground: broad agreement, or broad disagreement
- differences of opinion: comments that split the conversation
- uncertain: comments with a high pass rate

Two strategies implement the same contract and are chosen once, at
construction (see create_strategy):
- MajorityVoteStrategy: pooled vote rates, no opinion groups
- GroupInformedStrategy: per-group rates and cross-group consensus

Every strategy owns an immutable subset of comments. filtered_comments
drops comments with fewer than min_vote_count votes; all selections rank
only filtered comments. Empty selections are not errors: they carry a
message explaining which thresholds nothing met.
"""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Tuple

from config import config, get_logger
from deliberation.consensus import (
    get_group_agree_prob_difference,
    get_group_informed_consensus,
    get_group_informed_disagree_consensus,
    get_max_group_agree_prob_difference,
    get_min_agree_prob,
    get_min_disagree_prob,
)
from deliberation.models import Comment, GroupStats, GroupVoteTallies
from deliberation.rates import (
    get_comment_vote_count,
    get_percentile,
    get_total_agree_rate,
    get_total_disagree_rate,
    get_total_pass_rate,
)
from exceptions import GroupDataRequiredError, ValidationError

logger = get_logger(__name__).bind(component="comment_selection")

# Pass as k to rank every qualifying comment
ALL_COMMENTS = sys.maxsize

SelectionCategory = Literal["common_ground", "differences_of_opinion", "uncertain"]
SELECTION_CATEGORIES: Tuple[str, ...] = ("common_ground", "differences_of_opinion", "uncertain")

ScoreFn = Callable[[Comment], float]
FilterFn = Callable[[Comment], bool]


def decimal_to_percent(decimal: float, precision: int = 0) -> str:
    """Format a decimal as a percent string, e.g. 0.6 -> "60%" """
    percentage = round(decimal * 100, precision)
    if precision == 0:
        percentage = int(percentage)
    return f"{percentage}%"


@dataclass(frozen=True)
class SelectionConfig:
    """Thresholds for one selection strategy

    Use SelectionConfig.majority_vote() or SelectionConfig.group_informed()
    for each strategy's defaults; keyword overrides replace single fields.
    """
    min_common_ground_prob: float
    as_probability_estimate: bool
    min_agree_prob_difference: float = 0.3
    min_difference_prob: float = 0.4
    max_difference_prob: float = 0.6
    # Raised per conversation to the 75th percentile of pass rates
    min_uncertainty_prob: float = 0.2
    min_vote_count: int = field(default_factory=lambda: config.MIN_VOTE_COUNT)
    max_sample_size: int = field(default_factory=lambda: config.MAX_SAMPLE_SIZE)
    include_passes: bool = True

    def __post_init__(self):
        for name in (
            "min_common_ground_prob",
            "min_agree_prob_difference",
            "min_difference_prob",
            "max_difference_prob",
            "min_uncertainty_prob",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be between 0 and 1", field=name, value=value)

        if self.min_difference_prob > self.max_difference_prob:
            raise ValidationError(
                "min_difference_prob must not exceed max_difference_prob",
                field="min_difference_prob",
                value=self.min_difference_prob,
            )

        if self.min_vote_count < 0:
            raise ValidationError(
                "min_vote_count must be non-negative", field="min_vote_count", value=self.min_vote_count
            )

        # Raw rates divide by the vote total; the vote count filter counts passes
        if not self.as_probability_estimate and self.min_vote_count < 1:
            raise ValidationError(
                "min_vote_count must be at least 1 when rates are not probability estimates",
                field="min_vote_count",
                value=self.min_vote_count,
            )
        if not self.as_probability_estimate and not self.include_passes:
            raise ValidationError(
                "include_passes is required when rates are not probability estimates",
                field="include_passes",
                value=self.include_passes,
            )

        if self.max_sample_size <= 0:
            raise ValidationError(
                "max_sample_size must be positive", field="max_sample_size", value=self.max_sample_size
            )

    @classmethod
    def majority_vote(cls, **overrides: Any) -> "SelectionConfig":
        """Defaults for MajorityVoteStrategy

        Agree and disagree rates leave passes out of the total, so a pass
        never counts against agreement. Pass rates always count every vote.
        """
        return replace(
            cls(min_common_ground_prob=0.7, as_probability_estimate=True, include_passes=False),
            **overrides,
        )

    @classmethod
    def group_informed(cls, **overrides: Any) -> "SelectionConfig":
        """Defaults for GroupInformedStrategy

        MAP estimates: group sizes can be skewed enough that one group has very
        few votes on a comment that passes the overall vote count filter.
        """
        return replace(cls(min_common_ground_prob=0.6, as_probability_estimate=True), **overrides)


@dataclass(frozen=True)
class ScoredComment:
    comment: Comment
    score: float


@dataclass(frozen=True)
class Selection:
    """Ranked comments for one category, with an explanation when empty"""
    category: str
    items: Tuple[ScoredComment, ...]
    no_results_message: Optional[str] = None

    @property
    def comments(self) -> List[Comment]:
        return [item.comment for item in self.items]

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "comments": [
                {"id": item.comment.id, "text": item.comment.text, "score": item.score}
                for item in self.items
            ],
            "noResultsMessage": self.no_results_message,
        }


class SelectionStrategy(ABC):
    """Common contract for ranking and selecting comments"""

    group_based: bool = False

    def __init__(self, comments: Iterable[Comment], selection_config: Optional[SelectionConfig] = None):
        self.config = selection_config or self.default_config()
        self.comments: Tuple[Comment, ...] = tuple(comments)
        self.filtered_comments: Tuple[Comment, ...] = tuple(
            comment
            for comment in self.comments
            if comment.vote_info is not None
            and get_comment_vote_count(comment, True) >= self.config.min_vote_count
        )
        self.min_uncertainty_prob = self._uncertainty_floor()

    @classmethod
    @abstractmethod
    def default_config(cls) -> SelectionConfig:
        """Threshold defaults for this strategy"""

    def create(self, comments: Iterable[Comment]) -> "SelectionStrategy":
        """A fresh strategy of the same kind and config over another comment subset"""
        return type(self)(comments, self.config)

    def _uncertainty_floor(self) -> float:
        """Static floor, raised to the 75th percentile pass rate of filtered comments"""
        pass_rates = [self.get_pass_rate(comment) for comment in self.filtered_comments]
        top_quartile_pass_rate = get_percentile(pass_rates, 75)
        if top_quartile_pass_rate is None or top_quartile_pass_rate <= self.config.min_uncertainty_prob:
            return self.config.min_uncertainty_prob
        logger.debug(
            "raised uncertainty floor",
            base=self.config.min_uncertainty_prob,
            floor=top_quartile_pass_rate,
            n_comments=len(self.filtered_comments),
        )
        return top_quartile_pass_rate

    # -------------------------------------------------------------------------
    # Aggregate properties
    # -------------------------------------------------------------------------

    @property
    def vote_count(self) -> int:
        """Total votes (passes included) across every comment in this subset"""
        return sum(get_comment_vote_count(comment, True) for comment in self.comments)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    @property
    def contains_subtopics(self) -> bool:
        return any(topic.subtopics for comment in self.comments for topic in comment.topics or [])

    # -------------------------------------------------------------------------
    # Pooled rates under this strategy's config
    # -------------------------------------------------------------------------

    def get_agree_rate(self, comment: Comment) -> float:
        return get_total_agree_rate(
            comment.vote_info, self.config.include_passes, self.config.as_probability_estimate
        )

    def get_disagree_rate(self, comment: Comment) -> float:
        return get_total_disagree_rate(
            comment.vote_info, self.config.include_passes, self.config.as_probability_estimate
        )

    def get_pass_rate(self, comment: Comment) -> float:
        return get_total_pass_rate(comment.vote_info, self.config.as_probability_estimate)

    # -------------------------------------------------------------------------
    # Ranking
    # -------------------------------------------------------------------------

    def top_k(
        self,
        score_fn: ScoreFn,
        k: Optional[int] = None,
        filter_fn: Optional[FilterFn] = None,
    ) -> List[Comment]:
        """Filtered comments passing filter_fn, sorted by descending score, first k.

        k=None means max_sample_size; pass ALL_COMMENTS for every qualifying
        comment. Ties keep the input comment order.
        """
        return [item.comment for item in self._ranked(score_fn, k, filter_fn)]

    def _ranked(
        self,
        score_fn: ScoreFn,
        k: Optional[int] = None,
        filter_fn: Optional[FilterFn] = None,
    ) -> List[ScoredComment]:
        if k is None:
            k = self.config.max_sample_size
        if k < 0:
            raise ValidationError("k must be non-negative", field="k", value=k)
        if k == 0:
            return []
        candidates = [
            ScoredComment(comment, score_fn(comment))
            for comment in self.filtered_comments
            if filter_fn is None or filter_fn(comment)
        ]
        candidates.sort(key=lambda item: item.score, reverse=True)
        return candidates[:k]

    # -------------------------------------------------------------------------
    # Common ground
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_common_ground_agree_score(self, comment: Comment) -> float:
        """How strongly everyone agrees with the comment"""

    @abstractmethod
    def get_common_ground_disagree_score(self, comment: Comment) -> float:
        """How strongly everyone disagrees with the comment"""

    @abstractmethod
    def meets_common_ground_agree_threshold(self, comment: Comment) -> bool:
        pass

    @abstractmethod
    def meets_common_ground_disagree_threshold(self, comment: Comment) -> bool:
        pass

    @abstractmethod
    def get_common_ground_no_comments_message(self) -> str:
        pass

    def get_common_ground_score(self, comment: Comment) -> float:
        """Score for common ground in either direction"""
        return max(
            self.get_common_ground_agree_score(comment),
            self.get_common_ground_disagree_score(comment),
        )

    def meets_common_ground_threshold(self, comment: Comment) -> bool:
        return self.meets_common_ground_agree_threshold(
            comment
        ) or self.meets_common_ground_disagree_threshold(comment)

    def get_common_ground_comments(self, k: Optional[int] = None) -> List[Comment]:
        """Top comments everyone agrees or everyone disagrees with"""
        return self.top_k(self.get_common_ground_score, k, self.meets_common_ground_threshold)

    def get_common_ground_agree_comments(self, k: Optional[int] = None) -> List[Comment]:
        return self.top_k(
            self.get_common_ground_agree_score, k, self.meets_common_ground_agree_threshold
        )

    def get_common_ground_disagree_comments(self, k: Optional[int] = None) -> List[Comment]:
        return self.top_k(
            self.get_common_ground_disagree_score, k, self.meets_common_ground_disagree_threshold
        )

    # -------------------------------------------------------------------------
    # Differences of opinion
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_difference_of_opinion_score(self, comment: Comment) -> float:
        pass

    @abstractmethod
    def meets_difference_of_opinion_threshold(self, comment: Comment) -> bool:
        pass

    @abstractmethod
    def get_differences_of_opinion_no_comments_message(self) -> str:
        pass

    def get_difference_of_opinion_comments(self, k: Optional[int] = None) -> List[Comment]:
        return self.top_k(
            self.get_difference_of_opinion_score, k, self.meets_difference_of_opinion_threshold
        )

    # -------------------------------------------------------------------------
    # Uncertainty (pass votes; never group based)
    # -------------------------------------------------------------------------

    def get_uncertain_score(self, comment: Comment) -> float:
        return self.get_pass_rate(comment)

    def meets_uncertain_threshold(self, comment: Comment) -> bool:
        return self.get_pass_rate(comment) > self.min_uncertainty_prob

    def get_uncertain_comments(self, k: Optional[int] = None) -> List[Comment]:
        return self.top_k(self.get_uncertain_score, k, self.meets_uncertain_threshold)

    def get_uncertain_no_comments_message(self) -> str:
        return (
            f"No statements met the thresholds necessary to be considered as a point of "
            f"uncertainty (at least {self.config.min_vote_count} votes, and more than "
            f"{decimal_to_percent(self.min_uncertainty_prob)} pass votes)."
        )

    # -------------------------------------------------------------------------
    # Category selection
    # -------------------------------------------------------------------------

    def select(self, category: SelectionCategory, k: Optional[int] = None) -> Selection:
        """Ranked comments with scores for one report category"""
        if category == "common_ground":
            ranked = self._ranked(self.get_common_ground_score, k, self.meets_common_ground_threshold)
            message = self.get_common_ground_no_comments_message()
        elif category == "differences_of_opinion":
            ranked = self._ranked(
                self.get_difference_of_opinion_score, k, self.meets_difference_of_opinion_threshold
            )
            message = self.get_differences_of_opinion_no_comments_message()
        elif category == "uncertain":
            ranked = self._ranked(self.get_uncertain_score, k, self.meets_uncertain_threshold)
            message = self.get_uncertain_no_comments_message()
        else:
            raise ValidationError(
                f"Unknown selection category: {category}", field="category", value=category
            )

        logger.debug(
            "selected comments",
            category=category,
            n_selected=len(ranked),
            n_filtered=len(self.filtered_comments),
        )
        return Selection(category=category, items=tuple(ranked), no_results_message=None if ranked else message)


class MajorityVoteStrategy(SelectionStrategy):
    """Selection based on pooled vote rates; does not use opinion groups"""

    group_based = False

    @classmethod
    def default_config(cls) -> SelectionConfig:
        return SelectionConfig.majority_vote()

    def get_common_ground_agree_score(self, comment: Comment) -> float:
        return self.get_agree_rate(comment)

    def get_common_ground_disagree_score(self, comment: Comment) -> float:
        return self.get_disagree_rate(comment)

    def meets_common_ground_agree_threshold(self, comment: Comment) -> bool:
        return self.get_agree_rate(comment) >= self.config.min_common_ground_prob

    def meets_common_ground_disagree_threshold(self, comment: Comment) -> bool:
        return self.get_disagree_rate(comment) >= self.config.min_common_ground_prob

    def get_common_ground_no_comments_message(self) -> str:
        return (
            f"No statements met the thresholds necessary to be considered as a point of common "
            f"ground (at least {self.config.min_vote_count} votes, and at least "
            f"{decimal_to_percent(self.config.min_common_ground_prob)} agreement)."
        )

    def get_difference_of_opinion_score(self, comment: Comment) -> float:
        """Highest when agree and disagree rates are equal and passes are rare"""
        agree_rate = self.get_agree_rate(comment)
        disagree_rate = self.get_disagree_rate(comment)
        return 1 - abs(agree_rate - disagree_rate) - self.get_pass_rate(comment)

    def meets_difference_of_opinion_threshold(self, comment: Comment) -> bool:
        low = self.config.min_difference_prob
        high = self.config.max_difference_prob
        return (
            low <= self.get_agree_rate(comment) <= high
            and low <= self.get_disagree_rate(comment) <= high
        )

    def get_differences_of_opinion_no_comments_message(self) -> str:
        return (
            f"No statements met the thresholds necessary to be considered as a significant "
            f"difference of opinion (at least {self.config.min_vote_count} votes, and both an "
            f"agreement rate and disagree rate between "
            f"{decimal_to_percent(self.config.min_difference_prob)} and "
            f"{decimal_to_percent(self.config.max_difference_prob)})."
        )


class GroupInformedStrategy(SelectionStrategy):
    """Selection based on cross-group consensus

    Every comment with vote data must carry GroupVoteTallies; the group
    metrics raise GroupDataRequiredError otherwise.
    """

    group_based = True

    @classmethod
    def default_config(cls) -> SelectionConfig:
        return SelectionConfig.group_informed()

    def get_common_ground_agree_score(self, comment: Comment) -> float:
        return get_group_informed_consensus(comment, self.config.as_probability_estimate)

    def get_common_ground_disagree_score(self, comment: Comment) -> float:
        return get_group_informed_disagree_consensus(comment, self.config.as_probability_estimate)

    def meets_common_ground_agree_threshold(self, comment: Comment) -> bool:
        return (
            get_min_agree_prob(comment, self.config.as_probability_estimate)
            >= self.config.min_common_ground_prob
        )

    def meets_common_ground_disagree_threshold(self, comment: Comment) -> bool:
        return (
            get_min_disagree_prob(comment, self.config.as_probability_estimate)
            >= self.config.min_common_ground_prob
        )

    def get_common_ground_no_comments_message(self) -> str:
        return (
            f"No statements met the thresholds necessary to be considered as a point of common "
            f"ground (at least {self.config.min_vote_count} votes, and at least "
            f"{decimal_to_percent(self.config.min_common_ground_prob)} agreement across groups)."
        )

    def get_difference_of_opinion_score(self, comment: Comment) -> float:
        return get_max_group_agree_prob_difference(comment, self.config.as_probability_estimate)

    def meets_difference_of_opinion_threshold(self, comment: Comment) -> bool:
        # Some group must not already qualify the comment as common ground, and
        # some group must diverge from the rest by at least the configured gap.
        return (
            get_min_agree_prob(comment, self.config.as_probability_estimate)
            < self.config.min_common_ground_prob
            and self.get_difference_of_opinion_score(comment)
            >= self.config.min_agree_prob_difference
        )

    def get_differences_of_opinion_no_comments_message(self) -> str:
        return (
            f"No statements met the thresholds necessary to be considered as a significant "
            f"difference of opinion (at least {self.config.min_vote_count} votes, and more than "
            f"{decimal_to_percent(self.config.min_agree_prob_difference)} difference in agreement "
            f"rate between groups)."
        )

    def get_group_representative_comments(self, group: str, k: Optional[int] = None) -> List[Comment]:
        """Comments `group` agrees with much more than everyone else does.

        Comments that already qualify as common ground are excluded, as are
        comments on which `group` cast no tally.
        """
        return self.top_k(
            lambda comment: get_group_agree_prob_difference(
                comment, group, self.config.as_probability_estimate
            ),
            k,
            lambda comment: self._has_group(comment, group)
            and not self.meets_common_ground_threshold(comment)
            and get_group_agree_prob_difference(comment, group, self.config.as_probability_estimate)
            >= self.config.min_agree_prob_difference,
        )

    @staticmethod
    def _has_group(comment: Comment, group: str) -> bool:
        return isinstance(comment.vote_info, GroupVoteTallies) and group in comment.vote_info

    def get_stats_by_group(self) -> List[GroupStats]:
        """Votes per opinion group, summed over every comment in this subset"""
        group_name_to_stats: Dict[str, GroupStats] = {}
        for comment in self.comments:
            vote_info = comment.vote_info
            if vote_info is None:
                continue
            if not isinstance(vote_info, GroupVoteTallies):
                raise GroupDataRequiredError(
                    "Group information is required for calculating group statistics.",
                    comment_id=comment.id,
                    metric="group stats",
                )
            for group_name, tally in vote_info.items():
                stats = group_name_to_stats.setdefault(group_name, GroupStats(name=group_name, vote_count=0))
                stats.vote_count += tally.get_total_count(True)
        return list(group_name_to_stats.values())


def create_strategy(
    comments: Iterable[Comment],
    group_informed: Optional[bool] = None,
    selection_config: Optional[SelectionConfig] = None,
) -> SelectionStrategy:
    """Pick the selection strategy once, for a whole conversation.

    With group_informed=None, the group informed strategy is used when every
    comment that has vote data carries opinion-group tallies.
    """
    comments = list(comments)
    if group_informed is None:
        voted = [comment for comment in comments if comment.vote_info is not None]
        group_informed = bool(voted) and all(comment.is_grouped for comment in voted)

    strategy_cls = GroupInformedStrategy if group_informed else MajorityVoteStrategy
    logger.info(
        "created selection strategy",
        strategy=strategy_cls.__name__,
        n_comments=len(comments),
    )
    return strategy_cls(comments, selection_config)
