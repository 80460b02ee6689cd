"""Serializable projections for report generation

TopicStats and selection strategies are internal handles. These helpers
project out the plain numbers a report layer needs, as JSON-ready dicts
with camelCase keys.
"""

from typing import Any, Dict, List, Optional, Sequence

from deliberation.models import Comment, Topic
from deliberation.relative_context import RelativeContext
from deliberation.selection import ALL_COMMENTS, SelectionStrategy
from deliberation.topics import TopicStats


def minimal_topic_stats(
    topic_stats: List[TopicStats],
    relative_context: Optional[RelativeContext] = None,
) -> List[Dict[str, Any]]:
    """Topic tree with the strategy handles replaced by counts and relative context"""
    if relative_context is None:
        relative_context = RelativeContext(topic_stats)

    minimal = []
    for stat in topic_stats:
        entry: Dict[str, Any] = {
            "name": stat.name,
            "commentCount": stat.comment_count,
            "voteCount": stat.vote_count,
            "relativeAlignment": relative_context.get_relative_agreement(stat.strategy),
            "relativeEngagement": relative_context.get_relative_engagement(stat.strategy),
        }
        if stat.subtopic_stats:
            entry["subtopicStats"] = minimal_topic_stats(stat.subtopic_stats, relative_context)
        minimal.append(entry)
    return minimal


def concat_topics(topics: Optional[Sequence[Topic]], prefix: str = "") -> List[str]:
    """Flatten a topic forest into "Topic:Subtopic" labels, leaves only"""
    labels: List[str] = []
    for topic in topics or []:
        label = f"{prefix}{topic.name}"
        if topic.subtopics:
            labels.extend(concat_topics(topic.subtopics, f"{label}:"))
        else:
            labels.append(label)
    return labels


def comments_with_scores(
    comments: Sequence[Comment],
    strategy: SelectionStrategy,
) -> List[Dict[str, Any]]:
    """Per-comment rates, category scores and category membership.

    Rates and scores are reported for comments that pass the vote count
    filter; membership flags reflect the strategy's thresholds.
    """
    common_ground_ids = {c.id for c in strategy.get_common_ground_comments(ALL_COMMENTS)}
    difference_ids = {c.id for c in strategy.get_difference_of_opinion_comments(ALL_COMMENTS)}
    uncertain_ids = {c.id for c in strategy.get_uncertain_comments(ALL_COMMENTS)}
    filtered_ids = {c.id for c in strategy.filtered_comments}

    rows = []
    for comment in comments:
        row: Dict[str, Any] = {
            "id": comment.id,
            "text": comment.text,
            "votes": comment.vote_info.to_dict() if comment.vote_info is not None else None,
            "topics": concat_topics(comment.topics),
        }
        if comment.vote_info is not None and comment.id in filtered_ids:
            row.update(
                {
                    "agreeRate": strategy.get_agree_rate(comment),
                    "disagreeRate": strategy.get_disagree_rate(comment),
                    "passRate": strategy.get_pass_rate(comment),
                    "isHighAlignment": comment.id in common_ground_ids,
                    "highAlignmentScore": strategy.get_common_ground_score(comment),
                    "isLowAlignment": comment.id in difference_ids,
                    "lowAlignmentScore": strategy.get_difference_of_opinion_score(comment),
                    "isHighUncertainty": comment.id in uncertain_ids,
                    "highUncertaintyScore": strategy.get_uncertain_score(comment),
                }
            )
        if comment.vote_info is not None:
            row["isFilteredOut"] = comment.id not in filtered_ids
        rows.append(row)
    return rows
