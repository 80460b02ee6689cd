"""Topic aggregation tree

Partitions comments by topic and subtopic and builds a fresh selection
strategy over each node's comments.

A node's comments are the comments tagged directly at that node (with no
deeper subtopic) plus the union of its children's comments, deduplicated by
comment id. A comment tagged under two subtopics of one topic therefore
counts once for the topic but once in each subtopic, so subtopic counts can
sum to more than the topic count.

Sorting: descending comment count at every level, except a node named
"Other" always goes last.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional

from config import get_logger
from deliberation.models import Comment, Topic
from deliberation.selection import SelectionStrategy

logger = get_logger(__name__).bind(component="topic_stats")

OTHER_TOPIC = "Other"


@dataclass
class TopicGroup:
    """Comments grouped under one topic node, keyed by comment id"""
    name: str
    comments: Dict[str, Comment] = field(default_factory=dict)
    subtopics: Dict[str, "TopicGroup"] = field(default_factory=dict)

    def add(self, comment: Comment, topic: Topic) -> None:
        if not topic.subtopics:
            self.comments[comment.id] = comment
            return
        for subtopic in topic.subtopics:
            child = self.subtopics.setdefault(subtopic.name, TopicGroup(subtopic.name))
            child.add(comment, subtopic)

    def all_comment_ids(self) -> set:
        ids = set(self.comments)
        for child in self.subtopics.values():
            ids |= child.all_comment_ids()
        return ids


@dataclass
class TopicStats:
    """Stats for one topic or subtopic

    strategy is an internal handle for selecting this node's comments; use
    deliberation.report.minimal_topic_stats before serializing.
    """
    name: str
    comment_count: int
    strategy: SelectionStrategy
    subtopic_stats: Optional[List["TopicStats"]] = None

    @property
    def vote_count(self) -> int:
        return self.strategy.vote_count


def group_comments_by_topic(comments: List[Comment]) -> Dict[str, TopicGroup]:
    """Group comments by topic name, recursively by subtopic name.

    Comments without topics are skipped.
    """
    grouped: Dict[str, TopicGroup] = {}
    for comment in comments:
        if not comment.topics:
            logger.debug("comment has no topics assigned", comment_id=comment.id)
            continue
        for topic in comment.topics:
            grouped.setdefault(topic.name, TopicGroup(topic.name)).add(comment, topic)
    return grouped


def _build_node(
    group: TopicGroup,
    strategy: SelectionStrategy,
    positions: Dict[str, int],
    by_id: Dict[str, Comment],
) -> TopicStats:
    # Keep the parent's comment order so ranking ties break the same way everywhere
    ids = sorted(group.all_comment_ids(), key=positions.__getitem__)
    subtopic_stats = None
    if group.subtopics:
        subtopic_stats = [
            _build_node(child, strategy, positions, by_id) for child in group.subtopics.values()
        ]
    return TopicStats(
        name=group.name,
        comment_count=len(ids),
        strategy=strategy.create(by_id[comment_id] for comment_id in ids),
        subtopic_stats=subtopic_stats,
    )


def build_topic_stats(strategy: SelectionStrategy) -> List[TopicStats]:
    """Sorted stats for each topic and subtopic of the strategy's comments.

    Each node gets its own strategy of the same kind and config.
    """
    positions: Dict[str, int] = {}
    by_id: Dict[str, Comment] = {}
    for position, comment in enumerate(strategy.comments):
        positions.setdefault(comment.id, position)
        by_id.setdefault(comment.id, comment)

    grouped = group_comments_by_topic(list(strategy.comments))
    topic_stats = [_build_node(group, strategy, positions, by_id) for group in grouped.values()]

    logger.info(
        "built topic stats",
        topics=len(topic_stats),
        subtopics=sum(len(topic.subtopic_stats or []) for topic in topic_stats),
        comments=strategy.comment_count,
    )
    return sort_topic_stats(topic_stats)


def sort_topic_stats(topic_stats: List[TopicStats], descending: bool = True) -> List[TopicStats]:
    """Sort by comment count at every level, with "Other" last (first when ascending).

    Returns a new tree; the input lists and nodes are left untouched.
    """
    if descending:
        key = lambda stat: (stat.name == OTHER_TOPIC, -stat.comment_count)  # noqa: E731
    else:
        key = lambda stat: (stat.name != OTHER_TOPIC, stat.comment_count)  # noqa: E731

    sorted_stats = []
    for stat in sorted(topic_stats, key=key):
        if stat.subtopic_stats:
            stat = replace(stat, subtopic_stats=sort_topic_stats(stat.subtopic_stats, descending))
        else:
            stat = replace(stat)
        sorted_stats.append(stat)
    return sorted_stats


def iter_topic_stats(topic_stats: List[TopicStats]) -> Iterator[TopicStats]:
    """Every node of the tree, depth first, parents before children"""
    for stat in topic_stats:
        yield stat
        if stat.subtopic_stats:
            yield from iter_topic_stats(stat.subtopic_stats)
