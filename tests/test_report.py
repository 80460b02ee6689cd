"""
Tests for the serializable report projections
"""

import json

import pytest

from deliberation.models import Comment, Topic, VoteTally
from deliberation.relative_context import RelativeContext
from deliberation.report import comments_with_scores, concat_topics, minimal_topic_stats
from deliberation.selection import MajorityVoteStrategy, SelectionConfig
from deliberation.topics import build_topic_stats

MAJORITY = SelectionConfig.majority_vote(min_vote_count=20)


@pytest.fixture
def comments():
    return [
        Comment(
            id="c1",
            text="More bus routes",
            vote_info=VoteTally(18, 2, 0),
            topics=[Topic(name="Transit", subtopics=[Topic(name="Buses")])],
        ),
        Comment(
            id="c2",
            text="Raise the fare",
            vote_info=VoteTally(10, 10, 0),
            topics=[Topic(name="Transit", subtopics=[Topic(name="Fares")])],
        ),
        Comment(
            id="c3",
            text="Plant trees",
            vote_info=VoteTally(2, 1, 0),
            topics=[Topic(name="Parks")],
        ),
        Comment(id="c4", text="Unvoted"),
    ]


@pytest.fixture
def strategy(comments):
    return MajorityVoteStrategy(comments, MAJORITY)


class TestMinimalTopicStats:
    """Topic tree without strategy handles"""

    def test_shape(self, strategy):
        minimal = minimal_topic_stats(build_topic_stats(strategy))

        transit = minimal[0]
        assert transit["name"] == "Transit"
        assert transit["commentCount"] == 2
        assert transit["voteCount"] == 40
        assert "strategy" not in transit
        assert [sub["name"] for sub in transit["subtopicStats"]] == ["Buses", "Fares"]

        parks = minimal[1]
        assert parks["relativeAlignment"] == "unknown"
        assert "subtopicStats" not in parks

    def test_json_serializable(self, strategy):
        json.dumps(minimal_topic_stats(build_topic_stats(strategy)))

    def test_shared_relative_context(self, strategy):
        topic_stats = build_topic_stats(strategy)
        context = RelativeContext(topic_stats)
        minimal = minimal_topic_stats(topic_stats, context)
        assert minimal[0]["relativeEngagement"] == context.get_relative_engagement(topic_stats[0].strategy)


class TestConcatTopics:
    def test_leaf_labels(self):
        topics = [
            Topic(name="Housing", subtopics=[Topic(name="Rent"), Topic(name="Zoning")]),
            Topic(name="Parks"),
        ]
        assert concat_topics(topics) == ["Housing:Rent", "Housing:Zoning", "Parks"]

    def test_no_topics(self):
        assert concat_topics(None) == []


class TestCommentsWithScores:
    """Per-comment rates, scores and flags"""

    def test_filtered_comment_has_scores(self, comments, strategy):
        rows = {row["id"]: row for row in comments_with_scores(comments, strategy)}

        agreed = rows["c1"]
        assert agreed["agreeRate"] == pytest.approx(19 / 22)
        assert agreed["isHighAlignment"] is True
        assert agreed["isLowAlignment"] is False
        assert agreed["isFilteredOut"] is False
        assert agreed["topics"] == ["Transit:Buses"]
        assert agreed["votes"] == {"agree_count": 18, "disagree_count": 2, "pass_count": 0}

        split = rows["c2"]
        assert split["isLowAlignment"] is True
        assert split["lowAlignmentScore"] == pytest.approx(21 / 22)

    def test_sparse_comment_is_filtered_out(self, comments, strategy):
        rows = {row["id"]: row for row in comments_with_scores(comments, strategy)}
        assert rows["c3"]["isFilteredOut"] is True
        assert "agreeRate" not in rows["c3"]

    def test_unvoted_comment_has_no_scores(self, comments, strategy):
        rows = {row["id"]: row for row in comments_with_scores(comments, strategy)}
        assert rows["c4"]["votes"] is None
        assert "isFilteredOut" not in rows["c4"]
        assert rows["c4"]["topics"] == []
