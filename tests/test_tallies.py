"""
Tests for vote tallies and rating encodings built from raw votes
"""

import pytest

from deliberation.matrix_factorization import MatrixFactorizationTrainer
from deliberation.models import GroupVoteTallies, RawVote, VoteTally
from deliberation.ratings import build_ratings, helpfulness_by_comment
from deliberation.tallies import AGREE, DISAGREE, PASS, compute_vote_tally, normalize_vote, tally_votes
from exceptions import ValidationError


@pytest.fixture
def votes():
    return [
        RawVote(1, 101, 1),
        RawVote(1, 102, -1),
        RawVote(2, 101, "agree"),
        RawVote(2, 102, "pass"),
        RawVote(3, 101, -1),
        RawVote(3, 102, 0),
        RawVote(4, 102, "d"),
    ]


class TestNormalizeVote:
    @pytest.mark.parametrize(
        "raw,expected",
        [(1, AGREE), ("agree", AGREE), (" A ", AGREE), (-1, DISAGREE), ("Disagree", DISAGREE), (0, PASS), ("p", PASS)],
    )
    def test_spellings(self, raw, expected):
        assert normalize_vote(raw) == expected

    @pytest.mark.parametrize("raw", [2, "maybe", ""])
    def test_unknown_vote_rejected(self, raw):
        with pytest.raises(ValidationError):
            normalize_vote(raw)


class TestComputeVoteTally:
    def test_counts(self):
        assert compute_vote_tally([1, 1, -1, 0, "agree", "pass"]) == VoteTally(3, 1, 2)

    def test_no_votes(self):
        assert compute_vote_tally([]) == VoteTally(0, 0, 0)


class TestTallyVotes:
    """Per-comment VoteInfo from raw votes"""

    def test_ungrouped(self, votes):
        tallies = tally_votes(votes)
        assert tallies["101"] == VoteTally(2, 1, 0)
        assert tallies["102"] == VoteTally(0, 2, 2)

    def test_grouped(self, votes):
        tallies = tally_votes(votes, group_of={"1": "B", "2": "A", "3": "B"})
        assert isinstance(tallies["101"], GroupVoteTallies)
        assert list(tallies["101"]) == ["A", "B"]
        assert tallies["101"]["A"] == VoteTally(1, 0, 0)
        assert tallies["101"]["B"] == VoteTally(1, 1, 0)

    def test_votes_outside_every_group_are_dropped(self, votes):
        tallies = tally_votes(votes, group_of={"1": "A", "2": "A", "3": "A"})
        # participant 4 only voted on 102
        assert tallies["102"].combined() == VoteTally(0, 1, 2)


class TestBuildRatings:
    """Rating encodings with contiguous ids"""

    def test_ids_remapped_in_numeric_order(self):
        votes = [RawVote("10", "c", 1), RawVote("2", "a", 1), RawVote("1", "b", -1)]
        rating_set = build_ratings(votes)
        assert rating_set.user_index == {"1": 0, "2": 1, "10": 2}
        assert rating_set.note_index == {"a": 0, "b": 1, "c": 2}

    def test_verbatim_encoding(self, votes):
        ratings = build_ratings(votes).ratings
        assert [r.rating for r in ratings] == [1.0, -1.0, 1.0, 0.0, -1.0, 0.0, -1.0]

    @pytest.mark.parametrize(
        "encoding,expected",
        [
            ("agree", [1.0, 0.0, 1.0, 0.0, 0.0, 0.0, 0.0]),
            ("disagree", [0.0, 1.0, 0.0, 0.0, 1.0, 0.0, 1.0]),
            ("pass", [0.0, 0.0, 0.0, 1.0, 0.0, 1.0, 0.0]),
        ],
    )
    def test_indicator_encodings(self, votes, encoding, expected):
        assert [r.rating for r in build_ratings(votes, encoding).ratings] == expected

    def test_ratings_use_remapped_indices(self, votes):
        rating_set = build_ratings(votes)
        assert {(r.user_id, r.note_id) for r in rating_set.ratings} == {
            (0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1), (3, 1),
        }

    def test_unknown_encoding(self, votes):
        with pytest.raises(ValidationError):
            build_ratings(votes, "sideways")


class TestHelpfulnessByComment:
    def test_scores_per_encoding(self, votes):
        trainer = MatrixFactorizationTrainer(num_factors=1, epochs=5, learning_rates=[0.05], seed=1)
        scores = helpfulness_by_comment(votes, trainer=trainer)
        assert set(scores) == {"101", "102"}
        assert set(scores["101"]) == {
            "helpfulness-verbatim",
            "helpfulness-agree",
            "helpfulness-disagree",
            "helpfulness-pass",
        }

    def test_selected_encodings(self, votes):
        trainer = MatrixFactorizationTrainer(num_factors=1, epochs=5, learning_rates=[0.05], seed=1)
        scores = helpfulness_by_comment(votes, encodings=("agree",), trainer=trainer)
        assert list(scores["102"]) == ["helpfulness-agree"]
