"""
Tests for Community Notes style matrix factorization
"""

import math
import threading

import numpy as np
import pytest

from deliberation.matrix_factorization import (
    MatrixFactorizationTrainer,
    _AdamOptimizer,
    community_notes_matrix_factorization,
)
from deliberation.models import Rating
from exceptions import TrainingCancelledError, ValidationError

# 4 users x 3 notes, 9 observed ratings
RATINGS = [
    Rating(0, 0, 1.0),
    Rating(0, 1, 0.5),
    Rating(1, 0, 0.0),
    Rating(1, 2, 1.0),
    Rating(2, 1, 1.0),
    Rating(2, 2, 0.5),
    Rating(3, 0, 0.0),
    Rating(3, 1, 1.0),
    Rating(3, 2, 0.5),
]


def small_trainer(**overrides):
    params = dict(num_factors=1, epochs=10, learning_rates=[0.05], lambda_i=0.15, lambda_f=0.03, seed=7)
    params.update(overrides)
    return MatrixFactorizationTrainer(**params)


class TestCommunityNotesMatrixFactorization:
    """Helpfulness scores from ratings"""

    def test_one_score_per_note(self):
        scores = community_notes_matrix_factorization(RATINGS, 1, 10, 0.05, 0.15, 0.03, seed=7)
        assert len(scores) == 3
        assert all(math.isfinite(score) for score in scores)

    def test_fixed_seed_is_reproducible(self):
        first = community_notes_matrix_factorization(RATINGS, 1, 10, 0.05, seed=11)
        second = community_notes_matrix_factorization(RATINGS, 1, 10, 0.05, seed=11)
        assert first == second

    def test_note_count_is_max_id_plus_one(self):
        ratings = [Rating(0, 0, 1.0), Rating(1, 4, 0.0)]
        assert len(community_notes_matrix_factorization(ratings, 1, 5, 0.05, seed=3)) == 5


class TestTrainer:
    """Training loop and result"""

    def test_result_shapes(self):
        result = small_trainer(num_factors=2).train(RATINGS)
        assert result.user_intercepts.shape == (4,)
        assert result.note_intercepts.shape == (3,)
        assert result.user_factors.shape == (4, 2)
        assert result.note_factors.shape == (3, 2)
        assert result.helpfulness_scores == result.note_intercepts.tolist()

    def test_loss_decreases(self):
        trainer = small_trainer(epochs=100, learning_rates=[0.05, 0.01], log_every=10)
        result = trainer.train(RATINGS)

        first_logged_loss = result.loss_history[0][2]
        assert result.final_loss < first_logged_loss
        assert len(result.loss_history) == 20
        assert result.loss_history[0][:2] == (0.05, 10)

    def test_unrated_notes_keep_their_initial_values(self):
        trainer = small_trainer(epochs=20)
        ratings = [Rating(0, 0, 1.0), Rating(1, 0, 0.0), Rating(0, 4, 0.5)]
        result = trainer.train(ratings)

        initial = trainer._init_params(2, 5)
        np.testing.assert_array_equal(result.note_intercepts[1:4], initial["note_intercepts"][1:4])
        np.testing.assert_array_equal(result.note_factors[1:4], initial["note_factors"][1:4])

    def test_cancellation(self):
        cancel_event = threading.Event()
        cancel_event.set()
        with pytest.raises(TrainingCancelledError) as exc_info:
            small_trainer().train(RATINGS, cancel_event=cancel_event)
        assert exc_info.value.step == 0
        assert exc_info.value.learning_rate == 0.05

    def test_unset_event_does_not_cancel(self):
        result = small_trainer().train(RATINGS, cancel_event=threading.Event())
        assert len(result.helpfulness_scores) == 3


class TestGradients:
    """Analytic gradients agree with finite differences"""

    def test_gradients_match_finite_differences(self):
        trainer = small_trainer(num_factors=2)
        user_ids = np.array([r.user_id for r in RATINGS])
        note_ids = np.array([r.note_id for r in RATINGS])
        values = np.array([r.rating for r in RATINGS])

        params = trainer._init_params(4, 3)
        params["mu"] = np.asarray(0.3)
        _, grads = trainer._loss_and_gradients(params, user_ids, note_ids, values)

        epsilon = 1e-6
        for name, param in params.items():
            numeric = np.zeros_like(param)
            for index in np.ndindex(param.shape):
                original = param[index]
                param[index] = original + epsilon
                loss_plus, _ = trainer._loss_and_gradients(params, user_ids, note_ids, values)
                param[index] = original - epsilon
                loss_minus, _ = trainer._loss_and_gradients(params, user_ids, note_ids, values)
                param[index] = original
                numeric[index] = (loss_plus - loss_minus) / (2 * epsilon)
            np.testing.assert_allclose(grads[name], numeric, rtol=1e-4, atol=1e-6, err_msg=name)


class TestAdamOptimizer:
    def test_minimizes_a_quadratic(self):
        params = {"x": np.array([5.0])}
        optimizer = _AdamOptimizer(0.1)
        for _ in range(500):
            optimizer.step(params, {"x": 2 * params["x"]})
        assert abs(params["x"][0]) < 0.5

    def test_first_step_moves_by_learning_rate(self):
        params = {"x": np.array([1.0, -1.0])}
        _AdamOptimizer(0.01).step(params, {"x": np.array([3.0, -0.5])})
        np.testing.assert_allclose(params["x"], [0.99, -0.99], rtol=1e-6)


class TestValidation:
    """Rejected inputs"""

    @pytest.mark.parametrize(
        "rating",
        [Rating(-1, 0, 1.0), Rating(0, -1, 1.0), Rating(0, 0, float("nan")), Rating(0, 0, float("inf"))],
    )
    def test_invalid_rating(self, rating):
        with pytest.raises(ValidationError):
            small_trainer().train([rating])

    def test_no_ratings(self):
        with pytest.raises(ValidationError):
            small_trainer().train([])

    @pytest.mark.parametrize("learning_rates", [[], [0.05, -0.01], [0.0], [float("nan")], [float("inf")]])
    def test_invalid_learning_rates(self, learning_rates):
        with pytest.raises(ValidationError):
            small_trainer(learning_rates=learning_rates)

    def test_single_learning_rate(self):
        assert small_trainer(learning_rates=0.01).learning_rates == [0.01]

    @pytest.mark.parametrize("overrides", [{"num_factors": 0}, {"epochs": 0}, {"lambda_f": -0.1}])
    def test_invalid_hyperparameters(self, overrides):
        with pytest.raises(ValidationError):
            small_trainer(**overrides)
