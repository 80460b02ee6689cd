"""Community Notes style matrix factorization

Fits the full rating matrix with a regularized bilinear model:

    r_hat(u, n) = mu + i_u + i_n + f_u . f_n

mu is a global intercept, i_u / i_n are per-user and per-note intercepts,
f_u / f_n are user and note factor vectors. The note intercepts i_n measure
how likely people are to agree with a note regardless of which side of a
polarizing issue they fall on; they are returned as "helpfulness" scores.

Loss, summed over observed ratings:

    sum (r - r_hat)^2 + lambda_i (i_u^2 + i_n^2 + mu^2) + lambda_f (|f_u|^2 + |f_n|^2)

lambda_i defaults to 5x lambda_f, pushing variance into the factors and
raising the evidential bar for a high intercept.

Training is full-batch gradient descent with Adam updates: for each
learning rate in the schedule, a fresh optimizer runs `epochs` steps over
all five parameter tensors jointly. Steps are strictly sequential.

num_users / num_notes are max(id) + 1. Ids that never appear still get
(randomly initialized, never updated) rows, and their helpfulness is noise.
deliberation.ratings.build_ratings remaps ids to a contiguous range.

Parameter tensors are dense: memory and step cost scale with
(num_users + num_notes) * num_factors, not with the number of ratings.
"""

import math
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from config import config, get_logger
from deliberation.models import Rating
from exceptions import TrainingCancelledError, ValidationError

logger = get_logger(__name__).bind(component="matrix_factorization")

PARAMETER_NAMES = ("mu", "user_intercepts", "note_intercepts", "user_factors", "note_factors")


@dataclass
class MatrixFactorizationResult:
    """Learned parameters, copied out of the trainer after training"""
    global_intercept: float
    user_intercepts: np.ndarray
    note_intercepts: np.ndarray
    user_factors: np.ndarray
    note_factors: np.ndarray
    final_loss: float
    loss_history: List[Tuple[float, int, float]] = field(default_factory=list)

    @property
    def helpfulness_scores(self) -> List[float]:
        """Per-note intercepts, indexed by note id"""
        return self.note_intercepts.tolist()


class _AdamOptimizer:
    """Adaptive moment estimation over a dict of numpy parameters (updated in place)"""

    def __init__(
        self,
        learning_rate: float,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
    ):
        self.learning_rate = learning_rate
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon
        self.step_count = 0
        self._first_moments: Dict[str, np.ndarray] = {}
        self._second_moments: Dict[str, np.ndarray] = {}

    def step(self, params: Dict[str, np.ndarray], grads: Dict[str, np.ndarray]) -> None:
        self.step_count += 1
        bias_correction1 = 1 - self.beta1 ** self.step_count
        bias_correction2 = 1 - self.beta2 ** self.step_count

        for name, grad in grads.items():
            m = self._first_moments.setdefault(name, np.zeros_like(grad))
            v = self._second_moments.setdefault(name, np.zeros_like(grad))
            m *= self.beta1
            m += (1 - self.beta1) * grad
            v *= self.beta2
            v += (1 - self.beta2) * grad ** 2
            m_hat = m / bias_correction1
            v_hat = v / bias_correction2
            params[name] -= self.learning_rate * m_hat / (np.sqrt(v_hat) + self.epsilon)


def _validate_learning_rates(learning_rates: Union[float, Sequence[float]]) -> List[float]:
    rates = [learning_rates] if isinstance(learning_rates, (int, float)) else list(learning_rates)
    if not rates:
        raise ValidationError("Learning rate schedule must not be empty", field="learning_rates")
    for rate in rates:
        if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
            raise ValidationError(
                "Learning rates must be positive, finite numbers", field="learning_rates", value=rate
            )
    return [float(rate) for rate in rates]


def _validate_ratings(ratings: Sequence[Rating]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    if len(ratings) == 0:
        raise ValidationError("At least one rating is required", field="ratings")

    for rating in ratings:
        if rating.user_id < 0:
            raise ValidationError("user_id must be non-negative", field="user_id", value=rating.user_id)
        if rating.note_id < 0:
            raise ValidationError("note_id must be non-negative", field="note_id", value=rating.note_id)
        if not math.isfinite(rating.rating):
            raise ValidationError("rating must be finite", field="rating", value=rating.rating)

    user_ids = np.array([rating.user_id for rating in ratings], dtype=np.int64)
    note_ids = np.array([rating.note_id for rating in ratings], dtype=np.int64)
    values = np.array([rating.rating for rating in ratings], dtype=np.float64)
    return user_ids, note_ids, values


class MatrixFactorizationTrainer:
    """Trains the bilinear rating model and returns per-note helpfulness.

    Unset hyperparameters come from config (DELIBERATION_MF_*). Pass seed for
    reproducible initialization.
    """

    def __init__(
        self,
        num_factors: Optional[int] = None,
        epochs: Optional[int] = None,
        learning_rates: Optional[Union[float, Sequence[float]]] = None,
        lambda_i: Optional[float] = None,
        lambda_f: Optional[float] = None,
        seed: Optional[int] = None,
        log_every: Optional[int] = None,
    ):
        self.num_factors = config.MF_FACTORS if num_factors is None else num_factors
        self.epochs = config.MF_EPOCHS if epochs is None else epochs
        self.learning_rates = _validate_learning_rates(
            config.MF_LEARNING_RATES if learning_rates is None else learning_rates
        )
        self.lambda_i = config.MF_LAMBDA_I if lambda_i is None else lambda_i
        self.lambda_f = config.MF_LAMBDA_F if lambda_f is None else lambda_f
        self.seed = config.MF_SEED if seed is None else seed
        self.log_every = config.MF_LOG_EVERY if log_every is None else log_every

        if self.num_factors <= 0:
            raise ValidationError("num_factors must be positive", field="num_factors", value=self.num_factors)
        if self.epochs <= 0:
            raise ValidationError("epochs must be positive", field="epochs", value=self.epochs)
        if self.lambda_i < 0 or self.lambda_f < 0:
            raise ValidationError("Regularization strengths must be non-negative", field="lambda")

    def _init_params(self, num_users: int, num_notes: int) -> Dict[str, np.ndarray]:
        rng = np.random.default_rng(self.seed)
        return {
            "mu": np.zeros(()),
            "user_intercepts": rng.standard_normal(num_users),
            "note_intercepts": rng.standard_normal(num_notes),
            "user_factors": rng.standard_normal((num_users, self.num_factors)),
            "note_factors": rng.standard_normal((num_notes, self.num_factors)),
        }

    def _loss_and_gradients(
        self,
        params: Dict[str, np.ndarray],
        user_ids: np.ndarray,
        note_ids: np.ndarray,
        values: np.ndarray,
    ) -> Tuple[float, Dict[str, np.ndarray]]:
        mu = params["mu"]
        rating_user_intercepts = params["user_intercepts"][user_ids]
        rating_note_intercepts = params["note_intercepts"][note_ids]
        rating_user_factors = params["user_factors"][user_ids]
        rating_note_factors = params["note_factors"][note_ids]

        predicted = (
            mu
            + rating_user_intercepts
            + rating_note_intercepts
            + np.sum(rating_user_factors * rating_note_factors, axis=1)
        )
        errors = values - predicted

        loss = (
            np.sum(errors ** 2)
            + self.lambda_i * np.sum(rating_user_intercepts ** 2 + rating_note_intercepts ** 2 + mu ** 2)
            + self.lambda_f
            * np.sum(np.sum(rating_user_factors ** 2, axis=1) + np.sum(rating_note_factors ** 2, axis=1))
        )

        # d(loss)/d(predicted) per rating
        d_predicted = -2.0 * errors

        grad_user_intercepts = np.zeros_like(params["user_intercepts"])
        np.add.at(grad_user_intercepts, user_ids, d_predicted + 2 * self.lambda_i * rating_user_intercepts)

        grad_note_intercepts = np.zeros_like(params["note_intercepts"])
        np.add.at(grad_note_intercepts, note_ids, d_predicted + 2 * self.lambda_i * rating_note_intercepts)

        grad_user_factors = np.zeros_like(params["user_factors"])
        np.add.at(
            grad_user_factors,
            user_ids,
            d_predicted[:, np.newaxis] * rating_note_factors + 2 * self.lambda_f * rating_user_factors,
        )

        grad_note_factors = np.zeros_like(params["note_factors"])
        np.add.at(
            grad_note_factors,
            note_ids,
            d_predicted[:, np.newaxis] * rating_user_factors + 2 * self.lambda_f * rating_note_factors,
        )

        grads = {
            "mu": np.asarray(np.sum(d_predicted) + 2 * self.lambda_i * mu * len(values)),
            "user_intercepts": grad_user_intercepts,
            "note_intercepts": grad_note_intercepts,
            "user_factors": grad_user_factors,
            "note_factors": grad_note_factors,
        }
        return float(loss), grads

    def train(
        self,
        ratings: Sequence[Rating],
        cancel_event: Optional[threading.Event] = None,
    ) -> MatrixFactorizationResult:
        """Run len(learning_rates) * epochs Adam steps and return the fitted model.

        Args:
            ratings: Observed ratings; ids must be non-negative
            cancel_event: Checked before every step; when set, training stops
                and TrainingCancelledError is raised

        Raises:
            ValidationError: empty ratings, negative ids, non-finite ratings
            TrainingCancelledError: cancel_event was set
        """
        user_ids, note_ids, values = _validate_ratings(ratings)
        num_users = int(user_ids.max()) + 1
        num_notes = int(note_ids.max()) + 1

        params = self._init_params(num_users, num_notes)
        loss_history: List[Tuple[float, int, float]] = []

        logger.info(
            "training matrix factorization",
            ratings=len(values),
            num_users=num_users,
            num_notes=num_notes,
            num_factors=self.num_factors,
            epochs=self.epochs,
            learning_rates=self.learning_rates,
        )

        for learning_rate in self.learning_rates:
            logger.info("set learning rate", learning_rate=learning_rate)
            optimizer = _AdamOptimizer(learning_rate)
            for epoch in range(self.epochs):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("training cancelled", learning_rate=learning_rate, epoch=epoch)
                    raise TrainingCancelledError(
                        "Matrix factorization training cancelled",
                        learning_rate=learning_rate,
                        step=epoch,
                    )
                loss, grads = self._loss_and_gradients(params, user_ids, note_ids, values)
                optimizer.step(params, grads)
                if (epoch + 1) % self.log_every == 0:
                    loss_history.append((learning_rate, epoch + 1, loss))
                    logger.debug("training loss", learning_rate=learning_rate, epoch=epoch + 1, loss=loss)

        final_loss, _ = self._loss_and_gradients(params, user_ids, note_ids, values)
        logger.info("finished matrix factorization", final_loss=final_loss)

        return MatrixFactorizationResult(
            global_intercept=float(params["mu"]),
            user_intercepts=params["user_intercepts"].copy(),
            note_intercepts=params["note_intercepts"].copy(),
            user_factors=params["user_factors"].copy(),
            note_factors=params["note_factors"].copy(),
            final_loss=final_loss,
            loss_history=loss_history,
        )


def community_notes_matrix_factorization(
    ratings: Sequence[Rating],
    num_factors: Optional[int] = None,
    epochs: Optional[int] = None,
    learning_rate: Optional[Union[float, Sequence[float]]] = None,
    lambda_i: Optional[float] = None,
    lambda_f: Optional[float] = None,
    seed: Optional[int] = None,
) -> List[float]:
    """Helpfulness scores (note intercepts) for the given ratings, indexed by note id"""
    trainer = MatrixFactorizationTrainer(
        num_factors=num_factors,
        epochs=epochs,
        learning_rates=learning_rate,
        lambda_i=lambda_i,
        lambda_f=lambda_f,
        seed=seed,
    )
    return trainer.train(ratings).helpfulness_scores
