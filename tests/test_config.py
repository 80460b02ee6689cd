"""
Tests for environment configuration and the exception hierarchy
"""

import pytest

from config import Config
from exceptions import (
    ConfigurationError,
    DeliberationError,
    TrainingCancelledError,
    ValidationError,
)


class TestConfig:
    """DELIBERATION_* environment variables"""

    def test_defaults(self, monkeypatch):
        for key in ("DELIBERATION_MIN_VOTE_COUNT", "DELIBERATION_MF_LEARNING_RATES", "DELIBERATION_MF_SEED"):
            monkeypatch.delenv(key, raising=False)
        config = Config()
        assert config.MIN_VOTE_COUNT == 20
        assert config.MF_LEARNING_RATES == [0.05, 0.01, 0.002, 0.0004]
        assert config.MF_SEED is None

    def test_learning_rate_schedule(self, monkeypatch):
        monkeypatch.setenv("DELIBERATION_MF_LEARNING_RATES", "0.1, 0.01")
        assert Config().MF_LEARNING_RATES == [0.1, 0.01]

    def test_seed(self, monkeypatch):
        monkeypatch.setenv("DELIBERATION_MF_SEED", "42")
        assert Config().MF_SEED == 42

    @pytest.mark.parametrize(
        "key,value",
        [
            ("DELIBERATION_MF_LEARNING_RATES", "fast"),
            ("DELIBERATION_MF_LEARNING_RATES", "0.1,-0.1"),
            ("DELIBERATION_MIN_VOTE_COUNT", "-1"),
            ("DELIBERATION_MAX_SAMPLE_SIZE", "0"),
            ("DELIBERATION_MF_EPOCHS", "0"),
            ("DELIBERATION_CLUSTER_MAX_K", "1"),
        ],
    )
    def test_invalid_values(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigurationError) as exc_info:
            Config()
        assert exc_info.value.config_key == key

    def test_summary(self):
        summary = Config().summary()
        assert "min_vote_count" in summary
        assert "mf_learning_rates" in summary


class TestExceptions:
    """Exception context and hierarchy"""

    def test_context_in_message(self):
        error = ValidationError("bad rating", field="user_id", value=-1)
        assert str(error) == "bad rating (context: field=user_id, value=-1)"

    def test_cancellation_context(self):
        error = TrainingCancelledError("stopped", learning_rate=0.05, step=3)
        assert error.context == {"learning_rate": 0.05, "step": 3}

    def test_common_base(self):
        assert issubclass(ConfigurationError, DeliberationError)
        assert issubclass(TrainingCancelledError, DeliberationError)
