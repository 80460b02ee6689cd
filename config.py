import os
import logging
import sys
from typing import List, Optional

import structlog

from exceptions import ConfigurationError


def get_logger(name: str = "deliberation"):
    """Get a structured logger instance

    Usage:
        logger = get_logger(__name__)
        logger = logger.bind(component="selection", strategy="majority")
        logger.info("selected comments", category="common_ground", n=4)

    Args:
        name: Logger name (typically __name__ or module path)

    Returns:
        Structured logger instance with context binding support
    """
    return structlog.get_logger(name)


class Config:
    """Configuration management for the consensus engine"""

    def __init__(self):
        # Logging
        self.LOG_LEVEL = os.getenv("DELIBERATION_LOG_LEVEL", "INFO").upper()
        self.DEBUG = os.getenv("DELIBERATION_DEBUG", "false").lower() == "true"

        # Comment selection defaults shared by both strategies
        self.MIN_VOTE_COUNT = int(os.getenv("DELIBERATION_MIN_VOTE_COUNT", "20"))
        self.MAX_SAMPLE_SIZE = int(os.getenv("DELIBERATION_MAX_SAMPLE_SIZE", "12"))

        # Matrix factorization
        self.MF_FACTORS = int(os.getenv("DELIBERATION_MF_FACTORS", "1"))
        self.MF_EPOCHS = int(os.getenv("DELIBERATION_MF_EPOCHS", "400"))
        self.MF_LEARNING_RATES = self._parse_learning_rates(
            os.getenv("DELIBERATION_MF_LEARNING_RATES", "0.05,0.01,0.002,0.0004")
        )
        self.MF_LAMBDA_I = float(os.getenv("DELIBERATION_MF_LAMBDA_I", "0.15"))
        self.MF_LAMBDA_F = float(os.getenv("DELIBERATION_MF_LAMBDA_F", "0.03"))
        seed = os.getenv("DELIBERATION_MF_SEED", "")
        self.MF_SEED: Optional[int] = int(seed) if seed.strip() else None
        self.MF_LOG_EVERY = int(os.getenv("DELIBERATION_MF_LOG_EVERY", "10"))

        # Opinion grouping
        self.CLUSTER_MAX_K = int(os.getenv("DELIBERATION_CLUSTER_MAX_K", "5"))

        # Validate configuration
        self._validate()

    def _parse_learning_rates(self, rates_str: str) -> List[float]:
        """Parse comma-separated learning rate schedule"""
        if not rates_str:
            return []
        try:
            return [float(rate.strip()) for rate in rates_str.split(",") if rate.strip()]
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid learning rate schedule: {rates_str}",
                config_key="DELIBERATION_MF_LEARNING_RATES",
            ) from e

    def _validate(self):
        """Validate configuration values"""
        if self.MIN_VOTE_COUNT < 0:
            raise ConfigurationError(
                "DELIBERATION_MIN_VOTE_COUNT must be non-negative",
                config_key="DELIBERATION_MIN_VOTE_COUNT",
            )

        if self.MAX_SAMPLE_SIZE <= 0:
            raise ConfigurationError(
                "DELIBERATION_MAX_SAMPLE_SIZE must be positive",
                config_key="DELIBERATION_MAX_SAMPLE_SIZE",
            )

        if self.MF_FACTORS <= 0:
            raise ConfigurationError(
                "DELIBERATION_MF_FACTORS must be positive",
                config_key="DELIBERATION_MF_FACTORS",
            )

        if self.MF_EPOCHS <= 0:
            raise ConfigurationError(
                "DELIBERATION_MF_EPOCHS must be positive",
                config_key="DELIBERATION_MF_EPOCHS",
            )

        if not self.MF_LEARNING_RATES or any(rate <= 0 for rate in self.MF_LEARNING_RATES):
            raise ConfigurationError(
                "DELIBERATION_MF_LEARNING_RATES must be a non-empty list of positive values",
                config_key="DELIBERATION_MF_LEARNING_RATES",
            )

        if self.MF_LAMBDA_I < 0 or self.MF_LAMBDA_F < 0:
            raise ConfigurationError(
                "Regularization strengths must be non-negative",
                config_key="DELIBERATION_MF_LAMBDA_I",
            )

        if self.MF_LOG_EVERY <= 0:
            raise ConfigurationError(
                "DELIBERATION_MF_LOG_EVERY must be positive",
                config_key="DELIBERATION_MF_LOG_EVERY",
            )

        if self.CLUSTER_MAX_K < 2:
            raise ConfigurationError(
                "DELIBERATION_CLUSTER_MAX_K must be at least 2",
                config_key="DELIBERATION_CLUSTER_MAX_K",
            )

    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.DEBUG

    def summary(self) -> dict:
        """Get a summary of current configuration"""
        return {
            "log_level": self.LOG_LEVEL,
            "debug": self.DEBUG,
            "min_vote_count": self.MIN_VOTE_COUNT,
            "max_sample_size": self.MAX_SAMPLE_SIZE,
            "mf_factors": self.MF_FACTORS,
            "mf_epochs": self.MF_EPOCHS,
            "mf_learning_rates": list(self.MF_LEARNING_RATES),
            "mf_lambda_i": self.MF_LAMBDA_I,
            "mf_lambda_f": self.MF_LAMBDA_F,
            "mf_seed": self.MF_SEED,
            "mf_log_every": self.MF_LOG_EVERY,
            "cluster_max_k": self.CLUSTER_MAX_K,
            "is_development": self.is_development(),
        }


def configure_structlog(is_development: bool = False, log_level: str = "INFO"):
    """Configure structlog for structured logging

    Args:
        is_development: If True, use human-readable console output. If False, use JSON.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if is_development:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )


# Global configuration instance
config = Config()

configure_structlog(
    is_development=config.is_development(),
    log_level=config.LOG_LEVEL
)
