"""
Configuration management (SSOT).

This module defines ALL configuration for the matching core.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Scoring weights are the per-axis maxima; totals are normalized to 0-100
- auto_match_threshold >= review_threshold
- Amounts are compared in minor units; base_currency is the bank currency
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class ScoringWeights:
    """Maximum points per scoring axis."""

    reference: float = 10.0
    amount: float = 30.0
    date: float = 30.0
    vendor: float = 25.0
    currency: float = 5.0

    @property
    def total(self) -> float:
        return self.reference + self.amount + self.date + self.vendor + self.currency


@dataclass
class ScoringConfig:
    """ScoreEngine settings."""

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    # Currency of transaction.amount_minor
    base_currency: str = "ILS"
    # Relative difference (%) at which the amount axis keeps half its points
    amount_decay_percent: float = 5.0
    amount_decay_percent_converted: float = 8.0
    # Relative difference (%) above which the pair is disqualified
    amount_hard_mismatch_percent: float = 15.0
    amount_hard_mismatch_percent_converted: float = 25.0
    # Date distance (days) that still earns full points
    date_full_credit_days: int = 1
    # Date distance (days) after which the date axis earns nothing
    date_zero_credit_days: int = 10
    # Date distance (days) beyond which the pair is disqualified
    date_hard_cutoff_days: int = 60
    # Applied when both sides carry vendor text and nothing matches
    vendor_mismatch_penalty: float = -10.0
    # Share of the currency weight earned when a conversion was needed
    converted_currency_ratio: float = 0.4
    # Applied when no rate exists for a required conversion
    currency_unconvertible_penalty: float = -5.0


@dataclass
class MatchingConfig:
    """Candidate filtering and auto-match settings."""

    # Score at or above which a match is applied automatically (0-100)
    auto_match_threshold: int = 85
    # Score at or above which a match is offered for review (0-100)
    review_threshold: int = 50
    # Candidate date window around the line item date (days)
    lookback_days: int = 30
    lookforward_days: int = 30
    # Candidates kept per line item
    max_candidates: int = 10
    # Parallel scoring across line items (1 = sequential)
    max_workers: int = 1
    # Oldest stored rate accepted when the requested date has none (days)
    rate_fallback_days: int = 7


@dataclass
class CCBankConfig:
    """Credit-card ↔ bank charge reconciliation settings."""

    # Max days between card charge date and bank debit date
    date_tolerance_days: int = 3
    # Max relative difference between card total and bank debit (%)
    amount_tolerance_percent: float = 5.0


@dataclass
class Config:
    """Application configuration (SSOT)."""

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    cc_bank: CCBankConfig = field(default_factory=CCBankConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        weights = self.scoring.weights
        for name in ("reference", "amount", "date", "vendor", "currency"):
            if getattr(weights, name) < 0:
                errors.append(f"scoring.weights.{name} must be >= 0")
        if weights.total <= 0:
            errors.append("scoring.weights must sum to a positive value")

        if not self.scoring.base_currency:
            errors.append("scoring.base_currency is required")
        if self.scoring.vendor_mismatch_penalty > 0:
            errors.append("scoring.vendor_mismatch_penalty must be <= 0")
        if self.scoring.currency_unconvertible_penalty > 0:
            errors.append("scoring.currency_unconvertible_penalty must be <= 0")
        for name in ("amount_decay_percent", "amount_decay_percent_converted"):
            if getattr(self.scoring, name) <= 0:
                errors.append(f"scoring.{name} must be > 0")
        for name in ("amount_hard_mismatch_percent", "amount_hard_mismatch_percent_converted"):
            if getattr(self.scoring, name) < 0:
                errors.append(f"scoring.{name} must be >= 0")
        if self.scoring.date_full_credit_days < 0:
            errors.append("scoring.date_full_credit_days must be >= 0")
        if self.scoring.date_zero_credit_days < self.scoring.date_full_credit_days:
            errors.append("scoring.date_zero_credit_days must be >= date_full_credit_days")
        if self.scoring.date_hard_cutoff_days < self.scoring.date_zero_credit_days:
            errors.append("scoring.date_hard_cutoff_days must be >= date_zero_credit_days")

        # Thresholds must be sensible
        for name in ("auto_match_threshold", "review_threshold"):
            value = getattr(self.matching, name)
            if not 0 <= value <= 100:
                errors.append(f"matching.{name} must be between 0 and 100")
        if self.matching.auto_match_threshold < self.matching.review_threshold:
            errors.append("auto_match_threshold must be >= review_threshold")
        if self.matching.max_workers < 1:
            errors.append("matching.max_workers must be >= 1")

        if self.cc_bank.date_tolerance_days < 0:
            errors.append("cc_bank.date_tolerance_days must be >= 0")
        if self.cc_bank.amount_tolerance_percent <= 0:
            errors.append("cc_bank.amount_tolerance_percent must be > 0")

        return errors


def _env_override(name: str, current, cast):
    """Return the env value cast to the target type, or the current value."""
    raw = os.environ.get(name, "")
    if not raw:
        return current
    try:
        return cast(raw)
    except ValueError:
        return current  # Keep file/default value


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - INVOICE_MATCHER_DB (state database path)
    - INVOICE_MATCHER_BASE_CURRENCY
    - INVOICE_MATCHER_AUTO_THRESHOLD
    - INVOICE_MATCHER_REVIEW_THRESHOLD
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Scoring config
    scoring_data = data.get("scoring", {})
    weights_data = scoring_data.get("weights", {})
    weights = ScoringWeights(
        reference=weights_data.get("reference", 10.0),
        amount=weights_data.get("amount", 30.0),
        date=weights_data.get("date", 30.0),
        vendor=weights_data.get("vendor", 25.0),
        currency=weights_data.get("currency", 5.0),
    )
    scoring = ScoringConfig(
        weights=weights,
        base_currency=os.environ.get(
            "INVOICE_MATCHER_BASE_CURRENCY", scoring_data.get("base_currency", "ILS")
        ).upper(),
        amount_decay_percent=scoring_data.get("amount_decay_percent", 5.0),
        amount_decay_percent_converted=scoring_data.get("amount_decay_percent_converted", 8.0),
        amount_hard_mismatch_percent=scoring_data.get("amount_hard_mismatch_percent", 15.0),
        amount_hard_mismatch_percent_converted=scoring_data.get(
            "amount_hard_mismatch_percent_converted", 25.0
        ),
        date_full_credit_days=scoring_data.get("date_full_credit_days", 1),
        date_zero_credit_days=scoring_data.get("date_zero_credit_days", 10),
        date_hard_cutoff_days=scoring_data.get("date_hard_cutoff_days", 60),
        vendor_mismatch_penalty=scoring_data.get("vendor_mismatch_penalty", -10.0),
        converted_currency_ratio=scoring_data.get("converted_currency_ratio", 0.4),
        currency_unconvertible_penalty=scoring_data.get("currency_unconvertible_penalty", -5.0),
    )

    # Matching config
    matching_data = data.get("matching", {})
    matching = MatchingConfig(
        auto_match_threshold=_env_override(
            "INVOICE_MATCHER_AUTO_THRESHOLD",
            matching_data.get("auto_match_threshold", 85),
            int,
        ),
        review_threshold=_env_override(
            "INVOICE_MATCHER_REVIEW_THRESHOLD",
            matching_data.get("review_threshold", 50),
            int,
        ),
        lookback_days=matching_data.get("lookback_days", 30),
        lookforward_days=matching_data.get("lookforward_days", 30),
        max_candidates=matching_data.get("max_candidates", 10),
        max_workers=matching_data.get("max_workers", 1),
        rate_fallback_days=matching_data.get("rate_fallback_days", 7),
    )

    # CC ↔ bank config
    cc_data = data.get("cc_bank", {})
    cc_bank = CCBankConfig(
        date_tolerance_days=cc_data.get("date_tolerance_days", 3),
        amount_tolerance_percent=cc_data.get("amount_tolerance_percent", 5.0),
    )

    # State DB
    state_db = os.environ.get("INVOICE_MATCHER_DB", data.get("state_db_path", "data/state.db"))

    return Config(
        scoring=scoring,
        matching=matching,
        cc_bank=cc_bank,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Invoice matcher configuration
#
# Scores are reported on a 0-100 scale. Weights are the maximum points per
# axis; the total is normalized against their sum (the reference weight is
# left out when no reference matched).

scoring:
  base_currency: "ILS"                    # Currency of bank amounts
  weights:
    reference: 10
    amount: 30
    date: 30
    vendor: 25
    currency: 5
  amount_decay_percent: 5.0               # % difference that halves amount points
  amount_decay_percent_converted: 8.0
  amount_hard_mismatch_percent: 15.0      # Above this the pair is disqualified
  amount_hard_mismatch_percent_converted: 25.0
  date_full_credit_days: 1
  date_zero_credit_days: 10
  date_hard_cutoff_days: 60               # Beyond this the pair is disqualified
  vendor_mismatch_penalty: -10
  converted_currency_ratio: 0.4
  currency_unconvertible_penalty: -5

matching:
  auto_match_threshold: 85                # Applied automatically
  review_threshold: 50                    # Offered as a candidate
  lookback_days: 30
  lookforward_days: 30
  max_candidates: 10
  max_workers: 1
  rate_fallback_days: 7

cc_bank:
  date_tolerance_days: 3
  amount_tolerance_percent: 5.0

state_db_path: "data/state.db"
"""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
