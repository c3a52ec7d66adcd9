"""Centralized research settings powered by Pydantic.

Environment matrix:

| Section  | Environment Variable              | Default | Purpose                                         |
|----------|-----------------------------------|---------|-------------------------------------------------|
| Risk     | `RISK_STOP_LOSS`                  | `None`  | Cumulative pnl loss that forces a flat exit     |
| Risk     | `RISK_TAKE_PROFIT`                | `None`  | Cumulative pnl gain that forces a flat exit     |
| Risk     | `RISK_MIN_BARS_BETWEEN_TRADES`    | `2`     | Cooldown in bars after any position change      |
| Risk     | `RISK_MAX_TRADES`                 | `None`  | Cap on trades per backtest pass                 |
| Costs    | `COST_SPREAD_BPS`                 | `0`     | Half-spread paid per unit of position change    |
| Costs    | `COST_SLIPPAGE_BPS`               | `0`     | Slippage per unit of position change            |
| Costs    | `COST_MAKER_REBATE_BPS`           | `0`     | Rebate credited per unit of position change     |
| Folds    | `IDEA_MIN_TRAIN_BARS`             | `70`    | Bars in the first training window               |
| Folds    | `IDEA_FOLD_TEST_BARS`             | `24`    | Bars in every test window                       |
| Folds    | `IDEA_FOLD_STEP_BARS`             | `10`    | Growth of the training window per fold          |
| Folds    | `IDEA_MAX_FOLDS`                  | `8`     | Upper bound on folds per market                 |
| Factory  | `IDEA_MIN_BARS`                   | `100`   | Markets with fewer bars are skipped             |
| Factory  | `IDEA_MAX_CANDIDATES_PER_FAMILY`  | `150`   | Deterministic cap on each family's grid         |
| Factory  | `IDEA_TOP_PER_MARKET`             | `8`     | Ranked candidates kept per market               |
| Factory  | `IDEA_PORTFOLIO_TOP_K`            | `20`    | Candidates admitted to the portfolio            |
| Factory  | `IDEA_MEMORY_STRENGTH`            | `0.0`   | Weight of regime memory in candidate scores     |
| Backtest | `BACKTEST_TRAIN_SPLIT`            | `0.7`   | Walk-forward train fraction                     |
| Backtest | `BACKTEST_MIN_BARS`               | `30`    | Minimum bars accepted by the walk-forward CLI   |
| Sentry   | `SENTRY_DSN`                      | `None`  | Sentry ingest DSN                               |
| Sentry   | `SENTRY_TRACES_SAMPLE_RATE`       | `0.0`   | Fraction of transactions to trace               |
| Sentry   | `SENTRY_ENVIRONMENT`              | `None`  | Deployment environment label                    |

Sweep YAML keys override these values per run. Settings are read from the
environment on every ``get_settings()`` call and are read-only.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from foundry.backtest.types import CostConfig, FoldConfig, RiskConfig


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RiskSettings(_SettingsBase):
    """Risk overlay applied to every backtest pass."""

    stop_loss: float | None = Field(default=None, alias="RISK_STOP_LOSS")
    take_profit: float | None = Field(default=None, alias="RISK_TAKE_PROFIT")
    min_bars_between_trades: int = Field(default=2, alias="RISK_MIN_BARS_BETWEEN_TRADES")
    max_trades: int | None = Field(default=None, alias="RISK_MAX_TRADES")

    @field_validator("stop_loss", "take_profit", "max_trades", mode="before")
    @classmethod
    def _optional_numbers(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("min_bars_between_trades", mode="before")
    @classmethod
    def _coerce_cooldown(cls, value: int | str | None) -> int:
        if value in (None, ""):
            return 2
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 2

    def to_risk_config(self) -> RiskConfig:
        return RiskConfig(
            stop_loss=self.stop_loss,
            take_profit=self.take_profit,
            min_bars_between_trades=self.min_bars_between_trades,
            max_trades=self.max_trades,
        )


class CostSettings(_SettingsBase):
    """Frictions in basis points per unit of position change."""

    spread_bps: float = Field(default=0.0, alias="COST_SPREAD_BPS")
    slippage_bps: float = Field(default=0.0, alias="COST_SLIPPAGE_BPS")
    maker_rebate_bps: float = Field(default=0.0, alias="COST_MAKER_REBATE_BPS")

    @computed_field
    @property
    def enabled(self) -> bool:
        return any((self.spread_bps, self.slippage_bps, self.maker_rebate_bps))

    def to_cost_config(self) -> CostConfig | None:
        if not self.enabled:
            return None
        return CostConfig(
            spread_bps=self.spread_bps,
            slippage_bps=self.slippage_bps,
            maker_rebate=self.maker_rebate_bps,
        )


class FoldSettings(_SettingsBase):
    """Expanding-window fold layout."""

    min_train_bars: int = Field(default=70, alias="IDEA_MIN_TRAIN_BARS")
    test_bars: int = Field(default=24, alias="IDEA_FOLD_TEST_BARS")
    step_bars: int = Field(default=10, alias="IDEA_FOLD_STEP_BARS")
    max_folds: int = Field(default=8, alias="IDEA_MAX_FOLDS")

    def to_fold_config(self) -> FoldConfig:
        return FoldConfig(
            min_train_bars=self.min_train_bars,
            test_bars=self.test_bars,
            step_bars=self.step_bars,
            max_folds=self.max_folds,
        )


class FactorySettings(_SettingsBase):
    """Defaults for the multi-market idea factory sweep."""

    min_bars: int = Field(default=100, alias="IDEA_MIN_BARS")
    max_candidates_per_family: int = Field(default=150, alias="IDEA_MAX_CANDIDATES_PER_FAMILY")
    top_per_market: int = Field(default=8, alias="IDEA_TOP_PER_MARKET")
    portfolio_top_k: int = Field(default=20, alias="IDEA_PORTFOLIO_TOP_K")
    memory_strength: float = Field(default=0.0, alias="IDEA_MEMORY_STRENGTH")


class BacktestSettings(_SettingsBase):
    train_split: float = Field(default=0.7, alias="BACKTEST_TRAIN_SPLIT")
    min_bars: int = Field(default=30, alias="BACKTEST_MIN_BARS")


class SentrySettings(_SettingsBase):
    """Sentry SDK configuration."""

    dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")
    environment: str | None = Field(default=None, alias="SENTRY_ENVIRONMENT")

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    risk: RiskSettings = Field(default_factory=RiskSettings)
    costs: CostSettings = Field(default_factory=CostSettings)
    folds: FoldSettings = Field(default_factory=FoldSettings)
    factory: FactorySettings = Field(default_factory=FactorySettings)
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


def reload_settings() -> Settings:
    """Alias for get_settings to maintain a consistent API."""
    return get_settings()


def get_risk_settings() -> RiskSettings:
    return get_settings().risk


def get_cost_settings() -> CostSettings:
    return get_settings().costs


def get_fold_settings() -> FoldSettings:
    return get_settings().folds


def get_factory_settings() -> FactorySettings:
    return get_settings().factory


def get_backtest_settings() -> BacktestSettings:
    return get_settings().backtest


def get_sentry_settings() -> SentrySettings:
    return get_settings().sentry


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "RiskSettings",
    "CostSettings",
    "FoldSettings",
    "FactorySettings",
    "BacktestSettings",
    "SentrySettings",
    "get_risk_settings",
    "get_cost_settings",
    "get_fold_settings",
    "get_factory_settings",
    "get_backtest_settings",
    "get_sentry_settings",
]
