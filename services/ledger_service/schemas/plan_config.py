"""Typed plan bonus configuration.

A plan's ``bonus_config`` (and every subscription's ``config_snapshot``) is a
JSON object keyed by bonus kind::

    {
        "progressive": {"rate": "0.5", "start_month": 4, "max_percentage": "20",
                        "overrides": {"4": "5.0"}},
        "milestone": {"milestones": [{"month": 12, "amount_paise": 100000}]},
        "consistency": {"amount_per_payment_paise": 5000,
                        "streaks": [{"months": 6, "multiplier": "1.5"}]},
        "celebration": {"birthday_amount_paise": 10000,
                        "anniversary_amount_paise": 50000,
                        "milestones": [{"metric": "payment_count", "threshold": 12,
                                        "amount_paise": 25000}]},
        "referral": {"tiers": [{"min_referrals": 3, "multiplier": "1.5"}]},
        "profit_share": {"percentage": "5"}
    }

Each section is validated at read time into its own variant, tagged by
``kind``. Missing keys take the defaults below.
"""

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _ConfigSection(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ProgressiveConfig(_ConfigSection):
    kind: Literal["progressive"] = "progressive"
    rate: Decimal = Field(default=Decimal("0.5"), ge=0)
    start_month: int = Field(default=4, ge=1)
    max_percentage: Decimal = Field(default=Decimal("20"), ge=0)
    # month -> percentage, exact-match overrides
    overrides: dict[int, Decimal] = Field(default_factory=dict)


class MilestoneEntry(_ConfigSection):
    month: int = Field(..., ge=1)
    amount_paise: int = Field(..., ge=0)


class MilestoneConfig(_ConfigSection):
    kind: Literal["milestone"] = "milestone"
    milestones: list[MilestoneEntry] = Field(default_factory=list)

    @field_validator("milestones")
    @classmethod
    def unique_months(cls, v: list[MilestoneEntry]) -> list[MilestoneEntry]:
        months = [m.month for m in v]
        if len(months) != len(set(months)):
            raise ValueError("milestone months must be unique")
        return v


class StreakEntry(_ConfigSection):
    months: int = Field(..., ge=0)
    multiplier: Decimal = Field(..., gt=0)


class ConsistencyConfig(_ConfigSection):
    kind: Literal["consistency"] = "consistency"
    amount_per_payment_paise: int = Field(default=0, ge=0)
    streaks: list[StreakEntry] = Field(default_factory=list)


MilestoneMetric = Literal[
    "payment_count",
    "tenure_months",
    "total_invested",
    "referral_count",
    "streak_months",
    "zero_missed_payments",
]


class CelebrationMilestone(_ConfigSection):
    """A one-time award once ``metric`` reaches ``threshold``.

    ``total_invested`` thresholds are paise; every other metric is a count.
    Percentage awards are a share of the subscription's instalment amount.
    """

    name: Optional[str] = None
    metric: MilestoneMetric
    threshold: int = Field(..., ge=1)
    bonus_type: Literal["fixed", "percentage"] = "fixed"
    amount_paise: int = Field(default=0, ge=0)
    percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class CelebrationConfig(_ConfigSection):
    kind: Literal["celebration"] = "celebration"
    birthday_amount_paise: int = Field(default=0, ge=0)
    anniversary_amount_paise: int = Field(default=0, ge=0)
    milestones: list[CelebrationMilestone] = Field(default_factory=list)


class ReferralTier(_ConfigSection):
    min_referrals: int = Field(..., ge=0)
    multiplier: Decimal = Field(..., gt=0)


class ReferralConfig(_ConfigSection):
    kind: Literal["referral"] = "referral"
    tiers: list[ReferralTier] = Field(default_factory=list)


class ProfitShareConfig(_ConfigSection):
    kind: Literal["profit_share"] = "profit_share"
    percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)


BonusConfig = Annotated[
    Union[
        ProgressiveConfig,
        MilestoneConfig,
        ConsistencyConfig,
        CelebrationConfig,
        ReferralConfig,
        ProfitShareConfig,
    ],
    Field(discriminator="kind"),
]

_bonus_config_adapter: TypeAdapter[BonusConfig] = TypeAdapter(BonusConfig)

BONUS_CONFIG_KINDS = (
    "progressive",
    "milestone",
    "consistency",
    "celebration",
    "referral",
    "profit_share",
)


def load_bonus_config(config: Optional[dict[str, Any]], kind: str) -> Optional[BonusConfig]:
    """Return the validated ``kind`` section of a plan config, or None if absent.

    Raises ``pydantic.ValidationError`` when the section is present but invalid.
    """
    if kind not in BONUS_CONFIG_KINDS:
        raise ValueError(f"Unknown bonus config kind: {kind}")
    if not config:
        return None
    section = config.get(kind)
    if section is None:
        return None
    if not isinstance(section, dict):
        # Lets pydantic report the type error.
        return _bonus_config_adapter.validate_python(section)
    return _bonus_config_adapter.validate_python({**section, "kind": kind})
