import enum
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Enum,
    Index,
    Integer,
    Numeric,
    UniqueConstraint,
    Uuid,
    event,
    inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from housematch.core.database import BaseModel, UTCDateTime, utcnow
from housematch.core.weights import DEFAULT_WEIGHTS, CompatibilityFactors

JSONType = JSON().with_variant(JSONB(), "postgresql")


class MatchTypeEnum(str, enum.Enum):

    ROOMMATE = "roommate"
    HOUSING = "housing"
    MUTUAL = "mutual"


class MatchStatusEnum(str, enum.Enum):

    PENDING = "pending"
    MATCHED = "matched"
    REJECTED = "rejected"
    EXPIRED = "expired"
    BLOCKED = "blocked"


class MatchActionEnum(str, enum.Enum):

    NONE = "none"
    LIKED = "liked"
    PASSED = "passed"
    SUPER_LIKED = "super_liked"

    @property
    def is_positive(self) -> bool:
        return self in (MatchActionEnum.LIKED, MatchActionEnum.SUPER_LIKED)


class TargetTypeEnum(str, enum.Enum):

    USER = "user"
    PROPERTY = "property"

TERMINAL_STATUSES = frozenset({
    MatchStatusEnum.REJECTED,
    MatchStatusEnum.EXPIRED,
    MatchStatusEnum.BLOCKED,
})

FACTOR_COLUMNS: dict[str, str] = {
    "location": "location_score",
    "budget": "budget_score",
    "lifestyle": "lifestyle_score",
    "preferences": "preferences_score",
    "schedule": "schedule_score",
    "cleanliness": "cleanliness_score",
    "social_level": "social_level_score",
}


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda x: [e.value for e in x])

_action_type = _enum(MatchActionEnum, "match_action_enum")


def derive_status(
    user_action: MatchActionEnum,
    target_action: MatchActionEnum,
) -> MatchStatusEnum:

    if MatchActionEnum.PASSED in (user_action, target_action):
        return MatchStatusEnum.REJECTED
    if user_action.is_positive and target_action.is_positive:
        return MatchStatusEnum.MATCHED
    return MatchStatusEnum.PENDING


class Match(BaseModel):

    __tablename__ = "matches"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    target_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    target_type: Mapped[TargetTypeEnum] = mapped_column(
        _enum(TargetTypeEnum, "target_type_enum"),
        nullable=False,
    )
    match_type: Mapped[MatchTypeEnum] = mapped_column(
        _enum(MatchTypeEnum, "match_type_enum"),
        nullable=False,
    )

    status: Mapped[MatchStatusEnum] = mapped_column(
        _enum(MatchStatusEnum, "match_status_enum"),
        default=MatchStatusEnum.PENDING,
        nullable=False,
    )
    user_action: Mapped[MatchActionEnum] = mapped_column(
        _action_type,
        default=MatchActionEnum.NONE,
        nullable=False,
    )
    target_action: Mapped[MatchActionEnum] = mapped_column(
        _action_type,
        default=MatchActionEnum.NONE,
        nullable=False,
    )

    compatibility_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    location_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    budget_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifestyle_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    preferences_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    schedule_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cleanliness_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    social_level_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    location_proximity: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    budget_compatibility: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state_match: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    match_reasons: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    common_interests: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    shared_preferences: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_interaction_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    matched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    response_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    conversation_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "compatibility_score >= 0 AND compatibility_score <= 100",
            name="check_compatibility_score_range",
        ),
        UniqueConstraint("user_id", "target_id", "target_type", name="uq_match_user_target"),
        Index("idx_matches_user_status", "user_id", "status"),
        Index("idx_matches_target", "target_id", "target_type"),
        Index("idx_matches_status_expires", "status", "expires_at"),
        Index("idx_matches_user_created", "user_id", "created_at"),
    )

    @property
    def factors(self) -> CompatibilityFactors:
        return CompatibilityFactors(
            **{name: getattr(self, column) or 0 for name, column in FACTOR_COLUMNS.items()}
        )

    def calculate_compatibility(self) -> int:

        self.compatibility_score = self.factors.weighted_overall(DEFAULT_WEIGHTS)
        return self.compatibility_score

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.status == MatchStatusEnum.EXPIRED:
            return True
        return self.expires_at < (now or utcnow())

    def is_mutual_match(self) -> bool:
        return self.user_action.is_positive and self.target_action.is_positive

    def extended_expiry(self, days: int) -> datetime:
        return self.expires_at + timedelta(days=days)

    def involves(self, user_id: uuid.UUID) -> bool:
        if self.user_id == user_id:
            return True
        return self.target_type == TargetTypeEnum.USER and self.target_id == user_id

    def __repr__(self) -> str:
        return (
            f"<Match(id={self.id}, user_id={self.user_id}, target_id={self.target_id}, "
            f"score={self.compatibility_score}, status={self.status})>"
        )


def factor_values(factors: CompatibilityFactors) -> dict[str, Any]:
    """
    Column values for a set of factors, overall included.

    Rows are inserted and moved through Core statements, which skip ORM
    flush events, so those writes carry the overall from here.
    """
    values: dict[str, Any] = {
        column: getattr(factors, name) for name, column in FACTOR_COLUMNS.items()
    }
    values["compatibility_score"] = factors.weighted_overall(DEFAULT_WEIGHTS)
    return values


# factor changes made through the ORM, as in a rescore
@event.listens_for(Match, "before_update")
def _recompute_on_update(mapper, connection, target: Match) -> None:
    state = inspect(target)
    if any(state.attrs[column].history.has_changes() for column in FACTOR_COLUMNS.values()):
        target.calculate_compatibility()
