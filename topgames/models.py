"""Entity records, create schemas and typed patches for the catalog.

Records are what the storage layer hands back to callers.  Create schemas
describe what a caller may supply when inserting; unknown keys are dropped,
so a client-supplied ``rating`` on a game or ``is_approved`` on a review
never reaches the store.  Patch schemas carry only the mutable fields of an
entity; ``model_dump(exclude_unset=True)`` yields the fields to merge.
"""
import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Type, TypeVar, Union

from pydantic import (
    BaseModel, ConfigDict, EmailStr, Field, ValidationError as PydanticValidationError,
    field_validator, model_validator,
)

from .errors import ValidationError

SchemaT = TypeVar('SchemaT', bound=BaseModel)

MIN_REVIEW_RATING = 1
MAX_REVIEW_RATING = 5


class Genre(str, Enum):
    """Closed set of genre tags a game may carry."""
    ACTION = 'action'
    ADVENTURE = 'adventure'
    RPG = 'rpg'
    STRATEGY = 'strategy'
    SIMULATION = 'simulation'
    SPORTS = 'sports'
    RACING = 'racing'
    PUZZLE = 'puzzle'
    SHOOTER = 'shooter'
    FIGHTING = 'fighting'
    PLATFORMER = 'platformer'
    SURVIVAL = 'survival'
    HORROR = 'horror'
    OTHER = 'other'


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the form every backend stores."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def day_key(value: Union[datetime.date, datetime.datetime, str]) -> datetime.date:
    """Reduce *value* to its calendar day, discarding time-of-day.

    This is the single "same calendar day" comparison used by every
    backend.  Aware datetimes keep the calendar date of their own offset;
    no timezone conversion happens.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}") from exc
    raise ValidationError(f"Invalid date: {value!r}")


def parse(schema: Type[SchemaT], data: Any) -> SchemaT:
    """Validate *data* (dict or model) against *schema*.

    Raises:
        ValidationError: when pydantic rejects the input.
    """
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    if data is None:
        data = {}
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc) from exc


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class User(Record):
    id: int
    username: str
    password: str = Field(exclude=True, repr=False)
    email: str
    full_name: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = False
    created_at: datetime.datetime

    def public(self) -> Dict[str, Any]:
        """Fields safe to show next to another entity (activity, reviews)."""
        return {
            'id': self.id,
            'username': self.username,
            'full_name': self.full_name,
            'is_admin': self.is_admin,
        }


class Game(Record):
    id: int
    title: str
    description: str
    genre: Genre
    developer: str
    image_url: str
    rating: float = 0.0
    release_date: Optional[datetime.datetime] = None
    is_featured: bool = False
    is_trending: bool = False
    created_at: datetime.datetime
    updated_at: datetime.datetime


class Review(Record):
    id: int
    content: str
    rating: int
    game_id: int
    user_id: int
    is_approved: bool = False
    created_at: datetime.datetime

    @property
    def status(self) -> str:
        """``'approved'`` or ``'pending'``; rejected reviews read as pending."""
        return 'approved' if self.is_approved else 'pending'


class Favorite(Record):
    id: int
    user_id: int
    game_id: int
    created_at: datetime.datetime


class ActivityLog(Record):
    id: int
    action: str
    user_id: Optional[int] = None
    details: Optional[str] = None
    created_at: datetime.datetime


class Analytics(Record):
    id: int
    date: datetime.date
    total_visits: int = 0
    new_users: int = 0
    active_users: int = 0
    created_at: datetime.datetime


# ---------------------------------------------------------------------------
# Create schemas
# ---------------------------------------------------------------------------

class CreateSchema(BaseModel):
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)


class UserCreate(CreateSchema):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, repr=False)
    email: EmailStr
    full_name: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = False


class GameCreate(CreateSchema):
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    genre: Genre
    developer: str = Field(min_length=1)
    image_url: str = Field(min_length=1)
    release_date: Optional[datetime.datetime] = None
    is_featured: bool = False
    is_trending: bool = False


class ReviewCreate(CreateSchema):
    content: str = Field(min_length=1)
    rating: int = Field(ge=MIN_REVIEW_RATING, le=MAX_REVIEW_RATING)
    game_id: int
    user_id: int


class FavoriteCreate(CreateSchema):
    user_id: int
    game_id: int


class ActivityLogCreate(CreateSchema):
    action: str = Field(min_length=1)
    user_id: Optional[int] = None
    details: Optional[str] = None


class AnalyticsDelta(CreateSchema):
    """Counters to add into a daily bucket; absent fields add nothing."""
    total_visits: int = 0
    new_users: int = 0
    active_users: int = 0

    @field_validator('total_visits', 'new_users', 'active_users', mode='before')
    @classmethod
    def none_is_zero(cls, value):
        return 0 if value is None else value


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------

class Patch(BaseModel):
    """Partial update: only fields explicitly set are merged.

    Fields listed in ``nullable_fields`` may be explicitly cleared with ``None``;
    every other field rejects ``None``.
    """
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode='after')
    def reject_nulls(self):
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"{name} may not be null")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UserPatch(Patch):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({'full_name', 'avatar'})

    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    password: Optional[str] = Field(default=None, min_length=1, repr=False)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: Optional[bool] = None


class GamePatch(Patch):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({'release_date'})

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    genre: Optional[Genre] = None
    developer: Optional[str] = Field(default=None, min_length=1)
    image_url: Optional[str] = Field(default=None, min_length=1)
    release_date: Optional[datetime.datetime] = None
    is_featured: Optional[bool] = None
    is_trending: Optional[bool] = None


class ReviewPatch(Patch):
    content: Optional[str] = Field(default=None, min_length=1)
    rating: Optional[int] = Field(default=None, ge=MIN_REVIEW_RATING, le=MAX_REVIEW_RATING)
    is_approved: Optional[bool] = None

    def touches_rating(self) -> bool:
        """True when the change can alter the game's aggregate rating."""
        return bool({'rating', 'is_approved'} & self.model_fields_set)


class GenreFilter(BaseModel):
    genre: Genre


def parse_genre(value: Union[Genre, str]) -> Genre:
    """Validate a genre tag, raising ValidationError for unknown values."""
    return parse(GenreFilter, {'genre': value}).genre
