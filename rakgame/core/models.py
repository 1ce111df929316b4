from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Type
from uuid import uuid4

from pydantic import BaseModel as PydanticBaseModel, ConfigDict, Field, field_validator

TEMP_ID_PREFIX = "temp-"


def new_temp_id() -> str:
    """Generate a client-side placeholder id for an unconfirmed record"""
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


def is_temp_id(record_id: Optional[str]) -> bool:
    return bool(record_id) and record_id.startswith(TEMP_ID_PREFIX)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Currency(str, Enum):
    THB = "THB"
    AUD = "AUD"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"

class Language(str, Enum):
    EN = "en"
    TH = "th"

class Platform(str, Enum):
    SWITCH = "Switch"
    SWITCH_2 = "Switch 2"
    PS5 = "PS5"
    PS4 = "PS4"
    XBOX_SERIES = "Xbox Series X|S"
    XBOX_ONE = "Xbox One"
    PC = "PC"
    OTHER = "Other"

class GameType(str, Enum):
    DISC = "Disc"
    DIGITAL = "Digital"

class Condition(str, Enum):
    NEW = "New"
    USED = "Used"


class BaseModel(PydanticBaseModel):
    """Base model class for all domain models"""
    model_config = ConfigDict(use_enum_values=True, extra='ignore')

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to a JSON-safe dictionary"""
        return self.model_dump(mode='json')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseModel':
        """Create model from dictionary"""
        return cls.model_validate(data)


class SellerFields(BaseModel):
    """User-editable seller attributes"""
    name: str = Field(min_length=1)
    url: Optional[str] = None
    note: Optional[str] = None

    @field_validator('name')
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Seller name is required")
        return value


class GameFields(BaseModel):
    """User-editable game attributes"""
    seller_id: Optional[str] = None
    title: str = Field(min_length=1)
    platform: Platform
    type: GameType = GameType.DISC
    price: float = Field(ge=0)
    purchase_date: date
    region: Optional[str] = None
    condition: Optional[Condition] = None
    notes: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('title')
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value


class RecordMixin(BaseModel):
    """Identity and ownership stamped by the backend"""
    id: str
    user_id: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_temporary(self) -> bool:
        return is_temp_id(self.id)


class Seller(SellerFields, RecordMixin):
    """A place games are bought from"""
    fields_model: ClassVar[Type[BaseModel]] = SellerFields


class Game(GameFields, RecordMixin):
    """A purchased game, with its seller joined in when known"""
    fields_model: ClassVar[Type[BaseModel]] = GameFields
    seller: Optional[Seller] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', exclude={'seller'})


class UserProfile(BaseModel):
    """User profile model"""
    id: str
    email: str = ""
    currency: Currency = Currency.THB
    language: Language = Language.EN
    created_at: Optional[str] = None


class UserIdentity(BaseModel):
    """The signed-in user as reported by Firebase Auth"""
    id: str
    email: str = ""
    id_token: Optional[str] = Field(default=None, repr=False)
