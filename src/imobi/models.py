"""Pydantic models for property listings and dashboard statistics."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PropertyType(str, Enum):
    """Listing category labels."""

    CASA = "Casa"
    APARTAMENTO = "Apartamento"
    KITNET = "Kitnet"
    SALA = "Sala"
    LOJA = "Loja"
    COMERCIAL = "Comercial"
    GARAGEM = "Garagem"

    @property
    def category(self) -> "Category | None":
        """Super-category this label belongs to."""
        return classify(self)


class Category(str, Enum):
    """Derived super-grouping of property types."""

    RESIDENTIAL = "Residencial"
    COMMERCIAL = "Comercial"


RESIDENTIAL_TYPES: Final = frozenset(
    {PropertyType.CASA, PropertyType.APARTAMENTO, PropertyType.KITNET}
)
COMMERCIAL_TYPES: Final = frozenset(
    {PropertyType.SALA, PropertyType.LOJA, PropertyType.COMERCIAL, PropertyType.GARAGEM}
)
assert not RESIDENTIAL_TYPES & COMMERCIAL_TYPES


def classify(property_type: PropertyType) -> Category | None:
    """Map a property type to its category, or None if it is unclassified."""
    if property_type in RESIDENTIAL_TYPES:
        return Category.RESIDENTIAL
    if property_type in COMMERCIAL_TYPES:
        return Category.COMMERCIAL
    return None


class PropertyStatus(str, Enum):
    """Leasing status of a listing. Any status may follow any other."""

    AVAILABLE = "Disponível"
    IN_LEASING_PROCESS = "Em processo de locação"
    VACATING = "Desocupando"
    SUSPENDED = "Suspenso"
    LEASED = "Locado"


class FormStatus(str, Enum):
    """Tenant application paperwork ("ficha") status."""

    NO_FORM = "Sem ficha"
    IN_REVIEW = "Em andamento"
    APPROVED = "Aprovada"


COLLECTED_BY_UNKNOWN: Final = "Não informado"


def now_ms() -> int:
    """Current time in milliseconds since the epoch."""
    return int(datetime.now(UTC).timestamp() * 1000)


def ms_to_datetime(value: int) -> datetime:
    """Convert a millisecond timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)


# Document field names shared with the dashboard's Firestore collection
PERSISTED_NAMES: Final[dict[str, str]] = {
    "code": "codigo",
    "address": "endereco",
    "neighborhood": "bairro",
    "property_type": "tipo",
    "value": "valor",
    "description": "descricao",
    "note": "observacao",
    "form_status": "fichaStatus",
    "form_updated_at": "fichaDataAtualizacao",
    "collected_by": "captador",
    "vacated_at": "vagoEm",
    "released_at": "liberadoEm",
    "last_updated_at": "dataAtualizacao",
}


def persisted_name(field_name: str) -> str:
    return PERSISTED_NAMES.get(field_name, field_name)


def _blank_text(v: object) -> object:
    return "" if v is None else v


def _default_form_status(v: object) -> object:
    return FormStatus.NO_FORM if v is None or v == "" else v


def _default_collected_by(v: object) -> object:
    if v is None or (isinstance(v, str) and not v.strip()):
        return COLLECTED_BY_UNKNOWN
    return v


class PropertyDraft(BaseModel):
    """A listing as submitted for creation (no id, no update stamp).

    Fields are populated by Python name or by their persisted (Portuguese)
    document name; dump with ``by_alias=True`` to get the document shape.
    """

    model_config = ConfigDict(frozen=True, alias_generator=persisted_name, populate_by_name=True)

    code: str = Field(description="Human-assigned listing code")
    address: str
    neighborhood: str
    property_type: PropertyType
    value: float = Field(ge=0, description="Monthly rent or asking price")
    description: str = ""
    note: str = ""
    status: PropertyStatus = PropertyStatus.AVAILABLE
    form_status: FormStatus = FormStatus.NO_FORM
    form_updated_at: int | None = None
    collected_by: str = COLLECTED_BY_UNKNOWN
    vacated_at: int | None = None
    released_at: int | None = None

    @field_validator("description", "note", mode="before")
    @classmethod
    def blank_text(cls, v: object) -> object:
        """Absent free text is stored as an empty string."""
        return _blank_text(v)

    @field_validator("form_status", mode="before")
    @classmethod
    def default_form_status(cls, v: object) -> object:
        return _default_form_status(v)

    @field_validator("collected_by", mode="before")
    @classmethod
    def default_collected_by(cls, v: object) -> object:
        return _default_collected_by(v)


class Property(PropertyDraft):
    """A stored listing."""

    id: str = Field(min_length=1)
    last_updated_at: int = Field(ge=0, description="Milliseconds since epoch")


# Fields a stored listing can never hold as null
_NON_NULLABLE: Final = ("code", "address", "neighborhood", "property_type", "value", "status")


class PropertyUpdate(BaseModel):
    """Partial update for a stored listing.

    Unknown keys (including ``id``) are rejected, as is an explicit None for
    a field the stored record requires. Nullable text and form fields are
    normalized the same way as on creation. ``last_updated_at`` is accepted
    for convenience but the store always overwrites it.
    """

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=persisted_name, populate_by_name=True
    )

    code: str | None = None
    address: str | None = None
    neighborhood: str | None = None
    property_type: PropertyType | None = None
    value: float | None = Field(default=None, ge=0)
    description: str | None = None
    note: str | None = None
    status: PropertyStatus | None = None
    form_status: FormStatus | None = None
    form_updated_at: int | None = None
    collected_by: str | None = None
    vacated_at: int | None = None
    released_at: int | None = None
    last_updated_at: int | None = None

    @field_validator("description", "note", mode="before")
    @classmethod
    def blank_text(cls, v: object) -> object:
        return _blank_text(v)

    @field_validator("form_status", mode="before")
    @classmethod
    def default_form_status(cls, v: object) -> object:
        return _default_form_status(v)

    @field_validator("collected_by", mode="before")
    @classmethod
    def default_collected_by(cls, v: object) -> object:
        return _default_collected_by(v)

    @model_validator(mode="after")
    def reject_null_required(self) -> "PropertyUpdate":
        nulled = [
            name
            for name in _NON_NULLABLE
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(nulled)}")
        return self

    def changes(self) -> dict[str, Any]:
        """Explicitly set fields, minus the store-owned stamp."""
        return self.model_dump(exclude_unset=True, exclude={"last_updated_at"})


class DashboardStats(BaseModel):
    """Counts shown on the dashboard cards."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    residential: int = 0
    commercial: int = 0
    available: int = 0
    in_leasing_process: int = 0
    vacating: int = 0
    suspended: int = 0
    leased: int = 0
