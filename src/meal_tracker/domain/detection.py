"""Domain models for photo-based meal detection."""

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MealComponent(BaseModel):
    """Single detected food component with its nutrition values."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    weight_grams: float = Field(default=0.0, ge=0.0, alias="weight_g")
    energy_kcal: float = Field(default=0.0, ge=0.0, alias="energy_kcal")
    protein_grams: float = Field(default=0.0, ge=0.0, alias="protein_g")
    fat_grams: float = Field(default=0.0, ge=0.0, alias="fat_g")
    carb_grams: float = Field(default=0.0, ge=0.0, alias="carbs_g")

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator(
        "weight_grams",
        "energy_kcal",
        "protein_grams",
        "fat_grams",
        "carb_grams",
        mode="before",
    )
    @classmethod
    def _coerce_amount(cls, value: object) -> float:
        # Missing or garbled amounts decode to zero instead of dropping the item.
        if isinstance(value, bool) or value is None:
            return 0.0
        try:
            amount = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        if amount != amount or amount < 0:
            return 0.0
        return amount


@dataclass(frozen=True)
class ComponentsResult:
    """The service returned a confirmable list of components."""

    components: tuple[MealComponent, ...]
    meal_name: str | None = None
    comment: str | None = None


@dataclass(frozen=True)
class ClarificationResult:
    """The service asked a question instead of answering."""

    question: str
    subject: str | None = None


@dataclass(frozen=True)
class FreeTextResult:
    """The service replied with prose that carries no structured result."""

    text: str


@dataclass(frozen=True)
class ParseFailure:
    """Nothing usable could be recovered from the response."""

    diagnostic: str


NormalizedResponse = ComponentsResult | ClarificationResult | FreeTextResult | ParseFailure


@dataclass(frozen=True)
class DetectionTurn:
    """One message in a detection conversation."""

    content: str
    from_user: bool
    timestamp_millis: int


@dataclass(frozen=True)
class DetectionState:
    """Immutable snapshot of a detection session."""

    photo_uri: str = ""
    turns: tuple[DetectionTurn, ...] = field(default_factory=tuple)
    current_components: tuple[MealComponent, ...] | None = None
    current_question: str | None = None
    meal_name: str | None = None
    last_response_ref: str | None = None
    conversation_id: int = -1
    is_loading: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        if self.current_components is not None and self.current_question is not None:
            raise ValueError("A detection turn yields components or a question, not both")

    @property
    def has_session(self) -> bool:
        """True while a conversation record backs this snapshot."""
        return self.conversation_id >= 0

    @property
    def phase(self) -> str:
        """Name of the state machine phase this snapshot represents."""
        if self.is_loading:
            return "loading"
        if not self.has_session and not self.photo_uri:
            return "idle"
        if self.current_components is not None:
            return "awaiting"
        if self.current_question is not None:
            return "awaiting_clarification"
        if self.error is not None:
            return "failed"
        if self.turns:
            return "replied"
        return "idle"
