"""Pydantic models for the detection HTTP API."""

from uuid import UUID

from pydantic import BaseModel, Field

from meal_tracker.domain.detection import DetectionState, MealComponent


class StartDetectionRequest(BaseModel):
    """Request to analyze a stored meal photo."""

    photo_uri: str = Field(min_length=1)


class FollowUpRequest(BaseModel):
    """User reply within a detection conversation."""

    text: str


class ComponentView(BaseModel):
    """Detected component as exposed over HTTP."""

    name: str
    weight_g: float
    energy_kcal: float
    protein_g: float
    fat_g: float
    carbs_g: float

    @classmethod
    def from_component(cls, component: MealComponent) -> "ComponentView":
        return cls(
            name=component.name,
            weight_g=component.weight_grams,
            energy_kcal=component.energy_kcal,
            protein_g=component.protein_grams,
            fat_g=component.fat_grams,
            carbs_g=component.carb_grams,
        )


class TurnView(BaseModel):
    """Conversation turn as exposed over HTTP."""

    content: str
    from_user: bool
    timestamp_millis: int


class DetectionStateView(BaseModel):
    """Snapshot of a detection session."""

    session_id: UUID
    phase: str
    photo_uri: str
    turns: list[TurnView]
    components: list[ComponentView] | None
    question: str | None
    meal_name: str | None
    conversation_id: int
    is_loading: bool
    error: str | None

    @classmethod
    def from_state(cls, session_id: UUID, state: DetectionState) -> "DetectionStateView":
        components = None
        if state.current_components is not None:
            components = [
                ComponentView.from_component(item) for item in state.current_components
            ]
        return cls(
            session_id=session_id,
            phase=state.phase,
            photo_uri=state.photo_uri,
            turns=[
                TurnView(
                    content=turn.content,
                    from_user=turn.from_user,
                    timestamp_millis=turn.timestamp_millis,
                )
                for turn in state.turns
            ],
            components=components,
            question=state.current_question,
            meal_name=state.meal_name,
            conversation_id=state.conversation_id,
            is_loading=state.is_loading,
            error=state.error,
        )


class AcceptedMealView(BaseModel):
    """Components confirmed by the user."""

    session_id: UUID
    meal_name: str | None
    components: list[ComponentView]
