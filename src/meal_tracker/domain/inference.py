"""Pydantic models for the Responses API request and response payloads."""

from pydantic import BaseModel, ConfigDict


class InputContent(BaseModel):
    """One content part of a user input message."""

    type: str
    text: str | None = None
    image_url: str | None = None


class InputMessage(BaseModel):
    """A role-tagged input message."""

    role: str
    content: list[InputContent]


class PromptReference(BaseModel):
    """Stored prompt template reference."""

    id: str
    version: str


class InferenceRequest(BaseModel):
    """Request body for a detection turn."""

    model: str
    input: list[InputMessage]
    prompt: PromptReference
    previous_response_id: str | None = None

    def to_payload(self) -> dict[str, object]:
        """Return the JSON body with unset optional fields removed."""
        return self.model_dump(exclude_none=True)


class _LenientModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OutputContent(_LenientModel):
    """Content part of an output item."""

    type: str | None = None
    text: str | None = None


class OutputMessage(_LenientModel):
    """Legacy message wrapper carrying a plain content string."""

    content: str | None = None


class OutputItem(_LenientModel):
    """One heterogeneous item of a response's output array."""

    id: str | None = None
    type: str | None = None
    status: str | None = None
    text: str | None = None
    content: list[OutputContent] | None = None
    message: OutputMessage | None = None

    def answer_text(self) -> str | None:
        """Return the text this item carries, preferring the first content part."""
        if self.content:
            first = self.content[0].text
            if first:
                return first
        if self.message and self.message.content:
            return self.message.content
        if self.text:
            return self.text
        return None
