"""OpenAI Responses API client for meal detection turns."""

import base64
from dataclasses import dataclass, field

import httpx
from openai import APIError, APIStatusError, AsyncOpenAI

from meal_tracker.domain.errors import InferenceTransportError
from meal_tracker.domain.inference import (
    InferenceRequest,
    InputContent,
    InputMessage,
    PromptReference,
)
from meal_tracker.services.detection import InferenceClient


@dataclass
class OpenAIInferenceClient(InferenceClient):
    """Inference client posting stored-prompt requests to the Responses API.

    The body is kept untyped because the stored prompt decides the answer
    shape; normalization happens in the engine.
    """

    http_client: httpx.AsyncClient
    model: str
    prompt_version: str
    base_url: str = "https://api.openai.com/v1"
    timeout: httpx.Timeout = field(
        default_factory=lambda: httpx.Timeout(120.0, connect=30.0)
    )

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        *,
        model: str,
        prompt_version: str,
        base_url: str,
        timeout_seconds: float,
        connect_timeout_seconds: float,
    ) -> "OpenAIInferenceClient":
        """Create an inference client with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            model=model,
            prompt_version=prompt_version,
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds),
        )

    async def send_initial(
        self, *, api_key: str, prompt_id: str, image_bytes: bytes, text: str
    ) -> object:
        """Send the photo with the prompt text."""
        request = InferenceRequest(
            model=self.model,
            input=[
                InputMessage(
                    role="user",
                    content=[
                        InputContent(
                            type="input_image", image_url=_to_data_url(image_bytes)
                        ),
                        InputContent(type="input_text", text=text),
                    ],
                )
            ],
            prompt=PromptReference(id=prompt_id, version=self.prompt_version),
        )
        return await self._post(api_key, request)

    async def send_follow_up(
        self,
        *,
        api_key: str,
        prompt_id: str,
        previous_response_id: str,
        text: str,
    ) -> object:
        """Send user text chained to the previous response."""
        request = InferenceRequest(
            model=self.model,
            input=[
                InputMessage(
                    role="user",
                    content=[InputContent(type="input_text", text=text)],
                )
            ],
            prompt=PromptReference(id=prompt_id, version=self.prompt_version),
            previous_response_id=previous_response_id or None,
        )
        return await self._post(api_key, request)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _post(self, api_key: str, request: InferenceRequest) -> object:
        client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            http_client=self.http_client,
        )
        try:
            response = await client.post(
                "/responses", cast_to=httpx.Response, body=request.to_payload()
            )
        except APIStatusError as exc:
            raise InferenceTransportError(
                f"HTTP {exc.status_code}: {exc.response.text}",
                status_code=exc.status_code,
            ) from exc
        except APIError as exc:
            raise InferenceTransportError(str(exc) or type(exc).__name__) from exc

        try:
            return response.json()
        except ValueError:
            return response.text


def _to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
