import httpx

from ai.providers.base import AIProvider
from services.errors import CollaboratorUnavailableError


class GoogleProvider(AIProvider):
    """Google Gemini AI provider."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_MODEL = "gemini-2.0-flash"

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _endpoint(self, model: str) -> str:
        return f"{self.BASE_URL}/{model}:generateContent?key={self.api_key}"

    @staticmethod
    def _convert_messages(messages: list[dict]) -> list[dict]:
        """Convert OpenAI-style messages to Gemini format."""
        contents = []
        for msg in messages:
            role = msg["role"]
            # Gemini uses "user" and "model" roles
            if role == "assistant":
                role = "model"
            text = msg.get("content", "")
            contents.append({
                "role": role,
                "parts": [{"text": text if isinstance(text, str) else str(text)}],
            })
        return contents

    @staticmethod
    def _extract_text(data: dict) -> str:
        content = ""
        candidates = data.get("candidates", [])
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            for part in parts:
                content += part.get("text", "")
        return content

    async def _post(self, payload: dict, model: str, timeout: float) -> dict:
        url = self._endpoint(model)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    url,
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailableError("gemini", f"request failed: {exc}") from exc
        if resp.status_code != 200:
            raise CollaboratorUnavailableError(
                "gemini",
                f"Google API error: {resp.text}",
                status_code=502,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise CollaboratorUnavailableError("gemini", "invalid JSON response") from exc

    # ------------------------------------------------------------------
    # chat
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        system: str = "",
    ) -> dict:
        model = model or self.get_model()
        payload: dict = {"contents": self._convert_messages(messages)}

        if system:
            payload["system_instruction"] = {
                "parts": [{"text": system}],
            }

        data = await self._post(payload, model, self.timeout_seconds)
        content = self._extract_text(data)
        if "SAFETY" in str(data.get("promptFeedback", {}).get("blockReason", "")) and not content:
            raise CollaboratorUnavailableError("gemini", "response blocked by safety filters")

        usage = data.get("usageMetadata", {})
        return {
            "content": content,
            "tokens_in": usage.get("promptTokenCount", 0),
            "tokens_out": usage.get("candidatesTokenCount", 0),
            "model": model,
        }
