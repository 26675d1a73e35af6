from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Abstract base class for all AI providers."""

    DEFAULT_MODEL: str = ""

    def __init__(self, api_key: str, model: str | None = None, timeout_seconds: float = 30):
        self.api_key = api_key
        self._model = model
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        system: str = "",
    ) -> dict:
        """Send a non-streaming chat request to the provider.

        Args:
            messages: List of message dicts with role and content.
            model: Model identifier to use; defaults to the configured model.
            system: Optional system prompt.

        Returns:
            dict with content, tokens_in, tokens_out, model.

        Raises:
            CollaboratorUnavailableError if the provider call fails.
        """
        ...

    def get_model(self) -> str:
        return self._model or self.DEFAULT_MODEL
