import logging

from openai import AsyncOpenAI, OpenAIError

from app.agent.errors import GenerationError
from app.core.config import settings

logger = logging.getLogger(__name__)


class LLMClient:
    """Provider-agnostic chat-completions client using the OpenAI API format.

    Returns free text only. Output is untrusted and goes through
    `app.agent.extraction`; this client never retries on its own.
    """

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT
        self.client = AsyncOpenAI(
            base_url=base_url or settings.LLM_BASE_URL,
            api_key=api_key or settings.LLM_API_KEY,
        )

    def _chat_completion_kwargs(self, *, temperature: float | None, max_tokens: int | None) -> dict:
        """Build provider/model-compatible kwargs for chat completions."""
        kwargs: dict = {}
        model_name = (self.model_name or "").lower()
        # GPT-5 family rejects non-default temperature values in some OpenAI endpoints.
        if temperature is not None and not model_name.startswith("gpt-5"):
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        logger.info("Issuing chat completion to model %s...", self.model_name)
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **self._chat_completion_kwargs(temperature=temperature, max_tokens=max_tokens),
            )
        except OpenAIError as e:
            logger.error("Error calling LLM provider %s: %s", self.model_name, e)
            raise GenerationError() from e

        if not getattr(response, "choices", None):
            logger.error("Received no choices from %s: %s", self.model_name, response)
            raise GenerationError()

        text_response = response.choices[0].message.content or ""
        logger.info(
            "Received %s chars from %s.",
            len(text_response),
            self.model_name,
        )
        return text_response
