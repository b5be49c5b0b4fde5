"""Answer questions against a paragraph set via a chat-completion endpoint."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import openai

from .utils import SearchFailedError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"
DEFAULT_TIMEOUT_SEC = 60

_PROMPT_TEMPLATE = (
    "Act as a semantic search API. Given the following paragraphs:\n\n"
    "{paragraphs}\n\n"
    "Please answer the following question based on the content above: {query}"
)


def build_prompt(query: str, paragraphs: Sequence[str]) -> str:
    """Embed every paragraph verbatim, then the question."""
    return _PROMPT_TEMPLATE.format(paragraphs="\n\n".join(paragraphs), query=query)


def _first_choice_content(response: Any) -> str:
    choices = getattr(response, "choices", None)
    message = getattr(choices[0], "message", None) if choices else None
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        logger.warning("Unexpected response structure from completion endpoint: %r", response)
        raise SearchFailedError(
            SearchFailedError.UNEXPECTED_RESPONSE_SHAPE, "Chat completion failed",
        )
    return content


class AnswerService:
    """Stateless question answering over caller-supplied paragraphs.

    The credential and endpoint are passed in explicitly; nothing is read
    from the environment here. The client never retries on its own.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        if client is None and api_key:
            client = openai.OpenAI(
                api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0,
            )
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    def answer(self, query: str, paragraphs: Sequence[str]) -> str:
        """Return the first completion's content for *query* over *paragraphs*."""
        if self._client is None:
            raise SearchFailedError(
                SearchFailedError.NOT_CONFIGURED,
                "Completion endpoint credential is not configured",
            )

        prompt = build_prompt(query, paragraphs)
        logger.debug("Prompt: %s", prompt)
        logger.info(
            "Search: model=%s paragraphs=%d prompt_chars=%d",
            self.model, len(paragraphs), len(prompt),
        )
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                n=1,
                timeout=self.timeout,
            )
        except openai.APIConnectionError as exc:
            logger.warning("Completion endpoint unreachable: %s", exc)
            raise SearchFailedError(
                SearchFailedError.UPSTREAM_UNAVAILABLE, "Chat completion failed",
            ) from exc
        except openai.APIStatusError as exc:
            logger.warning(
                "Completion endpoint returned %s: %s", exc.status_code, exc.body,
            )
            raise SearchFailedError(
                SearchFailedError.UPSTREAM_ERROR, "Chat completion failed",
            ) from exc
        except openai.APIResponseValidationError as exc:
            logger.warning("Completion endpoint returned an invalid body: %s", exc)
            raise SearchFailedError(
                SearchFailedError.UNEXPECTED_RESPONSE_SHAPE, "Chat completion failed",
            ) from exc
        except openai.OpenAIError as exc:
            logger.warning("Chat completion failed: %s", exc)
            raise SearchFailedError(
                SearchFailedError.UPSTREAM_ERROR, "Chat completion failed",
            ) from exc

        return _first_choice_content(response)
