"""Chat-completion wrapper used by tagging, scoring and semantic dedup."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import openai
import pymongo.errors
from pinecone.exceptions import ServiceException

from ..clients.openai_client import get_openai
from ..config import OPENAI_CHAT_MODEL
from ..exceptions import ContentPolicyError

logger = logging.getLogger(__name__)

_CONTENT_POLICY_MARKERS = ("content_filter", "content management policy")


@dataclass(slots=True)
class Completion:
    """Text returned by the model and the tokens the call consumed."""

    text: str
    token_usage: int = 0


_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
    # MongoDB / Pinecone outages surface mid-pass through the detector and index
    pymongo.errors.ConnectionFailure,
    ServiceException,
    ConnectionError,
    TimeoutError,
)


def is_transient_error(exc: BaseException) -> bool:
    """Network, timeout, rate-limit and 5xx errors from the model, store or index.

    Rows that hit one are left untouched so the next run retries them.
    """
    return isinstance(exc, _TRANSIENT_ERRORS)


def is_content_policy_error(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is (or wraps) a content-policy refusal."""
    if isinstance(exc, ContentPolicyError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _CONTENT_POLICY_MARKERS)


class LanguageModel:
    """``complete(system_prompt, user_prompt, max_tokens) -> Completion``."""

    def __init__(self, client=None, model: str = OPENAI_CHAT_MODEL):
        self._client = client
        self.model = model

    @property
    def client(self):
        if self._client is None:
            self._client = get_openai()
        return self._client

    def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 2000) -> Completion:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_completion_tokens=max_tokens,
            )
        except openai.BadRequestError as exc:
            if is_content_policy_error(exc):
                raise ContentPolicyError(str(exc)) from exc
            raise

        choice = response.choices[0] if response.choices else None
        if choice is not None and choice.finish_reason == "content_filter":
            raise ContentPolicyError("Response blocked by content_filter")

        text = (choice.message.content if choice is not None else None) or ""
        usage = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) or 0
        logger.debug("Model %s used %d tokens", self.model, tokens)
        return Completion(text=text, token_usage=tokens)


__all__ = ["Completion", "LanguageModel", "is_content_policy_error", "is_transient_error"]
