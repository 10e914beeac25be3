"""LLM capability — one text-in/text-out call per node invocation.

Nodes depend only on the ``LLM`` protocol; ``LangChainLLM`` is the production
implementation over the Anthropic and Google chat models. Every provider
failure is mapped onto the LLMError family so nodes can treat them uniformly.
"""

import logging
from typing import Any, Protocol

import httpx
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from cflow.config import get_config
from cflow.errors import (
    LLMAuthError,
    LLMError,
    LLMInvalidResponseError,
    LLMRateLimitedError,
    LLMTimeoutError,
)
from cflow.state import PipelineState

logger = logging.getLogger(__name__)

PROVIDERS = {"anthropic", "google"}

# Keys of a node config that are not model parameters.
_NON_MODEL_KEYS = {"system_prompt", "subject_specific"}


class LLM(Protocol):
    def invoke(self, system_prompt: str, user_prompt: str, params: dict[str, Any]) -> str:
        ...


def resolve_node_params(state: PipelineState, node_type: str) -> dict[str, Any]:
    """Merge the configured model for ``node_type`` with the run's overrides.

    Precedence (lowest first): ``node_models`` in config.yaml, the run's
    ``node_config_overrides[node_type]``, then that override's
    ``subject_specific[<subject_tag>]`` entry when the subject is known.
    """
    config = get_config()
    params = dict(config.get("node_models", {}).get(node_type, {}))

    override = (state.get("node_config_overrides") or {}).get(node_type) or {}
    params.update({k: v for k, v in override.items() if k != "subject_specific"})

    subject = state.get("subject_tag")
    specific = (override.get("subject_specific") or {}).get(subject or "")
    if subject and subject != "unknown" and specific:
        params.update(specific)

    return params


def _message_text(content) -> str:
    """Flatten a chat model reply into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    raise LLMInvalidResponseError(f"Unexpected response content type: {type(content).__name__}")


def _status_code(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify_failure(exc: BaseException) -> LLMError:
    """Map a provider/transport exception onto the LLMError family."""
    if isinstance(exc, LLMError):
        return exc
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)) or "timeout" in type(exc).__name__.lower():
        return LLMTimeoutError(f"LLM call timed out: {exc}")
    status = _status_code(exc)
    if status == 429:
        return LLMRateLimitedError(f"LLM rate limited: {exc}")
    if status in (401, 403):
        return LLMAuthError(f"LLM authentication failed: {exc}")
    return LLMInvalidResponseError(f"LLM call failed: {exc}")


class LangChainLLM:
    """LLM backed by LangChain chat models, selected per call by ``params``."""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else get_config().get("llm_timeout", 120)

    def _make_model(self, params: dict[str, Any]):
        provider = params.get("provider", "anthropic")
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown LLM provider '{provider}'. Must be one of: {PROVIDERS}")
        if not params.get("model"):
            raise ValueError("LLM params must name a model.")

        temperature = params.get("temperature", 0)
        max_tokens = params.get("max_tokens")
        if provider == "anthropic":
            kwargs = {"model": params["model"], "temperature": temperature, "timeout": self.timeout}
            if max_tokens:
                kwargs["max_tokens"] = max_tokens
            return ChatAnthropic(**kwargs)

        kwargs = {"model": params["model"], "temperature": temperature, "timeout": self.timeout}
        if max_tokens:
            kwargs["max_output_tokens"] = max_tokens
        return ChatGoogleGenerativeAI(**kwargs)

    def invoke(self, system_prompt: str, user_prompt: str, params: dict[str, Any]) -> str:
        model_params = {k: v for k, v in params.items() if k not in _NON_MODEL_KEYS}
        llm = self._make_model(model_params)
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        logger.debug("Invoking %s/%s", model_params.get("provider"), model_params.get("model"))
        try:
            response = llm.invoke(messages)
        except Exception as exc:
            raise classify_failure(exc) from exc
        return _message_text(response.content)
