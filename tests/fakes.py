"""Deterministic provider fakes and builders shared by the tests."""

import hashlib
import json
from typing import Any

from issue_intelligence.analysis.keywords import tokenize
from issue_intelligence.config import Settings
from issue_intelligence.exceptions import ProviderConnectionError
from issue_intelligence.models import IssueContent
from issue_intelligence.providers.embeddings import BaseEmbeddings
from issue_intelligence.providers.generation import BaseGenerator

FAKE_DIMENSIONS = 64


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class FakeEmbeddings(BaseEmbeddings):
    """Deterministic bag-of-words embeddings.

    Identical texts always map to identical vectors. Specific texts can be
    pinned to explicit vectors with ``overrides``.
    """

    def __init__(self, overrides: dict[str, list[float]] | None = None):
        self.overrides = overrides or {}
        self.batch_calls: list[list[str]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    def vector_for(self, text: str) -> list[float]:
        if text in self.overrides:
            return list(self.overrides[text])
        vector = [0.0] * FAKE_DIMENSIONS
        for token in tokenize(text):
            index = int(hashlib.md5(token.encode()).hexdigest(), 16) % FAKE_DIMENSIONS
            vector[index] += 1.0
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        return [self.vector_for(text) for text in texts]


class FailingEmbeddings(BaseEmbeddings):
    """Embedding provider whose every call fails."""

    def __init__(self):
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "failing"

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        raise ProviderConnectionError("connection refused", provider=self.provider_name)


class FakeGenerator(BaseGenerator):
    """Generator that replays scripted responses in order.

    Each response is a dict (sent as JSON), a raw string, or an exception
    to raise. The last response repeats once the script runs out.
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses) or [{}]
        self.calls: list[tuple[str, str | None]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def generate(self, prompt: str, system: str | None = None, **kwargs: Any) -> str:
        self.calls.append((prompt, system))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


class FailingGenerator(BaseGenerator):
    """Generator whose every call fails."""

    def __init__(self):
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return "failing"

    async def generate(self, prompt: str, system: str | None = None, **kwargs: Any) -> str:
        self.calls += 1
        raise ProviderConnectionError("request timed out", provider=self.provider_name)


def make_issue(
    issue_id: str,
    title: str,
    body: str = "",
    labels: list[str] | None = None,
    number: int | None = None,
) -> IssueContent:
    return IssueContent(id=issue_id, title=title, body=body, labels=labels or [], number=number)


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the environment, with every provider disabled."""
    values = {
        "LLM_PROVIDER": "",
        "EMBEDDING_PROVIDER": "",
        "ANTHROPIC_API_KEY": "",
        "OPENAI_API_KEY": "",
        "OLLAMA_BASE_URL": "",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


