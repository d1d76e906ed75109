"""OpenAI text embeddings used for chunk selection and duplicate detection."""

from __future__ import annotations

import logging
import os

import openai

from .config import EMBEDDING_MODEL, PROVIDER_TIMEOUT_SEC
from .utils import EmbeddingUnavailableError

logger = logging.getLogger(__name__)

EMBEDDING_BATCH_SIZE = 100


class OpenAIEmbedder:
    """Thin wrapper over ``client.embeddings.create``.

    Anything that offers ``is_available()`` and ``embed(texts)`` can stand in
    for it (tests use small deterministic fakes).
    """

    def __init__(self, model: str = EMBEDDING_MODEL, client: "openai.OpenAI | None" = None) -> None:
        self.model = model
        self._client = client

    def is_available(self) -> bool:
        return self._client is not None or bool(os.environ.get("OPENAI_API_KEY"))

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in order; raises EmbeddingUnavailableError on failure."""
        if not texts:
            return []
        if not self.is_available():
            raise EmbeddingUnavailableError("OPENAI_API_KEY not set")
        client = self._client or openai.OpenAI()
        vectors: list[list[float]] = []
        for i in range(0, len(texts), EMBEDDING_BATCH_SIZE):
            batch = [t if t.strip() else " " for t in texts[i : i + EMBEDDING_BATCH_SIZE]]
            try:
                resp = client.embeddings.create(
                    model=self.model, input=batch, timeout=PROVIDER_TIMEOUT_SEC,
                )
            except openai.OpenAIError as exc:
                raise EmbeddingUnavailableError(f"Embedding request failed: {exc}") from exc
            ordered = sorted(resp.data, key=lambda item: item.index)
            vectors.extend(list(item.embedding) for item in ordered)
        if len(vectors) != len(texts):
            raise EmbeddingUnavailableError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}"
            )
        logger.debug("Embedded %d text(s) with %s", len(texts), self.model)
        return vectors


def default_embedder() -> OpenAIEmbedder:
    return OpenAIEmbedder()
