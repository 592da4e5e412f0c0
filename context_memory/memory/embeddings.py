"""
Embedding providers for semantic search.

Three interchangeable providers turn text into fixed-length vectors:

- OpenAIEmbeddingProvider: hosted API, native batching
- OllamaEmbeddingProvider: self-hosted Ollama server, batches fan out
  to concurrent single requests
- LocalEmbeddingProvider: deterministic offline fallback

Memory is an optional enhancement, so provider selection never fails:
a remote provider that cannot be configured degrades to the local one.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import httpx
import numpy as np

from ..config import EmbeddingConfig
from ..errors import EmbeddingError, ErrorCode, error_message


logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    name: str = "base"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimension."""
        pass

    @property
    def model(self) -> str:
        """Get the model identifier used for cache keys."""
        return self.name

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for text.

        Args:
            text: The text to embed

        Returns:
            A list of floats of length ``dimensions``
        """
        pass

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in input order
        """
        return [self.embed(text) for text in texts]

    def close(self) -> None:
        """Release any network resources held by the provider."""
        pass

    def _zero_vector(self) -> List[float]:
        return [0.0] * self.dimensions


class LocalEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic pseudo-embeddings computed from character positions.

    Each character of each lowercase, whitespace-separated word adds one
    to index ``ord(char) * (position + 1) % dimensions``; the result is
    L2-normalized.

    These vectors are reproducible and need no network, but they are NOT
    semantically meaningful: texts sharing characters in the same word
    positions look similar regardless of meaning. Use a remote provider
    when retrieval quality matters.
    """

    name = "local"
    DIMENSIONS = 384

    def __init__(self, dimensions: int = DIMENSIONS):
        """
        Initialize the local provider.

        Args:
            dimensions: Embedding vector dimension
        """
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model(self) -> str:
        return "char-position-hash"

    def embed(self, text: str) -> List[float]:
        """Generate a character-position embedding; empty text gives a zero vector."""
        vector = np.zeros(self._dimensions, dtype=np.float64)

        for word in (text or "").lower().split():
            for position, char in enumerate(word):
                vector[(ord(char) * (position + 1)) % self._dimensions] += 1.0

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embeddings API provider.

    Batches are sent as a single request; empty strings are not sent
    and map to zero vectors.
    """

    name = "openai"

    DEFAULT_MODEL = "text-embedding-3-small"

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the OpenAI provider.

        Args:
            api_key: API key, falls back to OPENAI_API_KEY
            model: Embedding model name
            base_url: Optional OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            max_retries: Retries for rate-limit and network failures
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            logger.warning("No OpenAI API key provided. Set OPENAI_API_KEY environment variable.")

        self._model = model or self.DEFAULT_MODEL
        self.base_url = base_url or os.environ.get("OPENAI_BASE_URL")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = None

    @property
    def dimensions(self) -> int:
        return self.MODEL_DIMENSIONS.get(self._model, 1536)

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            import openai
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _handle_error(self, error: Exception) -> EmbeddingError:
        """Convert OpenAI errors to EmbeddingError."""
        import openai

        if isinstance(error, openai.RateLimitError):
            code = ErrorCode.EMBEDDING_RATE_LIMITED
        elif isinstance(error, openai.APITimeoutError):
            code = ErrorCode.EMBEDDING_TIMEOUT
        elif isinstance(error, openai.APIConnectionError):
            code = ErrorCode.EMBEDDING_NETWORK_ERROR
        else:
            code = ErrorCode.EMBEDDING_API_ERROR

        return EmbeddingError(
            f"OpenAI embedding request failed: {error_message(error)}",
            code=code,
            provider=self.name,
            details={"model": self._model},
            cause=error,
        )

    def _request(self, inputs: List[str]) -> List[List[float]]:
        """Send one embeddings request, retrying transient failures."""
        client = self._get_client()
        last_error: Optional[EmbeddingError] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = client.embeddings.create(model=self._model, input=inputs)
                data = sorted(response.data, key=lambda item: item.index)
                return [list(item.embedding) for item in data]
            except Exception as e:
                last_error = self._handle_error(e)
                transient = last_error.code in (
                    ErrorCode.EMBEDDING_RATE_LIMITED,
                    ErrorCode.EMBEDDING_NETWORK_ERROR,
                    ErrorCode.EMBEDDING_TIMEOUT,
                )
                if not transient or attempt == self.max_retries:
                    break
                delay = self.retry_delay * (2 ** attempt)
                logger.warning(f"OpenAI embedding attempt {attempt + 1} failed, retrying in {delay}s")
                time.sleep(delay)

        raise last_error

    def embed(self, text: str) -> List[float]:
        """Generate an embedding using the OpenAI API."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts in a single request."""
        results: List[Optional[List[float]]] = [None] * len(texts)
        pending = [i for i, text in enumerate(texts) if text and text.strip()]

        for i, text in enumerate(texts):
            if i not in pending:
                results[i] = self._zero_vector()

        if pending:
            vectors = self._request([texts[i] for i in pending])
            if len(vectors) != len(pending):
                raise EmbeddingError(
                    f"OpenAI returned {len(vectors)} embeddings for {len(pending)} inputs",
                    code=ErrorCode.EMBEDDING_INVALID_RESPONSE,
                    provider=self.name,
                )
            for i, vector in zip(pending, vectors):
                results[i] = vector

        return results

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class OllamaEmbeddingProvider(EmbeddingProvider):
    """
    Ollama local embeddings provider.

    Ollama's embeddings endpoint takes one prompt per request, so
    batches are embedded with concurrent single requests.
    """

    name = "ollama"

    DEFAULT_MODEL = "nomic-embed-text"
    DEFAULT_BASE_URL = "http://localhost:11434"
    DIMENSIONS = 768

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        max_workers: int = 4,
        dimensions: int = DIMENSIONS,
    ):
        """
        Initialize the Ollama provider.

        Args:
            base_url: Ollama server URL, falls back to OLLAMA_HOST
            model: Embedding model name
            timeout: Request timeout in seconds
            max_workers: Concurrent requests for batches
            dimensions: Vector size produced by the model
        """
        self.base_url = (
            base_url or os.environ.get("OLLAMA_HOST", self.DEFAULT_BASE_URL)
        ).rstrip("/")
        self._model = model or self.DEFAULT_MODEL
        self.timeout = timeout
        self.max_workers = max_workers
        self._dimensions = dimensions
        self._client: Optional[httpx.Client] = None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client for the Ollama API."""
        if self._client is None:
            self._client = httpx.Client(base_url=self.base_url, timeout=self.timeout)
        return self._client

    def embed(self, text: str) -> List[float]:
        """Generate an embedding using Ollama."""
        if not text or not text.strip():
            return self._zero_vector()

        try:
            response = self._get_client().post(
                "/api/embeddings",
                json={"model": self._model, "prompt": text},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            raise EmbeddingError(
                f"Ollama embedding request timed out after {self.timeout}s",
                code=ErrorCode.EMBEDDING_TIMEOUT,
                provider=self.name,
                cause=e,
            )
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                f"Ollama returned HTTP {e.response.status_code}: {e.response.text}",
                code=ErrorCode.EMBEDDING_API_ERROR,
                provider=self.name,
                cause=e,
            )
        except httpx.HTTPError as e:
            raise EmbeddingError(
                f"Could not connect to Ollama at {self.base_url}. "
                f"Make sure Ollama is running: {e}",
                code=ErrorCode.EMBEDDING_NETWORK_ERROR,
                provider=self.name,
                cause=e,
            )

        embedding = payload.get("embedding") if isinstance(payload, dict) else None
        if not embedding:
            raise EmbeddingError(
                "Ollama response did not contain an embedding",
                code=ErrorCode.EMBEDDING_INVALID_RESPONSE,
                provider=self.name,
                details={"model": self._model},
            )
        return [float(x) for x in embedding]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed texts with concurrent single requests, preserving order."""
        if not texts:
            return []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(texts))) as executor:
            return list(executor.map(self.embed, texts))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def create_embedding_provider(config: Optional[EmbeddingConfig] = None) -> EmbeddingProvider:
    """
    Create the embedding provider named by the configuration.

    Unknown providers, and OpenAI without an API key, fall back to the
    local provider.

    Args:
        config: Embedding configuration

    Returns:
        An embedding provider instance
    """
    config = config or EmbeddingConfig()
    provider = (config.provider or "").lower()

    if provider == "openai":
        api_key = config.api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            logger.warning("No OpenAI API key configured, falling back to local embeddings")
            return LocalEmbeddingProvider()
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    if provider == "ollama":
        return OllamaEmbeddingProvider(
            base_url=config.base_url,
            model=config.model,
            timeout=config.timeout,
        )

    if provider != "local":
        logger.warning(f"Unknown embedding provider '{config.provider}', using local embeddings")

    return LocalEmbeddingProvider()
