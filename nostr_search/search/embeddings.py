"""
Nostr Search Embedding Client

The only module that talks to an embedding provider. Every provider returns a
fixed-length float vector for one text; only the request shape and the
location of the vector in the response differ, so those are isolated in a
small provider object and the rest of the system sees ``embed(text)``.

Classes:
    CloudflareProvider     — Workers AI (default model @cf/baai/bge-m3)
    GeminiProvider         — Google generative language embedContent
    GenericHttpProvider    — POST {"text": ...}, vector at a configured path
    HttpEmbeddingClient    — httpx client driving one of the providers above
    OpenAIEmbeddingClient  — openai SDK embeddings.create

Rules:
    - One outbound call per embed(); no batching, no caching, no retries
    - Every failure surfaces as EmbeddingFailed; callers decide what to do
    - Never log embedding vectors or API keys — only metadata
"""

import time
from typing import Any, Optional, Protocol

import httpx
import openai
import structlog

from nostr_search.config import Settings
from nostr_search.errors import EmbeddingFailed

logger = structlog.get_logger(__name__)


class EmbeddingClient(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def close(self) -> None: ...


# ── Helpers ────────────────────────────────────────────────────────────────


def resolve_path(payload: Any, path: str) -> Any:
    """
    Walk a dotted path through a decoded JSON body.

    Integer segments index into lists, e.g. ``result.response.0``.
    Raises KeyError / IndexError / TypeError when the path does not exist.
    """
    node = payload
    for segment in path.split("."):
        if isinstance(node, list):
            node = node[int(segment)]
        elif isinstance(node, dict):
            node = node[segment]
        else:
            raise TypeError(f"cannot descend into {type(node).__name__} at '{segment}'")
    return node


def coerce_vector(raw: Any, dimensions: Optional[int] = None) -> list[float]:
    """Validate that ``raw`` is a non-empty numeric array and return floats."""
    if not isinstance(raw, list) or not raw:
        raise EmbeddingFailed("Embedding response did not contain a vector")
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in raw):
        raise EmbeddingFailed("Embedding response vector is not numeric")
    if dimensions is not None and len(raw) != dimensions:
        raise EmbeddingFailed(
            f"Embedding has {len(raw)} dimensions, expected {dimensions}"
        )
    return [float(v) for v in raw]


# ── Providers ──────────────────────────────────────────────────────────────


class CloudflareProvider:
    name = "cloudflare"
    default_model = "@cf/baai/bge-m3"

    def __init__(self, account_id: str, api_key: str, model: Optional[str] = None):
        self.account_id = account_id
        self.api_key = api_key
        self.model = model or self.default_model

    def build_request(self, text: str) -> dict[str, Any]:
        return {
            "url": (
                f"https://api.cloudflare.com/client/v4/accounts/"
                f"{self.account_id}/ai/run/{self.model}"
            ),
            "headers": {"Authorization": f"Bearer {self.api_key}"},
            "json": {"contexts": [{"text": text}]},
        }

    def extract_vector(self, payload: Any) -> Any:
        if isinstance(payload, dict) and payload.get("success") is False:
            raise EmbeddingFailed(f"cloudflare reported errors: {payload.get('errors')}")
        return resolve_path(payload, "result.response.0")


class GeminiProvider:
    name = "gemini"
    default_model = "text-embedding-004"

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or self.default_model

    def build_request(self, text: str) -> dict[str, Any]:
        return {
            "url": (
                "https://generativelanguage.googleapis.com/v1beta/"
                f"models/{self.model}:embedContent"
            ),
            "params": {"key": self.api_key},
            "json": {
                "model": f"models/{self.model}",
                "content": {"parts": [{"text": text}]},
            },
        }

    def extract_vector(self, payload: Any) -> Any:
        return resolve_path(payload, "embedding.values")


class GenericHttpProvider:
    name = "http"

    def __init__(self, url: str, api_key: Optional[str] = None, response_path: str = "embedding"):
        self.url = url
        self.api_key = api_key
        self.response_path = response_path

    def build_request(self, text: str) -> dict[str, Any]:
        request: dict[str, Any] = {"url": self.url, "json": {"text": text}}
        if self.api_key:
            request["headers"] = {"Authorization": f"Bearer {self.api_key}"}
        return request

    def extract_vector(self, payload: Any) -> Any:
        return resolve_path(payload, self.response_path)


# ── Clients ────────────────────────────────────────────────────────────────


class HttpEmbeddingClient:
    """Embeds text through an HTTP provider using a pooled httpx client."""

    def __init__(
        self,
        provider,
        timeout: float = 30.0,
        dimensions: Optional[int] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.provider = provider
        self.dimensions = dimensions
        self._client = http_client or httpx.Client(timeout=httpx.Timeout(timeout))

    def embed(self, text: str) -> list[float]:
        start_time = time.time()
        request = self.provider.build_request(text)

        try:
            response = self._client.post(**request)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise EmbeddingFailed(
                f"{self.provider.name} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingFailed(
                f"{self.provider.name} request failed: {exc.__class__.__name__}"
            ) from exc
        except ValueError as exc:
            raise EmbeddingFailed(f"{self.provider.name} returned a non-JSON body") from exc

        try:
            raw = self.provider.extract_vector(payload)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise EmbeddingFailed(
                f"{self.provider.name} response is missing the embedding"
            ) from exc

        vector = coerce_vector(raw, self.dimensions)

        # Metadata only, never the vector
        logger.debug(
            "embedding_generated",
            provider=self.provider.name,
            text_length=len(text),
            dimensions=len(vector),
            elapsed_seconds=round(time.time() - start_time, 3),
        )
        return vector

    def close(self) -> None:
        self._client.close()


class OpenAIEmbeddingClient:
    """Embeds text with the OpenAI embeddings API."""

    name = "openai"
    default_model = "text-embedding-3-small"

    def __init__(
        self,
        client: openai.OpenAI,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
    ):
        self._client = client
        self.model = model or self.default_model
        self.dimensions = dimensions

    def embed(self, text: str) -> list[float]:
        start_time = time.time()
        try:
            response = self._client.embeddings.create(input=[text], model=self.model)
        except openai.OpenAIError as exc:
            raise EmbeddingFailed(f"openai request failed: {exc.__class__.__name__}") from exc

        if not response.data:
            raise EmbeddingFailed("openai returned no embeddings")
        vector = coerce_vector(list(response.data[0].embedding), self.dimensions)

        logger.debug(
            "embedding_generated",
            provider=self.name,
            model=self.model,
            total_tokens=response.usage.total_tokens if response.usage else None,
            dimensions=len(vector),
            elapsed_seconds=round(time.time() - start_time, 3),
        )
        return vector

    def close(self) -> None:
        self._client.close()


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    """Create the embedding client selected by ``EMBEDDING_PROVIDER``."""
    provider = settings.EMBEDDING_PROVIDER
    dimensions = settings.EMBEDDING_DIMENSIONS

    if provider == "openai":
        client = openai.OpenAI(
            api_key=settings.EMBEDDING_API_KEY,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
            max_retries=0,
        )
        return OpenAIEmbeddingClient(client, settings.EMBEDDING_MODEL, dimensions)

    if provider == "cloudflare":
        http_provider = CloudflareProvider(
            settings.CLOUDFLARE_ACCOUNT_ID,
            settings.EMBEDDING_API_KEY,
            settings.EMBEDDING_MODEL,
        )
    elif provider == "gemini":
        http_provider = GeminiProvider(settings.EMBEDDING_API_KEY, settings.EMBEDDING_MODEL)
    elif provider == "http":
        http_provider = GenericHttpProvider(
            settings.EMBEDDING_URL,
            settings.EMBEDDING_API_KEY,
            settings.EMBEDDING_RESPONSE_PATH,
        )
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")

    return HttpEmbeddingClient(
        http_provider,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
        dimensions=dimensions,
    )
