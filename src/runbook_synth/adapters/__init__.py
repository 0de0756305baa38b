"""
Adapters for the pipeline's external collaborators

``create_adapters`` is the single place where configuration picks one
implementation per port.
"""

from dataclasses import dataclass

from ..config import RunbookSynthConfig
from .base import ComputeMetadataPort, EmbeddingPort, LogsPort, MetricsPort, StoragePort
from .embeddings import HashEmbeddings, OpenAIEmbeddings, SentenceTransformerEmbeddings
from .local_storage import LocalFileStorage
from .static_sources import (
    ContextFixtures,
    StaticLogsSource,
    StaticMetadataSource,
    StaticMetricsSource,
)

EMBEDDING_PROVIDERS = ("hash", "sentence_transformers", "openai")
CLOUD_PROVIDERS = ("static",)


@dataclass
class AdapterBundle:
    """One implementation per port"""

    storage: StoragePort
    metadata: ComputeMetadataPort
    metrics: MetricsPort
    logs: LogsPort
    embeddings: EmbeddingPort


def create_embeddings(config: RunbookSynthConfig) -> EmbeddingPort:
    embedding = config.embedding
    if embedding.provider == "hash":
        return HashEmbeddings(embedding.dimension)
    if embedding.provider == "sentence_transformers":
        return SentenceTransformerEmbeddings(embedding.model, embedding.dimension)
    if embedding.provider == "openai":
        return OpenAIEmbeddings(embedding)
    raise ValueError(
        f"Unknown embedding provider '{embedding.provider}'. "
        f"Supported: {', '.join(EMBEDDING_PROVIDERS)}"
    )


def create_adapters(config: RunbookSynthConfig) -> AdapterBundle:
    """Build the adapter bundle described by ``config``"""
    if config.cloud.provider not in CLOUD_PROVIDERS:
        raise ValueError(
            f"Unknown cloud provider '{config.cloud.provider}'. "
            f"Supported: {', '.join(CLOUD_PROVIDERS)}"
        )

    fixtures = ContextFixtures.load(config.cloud.fixtures_path)
    return AdapterBundle(
        storage=LocalFileStorage(config.runbooks.local_dir, config.runbooks.extensions),
        metadata=StaticMetadataSource(fixtures),
        metrics=StaticMetricsSource(fixtures),
        logs=StaticLogsSource(fixtures),
        embeddings=create_embeddings(config),
    )


__all__ = [
    "AdapterBundle",
    "ComputeMetadataPort",
    "ContextFixtures",
    "EmbeddingPort",
    "HashEmbeddings",
    "LocalFileStorage",
    "LogsPort",
    "MetricsPort",
    "OpenAIEmbeddings",
    "SentenceTransformerEmbeddings",
    "StaticLogsSource",
    "StaticMetadataSource",
    "StaticMetricsSource",
    "StoragePort",
    "create_adapters",
    "create_embeddings",
]
