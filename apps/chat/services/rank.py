"""Top-K document selection by cosine similarity over externally supplied embeddings."""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

EmbedFn = Callable[[list[str], str], list[list[float]]]


@dataclass(frozen=True)
class ScoredDocument:
    document_index: int
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|). 0.0 when either vector has zero norm."""
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def rank_embeddings(query_embedding: Sequence[float], doc_embeddings: Sequence[Sequence[float]]) -> list[ScoredDocument]:
    """Score every document against the query, sorted by score desc. Ties keep input order."""
    scored = [
        ScoredDocument(document_index=i, score=cosine_similarity(query_embedding, emb))
        for i, emb in enumerate(doc_embeddings)
    ]
    # sorted() is stable: equal scores stay in original order
    return sorted(scored, key=lambda s: -s.score)


def score_documents(query: str, documents: list[str], embed: EmbedFn, model: str) -> list[ScoredDocument]:
    """
    Embed [query] + documents in one call and rank documents against the query.
    Raises whatever embed raises; no partial ranking is produced.
    """
    if not documents:
        return []
    vectors = embed([query, *documents], model)
    if len(vectors) != len(documents) + 1:
        raise ValueError(f"embedding returned {len(vectors)} vectors for {len(documents) + 1} inputs")
    return rank_embeddings(vectors[0], vectors[1:])


def select_top_k(query: str, documents: list[str], k: int, embed: EmbedFn, model: str) -> list[str]:
    """
    Return the k most similar documents (original strings), best first.
    k is not clamped here; k > len(documents) returns all documents ranked.
    """
    ranked = score_documents(query, documents, embed, model)
    top = ranked[: max(k, 0)]
    logger.info(
        "Selected %d of %d documents (top score %.4f)",
        len(top),
        len(documents),
        top[0].score if top else 0.0,
    )
    return [documents[s.document_index] for s in top]
