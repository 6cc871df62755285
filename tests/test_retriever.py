from typing import Optional, Sequence

from pdfchat.models import Chunk
from pdfchat.retriever import LEXICAL_STRATEGY, VECTOR_STRATEGY, Retriever, tokenize


def _chunk(index: int, text: str, vector: Optional[Sequence[float]] = None) -> Chunk:
    chunk = Chunk("doc", index, index + 1, text, index * 100, index * 100 + len(text))
    return chunk.with_vector(vector) if vector is not None else chunk


def test_tokenize_splits_cjk_words_and_digits() -> None:
    assert tokenize("Invoice 2024 总金额") == frozenset({"invoice", "2024", "总", "金", "额"})
    assert tokenize("") == frozenset()


def test_lexical_ranking_prefers_shared_tokens() -> None:
    chunks = [
        _chunk(0, "The weather report mentions rain."),
        _chunk(1, "The contract term is two years and renews automatically."),
        _chunk(2, "Payment terms: net thirty days."),
    ]

    result = Retriever().retrieve("How long is the contract term?", chunks, top_k=2)

    assert result.strategy == LEXICAL_STRATEGY
    assert [item.chunk.sequence_index for item in result.chunks] == [1, 0]
    assert result.chunks[0].score > result.chunks[1].score


def test_ties_are_broken_by_sequence_index() -> None:
    chunks = [_chunk(index, "identical text") for index in range(5)]

    result = Retriever().retrieve("identical", list(reversed(chunks)), top_k=3)

    assert [item.chunk.sequence_index for item in result.chunks] == [0, 1, 2]


def test_placeholder_vectors_fall_back_to_deterministic_lexical_order() -> None:
    zero = [0.0] * 8
    chunks = [
        _chunk(0, "alpha beta", zero),
        _chunk(1, "gamma delta", zero),
        _chunk(2, "beta gamma delta", zero),
    ]
    retriever = Retriever()

    first = retriever.retrieve("beta delta", chunks, query_vector=zero, top_k=3)
    second = retriever.retrieve("beta delta", chunks, query_vector=zero, top_k=3)

    assert first.strategy == LEXICAL_STRATEGY
    assert [item.chunk.sequence_index for item in first.chunks] == [2, 0, 1]
    assert first.chunks == second.chunks


def test_cosine_ranking_with_informative_vectors() -> None:
    chunks = [
        _chunk(0, "north", [1.0, 0.0, 0.0]),
        _chunk(1, "east", [0.0, 1.0, 0.0]),
        _chunk(2, "north east", [0.7, 0.7, 0.0]),
    ]

    result = Retriever().retrieve("anything", chunks, query_vector=[0.0, 1.0, 0.0], top_k=2)

    assert result.strategy == VECTOR_STRATEGY
    assert [item.chunk.sequence_index for item in result.chunks] == [1, 2]
    assert result.chunks[0].score == 1.0


def test_missing_vectors_use_lexical_strategy() -> None:
    chunks = [_chunk(0, "alpha", [1.0, 0.0]), _chunk(1, "beta")]

    result = Retriever().retrieve("beta", chunks, query_vector=[1.0, 0.0])

    assert result.strategy == LEXICAL_STRATEGY
    assert result.chunks[0].chunk.sequence_index == 1


def test_default_top_k_limits_results() -> None:
    chunks = [_chunk(index, f"chunk {index}") for index in range(10)]

    assert len(Retriever(default_top_k=4).retrieve("chunk", chunks).chunks) == 4


def test_empty_inputs_return_nothing() -> None:
    retriever = Retriever()

    assert retriever.retrieve("question", []).chunks == []
    assert retriever.retrieve("question", [_chunk(0, "question")], top_k=0).chunks == []


def test_tokenize_keeps_words_of_non_latin_scripts() -> None:
    assert tokenize("Срок аренды составляет два года") == frozenset(
        {"срок", "аренды", "составляет", "два", "года"}
    )
    assert tokenize("임대 기간은 2년입니다") == frozenset({"임대", "기간은", "2", "년입니다"})
    assert tokenize("según información") == frozenset({"según", "información"})
    assert tokenize("abc总") == frozenset({"abc", "总"})


def test_lexical_ranking_of_cyrillic_text() -> None:
    chunks = [
        _chunk(0, "Оплата производится ежемесячно."),
        _chunk(1, "Срок аренды составляет два года."),
    ]

    result = Retriever().retrieve("Какой срок аренды?", chunks, top_k=2)

    assert result.strategy == LEXICAL_STRATEGY
    assert [item.chunk.sequence_index for item in result.chunks] == [1, 0]
    assert result.chunks[0].score == 2.0
    assert result.chunks[1].score == 0.0
