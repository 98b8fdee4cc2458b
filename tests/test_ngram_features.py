import types

from langid_train.config import CODEPOINT_CLASS_BOUNDARIES
from langid_train.features.ngram_features import (
    AsciiNGram,
    Unicode,
    UnicodeClass,
    classify_codepoint,
    emit_features,
    iter_features,
)


def _decoded(text: str) -> list:
    return [f.decode() for f in iter_features(text) if isinstance(f, AsciiNGram)]


def test_abc_emits_sliding_ngrams_up_to_full_register() -> None:
    assert _decoded("abc") == [" a", "ab", " ab", "bc", "abc", " abc"]
    payloads = [f.packed for f in iter_features("abc")]
    assert payloads == [0x2061, 0x6162, 0x206162, 0x6263, 0x616263, 0x20616263]


def test_ascii_is_lowercased() -> None:
    assert list(iter_features("ABC")) == list(iter_features("abc"))


def test_non_alphanumeric_resets_context() -> None:
    assert _decoded("a b") == [" a", "a ", " a ", " b", " b", " b"]


def test_non_ascii_emits_codepoint_and_class_and_restarts_history() -> None:
    feats = list(iter_features("é"))
    assert feats == [Unicode("é"), UnicodeClass("é")]
    assert list(iter_features("éa")) == [Unicode("é"), UnicodeClass("é")]
    assert _decoded("éab") == ["ab"]


def test_iter_features_is_lazy_and_emit_counts() -> None:
    assert isinstance(iter_features("hello"), types.GeneratorType)
    seen = []
    count = emit_features("héllo wörld", seen.append)
    assert count == len(seen) == len(list(iter_features("héllo wörld")))
    assert list(iter_features("")) == []


def test_variants_hash_into_separate_spaces() -> None:
    assert Unicode("é").to_hash() != UnicodeClass("é").to_hash()
    # same 128-codepoint block
    assert Unicode("é").to_hash() == Unicode("è").to_hash()
    assert Unicode("é").to_hash() != Unicode("あ").to_hash()


def test_classify_codepoint_matches_boundary_ranks() -> None:
    for rank, boundary in enumerate(CODEPOINT_CLASS_BOUNDARIES):
        assert classify_codepoint(chr(boundary)) == rank
    assert classify_codepoint("a") == 0
    assert classify_codepoint(chr(0x10FFFF)) == len(CODEPOINT_CLASS_BOUNDARIES)


def test_classify_codepoint_is_constant_between_boundaries() -> None:
    pairs = zip(CODEPOINT_CLASS_BOUNDARIES, CODEPOINT_CLASS_BOUNDARIES[1:])
    for rank, (lo, hi) in enumerate(pairs, start=1):
        if hi - lo < 2:
            continue
        assert classify_codepoint(chr(lo + 1)) == rank
        assert classify_codepoint(chr(hi - 1)) == rank
    assert classify_codepoint("あ") == classify_codepoint("ん")
    assert classify_codepoint("ア") != classify_codepoint("あ")
