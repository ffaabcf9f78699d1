from geo_impact.normalize import (
    contains_phrase,
    normalize_place_name,
    simplify_place_name,
    strip_diacritics,
)


def test_strip_diacritics() -> None:
    assert strip_diacritics("Côte d'Ivoire") == "Cote d'Ivoire"
    assert strip_diacritics("Ñuñoa") == "Nunoa"


def test_normalize_removes_admin_terms_and_punctuation() -> None:
    assert normalize_place_name("Northern Region") == "northern"
    assert normalize_place_name("Cebu City!") == "cebu"
    assert normalize_place_name("  São   Paulo  ") == "sao paulo"
    assert normalize_place_name("Quezon, Province") == "quezon,"


def test_normalize_keeps_admin_words_inside_other_words() -> None:
    assert normalize_place_name("Regionville") == "regionville"


def test_normalize_empty() -> None:
    assert normalize_place_name(None) == ""
    assert normalize_place_name("") == ""


def test_simplify_drops_parentheticals() -> None:
    assert simplify_place_name("Manila (Capital)") == "manila"
    assert simplify_place_name("Davao (Region XI) City") == "davao"


def test_contains_phrase_respects_word_boundaries() -> None:
    assert contains_phrase("flooding in niger delta", "niger")
    assert not contains_phrase("flooding in nigeria", "niger")
    assert contains_phrase("north  sub", "north sub")
    assert not contains_phrase("anything", "")
