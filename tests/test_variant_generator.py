"""Tests for name normalisation and tag variation generation."""

from booru_search.core.variant_generator import (
    generate_variations,
    make_query_key,
    normalize_name,
)


def test_normalize_collapses_whitespace():
    assert normalize_name("  Anya   Forger ") == "anya_forger"


def test_normalize_strips_disallowed_characters():
    assert normalize_name("Rem!?") == "rem"
    assert normalize_name("Re:Zero") == "rezero"


def test_normalize_keeps_tag_punctuation():
    assert normalize_name("Jean-Luc O'Neil (Test)") == "jean-luc_o'neil_(test)"


def test_normalize_empty_input():
    assert normalize_name(None) == ""
    assert normalize_name("   ") == ""


def test_variations_with_series():
    variations = generate_variations("Anya Forger", "Spy x Family")
    assert variations == [
        "anya_(spy_x_family)",
        "anya",
        "anya_forger_(spy_x_family)",
        "anya_forger",
        "forger",
    ]


def test_variations_single_token():
    assert generate_variations("Rem") == ["rem"]
    assert generate_variations("Rem", "Re:Zero") == ["rem_(rezero)", "rem"]


def test_variations_three_tokens_use_first_two():
    variations = generate_variations("Kurumi Tokisaki Nightmare")
    assert variations == [
        "kurumi",
        "kurumi_tokisaki_nightmare",
        "kurumi_tokisaki",
        "tokisaki",
    ]


def test_variations_are_unique():
    variations = generate_variations("Saber Saber", "Fate")
    assert len(variations) == len(set(variations))


def test_blank_series_is_ignored():
    assert generate_variations("Rem", "   ") == generate_variations("Rem")


def test_query_key():
    assert make_query_key("Anya Forger") == "anya_forger:none"
    assert make_query_key("  ANYA forger", "Spy x Family") == "anya_forger:spy_x_family"
    assert make_query_key("rem", "  ") == "rem:none"
