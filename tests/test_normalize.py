from citations.normalize import normalize_snippet, normalize_with_offsets


def test_collapses_whitespace_and_case():
    norm = normalize_with_offsets("  Hello\n\n  WORLD ")

    assert norm.text == "hello world"
    assert norm.to_original(0, len(norm.text)) == (2, 16)


def test_offsets_survive_ligatures():
    norm = normalize_with_offsets("ﬁnd it")

    assert norm.text == "find it"
    assert norm.origin[:3] == (0, 0, 1)
    assert norm.to_original(0, 4) == (0, 3)


def test_snippets_use_same_normal_form():
    assert normalize_snippet("String\tTheory. ") == "string theory."
    assert normalize_snippet("   ") == ""
