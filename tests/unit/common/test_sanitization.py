from common.sanitization import sanitize_question


def test_sanitize_valid_inputs():
    """Whitespace is collapsed and case is preserved."""
    res = sanitize_question("  Show   contacts for 001000000000001AAA  ")
    assert res.is_valid
    assert res.sanitized == "Show contacts for 001000000000001AAA"
    assert res.errors == []


def test_sanitize_control_characters():
    """Control characters become spaces."""
    assert sanitize_question("How many\taccounts?\x00 ").sanitized == "How many accounts?"


def test_sanitize_unicode_normalization():
    """Full-width characters are folded by NFKC."""
    assert sanitize_question("ＡＢＣ accounts").sanitized == "ABC accounts"


def test_sanitize_empty():
    """Empty and whitespace-only inputs are rejected."""
    assert "EMPTY_INPUT" in sanitize_question("").errors
    res = sanitize_question("  \x00 ")
    assert not res.is_valid
    assert "EMPTY_AFTER_TRIM" in res.errors


def test_sanitize_too_long():
    """Overlong questions are rejected with a truncated preview."""
    res = sanitize_question("abcdefgh", max_len=5)
    assert not res.is_valid
    assert res.sanitized == "abcde"
    assert "TOO_LONG" in res.errors
