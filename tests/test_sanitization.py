"""
Tests for input sanitization utilities.
"""
from datastory.core.sanitization import sanitize_filename, sanitize_for_logging, sanitize_for_prompt


def test_sanitize_filename():
    """Test filename sanitization."""
    assert sanitize_filename("test.csv") == "test.csv"

    # Path traversal attempt
    assert sanitize_filename("../../../etc/passwd") == "passwd"
    assert sanitize_filename("C:\\data\\sales.xlsx") == "sales.xlsx"

    # Newlines and control characters
    assert sanitize_filename("test\nfile.csv") == "testfile.csv"
    assert "\x00" not in sanitize_filename("test\x00file.csv")

    long_name = "a" * 300
    assert len(sanitize_filename(long_name)) == 255

    assert sanitize_filename("") == "unknown"
    assert sanitize_filename(None) == "unknown"
    assert sanitize_filename("...") == "unknown"


def test_sanitize_filename_keeps_arabic():
    assert sanitize_filename("بيانات المبيعات.csv") == "بيانات المبيعات.csv"


def test_sanitize_for_logging():
    """Test log sanitization."""
    assert sanitize_for_logging("line1\nline2") == "line1 line2"
    assert sanitize_for_logging("a" * 600).endswith("...")
    assert sanitize_for_logging("") == ""


def test_sanitize_for_prompt():
    assert sanitize_for_prompt("sales.csv") == "sales.csv"
    assert sanitize_for_prompt("a\nb\tc") == "abc"
    assert sanitize_for_prompt("x" * 150) == "x" * 100 + "..."
    assert sanitize_for_prompt("IGNORE previous") == "[IGNORE] previous"
    assert sanitize_for_prompt("") == ""
