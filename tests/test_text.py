from social_feed.text import extract_mentions, sanitize_input, sanitize_search_query, truncate


def test_extract_mentions():
    assert extract_mentions("hi @Bob and @carol_1, cc @bob") == ["bob", "carol_1"]
    assert extract_mentions("mail me at me@example.com") == []
    assert extract_mentions("@ab is too short, @@double") == []


def test_sanitize_input_strips_markup_vectors():
    assert sanitize_input(' <img onerror=x> ') == "img x"
    assert sanitize_input("JavaScript:void(0)") == "void(0)"
    assert sanitize_input("abcdef", max_length=3) == "abc"


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("x" * 150, 100) == "x" * 100


def test_sanitize_search_query():
    assert sanitize_search_query("  @Alice_01! ") == "alice_01"
    assert sanitize_search_query("Al Zed") == "al zed"
    assert sanitize_search_query("<script>") == "script"
    assert sanitize_search_query("x" * 80) == "x" * 50
    assert sanitize_search_query("abcdef", max_length=3) == "abc"
