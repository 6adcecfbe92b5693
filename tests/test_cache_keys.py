import pytest

from cacheloader.core.cache.keys import canonical_json, fetch_key, hash_bytes, hash_text, short_hash


def test_canonical_json_is_stable() -> None:
    a = {"b": 2, "a": 1}
    b = {"a": 1, "b": 2}
    assert canonical_json(a) == canonical_json(b)


def test_hash_helpers_are_consistent() -> None:
    assert hash_text("hello") == hash_bytes(b"hello")
    assert short_hash("profile:1") == hash_text("profile:1")[:12]


def test_fetch_key_joins_parts() -> None:
    assert fetch_key("profile", "42") == "profile:42"
    assert fetch_key("videos_page", 1, "yog") == "videos_page:1:yog"


def test_fetch_key_params_are_order_insensitive() -> None:
    a = fetch_key("search", params={"q": "x", "page": 2})
    b = fetch_key("search", params={"page": 2, "q": "x"})
    assert a == b
    assert a.startswith("search:")


def test_fetch_key_rejects_bad_resource() -> None:
    with pytest.raises(ValueError):
        fetch_key("")
    with pytest.raises(ValueError):
        fetch_key("a:b")
