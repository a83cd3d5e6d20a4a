import pytest

from genveje.logic.urls import encode_component, ensure_absolute_url, is_absolute_url, normalize_url


@pytest.mark.parametrize(
    "url",
    [
        "https://www.zalando.dk/",
        "http://zalando.dk",
        "https://zalando.dk/",
        "HTTPS://WWW.ZALANDO.DK",
    ],
)
def test_normalize_url_equivalence(url):
    assert normalize_url(url) == "zalando.dk"


def test_normalize_url_keeps_path_and_subdomain():
    assert normalize_url("https://www2.hm.com/da_dk/") == "www2.hm.com/da_dk"


def test_normalize_url_handles_empty():
    assert normalize_url("") == ""


def test_ensure_absolute_url():
    assert ensure_absolute_url("zalando.dk") == "https://zalando.dk"
    assert ensure_absolute_url("http://hm.com") == "http://hm.com"
    assert ensure_absolute_url("   ") is None
    assert ensure_absolute_url("https://") is None


def test_is_absolute_url():
    assert is_absolute_url("https://hm.com")
    assert not is_absolute_url("hm.com")
    assert not is_absolute_url("ftp://hm.com")


def test_encode_component():
    assert encode_component("https://hm.com/a b?x=1&y=2") == "https%3A%2F%2Fhm.com%2Fa%20b%3Fx%3D1%26y%3D2"
    assert encode_component("a-b_c.d!e~f*g'h(i)") == "a-b_c.d!e~f*g'h(i)"
