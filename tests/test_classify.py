import pytest

from qfuzz.classify import (Result, body_matches, build_result, content_size, decide,
                            extract_text_and_title, is_filtered, is_match)
from qfuzz.config import Config, Rules

from conftest import make_response

PAGE = b"<html><head><title>Admin Panel</title></head><body><h1>Welcome</h1> sign in</body></html>"


def _result(status=200, size=0, matched=False):
    return Result(url="http://h/x", status_code=status, status_text="", content_size=size, matched=matched)


def _match(**kw):
    return Config(match=Rules.parse(**kw))


def _filter(**kw):
    return Config(filter=Rules.parse(**kw))


@pytest.mark.parametrize("status,expected", [
    (200, True), (204, True), (301, True), (302, True), (307, True),
    (401, True), (403, True), (405, True), (500, True),
    (304, False), (404, False), (429, False), (502, False),
])
def test_default_rules_report_interesting_statuses(status, expected):
    assert decide(_result(status), Config()) is expected


def test_explicit_status_replaces_interesting_set():
    cfg = _match(status="404")
    assert decide(_result(404), cfg)
    assert not decide(_result(200), cfg)


def test_match_all_statuses():
    cfg = _match(status="all")
    for status in (200, 404, 418, 599):
        assert decide(_result(status), cfg)


def test_match_size_keeps_interesting_status_requirement():
    cfg = _match(size="1234")
    assert decide(_result(200, 1234), cfg)
    assert not decide(_result(200, 1235), cfg)
    assert not decide(_result(404, 1234), cfg)


def test_match_strings():
    cfg = _match(strings="admin")
    assert decide(_result(200, matched=True), cfg)
    assert not decide(_result(200, matched=False), cfg)


def test_match_categories_combine_with_and():
    rules = Rules.parse(status="200,403", size="10")
    assert is_match(_result(403, 10), rules)
    assert not is_match(_result(403, 11), rules)
    assert not is_match(_result(404, 10), rules)


def test_filter_status_on_top_of_interesting_set():
    cfg = _filter(status="403")
    assert not decide(_result(403), cfg)
    assert decide(_result(200), cfg)
    assert not decide(_result(404), cfg)


def test_filter_size_and_strings():
    cfg = _filter(size="0")
    assert not decide(_result(200, 0), cfg)
    assert decide(_result(200, 5), cfg)

    cfg = _filter(strings="not found")
    assert not decide(_result(200, matched=True), cfg)
    assert decide(_result(200, matched=False), cfg)


def test_any_filter_category_suppresses():
    rules = Rules.parse(status="500", size="42")
    assert is_filtered(_result(500, 1), rules)
    assert is_filtered(_result(200, 42), rules)
    assert not is_filtered(_result(200, 1), rules)


@pytest.mark.parametrize("cfg", [
    Config(),
    _match(status="200", size="3"),
    _match(status="all", strings="admin"),
    _filter(status="403"),
    _filter(size="3", strings="admin"),
], ids=["default", "match-status-size", "match-all-strings", "filter-status", "filter-size-strings"])
def test_decide_is_pure(cfg):
    results = [_result(s, size, matched) for s in (200, 403, 404) for size in (0, 3) for matched in (False, True)]
    first = [decide(r, cfg) for r in results]
    for _ in range(3):
        assert [decide(r, cfg) for r in results] == first


def test_filter_size_and_strings_combined():
    cfg = _filter(size="3", strings="admin")
    reported = {(r.status_code, r.content_size, r.matched)
                for r in (_result(s, size, m) for s in (200, 403, 404) for size in (0, 3) for m in (False, True))
                if decide(r, cfg)}
    assert reported == {(200, 0, False), (403, 0, False)}


def test_extract_text_and_title():
    text, title = extract_text_and_title(PAGE)
    assert title == "Admin Panel"
    assert "Welcome" in text


def test_body_matches_case_insensitive_text_or_title():
    assert body_matches(PAGE, ["admin panel"])
    assert body_matches(PAGE, ["SIGN IN"])
    assert not body_matches(PAGE, ["logout"])
    assert not body_matches(b"", ["x"])
    assert not body_matches(PAGE, [])


def test_content_size_prefers_declared_length():
    assert content_size(make_response(200, b"abc", {"Content-Length": "999"})) == 999
    assert content_size(make_response(200, b"abc")) == 3
    assert content_size(make_response(200, b"abcd", {"Content-Length": "bogus"})) == 4


def test_build_result_only_parses_body_when_strings_configured():
    response = make_response(403, PAGE)
    r = build_result("http://h/admin", response, Config())
    assert r == Result("http://h/admin", 403, "Forbidden", len(PAGE), False)
    assert r.status == "403 Forbidden"

    r = build_result("http://h/admin", response, _match(strings="panel"))
    assert r.matched

    r = build_result("http://h/admin", response, _filter(strings="nothing-like-it"))
    assert not r.matched


def test_content_size_of_compressed_response_is_decoded_length():
    page = b"<html>" + b"x" * 6000 + b"</html>"
    response = make_response(200, page, {"Content-Length": "84", "Content-Encoding": "gzip"})
    assert content_size(response) == len(page)
    response = make_response(200, page, {"Content-Length": "84", "Content-Encoding": "identity"})
    assert content_size(response) == 84
