import pytest

from qfuzz.classify import Result
from qfuzz.errors import OutputWriteError
from qfuzz.sink import ResultSink, cache_headers, detect_web_cache

HIT = Result("http://h/admin", 200, "OK", 512)


def test_output_file_truncated_on_open(tmp_path):
    out = tmp_path / "out.txt"
    out.write_text("stale\n")
    with ResultSink(str(out), cache_file=str(tmp_path / "cache.txt")):
        pass
    assert out.read_text() == ""


def test_report_writes_url_and_prints_line(tmp_path, capsys):
    out = tmp_path / "out.txt"
    with ResultSink(str(out), cache_file=str(tmp_path / "cache.txt")) as sink:
        sink.report(HIT)
        sink.report(Result("http://h/login", 403, "Forbidden", 0))
    assert out.read_text() == "http://h/admin\nhttp://h/login\n"
    assert sink.reported == 2
    printed = capsys.readouterr().out
    assert " >> [200]  http://h/admin  [ContentSize: 512, Status: 200 OK]" in printed
    assert "[403]  http://h/login" in printed


def test_silent_prints_bare_url(tmp_path, capsys):
    with ResultSink(None, cache_file=str(tmp_path / "cache.txt"), silent=True) as sink:
        sink.report(HIT)
        sink.show_unmatched(Result("http://h/nope", 404, "Not Found", 9))
    assert capsys.readouterr().out.splitlines() == ["http://h/admin"]


def test_show_unmatched(tmp_path, capsys):
    with ResultSink(None, cache_file=str(tmp_path / "cache.txt")) as sink:
        sink.show_unmatched(Result("http://h/nope", 404, "Not Found", 2048))
    line = capsys.readouterr().out
    assert "[404]  http://h/nope  2.0kB" in line
    assert sink.reported == 0


def test_cache_file_created_lazily(tmp_path, capsys):
    cache = tmp_path / "cache.txt"
    with ResultSink(None, cache_file=str(cache)) as sink:
        assert not cache.exists()
        sink.record_cache("http://h/a")
        sink.record_cache("http://h/b")
    assert cache.read_text() == "http://h/a\nhttp://h/b\n"
    assert sink.cached == 2
    assert "[cache]  http://h/a" in capsys.readouterr().out


def test_unwritable_output_is_fatal(tmp_path):
    with pytest.raises(OutputWriteError):
        ResultSink(str(tmp_path / "missing" / "out.txt")).open()


def test_write_failure_raises_output_write_error(tmp_path):
    class Broken:
        def write(self, data):
            raise OSError("No space left on device")

        def close(self):
            pass

    sink = ResultSink(None, cache_file=str(tmp_path / "cache.txt"))
    sink._out = Broken()
    sink.output_file = "out.txt"
    with pytest.raises(OutputWriteError, match="No space left"):
        sink.report(HIT)


@pytest.mark.parametrize("headers,expected", [
    ({"X-Cache": "HIT"}, True),
    ({"x-cache": "Miss from cloudfront"}, True),
    ({"CF-Cache-Status": "MISS"}, True),
    ({"Cf-Cache-Status": "DYNAMIC"}, False),
    ({"Cache-Control": "max-age=3600", "Age": "12"}, False),
    ({}, False),
])
def test_detect_web_cache(headers, expected):
    assert detect_web_cache(headers) is expected


def test_cache_headers_case_insensitive():
    found = cache_headers({"x-cache": "HIT", "age": "3", "Content-Type": "text/html"})
    assert found == {"X-Cache": "HIT", "Age": "3"}
