import pytest
import requests

from vu_monitor.reconcile.files import FileDelivery, normalize_file_name

from conftest import attachment


class FakeResponse:
    def __init__(self, body=b"", content_type="application/pdf", status=200):
        self.body = body
        self.headers = {"Content-Type": content_type}
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Error")

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start:start + chunk_size]


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []
        self.proxies = {}

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        return self.response


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("report.pdf", "report.pdf"),
        ("report.pdf.pdf", "report.pdf"),
        ("report . pdf", "report.pdf"),
        ("report..pdf", "report.pdf"),
        ("tamrin\u200b.docx", "tamrin.docx"),
        ("\ufeffnotes.txt", "notes.txt"),
        ('a/b:c*?.zip', "a_b_c__.zip"),
        ("notes.", "notes"),
        ("", "file"),
    ],
)
def test_normalize_file_name(raw, expected):
    assert normalize_file_name(raw) == expected


def make_delivery(context, gateway, persist, settings, response):
    session = FakeSession(response)
    return FileDelivery(context, gateway, persist, settings, session=session), session


def test_file_downloaded_with_browser_session_and_sent_once(context, gateway, persist, settings, course, tmp_path):
    pdf = attachment("brief.pdf")
    delivery, session = make_delivery(context, gateway, persist, settings, FakeResponse(b"%PDF" + b"0" * 500))

    assert delivery.deliver(course, pdf) is True
    assert delivery.deliver(course, pdf) is False

    assert len(session.requests) == 1
    url, kwargs = session.requests[0]
    assert url == pdf.url
    assert kwargs["cookies"] == {"MoodleSession": "abc123"}
    assert kwargs["headers"]["User-Agent"] == "Mozilla/5.0 (test)"

    path, caption = gateway.documents[0]
    assert path == tmp_path / "files" / "brief.pdf"
    assert path.read_bytes().startswith(b"%PDF")
    assert "brief.pdf" in caption
    assert course.sent_files[pdf.url].file_name == "brief.pdf"
    assert persist.calls == 1


def test_html_response_is_treated_as_expired_session(context, gateway, persist, settings, course):
    delivery, _ = make_delivery(context, gateway, persist, settings, FakeResponse(b"<html>" * 100, "text/html; charset=utf-8"))

    assert delivery.deliver(course, attachment()) is False

    assert gateway.documents == []
    assert "Could not download file" in gateway.messages[0].text
    assert course.sent_files == {}


def test_tiny_body_is_rejected(context, gateway, persist, settings, course, tmp_path):
    delivery, _ = make_delivery(context, gateway, persist, settings, FakeResponse(b"oops"))

    assert delivery.deliver(course, attachment()) is False
    assert not (tmp_path / "files" / "hw1.pdf").exists()


def test_http_error_reports_link(context, gateway, persist, settings, course):
    delivery, _ = make_delivery(context, gateway, persist, settings, FakeResponse(status=404))

    assert delivery.deliver(course, attachment()) is False
    assert attachment().url in gateway.messages[0].text


def test_large_file_sends_link_instead(context, gateway, persist, settings, course, monkeypatch):
    monkeypatch.setattr(FileDelivery, "MAX_UPLOAD_BYTES", 1000)
    delivery, _ = make_delivery(context, gateway, persist, settings, FakeResponse(b"x" * 2000))

    assert delivery.deliver(course, attachment()) is True

    assert gateway.documents == []
    assert "too large" in gateway.messages[0].text
    assert attachment().url in course.sent_files
