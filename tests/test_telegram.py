import time

import pytest
import requests

from vu_monitor.exceptions import DeliveryError, MessageNotFound
from vu_monitor.notify.telegram import TelegramGateway


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code
        self.text = str(body)

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.proxies = {}

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def ok(result):
    return FakeResponse({"ok": True, "result": result})


def make_gateway(settings, *responses, **overrides):
    settings = settings.model_copy(update=overrides)
    session = FakeSession(*responses)
    return TelegramGateway(settings, session=session), session


def test_send_message_targets_chat_and_topic(settings):
    gateway, session = make_gateway(settings, ok({"message_id": 7}), telegram_topic_id=12)

    assert gateway.send_message("hello", reply_markup={"inline_keyboard": []}) == 7

    url, kwargs = session.calls[0]
    assert url.endswith("/bot123:abc/sendMessage")
    assert kwargs["json"]["chat_id"] == "100"
    assert kwargs["json"]["message_thread_id"] == 12
    assert kwargs["json"]["parse_mode"] == "HTML"


def test_admin_messages_skip_the_topic(settings):
    gateway, session = make_gateway(settings, ok({"message_id": 8}), telegram_topic_id=12)

    gateway.send_admin_message("captcha please")

    payload = session.calls[0][1]["json"]
    assert payload["chat_id"] == "200"
    assert "message_thread_id" not in payload


def test_missing_message_on_edit(settings):
    gateway, _ = make_gateway(
        settings, FakeResponse({"ok": False, "description": "Bad Request: message to edit not found"}, 400)
    )

    with pytest.raises(MessageNotFound):
        gateway.edit_message(5, "text")


def test_unchanged_edit_is_not_an_error(settings):
    gateway, _ = make_gateway(
        settings, FakeResponse({"ok": False, "description": "Bad Request: message is not modified"}, 400)
    )

    gateway.edit_message(5, "text")


@pytest.mark.parametrize(
    "response",
    [
        requests.exceptions.ConnectTimeout("slow"),
        requests.exceptions.ConnectionError("down"),
        FakeResponse(ValueError("not json"), 502),
        FakeResponse({"ok": False, "description": "Forbidden: bot was blocked"}, 403),
    ],
)
def test_failures_become_delivery_errors(settings, response):
    gateway, _ = make_gateway(settings, response)

    with pytest.raises(DeliveryError):
        gateway.send_message("hello")


def test_poll_admin_reply_filters_chat_and_age(settings):
    now = int(time.time())

    def update(chat_id, text, age):
        return ok([{"update_id": 9, "message": {"chat": {"id": chat_id}, "text": text, "date": now - age}}])

    gateway, _ = make_gateway(
        settings,
        update(200, " 4821 ", 3),
        update(999, "4821", 3),
        update(200, "4821", 120),
        ok([]),
    )

    reply = gateway.poll_admin_reply(30)
    assert reply.text == "4821"
    assert reply.update_id == 9
    assert gateway.poll_admin_reply(30) is None
    assert gateway.poll_admin_reply(30) is None
    assert gateway.poll_admin_reply(30) is None


def test_send_photo_goes_to_admin(settings):
    gateway, session = make_gateway(settings, ok({"message_id": 3}))

    gateway.send_photo(b"png", caption="code?")

    url, kwargs = session.calls[0]
    assert url.endswith("/sendPhoto")
    assert kwargs["data"]["chat_id"] == "200"
    assert kwargs["files"]["photo"][1] == b"png"


def test_connection_check(settings):
    gateway, _ = make_gateway(settings, ok({"username": "vu_bot"}))
    assert gateway.test_connection() is True

    gateway, _ = make_gateway(settings, requests.exceptions.ConnectionError("down"))
    assert gateway.test_connection() is False
