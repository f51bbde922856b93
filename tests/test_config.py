import pytest
from pydantic import ValidationError

from vu_monitor.config import Settings

REQUIRED = {
    "VU_USERNAME": "4001234567",
    "VU_PASSWORD": "secret",
    "COURSE_URLS": " https://vu.um.ac.ir/course/view.php?id=1 , https://vu.um.ac.ir/course/view.php?id=2,",
    "TELEGRAM_BOT_TOKEN": "123:abc",
    "TELEGRAM_CHAT_ID": "-1001",
    "TELEGRAM_ADMIN_CHAT_ID": "42",
}


@pytest.fixture
def env(monkeypatch):
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_loads_from_environment(env):
    settings = Settings(_env_file=None)

    assert settings.course_urls == [
        "https://vu.um.ac.ir/course/view.php?id=1",
        "https://vu.um.ac.ir/course/view.php?id=2",
    ]
    assert settings.check_interval == 5
    assert settings.timezone == "Asia/Tehran"
    assert settings.store_backend == "json"
    assert settings.captcha_timeout_seconds is None
    assert settings.course_timeout_seconds == 120


def test_debug_mode_forces_debug_logging(env):
    env.setenv("DEBUG_MODE", "true")
    env.setenv("LOG_LEVEL", "warning")

    settings = Settings(_env_file=None)

    assert settings.log_level == "WARNING"
    assert settings.effective_log_level == "DEBUG"


def test_missing_required_variable(env):
    env.delenv("TELEGRAM_BOT_TOKEN")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


@pytest.mark.parametrize(
    "key,value",
    [
        ("COURSE_URLS", " , "),
        ("CHECK_INTERVAL", "0"),
        ("LOG_LEVEL", "LOUD"),
        ("STORE_BACKEND", "redis"),
    ],
)
def test_invalid_values(env, key, value):
    env.setenv(key, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
