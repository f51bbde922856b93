import pytest
from selenium.common.exceptions import TimeoutException, WebDriverException

from vu_monitor.browser import context as context_module
from vu_monitor.browser.context import BrowserContext
from vu_monitor.exceptions import BrowserError, CourseTimeout, NavigationTimeout


class FakeClock:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


class FakeDriver:
    def __init__(self):
        self.current_url = "about:blank"
        self.page_load_timeouts = []
        self.get_error = None
        self.cdp = []
        self.quit_called = False

    def set_page_load_timeout(self, seconds):
        self.page_load_timeouts.append(seconds)

    def get(self, url):
        if self.get_error is not None:
            raise self.get_error
        self.current_url = url

    def execute_script(self, script, *args):
        return True

    def execute_cdp_cmd(self, cmd, params):
        self.cdp.append(cmd)

    def get_cookies(self):
        return [{"name": "MoodleSession", "value": "abc123"}]

    def quit(self):
        self.quit_called = True


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(context_module.time, "monotonic", fake)
    return fake


@pytest.fixture
def browser(settings):
    ctx = BrowserContext(settings)
    ctx.driver = FakeDriver()
    return ctx


def test_capped_timeout_follows_remaining_budget(browser, clock):
    assert browser.capped_timeout(60) == 60

    with browser.budget(30):
        assert browser.capped_timeout(60) == 30
        clock.value += 29.5
        assert browser.capped_timeout(60) == 1.0
        clock.value += 1
        with pytest.raises(CourseTimeout):
            browser.capped_timeout(60)

    assert browser.remaining_budget() is None


def test_unbounded_time_is_not_charged(browser, clock):
    with browser.budget(30):
        with browser.unbounded():
            clock.value += 300
            assert browser.capped_timeout(60) == 60
        assert browser.remaining_budget() == pytest.approx(30)


def test_goto_returns_landing_url(browser, clock):
    with browser.budget(120):
        assert browser.goto("https://vu.um.ac.ir/my/") == "https://vu.um.ac.ir/my/"
    assert browser.driver.page_load_timeouts[-1] == 60


def test_goto_timeout_inside_budget_is_navigation_timeout(browser, clock):
    browser.driver.get_error = TimeoutException("slow")

    with browser.budget(120), pytest.raises(NavigationTimeout):
        browser.goto("https://vu.um.ac.ir/my/")


def test_goto_after_budget_is_spent(browser, clock):
    with browser.budget(10), pytest.raises(CourseTimeout):
        clock.value += 11
        browser.goto("https://vu.um.ac.ir/my/")


def test_driver_failures_become_browser_errors(browser, clock):
    browser.driver.get_error = WebDriverException("target closed")

    with pytest.raises(BrowserError):
        browser.goto("https://vu.um.ac.ir/my/")


def test_session_data_and_cache(browser):
    assert browser.ping() is True
    assert browser.cookies() == {"MoodleSession": "abc123"}

    browser.clear_cache()
    assert browser.driver.cdp == ["Network.clearBrowserCache"]


def test_without_driver(settings):
    ctx = BrowserContext(settings)

    assert ctx.ping() is False
    assert ctx.is_started is False
    ctx.clear_cache()
    with pytest.raises(BrowserError):
        ctx.goto("https://vu.um.ac.ir/my/")


def test_close_quits_driver(browser):
    driver = browser.driver
    browser.close()

    assert driver.quit_called
    assert browser.driver is None
