import asyncio
from pathlib import Path

import pytest

from fakes import FakeController, FakePage
from loginprobe.analyzer.models import Credential
from loginprobe.analyzer.page_analyzer import PageAnalyzer
from loginprobe.config import Config
from loginprobe.constants import ChallengeType, OrchestratorState, RunStatus
from loginprobe.pipeline.orchestrator import LoginOrchestrator

LOGIN_URL = "https://example.com/admin/login"
HOME_URL = "https://example.com/admin/dashboard"
USER = "input[name='username']"
PASS = "input[type='password']"
SUBMIT = "button[type='submit']"
CHECKBOX = "input[type='checkbox'][name*='agree']"
FORM = {USER, PASS, SUBMIT}

CREDENTIALS = [Credential("u1", "p1"), Credential("u2", "p2"), Credential("u3", "p3")]


class DummySink:
    def __init__(self):
        self.successes: list[tuple] = []
        self.failures: list[tuple] = []
        self.runs: list = []

    async def success(self, url, username, password):
        self.successes.append((url, username, password))

    async def failure(self, url, username, password):
        self.failures.append((url, username, password))

    async def record_run(self, report):
        self.runs.append(report)


class DummyEvidenceStore:
    def __init__(self):
        self.saved: list[tuple] = []

    async def save_screenshot(self, url, data, username=""):
        self.saved.append((url, data, username))
        return Path("/tmp/evidence") / f"success_{username}.png"


def login_page(extra_selectors=(), body="用户名 密码") -> FakePage:
    return FakePage(title="Admin Login", body=body, selectors=FORM | set(extra_selectors))


def site(accepted=("u2", "p2"), drift_on_failure=False, extra_selectors=()):
    """Fake site that accepts one credential pair and rejects the rest."""

    def on_submit(controller: FakeController) -> None:
        if (controller.fields.get(USER), controller.fields.get(PASS)) == accepted:
            controller.url = HOME_URL
            controller.page = FakePage(title="Dashboard", body="欢迎 admin dashboard")
        elif drift_on_failure:
            controller.url = LOGIN_URL + "?error=1"
            controller.page = login_page(extra_selectors, body="用户名 密码 登录失败")
        else:
            controller.page = login_page(extra_selectors, body="用户名 密码 密码错误")

    return FakeController({LOGIN_URL: login_page(extra_selectors)}, submit_selector=SUBMIT, on_submit=on_submit)


def make_orchestrator(controller, credentials=CREDENTIALS, **overrides):
    config = Config()
    options = dict(
        controller=controller,
        analyzer=PageAnalyzer.from_config(config),
        credentials=credentials,
        success_keywords=config.attempts.success_keywords,
        failure_keywords=config.attempts.failure_keywords,
        settle_delay=0,
        delay=0,
        fill_retry_pause=0,
        sink=DummySink(),
        evidence_store=DummyEvidenceStore(),
    )
    options.update(overrides)
    return LoginOrchestrator(**options)


@pytest.mark.asyncio
async def test_halts_on_first_success():
    controller = site()
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert report.credential == Credential("u2", "p2")
    assert report.attempts == 2
    assert controller.submissions == [("u1", "p1"), ("u2", "p2")]
    assert orchestrator.sink.failures == [(LOGIN_URL, "u1", "p1")]
    assert orchestrator.sink.successes == [(LOGIN_URL, "u2", "p2")]
    assert report.screenshot_path == str(Path("/tmp/evidence") / "success_u2.png")
    assert orchestrator.evidence_store.saved[0][1] == controller.screenshot_bytes
    assert orchestrator.sink.runs == [report]
    assert orchestrator.state == OrchestratorState.SUCCEEDED


@pytest.mark.asyncio
async def test_admin_login_scenario_end_to_end():
    controller = site(accepted=("u1", "p1"))
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.analysis.classification.is_login_page
    assert report.analysis.challenge.type == ChallengeType.NONE
    assert report.analysis.form.username_selector == USER
    assert report.status == RunStatus.SUCCEEDED
    assert report.final_attempt.resulting_url == HOME_URL
    assert controller.submissions == [("u1", "p1")]


@pytest.mark.asyncio
async def test_exhausts_all_pairs_in_order():
    controller = site(accepted=("nobody", "nothing"))
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.EXHAUSTED
    assert report.attempts == 3
    assert controller.submissions == [("u1", "p1"), ("u2", "p2"), ("u3", "p3")]
    assert report.final_attempt.success is False
    assert "密码错误" in report.final_attempt.error_message
    assert len(orchestrator.sink.failures) == 3


@pytest.mark.asyncio
async def test_recaptcha_is_skipped_before_any_attempt():
    controller = site(extra_selectors={".g-recaptcha"})
    orchestrator = make_orchestrator(controller, skip_on_challenge=True)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SKIPPED
    assert report.analysis.challenge.type == ChallengeType.RECAPTCHA
    assert report.analysis.challenge.confidence == pytest.approx(0.95)
    assert controller.submissions == []
    assert orchestrator.sink.failures == []


@pytest.mark.asyncio
async def test_challenge_policy_can_allow_proceeding():
    controller = site(extra_selectors={".g-recaptcha"})
    orchestrator = make_orchestrator(controller, skip_on_challenge=False)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_non_interactive_challenge_proceeds_even_with_skip_policy():
    controller = site(extra_selectors={"input[name*='captcha']"})
    orchestrator = make_orchestrator(controller, skip_on_challenge=True)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.analysis.challenge.type == ChallengeType.TEXT_CODE
    assert report.status == RunStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_navigation_failure_aborts():
    controller = site()
    controller.failing_urls.add(LOGIN_URL)
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.ABORTED
    assert report.reason.startswith("navigation failed")
    assert controller.submissions == []


@pytest.mark.asyncio
async def test_non_login_page_aborts():
    controller = FakeController({"https://example.com/news": FakePage(title="News", body="latest")})
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack("https://example.com/news")

    assert report.status == RunStatus.ABORTED
    assert report.reason.startswith("not a login page")


@pytest.mark.asyncio
async def test_missing_submit_aborts_with_specific_reason():
    page = FakePage(title="Admin Login", body="用户名 密码 账号 login", selectors={USER, PASS})
    controller = FakeController({LOGIN_URL: page})
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.ABORTED
    assert report.reason == "submit button not found"
    assert report.analysis.classification.is_login_page


@pytest.mark.asyncio
async def test_empty_credentials_abort_without_navigation():
    controller = site()
    orchestrator = make_orchestrator(controller, credentials=[])

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.ABORTED
    assert report.reason == "no credentials configured"
    assert controller.navigations == []


@pytest.mark.asyncio
async def test_fill_retries_once_with_aggressive_clear():
    controller = site(accepted=("u1", "p1"))
    controller.mangle_once.add(USER)
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_persistent_fill_mismatch_fails_the_attempt():
    controller = site(accepted=("u1", "p1"))
    controller.mangle_always.add(PASS)
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.EXHAUSTED
    assert controller.submissions == []
    assert report.final_attempt.error_message.startswith("fill failed")


@pytest.mark.asyncio
async def test_fill_retries_once_after_controller_error():
    controller = site(accepted=("u1", "p1"))
    controller.detach_once.add(USER)
    orchestrator = make_orchestrator(controller, credentials=[Credential("u1", "p1")])

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert controller.submissions == [("u1", "p1")]


class FailingSink(DummySink):
    async def success(self, url, username, password):
        raise OSError(28, "No space left on device")

    async def failure(self, url, username, password):
        raise OSError(28, "No space left on device")


@pytest.mark.asyncio
async def test_sink_errors_do_not_change_the_outcome():
    controller = site(accepted=("u2", "p2"))
    orchestrator = make_orchestrator(controller, sink=FailingSink())

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert report.credential == Credential("u2", "p2")
    assert controller.submissions == [("u1", "p1"), ("u2", "p2")]
    assert orchestrator.sink.runs == [report]


@pytest.mark.asyncio
async def test_field_settle_pauses_after_each_fill(monkeypatch):
    pauses = []
    real_sleep = asyncio.sleep

    async def recording_sleep(seconds, *args, **kwargs):
        pauses.append(seconds)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", recording_sleep)
    controller = site(accepted=("u1", "p1"))
    orchestrator = make_orchestrator(controller, credentials=[Credential("u1", "p1")], field_settle=0.3)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert pauses == [0.3, 0.3]


@pytest.mark.asyncio
async def test_checkbox_failure_is_not_fatal():
    controller = site(accepted=("u1", "p1"), extra_selectors={CHECKBOX})
    controller.failing_clicks.add(CHECKBOX)
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert controller.clicks[:2] == [CHECKBOX, SUBMIT]


@pytest.mark.asyncio
async def test_renavigates_when_page_drifts():
    controller = site(accepted=("u3", "p3"), drift_on_failure=True)
    orchestrator = make_orchestrator(controller)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.SUCCEEDED
    assert controller.navigations == [LOGIN_URL, LOGIN_URL, LOGIN_URL]


@pytest.mark.asyncio
async def test_cancel_during_countdown_stops_run():
    controller = site(accepted=("u3", "p3"))

    def on_progress(state, detail):
        if state == OrchestratorState.RETRYING:
            orchestrator.cancel()

    orchestrator = make_orchestrator(controller, delay=30, on_progress=on_progress)

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.CANCELLED
    assert report.attempts == 1
    assert controller.submissions == [("u1", "p1")]


@pytest.mark.asyncio
async def test_analyze_page_submits_nothing():
    controller = site()
    orchestrator = make_orchestrator(controller)

    analysis = await orchestrator.analyze_page(LOGIN_URL)

    assert analysis.classification.is_login_page
    assert analysis.form.is_complete
    assert controller.submissions == []


class ExplodingController(FakeController):
    async def navigate(self, url, timeout=None):
        if url.endswith("/boom"):
            raise RuntimeError("browser crashed")
        await super().navigate(url, timeout)


@pytest.mark.asyncio
async def test_batch_continues_past_failed_urls():
    controller = site(accepted=("u1", "p1"))
    exploding = ExplodingController(controller.pages, submit_selector=SUBMIT, on_submit=controller.on_submit)
    exploding.failing_urls.add("https://down.example.com/login")
    orchestrator = make_orchestrator(exploding)

    reports = await orchestrator.run_batch(
        ["https://down.example.com/login", "https://example.com/boom", LOGIN_URL]
    )

    assert [report.status for report in reports] == [
        RunStatus.ABORTED,
        RunStatus.ABORTED,
        RunStatus.SUCCEEDED,
    ]
    assert "browser crashed" in reports[1].reason


@pytest.mark.asyncio
async def test_controller_error_on_submit_is_attempt_failure():
    controller = site(accepted=("u1", "p1"))
    controller.failing_clicks.add(SUBMIT)
    orchestrator = make_orchestrator(controller, credentials=[Credential("u1", "p1")])

    report = await orchestrator.run_attack(LOGIN_URL)

    assert report.status == RunStatus.EXHAUSTED
    assert report.final_attempt.error_message.startswith("submit failed")
