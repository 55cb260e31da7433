"""Per-URL attempt loop: navigate, classify, resolve, check challenges, try credentials."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from ..analyzer.models import (
    NO_CHALLENGE,
    AttemptResult,
    Credential,
    FormElements,
    PageAnalysis,
    RunReport,
)
from ..analyzer.page_analyzer import PageAnalyzer
from ..constants import OrchestratorState, RunStatus
from ..errors import ControllerError, FieldVerificationError, PageReadError
from ..utils.timing import cancellable_sleep
from .judge import judge_attempt

if TYPE_CHECKING:
    from ..analyzer.controller import PageController
    from ..config import Config
    from ..storage.evidence import EvidenceStore
    from ..storage.results import ResultSink

logger = logging.getLogger(__name__)

MISSING_FIELD_REASONS = {
    "username": "username field not found",
    "password": "password field not found",
    "submit": "submit button not found",
}

ProgressCallback = Callable[[OrchestratorState, str], None]


class LoginOrchestrator:
    """Drives one browser page through the attempt state machine.

    One URL is processed at a time and every controller call is awaited
    before the next one starts. Cancellation is honoured between attempts
    and during the inter-attempt countdown.
    """

    def __init__(
        self,
        *,
        controller: "PageController",
        analyzer: PageAnalyzer,
        credentials: list[Credential],
        success_keywords: list[str],
        failure_keywords: list[str],
        skip_on_challenge: bool = True,
        delay: int = 0,
        settle_delay: float = 3.0,
        field_settle: float = 0.0,
        fill_retry_pause: float = 0.5,
        navigation_timeout: Optional[float] = None,
        sink: Optional["ResultSink"] = None,
        evidence_store: Optional["EvidenceStore"] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.controller = controller
        self.analyzer = analyzer
        self.credentials = list(credentials)
        self.success_keywords = list(success_keywords)
        self.failure_keywords = list(failure_keywords)
        self.skip_on_challenge = skip_on_challenge
        self.delay = max(0, int(delay))
        self.settle_delay = settle_delay
        self.field_settle = field_settle
        self.fill_retry_pause = fill_retry_pause
        self.navigation_timeout = navigation_timeout
        self.sink = sink
        self.evidence_store = evidence_store
        self.cancel_event = cancel_event or asyncio.Event()
        self.on_progress = on_progress
        self.state: Optional[OrchestratorState] = None

    @classmethod
    def from_config(
        cls,
        config: "Config",
        controller: "PageController",
        *,
        sink: Optional["ResultSink"] = None,
        evidence_store: Optional["EvidenceStore"] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "LoginOrchestrator":
        return cls(
            controller=controller,
            analyzer=PageAnalyzer.from_config(config),
            credentials=config.credentials(),
            success_keywords=config.attempts.success_keywords,
            failure_keywords=config.attempts.failure_keywords,
            skip_on_challenge=config.challenge.skip_on_detection,
            delay=config.attempts.delay,
            settle_delay=config.attempts.settle_delay,
            field_settle=config.attempts.field_settle,
            navigation_timeout=config.browser.navigation_timeout,
            sink=sink,
            evidence_store=evidence_store,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )

    def cancel(self) -> None:
        """Request the run to stop at the next safe point."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _set_state(self, state: OrchestratorState, detail: str = "") -> None:
        self.state = state
        logger.debug("State -> %s %s", state.value, detail)
        if self.on_progress is not None:
            self.on_progress(state, detail)

    async def analyze_page(self, url: str) -> PageAnalysis:
        """Navigate to url and analyze it without submitting anything.

        Raises ControllerError if navigation fails and PageReadError if the
        page cannot be read.
        """
        await self.controller.navigate(url, self.navigation_timeout)
        return await self.analyzer.analyze_page(self.controller)

    async def run_batch(self, urls: list[str]) -> list[RunReport]:
        """Process each URL in turn; one URL's failure never stops the batch."""
        reports: list[RunReport] = []
        for position, url in enumerate(urls, 1):
            if self.cancelled:
                logger.info("Run cancelled; %d URL(s) not processed", len(urls) - position + 1)
                break
            logger.info("[%d/%d] Processing %s", position, len(urls), url)
            try:
                report = await self.run_attack(url)
            except Exception as exc:
                logger.exception("Unexpected error while processing %s", url)
                report = RunReport(url=url, status=RunStatus.ABORTED, reason=f"unexpected error: {exc}")
            reports.append(report)
        return reports

    async def run_attack(self, url: str) -> RunReport:
        """Run the full attempt sequence against one URL."""
        report = await self._run(url)
        self._log_report(report)
        record_run = getattr(self.sink, "record_run", None)
        if record_run is not None:
            try:
                await record_run(report)
            except Exception as exc:
                logger.warning("Failed to record run for %s: %s", url, exc)
        return report

    def _abort(self, url: str, reason: str, analysis: Optional[PageAnalysis] = None) -> RunReport:
        self._set_state(OrchestratorState.ABORTED, reason)
        return RunReport(url=url, status=RunStatus.ABORTED, reason=reason, analysis=analysis)

    async def _run(self, url: str) -> RunReport:
        if not self.credentials:
            return self._abort(url, "no credentials configured")

        self._set_state(OrchestratorState.NAVIGATING, url)
        try:
            await self.controller.navigate(url, self.navigation_timeout)
        except ControllerError as exc:
            return self._abort(url, f"navigation failed: {exc.message}")

        self._set_state(OrchestratorState.CLASSIFYING)
        try:
            classification = await self.analyzer.classifier.classify_page(self.controller)
        except PageReadError as exc:
            return self._abort(url, f"page read failed: {exc}")

        if not classification.is_login_page:
            return self._abort(url, f"not a login page (confidence {classification.confidence:.2f})")

        self._set_state(OrchestratorState.RESOLVING)
        form = await self.analyzer.resolver.resolve(self.controller)
        analysis = PageAnalysis(
            classification=classification,
            form=form,
            challenge=form.challenge or NO_CHALLENGE,
        )

        missing = form.missing_required()
        if missing:
            reason = "; ".join(MISSING_FIELD_REASONS[role] for role in missing)
            return self._abort(url, reason, analysis)

        self._set_state(OrchestratorState.CHALLENGE_CHECK)
        challenge = analysis.challenge
        if challenge.is_present:
            if not challenge.is_interactive():
                logger.info("%s present; continuing (%s)", challenge.type.display_name, challenge.handling_strategy())
            elif self.skip_on_challenge:
                reason = f"{challenge.type.display_name} detected; skipped by policy"
                self._set_state(OrchestratorState.ABORTED, reason)
                return RunReport(url=url, status=RunStatus.SKIPPED, reason=reason, analysis=analysis)
            else:
                logger.warning(
                    "%s present but policy allows proceeding; attempts will likely fail",
                    challenge.type.display_name,
                )

        return await self._attempt_all(url, classification.url or url, form, analysis)

    async def _attempt_all(
        self, url: str, landing_url: str, form: FormElements, analysis: PageAnalysis
    ) -> RunReport:
        total = len(self.credentials)
        last: Optional[AttemptResult] = None

        for index, credential in enumerate(self.credentials, 1):
            if self.cancelled:
                return RunReport(
                    url=url,
                    status=RunStatus.CANCELLED,
                    reason="cancelled by user",
                    attempts=index - 1,
                    final_attempt=last,
                    analysis=analysis,
                )

            self._set_state(OrchestratorState.ATTEMPTING, f"{index}/{total} {credential.username}")
            logger.info("Attempt %d/%d against %s as %s", index, total, url, credential.username)
            last = await self.attempt(form, credential)

            if last.success:
                self._set_state(OrchestratorState.SUCCEEDED, credential.username)
                screenshot_path = await self._save_screenshot(url, last)
                await self._persist(url, credential, success=True)
                return RunReport(
                    url=url,
                    status=RunStatus.SUCCEEDED,
                    reason=f"logged in as {credential.username}",
                    attempts=index,
                    final_attempt=last,
                    screenshot_path=screenshot_path,
                    analysis=analysis,
                )

            logger.info("Attempt %d/%d failed: %s", index, total, last.error_message)
            await self._persist(url, credential, success=False)

            if index < total:
                self._set_state(OrchestratorState.RETRYING)
                if not await self._wait_between_attempts():
                    return RunReport(
                        url=url,
                        status=RunStatus.CANCELLED,
                        reason="cancelled by user",
                        attempts=index,
                        final_attempt=last,
                        analysis=analysis,
                    )
                await self._return_to_login(url, landing_url)

        self._set_state(OrchestratorState.EXHAUSTED)
        return RunReport(
            url=url,
            status=RunStatus.EXHAUSTED,
            reason=f"all {total} credential pairs failed",
            attempts=total,
            final_attempt=last,
            analysis=analysis,
        )

    async def fill_field(self, selector: str, value: str) -> None:
        """Set a field and read it back; retry once with an aggressive clear.

        A mismatch or a controller error on the first try leads to the
        retry. Errors from the retry propagate to the caller.
        """
        try:
            await self.controller.set_field(selector, value)
            actual = await self.controller.get_field_value(selector)
        except ControllerError as exc:
            logger.debug("Filling %s failed (%s), retrying with aggressive clear", selector, exc)
        else:
            if actual == value:
                await self._settle_field()
                return
            logger.debug("Value mismatch in %s, retrying with aggressive clear", selector)

        if self.fill_retry_pause > 0:
            await asyncio.sleep(self.fill_retry_pause)
        await self.controller.set_field(selector, value, aggressive=True)
        actual = await self.controller.get_field_value(selector)
        if actual != value:
            raise FieldVerificationError(selector, value, actual)
        await self._settle_field()

    async def _settle_field(self) -> None:
        if self.field_settle > 0:
            await asyncio.sleep(self.field_settle)

    async def attempt(self, form: FormElements, credential: Credential) -> AttemptResult:
        """Fill, submit and judge a single credential pair."""
        try:
            await self.fill_field(form.username_selector, credential.username)
            await self.fill_field(form.password_selector, credential.password)
        except (ControllerError, FieldVerificationError) as exc:
            return AttemptResult(
                success=False,
                credential=credential,
                resulting_url=await self._safe_location(),
                error_message=f"fill failed: {exc}",
            )

        if form.checkbox_selector:
            try:
                await self.controller.click(form.checkbox_selector)
            except ControllerError as exc:
                logger.warning("Agreement checkbox click failed (continuing): %s", exc)

        before_url = await self.controller.current_location()
        try:
            await self.controller.click(form.submit_selector)
        except ControllerError as exc:
            return AttemptResult(
                success=False,
                credential=credential,
                resulting_url=before_url,
                error_message=f"submit failed: {exc}",
            )

        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        self._set_state(OrchestratorState.JUDGING)
        try:
            _, after_url, body_text = await self.controller.read_title_url_body()
        except PageReadError as exc:
            return AttemptResult(
                success=False,
                credential=credential,
                resulting_url=await self._safe_location(),
                error_message=f"could not read result page: {exc}",
            )

        judgment = judge_attempt(
            before_url,
            after_url,
            body_text,
            self.success_keywords,
            self.failure_keywords,
        )
        if judgment.rule == "url_changed":
            logger.warning("Judged success on URL change alone; verify %s manually", after_url)

        result = AttemptResult(
            success=judgment.success,
            credential=credential,
            resulting_url=after_url,
            error_message=None if judgment.success else judgment.reason,
        )
        if judgment.success:
            try:
                result.screenshot = await self.controller.screenshot()
            except ControllerError as exc:
                logger.warning("Success screenshot failed: %s", exc)
        return result

    async def _safe_location(self) -> str:
        try:
            return await self.controller.current_location()
        except ControllerError:
            return ""

    async def _wait_between_attempts(self) -> bool:
        if self.delay <= 0:
            return not self.cancelled

        def tick(remaining: int) -> None:
            logger.info("Next attempt in %ds", remaining)
            if self.on_progress is not None:
                self.on_progress(OrchestratorState.RETRYING, f"{remaining}s")

        return await cancellable_sleep(self.delay, self.cancel_event, on_tick=tick)

    async def _return_to_login(self, url: str, landing_url: str) -> None:
        """Re-open the target when the page drifted away from the login form."""
        current = await self._safe_location()
        if current == landing_url:
            return
        logger.info("Page drifted to %s; returning to %s", current, url)
        try:
            await self.controller.navigate(url, self.navigation_timeout)
        except ControllerError as exc:
            logger.warning("Re-navigation to %s failed (continuing): %s", url, exc)

    async def _save_screenshot(self, url: str, result: AttemptResult) -> Optional[str]:
        if not result.screenshot or self.evidence_store is None:
            return None
        try:
            path = await self.evidence_store.save_screenshot(url, result.screenshot, result.credential.username)
        except OSError as exc:
            logger.warning("Could not save screenshot for %s: %s", url, exc)
            return None
        logger.info("Screenshot saved to %s", path)
        return str(path)

    async def _persist(self, url: str, credential: Credential, success: bool) -> None:
        if self.sink is None:
            return
        try:
            if success:
                await self.sink.success(url, credential.username, credential.password)
            else:
                await self.sink.failure(url, credential.username, credential.password)
        except Exception as exc:
            logger.warning(
                "Failed to record %s for %s as %s: %s",
                "success" if success else "failure",
                url,
                credential.username,
                exc,
            )

    def _log_report(self, report: RunReport) -> None:
        if report.status == RunStatus.SUCCEEDED:
            logger.info("%s: SUCCESS %s", report.url, report.reason)
        elif report.status == RunStatus.EXHAUSTED:
            logger.info("%s: exhausted after %d attempts", report.url, report.attempts)
        else:
            logger.info("%s: %s (%s)", report.url, report.status.value, report.reason)

