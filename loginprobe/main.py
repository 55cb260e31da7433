"""Command-line entry point for LoginProbe."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from .analyzer.controller import PlaywrightController
from .analyzer.models import PageAnalysis, RunReport
from .config import Config, load_config, validate_config
from .constants import RunStatus
from .errors import ConfigurationError, ControllerError, PageReadError
from .pipeline.orchestrator import LoginOrchestrator
from .storage import AttemptDatabase, EvidenceStore, MultiSink, ResultLogger
from .utils.files import read_list_file

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _load_env_file(path: str) -> None:
    """Load environment variables from a .env-style file."""
    values = dotenv_values(path)
    for key, value in values.items():
        if value is None:
            continue
        os.environ[key] = value


def configure_logging(level: str, log_file: str = "") -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loginprobe",
        description="Audit web login pages for weak credentials (authorized testing only).",
    )
    parser.add_argument("--url", help="Target login page URL")
    parser.add_argument("-f", "--file", help="File with one target URL per line")
    parser.add_argument("--username", help="File with one username per line (overrides config)")
    parser.add_argument("--password", help="File with one password per line (overrides config)")
    parser.add_argument("--config", help="Path to config.yaml (default: config/config.yaml)")
    parser.add_argument("--path", help="Path to a Chrome/Chromium executable")
    parser.add_argument("--analyze", action="store_true", help="Only analyze pages; submit nothing")
    parser.add_argument("--debug", action="store_true", help="Show the browser and log at DEBUG level")
    parser.add_argument("--env-file", help="Load environment variables from a file before running.")
    return parser


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> None:
    if args.username:
        config.attempts.usernames = read_list_file(args.username)
    if args.password:
        config.attempts.passwords = read_list_file(args.password)
    if args.path:
        config.browser.executable_path = args.path
    if args.debug:
        config.browser.headless = False
        config.logging.level = "debug"


def collect_urls(args: argparse.Namespace) -> list[str]:
    urls: list[str] = []
    if args.url:
        urls.append(args.url.strip())
    if args.file:
        urls.extend(read_list_file(args.file))
    return urls


def print_analysis(url: str, analysis: PageAnalysis) -> None:
    classification = analysis.classification
    form = analysis.form
    challenge = analysis.challenge

    print(f"\n{'=' * 60}")
    print(f"Analysis: {url}")
    print(f"{'=' * 60}")
    print(f"  Title: {classification.title}")
    print(f"  Final URL: {classification.url}")
    print(
        f"  Login page: {'yes' if classification.is_login_page else 'no'}"
        f" (confidence {classification.confidence:.2f})"
    )
    print(
        f"  Scores: title {classification.title_score:.2f}, url {classification.url_score:.2f},"
        f" content {classification.content_score:.2f}, form {classification.form_score:.2f}"
    )
    print(f"  Username field: {form.username_selector or '-'}")
    print(f"  Password field: {form.password_selector or '-'}")
    print(f"  Submit button: {form.submit_selector or '-'}")
    if form.checkbox_selector:
        print(f"  Agreement checkbox: {form.checkbox_selector}")
    if form.captcha_input_selector:
        print(f"  Captcha input: {form.captcha_input_selector}")
    print(f"  Challenge: {challenge.type.display_name} (confidence {challenge.confidence:.2f})")
    if challenge.is_present:
        print(f"    Interactive: {'yes' if challenge.is_interactive() else 'no'}")
        print(f"    Handling: {challenge.handling_strategy()}")
        if challenge.source_image_url:
            print(f"    Image: {challenge.source_image_url}")


def print_report(report: RunReport) -> None:
    if report.status == RunStatus.SUCCEEDED:
        credential = report.credential
        print(f"[SUCCESS] {report.url} -> {credential.username}:{credential.password}")
        if report.screenshot_path:
            print(f"          screenshot: {report.screenshot_path}")
    elif report.status == RunStatus.EXHAUSTED:
        print(f"[FAILED]  {report.url} -> {report.reason}")
    elif report.status == RunStatus.SKIPPED:
        print(f"[SKIPPED] {report.url} -> {report.reason}")
    elif report.status == RunStatus.CANCELLED:
        print(f"[STOPPED] {report.url} -> cancelled after {report.attempts} attempt(s)")
    else:
        print(f"[ABORTED] {report.url} -> {report.reason}")


async def run_analyze(config: Config, urls: list[str]) -> int:
    controller = PlaywrightController.from_settings(config.browser)
    evidence = EvidenceStore(config.results.evidence_dir)
    orchestrator = LoginOrchestrator.from_config(config, controller, evidence_store=evidence)
    failures = 0

    await controller.start()
    try:
        for url in urls:
            try:
                analysis = await orchestrator.analyze_page(url)
            except (ControllerError, PageReadError) as exc:
                logger.error("Analysis of %s failed: %s", url, exc)
                failures += 1
                continue
            print_analysis(url, analysis)
            await evidence.save_analysis(url, analysis.to_dict())
    finally:
        await controller.stop()
    return 1 if failures == len(urls) else 0


async def run_attack(config: Config, urls: list[str]) -> int:
    controller = PlaywrightController.from_settings(config.browser)
    evidence = EvidenceStore(config.results.evidence_dir)
    database: Optional[AttemptDatabase] = None
    if config.results.database_enabled:
        database = AttemptDatabase(config.results.database_path)
        await database.connect()
    sink = MultiSink(ResultLogger.from_settings(config.results), database)

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel_event.set)

    orchestrator = LoginOrchestrator.from_config(
        config,
        controller,
        sink=sink,
        evidence_store=evidence,
        cancel_event=cancel_event,
    )

    logger.info(
        "Auditing %d URL(s) with %d credential pair(s)", len(urls), len(orchestrator.credentials)
    )
    await controller.start()
    try:
        reports = await orchestrator.run_batch(urls)
    finally:
        await controller.stop()
        if database:
            await database.close()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    print(f"\n{'=' * 60}")
    print("RESULTS")
    print(f"{'=' * 60}")
    for report in reports:
        print_report(report)
    succeeded = sum(1 for report in reports if report.succeeded)
    print(f"\n{succeeded}/{len(urls)} target(s) accepted a configured credential")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.env_file:
        _load_env_file(args.env_file)

    try:
        config = load_config(Path(args.config) if args.config else None)
        apply_cli_overrides(config, args)
        urls = collect_urls(args)
    except (ConfigurationError, OSError) as exc:
        configure_logging("info")
        logger.error("%s", exc)
        return 1

    configure_logging(config.logging.level, config.logging.file)

    if not urls:
        parser.error("a target is required: use --url or -f/--file")

    validation_errors = validate_config(config, require_credentials=not args.analyze)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 1

    if args.analyze:
        return asyncio.run(run_analyze(config, urls))
    return asyncio.run(run_attack(config, urls))


if __name__ == "__main__":
    sys.exit(main())
