from datetime import datetime

import pytest

from loginprobe.analyzer.models import AttemptResult, Credential, RunReport
from loginprobe.constants import RunStatus
from loginprobe.storage.database import AttemptDatabase
from loginprobe.storage.evidence import EvidenceStore
from loginprobe.storage.results import MultiSink, ResultLogger

URL = "https://example.com/login"


@pytest.mark.asyncio
async def test_result_logger_appends_dated_records(tmp_path):
    sink = ResultLogger(tmp_path)

    await sink.failure(URL, "admin", "admin")
    await sink.failure(URL, "admin", "123456")
    await sink.success(URL, "root", "toor")

    today = datetime.now()
    failures = (tmp_path / today.strftime("failure_%Y%m%d.txt")).read_text(encoding="utf-8")
    successes = (tmp_path / today.strftime("success_%Y%m%d.txt")).read_text(encoding="utf-8")
    assert failures.splitlines() == [f"{URL}:admin:admin", f"{URL}:admin:123456"]
    assert successes == f"{URL}:root:toor\n"


@pytest.mark.asyncio
async def test_result_logger_respects_realtime_save(tmp_path):
    save_dir = tmp_path / "results"
    sink = ResultLogger(save_dir, realtime_save=False)

    await sink.success(URL, "root", "toor")

    assert not save_dir.exists()


def test_result_logger_custom_field_order(tmp_path):
    sink = ResultLogger(tmp_path, record_format="username:password:url")

    assert sink.format_record(URL, "a", "b") == f"a:b:{URL}"


@pytest.mark.asyncio
async def test_database_records_attempts_and_runs(tmp_path):
    db = AttemptDatabase(tmp_path / "data" / "loginprobe.db")
    await db.connect()
    try:
        await db.failure(URL, "u1", "p1")
        await db.success(URL, "u2", "p2")
        report = RunReport(
            url=URL,
            status=RunStatus.SUCCEEDED,
            reason="logged in as u2",
            attempts=2,
            final_attempt=AttemptResult(success=True, credential=Credential("u2", "p2")),
            screenshot_path="/tmp/shot.png",
        )
        run_id = await db.record_run(report)

        attempts = await db.get_attempts(URL)
        runs = await db.get_runs("succeeded")
    finally:
        await db.close()

    assert [(row["username"], row["success"]) for row in attempts] == [("u1", 0), ("u2", 1)]
    assert run_id == runs[0]["id"]
    assert runs[0]["username"] == "u2"
    assert runs[0]["attempts"] == 2


@pytest.mark.asyncio
async def test_multi_sink_fans_out(tmp_path):
    db = AttemptDatabase(tmp_path / "loginprobe.db")
    await db.connect()
    try:
        sink = MultiSink(ResultLogger(tmp_path), db, None)
        await sink.failure(URL, "u1", "p1")
        await sink.record_run(RunReport(url=URL, status=RunStatus.EXHAUSTED, reason="all 1 credential pairs failed", attempts=1))

        attempts = await db.get_attempts()
        runs = await db.get_runs()
    finally:
        await db.close()

    assert len(attempts) == 1
    assert runs[0]["status"] == "exhausted"
    assert runs[0]["username"] is None
    assert list(tmp_path.glob("failure_*.txt"))


@pytest.mark.asyncio
async def test_evidence_store_saves_screenshot_and_analysis(tmp_path):
    store = EvidenceStore(tmp_path)

    shot = await store.save_screenshot(URL, b"png-bytes", "admin")
    analysis = await store.save_analysis(URL, {"classification": {"confidence": 0.7}})

    assert shot.read_bytes() == b"png-bytes"
    assert shot.name.startswith("success_admin_")
    assert store.get_screenshot_paths(URL) == [shot]
    assert store.get_analysis_path(URL) == analysis
    assert '"url": "https://example.com/login"' in analysis.read_text(encoding="utf-8")


def test_evidence_dirs_differ_per_url(tmp_path):
    store = EvidenceStore(tmp_path)

    first = store.get_target_dir("https://example.com/login")
    second = store.get_target_dir("https://example.com/admin")

    assert first != second
    assert first.name.startswith("example.com_")
