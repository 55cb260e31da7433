from loginprobe.analyzer.models import AttemptResult, Credential, RunReport
from loginprobe.config import Config
from loginprobe.constants import RunStatus
from loginprobe.main import apply_cli_overrides, build_parser, collect_urls, print_report


def test_cli_overrides_replace_credentials_and_browser(tmp_path):
    users = tmp_path / "users.txt"
    users.write_text("admin\n# skip\nroot\n", encoding="utf-8")
    passwords = tmp_path / "passwords.txt"
    passwords.write_text("123456\n", encoding="utf-8")
    args = build_parser().parse_args(
        ["--url", "https://example.com/login", "--username", str(users), "--password", str(passwords),
         "--path", "/usr/bin/chromium", "--debug"]
    )
    config = Config()

    apply_cli_overrides(config, args)

    assert config.attempts.usernames == ["admin", "root"]
    assert config.attempts.passwords == ["123456"]
    assert config.browser.executable_path == "/usr/bin/chromium"
    assert config.browser.headless is False
    assert config.logging.level == "debug"


def test_collect_urls_merges_flag_and_file(tmp_path):
    targets = tmp_path / "targets.txt"
    targets.write_text("https://a.example.com/login\n\n// old\nhttps://b.example.com/admin\n", encoding="utf-8")
    args = build_parser().parse_args(["--url", "https://example.com/login", "-f", str(targets)])

    assert collect_urls(args) == [
        "https://example.com/login",
        "https://a.example.com/login",
        "https://b.example.com/admin",
    ]


def test_print_report_distinguishes_outcomes(capsys):
    success = RunReport(
        url="https://example.com/login",
        status=RunStatus.SUCCEEDED,
        attempts=1,
        final_attempt=AttemptResult(success=True, credential=Credential("admin", "admin")),
        screenshot_path="results/evidence/shot.png",
    )
    skipped = RunReport(url="https://example.com/sso", status=RunStatus.SKIPPED, reason="Google reCAPTCHA detected")
    aborted = RunReport(url="https://example.com/", status=RunStatus.ABORTED, reason="not a login page")

    for report in (success, skipped, aborted):
        print_report(report)

    out = capsys.readouterr().out
    assert "[SUCCESS] https://example.com/login -> admin:admin" in out
    assert "screenshot: results/evidence/shot.png" in out
    assert "[SKIPPED]" in out
    assert "[ABORTED] https://example.com/ -> not a login page" in out
