from pathlib import Path

import pytest

from loginprobe.analyzer.models import Credential
from loginprobe.config import (
    DEFAULT_SUCCESS_KEYWORDS,
    DEFAULT_TITLE_KEYWORDS,
    Config,
    load_config,
    validate_config,
)
from loginprobe.errors import ConfigurationError
from loginprobe.pipeline.orchestrator import LoginOrchestrator


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_reads_sections(tmp_path):
    path = _write(
        tmp_path,
        """
browser:
  headless: false
  timeout: 15
attempts:
  usernames: [admin, root]
  passwords: ["123456"]
  delay: 2
  field_settle: 0.5
captcha:
  detection:
    verbose_output: true
  handling:
    skip_on_detection: false
  detectors:
    slider:
      threshold: 0.5
results:
  save_dir: out
login_page_detection:
  content_keywords:
    - {keyword: "员工号", weight: 0.2}
    - {keyword: "", weight: 0.2}
    - "not a mapping"
""",
    )

    config = load_config(path)

    assert config.browser.headless is False
    assert config.browser.navigation_timeout == 15.0
    assert config.attempts.delay == 2
    assert config.attempts.field_settle == 0.5
    assert config.challenge.skip_on_detection is False
    assert config.challenge.verbose_output is True
    assert config.challenge.rules["slider"].keyword_threshold == 0.5
    assert config.results.save_dir == Path("out")
    assert config.detection.content_keywords == [("员工号", 0.2)]
    assert config.detection.title_keywords == DEFAULT_TITLE_KEYWORDS
    assert config.attempts.success_keywords == DEFAULT_SUCCESS_KEYWORDS


def test_credentials_are_cross_product_usernames_outer():
    config = Config()
    config.attempts.usernames = ["a", "b"]
    config.attempts.passwords = ["1", "2"]

    assert config.credentials() == [
        Credential("a", "1"),
        Credential("a", "2"),
        Credential("b", "1"),
        Credential("b", "2"),
    ]


def test_env_overrides_apply(tmp_path, monkeypatch):
    path = _write(tmp_path, "browser:\n  headless: true\n")
    monkeypatch.setenv("LOGINPROBE_HEADLESS", "false")
    monkeypatch.setenv("LOGINPROBE_DELAY", "5")
    monkeypatch.setenv("LOGINPROBE_RESULTS_DIR", str(tmp_path / "r"))

    config = load_config(path)

    assert config.browser.headless is False
    assert config.attempts.delay == 5
    assert config.results.save_dir == tmp_path / "r"
    assert config.results.database_path == tmp_path / "r" / "loginprobe.db"


def test_missing_explicit_config_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml_is_an_error(tmp_path):
    path = _write(tmp_path, "browser: [unclosed\n")

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_unknown_detector_is_ignored(tmp_path):
    path = _write(tmp_path, "captcha:\n  detectors:\n    puzzle:\n      threshold: 0.1\n")

    config = load_config(path)

    assert "puzzle" not in config.challenge.rules
    assert config.challenge.rules["recaptcha"].selector_confidence == 0.95


def test_validate_config_requires_credentials_for_attacks():
    config = Config()

    errors = validate_config(config)

    assert any("usernames" in err for err in errors)
    assert any("passwords" in err for err in errors)
    assert validate_config(config, require_credentials=False) == []


def test_field_settle_defaults_and_feeds_orchestrator():
    config = Config()
    orchestrator = LoginOrchestrator.from_config(config, controller=None)

    assert config.attempts.field_settle == 0.3
    assert orchestrator.field_settle == 0.3
