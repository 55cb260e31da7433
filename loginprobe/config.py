"""Configuration management for LoginProbe."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .analyzer.models import Credential
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.yaml")

# Default heuristics for login-page scoring. These can be overridden via the
# login_page_detection section of config.yaml without touching code.
DEFAULT_TITLE_KEYWORDS: list[tuple[str, float]] = [
    ("登录", 0.4),
    ("登陆", 0.2),
    ("login", 0.4),
    ("sign in", 0.2),
    ("log in", 0.2),
    ("signin", 0.2),
    ("用户登录", 0.4),
    ("管理员登录", 0.4),
    ("后台登录", 0.4),
    ("系统登录", 0.4),
    ("admin", 0.2),
    ("administration", 0.2),
    ("后台管理", 0.2),
    ("管理系统", 0.2),
    ("auth", 0.2),
    ("authentication", 0.2),
    ("portal", 0.2),
    ("gateway", 0.2),
]

DEFAULT_URL_PATTERNS: list[str] = [
    r"/login",
    r"/signin",
    r"/auth",
    r"/admin",
    r"/user",
    r"/portal",
    r"/sso",
    r"/oauth",
]

DEFAULT_URL_PATTERN_POINTS = 0.3

DEFAULT_CONTENT_KEYWORDS: list[tuple[str, float]] = [
    ("用户名", 0.15),
    ("密码", 0.15),
    ("username", 0.15),
    ("password", 0.15),
    ("登录", 0.1),
    ("login", 0.1),
    ("账号", 0.1),
    ("account", 0.1),
    ("邮箱", 0.05),
    ("手机号", 0.05),
    ("验证码", 0.05),
    ("captcha", 0.05),
    ("记住我", 0.03),
    ("remember me", 0.03),
    ("忘记密码", 0.03),
    ("forgot password", 0.03),
    ("注册", -0.05),
    ("register", -0.05),
    ("sign up", -0.05),
]

DEFAULT_USERNAME_SELECTORS: list[str] = [
    "input[name='username']",
    "input[name='user']",
    "input[name='login']",
    "input[name='account']",
    "input[name='email']",
    "input[id='username']",
    "input[id*='user']",
    "input[placeholder*='用户名']",
    "input[placeholder*='账号']",
    "input[placeholder*='username' i]",
    "input[type='email']",
    "input[type='text']",
]

DEFAULT_PASSWORD_SELECTORS: list[str] = [
    "input[type='password']",
    "input[name='password']",
    "input[name='passwd']",
    "input[name='pwd']",
    "input[id='password']",
]

DEFAULT_SUBMIT_SELECTORS: list[str] = [
    "button[type='submit']",
    "input[type='submit']",
    "button[id*='login']",
    "button[class*='login']",
    "#login",
    ".login-btn",
    "form button",
]

DEFAULT_CHECKBOX_SELECTORS: list[str] = [
    "input[type='checkbox'][name*='agree']",
    "input[type='checkbox'][id*='agree']",
    "input[type='checkbox'][name*='protocol']",
    "input[type='checkbox'][name*='terms']",
]

DEFAULT_CAPTCHA_SELECTORS: list[str] = [
    "input[name*='captcha']",
    "input[name*='verifycode']",
    "input[name*='vcode']",
    "input[placeholder*='验证码']",
    "input[placeholder*='captcha' i]",
    "#captcha",
]

# Cheap existence probes spanning every challenge family.
DEFAULT_CHALLENGE_PRECHECK_SELECTORS: list[str] = [
    "input[name*='captcha']",
    "input[name*='verify']",
    "input[name*='code']",
    "input[placeholder*='验证码']",
    "input[placeholder*='captcha']",
    "input[placeholder*='verify']",
    "#captcha",
    "#verify",
    "#code",
    ".captcha",
    ".verify",
    ".code",
    "img[src*='captcha']",
    "img[src*='verify']",
    "img[src*='vcode']",
    "img[alt*='验证码']",
    "img[alt*='captcha']",
    ".g-recaptcha",
    ".h-captcha",
    "iframe[src*='recaptcha']",
    "iframe[src*='hcaptcha']",
    ".slider-captcha",
    ".slide-captcha",
    ".geetest_slider",
    ".nc_iconfont",
    ".yidun_slider",
    "[class*='click'][class*='captcha']",
    "[class*='click'][class*='verify']",
]

DEFAULT_CHALLENGE_PRECHECK_KEYWORDS: list[str] = [
    "验证码",
    "captcha",
    "verify",
    "verification",
    "滑动",
    "slide",
    "slider",
    "拖拽",
    "drag",
    "点击",
    "click",
    "recaptcha",
    "hcaptcha",
]

DEFAULT_SUCCESS_KEYWORDS: list[str] = [
    "欢迎",
    "控制台",
    "首页",
    "dashboard",
    "welcome",
    "index",
    "main",
    "home",
    "后台",
    "管理",
    "admin",
    "系统",
    "成功",
    "success",
]

DEFAULT_FAILURE_KEYWORDS: list[str] = [
    "密码错误",
    "用户名错误",
    "登录失败",
    "认证失败",
    "invalid",
    "error",
    "incorrect",
    "failed",
    "wrong",
    "验证码",
    "captcha",
    "验证失败",
]


@dataclass
class ChallengeRuleSettings:
    """Selector allowlist and keyword table for one challenge detector."""

    selectors: list[str] = field(default_factory=list)
    selector_confidence: float = 0.8
    keywords: list[str] = field(default_factory=list)
    keyword_threshold: Optional[float] = None
    description: str = ""


def _default_challenge_rules() -> dict[str, ChallengeRuleSettings]:
    return {
        "recaptcha": ChallengeRuleSettings(
            selectors=[
                ".g-recaptcha",
                "#recaptcha",
                "[data-sitekey]",
                ".recaptcha-checkbox",
                "iframe[src*='recaptcha']",
                "iframe[title*='reCAPTCHA']",
                "#g-recaptcha-response",
            ],
            selector_confidence=0.95,
            description="Google reCAPTCHA - third-party verification service",
        ),
        "hcaptcha": ChallengeRuleSettings(
            selectors=[
                ".h-captcha",
                "[data-hcaptcha-sitekey]",
                "iframe[src*='hcaptcha']",
                "iframe[title*='hCaptcha']",
                "#h-captcha-response",
            ],
            selector_confidence=0.95,
            description="hCaptcha - third-party verification service",
        ),
        "slider": ChallengeRuleSettings(
            selectors=[
                ".slider-captcha",
                ".slide-captcha",
                ".captcha-slider",
                "[class*='slider'][class*='captcha']",
                "[class*='slide'][class*='verify']",
                ".geetest_slider",
                ".nc_iconfont",
                ".yidun_slider",
                ".captcha-drag",
                "[class*='drag'][class*='verify']",
            ],
            selector_confidence=0.9,
            keywords=[
                "滑动",
                "slide",
                "slider",
                "拖拽",
                "drag",
                "向右滑动",
                "slide to verify",
                "拖动完成验证",
                "请完成滑动验证",
                "请拖动滑块",
            ],
            keyword_threshold=0.7,
            description="Slider challenge - the handle must be dragged to complete it",
        ),
        "image_code": ChallengeRuleSettings(
            selectors=[
                "img[src*='captcha']",
                "img[src*='verify']",
                "img[src*='vcode']",
                "img[alt*='验证码']",
                "img[alt*='captcha']",
                ".captcha-image",
                ".verify-image",
                "#captcha_img",
                "#verify_img",
                ".code-img",
                "[class*='captcha'][class*='img']",
            ],
            selector_confidence=0.85,
            description="Image code - characters in an image must be recognised",
        ),
        "text_code": ChallengeRuleSettings(
            # Selectors come from form_elements.captcha_selectors.
            selector_confidence=0.8,
            keywords=[
                "验证码",
                "captcha",
                "verify code",
                "verification code",
                "图形验证码",
                "图片验证码",
                "security code",
            ],
            keyword_threshold=0.6,
            description="Text code - a verification code must be typed",
        ),
        "click_sequence": ChallengeRuleSettings(
            selectors=[
                "[class*='click'][class*='captcha']",
                "[class*='click'][class*='verify']",
                ".captcha-click",
                ".click-verify",
                "[id*='click'][id*='captcha']",
                "[data-click*='verify']",
            ],
            selector_confidence=0.85,
            keywords=[
                "点击",
                "click",
                "请点击",
                "按顺序点击",
                "点击验证",
                "click to verify",
                "click captcha",
                "请按顺序点击",
                "点击文字",
            ],
            keyword_threshold=0.7,
            description="Click-sequence challenge - positions must be clicked in order",
        ),
        "behavioral": ChallengeRuleSettings(
            selectors=[
                "[class*='behavior'][class*='captcha']",
                "[class*='behavior'][class*='verify']",
                ".captcha-behavior",
                ".behavior-verify",
                "[data-behavior*='verify']",
            ],
            selector_confidence=0.8,
            keywords=[
                "行为验证",
                "behavior",
                "智能验证",
                "无感验证",
                "人机验证",
                "bot detection",
                "智能识别",
            ],
            keyword_threshold=0.6,
            description="Behavioral check - verification based on interaction patterns",
        ),
    }


@dataclass
class BrowserSettings:
    """Playwright browser options and per-operation timeouts (seconds)."""

    headless: bool = True
    width: int = 1280
    height: int = 800
    executable_path: str = ""
    navigation_timeout: float = 30.0
    post_navigation_wait: float = 2.0
    read_timeout: float = 10.0
    probe_timeout: float = 1.0
    interaction_timeout: float = 10.0


@dataclass
class LoginDetectionSettings:
    """Keyword tables for login-page scoring."""

    title_keywords: list[tuple[str, float]] = field(
        default_factory=lambda: list(DEFAULT_TITLE_KEYWORDS)
    )
    url_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_URL_PATTERNS))
    url_pattern_points: float = DEFAULT_URL_PATTERN_POINTS
    content_keywords: list[tuple[str, float]] = field(
        default_factory=lambda: list(DEFAULT_CONTENT_KEYWORDS)
    )


@dataclass
class FormSettings:
    """Ordered selector candidates per form role."""

    username_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_USERNAME_SELECTORS))
    password_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_PASSWORD_SELECTORS))
    submit_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_SUBMIT_SELECTORS))
    checkbox_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_CHECKBOX_SELECTORS))
    captcha_selectors: list[str] = field(default_factory=lambda: list(DEFAULT_CAPTCHA_SELECTORS))


@dataclass
class ChallengeSettings:
    """Challenge detection budgets, tables and handling policy."""

    enabled: bool = True
    timeout: float = 10.0
    precheck_timeout: float = 3.0
    detector_timeout: float = 1.5
    verbose_output: bool = False
    skip_on_detection: bool = True
    precheck_selectors: list[str] = field(
        default_factory=lambda: list(DEFAULT_CHALLENGE_PRECHECK_SELECTORS)
    )
    precheck_keywords: list[str] = field(
        default_factory=lambda: list(DEFAULT_CHALLENGE_PRECHECK_KEYWORDS)
    )
    rules: dict[str, ChallengeRuleSettings] = field(default_factory=_default_challenge_rules)


@dataclass
class AttemptSettings:
    """Credential lists, pacing and the judging keyword tables."""

    usernames: list[str] = field(default_factory=list)
    passwords: list[str] = field(default_factory=list)
    delay: int = 0
    settle_delay: float = 3.0
    field_settle: float = 0.3
    success_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_SUCCESS_KEYWORDS))
    failure_keywords: list[str] = field(default_factory=lambda: list(DEFAULT_FAILURE_KEYWORDS))


@dataclass
class ResultsSettings:
    """Where success/failure records and evidence are written."""

    save_dir: Path = field(default_factory=lambda: Path("./results"))
    success_filename_format: str = "success_%Y%m%d.txt"
    failure_filename_format: str = "failure_%Y%m%d.txt"
    format: str = "url:username:password"
    realtime_save: bool = True
    database_enabled: bool = True
    database_name: str = "loginprobe.db"
    evidence_dir: Path = field(default_factory=lambda: Path("./results/evidence"))

    def __post_init__(self):
        self.save_dir = Path(self.save_dir)
        self.evidence_dir = Path(self.evidence_dir)

    @property
    def database_path(self) -> Path:
        return self.save_dir / self.database_name


@dataclass
class LoggingSettings:
    level: str = "info"
    file: str = ""


@dataclass
class Config:
    """Application configuration loaded from config.yaml and the environment."""

    browser: BrowserSettings = field(default_factory=BrowserSettings)
    detection: LoginDetectionSettings = field(default_factory=LoginDetectionSettings)
    form: FormSettings = field(default_factory=FormSettings)
    challenge: ChallengeSettings = field(default_factory=ChallengeSettings)
    attempts: AttemptSettings = field(default_factory=AttemptSettings)
    results: ResultsSettings = field(default_factory=ResultsSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def credentials(self) -> list[Credential]:
        """Cross-product of usernames and passwords, usernames outermost."""
        return [
            Credential(username=username, password=password)
            for username in self.attempts.usernames
            for password in self.attempts.passwords
        ]


def _coerce_str_list(raw, default: list[str]) -> list[str]:
    if not isinstance(raw, list):
        return list(default)
    items = [str(item).strip() for item in raw if item is not None and str(item).strip()]
    return items or list(default)


def _coerce_weighted_keywords(raw, default, weight_key: str) -> list[tuple[str, float]]:
    items: list[tuple[str, float]] = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        keyword = str(entry.get("keyword") or "").strip()
        try:
            weight = float(entry.get(weight_key))
        except (TypeError, ValueError):
            continue
        if keyword:
            items.append((keyword, weight))
    return items or list(default)


def _coerce_float(raw, default: float) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _coerce_int(raw, default: int) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _coerce_bool(raw, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _coerce_challenge_rules(raw) -> dict[str, ChallengeRuleSettings]:
    """Merge per-detector overrides into the default challenge rules."""
    rules = _default_challenge_rules()
    if not isinstance(raw, dict):
        return rules
    for name, entry in raw.items():
        if name not in rules:
            logger.warning("Ignoring unknown challenge detector in config: %s", name)
            continue
        if not isinstance(entry, dict):
            continue
        rule = rules[name]
        if "selectors" in entry:
            rule.selectors = _coerce_str_list(entry.get("selectors"), rule.selectors)
        if "keywords" in entry:
            rule.keywords = _coerce_str_list(entry.get("keywords"), rule.keywords)
        if "threshold" in entry:
            rule.keyword_threshold = _coerce_float(entry.get("threshold"), rule.keyword_threshold or 0.0)
        if "confidence" in entry:
            rule.selector_confidence = _coerce_float(entry.get("confidence"), rule.selector_confidence)
    return rules


def _section(data: dict, name: str) -> dict:
    value = data.get(name) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _build_config(data: dict) -> Config:
    browser_cfg = _section(data, "browser")
    detection_cfg = _section(data, "login_page_detection")
    form_cfg = _section(data, "form_elements")
    captcha_cfg = _section(data, "captcha")
    attempts_cfg = _section(data, "attempts")
    results_cfg = _section(data, "results")
    logging_cfg = _section(data, "logging")

    defaults = BrowserSettings()
    browser = BrowserSettings(
        headless=_coerce_bool(browser_cfg.get("headless"), defaults.headless),
        width=_coerce_int(browser_cfg.get("width"), defaults.width),
        height=_coerce_int(browser_cfg.get("height"), defaults.height),
        executable_path=str(browser_cfg.get("executable_path") or ""),
        navigation_timeout=_coerce_float(browser_cfg.get("timeout"), defaults.navigation_timeout),
        post_navigation_wait=_coerce_float(
            browser_cfg.get("post_navigation_wait"), defaults.post_navigation_wait
        ),
        read_timeout=_coerce_float(browser_cfg.get("read_timeout"), defaults.read_timeout),
        probe_timeout=_coerce_float(browser_cfg.get("probe_timeout"), defaults.probe_timeout),
        interaction_timeout=_coerce_float(
            browser_cfg.get("interaction_timeout"), defaults.interaction_timeout
        ),
    )

    detection = LoginDetectionSettings(
        title_keywords=_coerce_weighted_keywords(
            detection_cfg.get("title_keywords"), DEFAULT_TITLE_KEYWORDS, "points"
        ),
        url_patterns=_coerce_str_list(detection_cfg.get("url_patterns"), DEFAULT_URL_PATTERNS),
        url_pattern_points=_coerce_float(
            detection_cfg.get("url_pattern_points"), DEFAULT_URL_PATTERN_POINTS
        ),
        content_keywords=_coerce_weighted_keywords(
            detection_cfg.get("content_keywords"), DEFAULT_CONTENT_KEYWORDS, "weight"
        ),
    )

    form = FormSettings(
        username_selectors=_coerce_str_list(form_cfg.get("username_selectors"), DEFAULT_USERNAME_SELECTORS),
        password_selectors=_coerce_str_list(form_cfg.get("password_selectors"), DEFAULT_PASSWORD_SELECTORS),
        submit_selectors=_coerce_str_list(form_cfg.get("submit_selectors"), DEFAULT_SUBMIT_SELECTORS),
        checkbox_selectors=_coerce_str_list(form_cfg.get("checkbox_selectors"), DEFAULT_CHECKBOX_SELECTORS),
        captcha_selectors=_coerce_str_list(form_cfg.get("captcha_selectors"), DEFAULT_CAPTCHA_SELECTORS),
    )

    challenge_detection = _section(captcha_cfg, "detection")
    challenge_handling = _section(captcha_cfg, "handling")
    challenge_defaults = ChallengeSettings()
    challenge = ChallengeSettings(
        enabled=_coerce_bool(challenge_detection.get("enabled"), challenge_defaults.enabled),
        timeout=_coerce_float(challenge_detection.get("timeout"), challenge_defaults.timeout),
        verbose_output=_coerce_bool(
            challenge_detection.get("verbose_output"), challenge_defaults.verbose_output
        ),
        skip_on_detection=_coerce_bool(
            challenge_handling.get("skip_on_detection"), challenge_defaults.skip_on_detection
        ),
        precheck_selectors=_coerce_str_list(
            captcha_cfg.get("precheck_selectors"), DEFAULT_CHALLENGE_PRECHECK_SELECTORS
        ),
        precheck_keywords=_coerce_str_list(
            captcha_cfg.get("precheck_keywords"), DEFAULT_CHALLENGE_PRECHECK_KEYWORDS
        ),
        rules=_coerce_challenge_rules(captcha_cfg.get("detectors")),
    )

    attempt_defaults = AttemptSettings()
    attempts = AttemptSettings(
        usernames=_coerce_str_list(attempts_cfg.get("usernames"), []),
        passwords=_coerce_str_list(attempts_cfg.get("passwords"), []),
        delay=max(0, _coerce_int(attempts_cfg.get("delay"), attempt_defaults.delay)),
        settle_delay=_coerce_float(attempts_cfg.get("settle_delay"), attempt_defaults.settle_delay),
        field_settle=max(0.0, _coerce_float(attempts_cfg.get("field_settle"), attempt_defaults.field_settle)),
        success_keywords=_coerce_str_list(attempts_cfg.get("success_keywords"), DEFAULT_SUCCESS_KEYWORDS),
        failure_keywords=_coerce_str_list(attempts_cfg.get("failure_keywords"), DEFAULT_FAILURE_KEYWORDS),
    )

    results_defaults = ResultsSettings()
    results = ResultsSettings(
        save_dir=Path(results_cfg.get("save_dir") or results_defaults.save_dir),
        success_filename_format=str(
            results_cfg.get("success_filename_format") or results_defaults.success_filename_format
        ),
        failure_filename_format=str(
            results_cfg.get("failure_filename_format") or results_defaults.failure_filename_format
        ),
        format=str(results_cfg.get("format") or results_defaults.format),
        realtime_save=_coerce_bool(results_cfg.get("realtime_save"), results_defaults.realtime_save),
        database_enabled=_coerce_bool(
            results_cfg.get("database_enabled"), results_defaults.database_enabled
        ),
        evidence_dir=Path(results_cfg.get("evidence_dir") or results_defaults.evidence_dir),
    )

    log = LoggingSettings(
        level=str(logging_cfg.get("level") or "info").lower(),
        file=str(logging_cfg.get("file") or ""),
    )

    return Config(
        browser=browser,
        detection=detection,
        form=form,
        challenge=challenge,
        attempts=attempts,
        results=results,
        logging=log,
    )


def _apply_env_overrides(config: Config) -> None:
    """Apply LOGINPROBE_* environment overrides on top of the file values."""
    headless = os.getenv("LOGINPROBE_HEADLESS")
    if headless is not None:
        config.browser.headless = _coerce_bool(headless, config.browser.headless)

    browser_path = os.getenv("LOGINPROBE_BROWSER_PATH")
    if browser_path:
        config.browser.executable_path = browser_path

    delay = os.getenv("LOGINPROBE_DELAY")
    if delay is not None:
        config.attempts.delay = max(0, _coerce_int(delay, config.attempts.delay))

    skip = os.getenv("LOGINPROBE_SKIP_ON_CHALLENGE")
    if skip is not None:
        config.challenge.skip_on_detection = _coerce_bool(skip, config.challenge.skip_on_detection)

    results_dir = os.getenv("LOGINPROBE_RESULTS_DIR")
    if results_dir:
        config.results.save_dir = Path(results_dir)
        config.results.evidence_dir = Path(results_dir) / "evidence"

    log_level = os.getenv("LOGINPROBE_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.lower()


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from a YAML file plus environment overrides.

    A missing default config file falls back to built-in defaults; a missing
    explicitly requested file is an error.
    """
    load_dotenv()

    explicit = path is not None
    config_path = Path(path) if explicit else Path(os.getenv("LOGINPROBE_CONFIG", DEFAULT_CONFIG_PATH))

    data: dict = {}
    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    elif explicit:
        raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        logger.info("No config file at %s; using built-in defaults", config_path)

    config = _build_config(data)
    _apply_env_overrides(config)
    return config


def validate_config(config: Config, *, require_credentials: bool = True) -> list[str]:
    """Validate required configuration and return list of error messages."""
    errors: list[str] = []
    if require_credentials:
        if not config.attempts.usernames:
            errors.append("No usernames configured (attempts.usernames or --username)")
        if not config.attempts.passwords:
            errors.append("No passwords configured (attempts.passwords or --password)")

    if not config.form.username_selectors:
        errors.append("form_elements.username_selectors is empty")
    if not config.form.password_selectors:
        errors.append("form_elements.password_selectors is empty")
    if not config.form.submit_selectors:
        errors.append("form_elements.submit_selectors is empty")

    if config.browser.navigation_timeout <= 0:
        errors.append("browser.timeout must be positive")
    if config.challenge.detector_timeout > config.challenge.timeout:
        logger.info("Challenge detector budget exceeds overall detection budget")

    return errors
