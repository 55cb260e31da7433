"""Evidence file storage for LoginProbe."""

import asyncio
import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ..utils.files import safe_filename_component


class EvidenceStore:
    """Manages success screenshots and analysis snapshots per target."""

    def __init__(self, evidence_dir: Path):
        self.evidence_dir = Path(evidence_dir)
        self.evidence_dir.mkdir(parents=True, exist_ok=True)

    def get_target_dir(self, url: str) -> Path:
        """Get or create the evidence directory for a target URL."""
        # Hash suffix keeps distinct paths on the same host apart
        url_hash = hashlib.sha256(url.encode()).hexdigest()[:12]
        host = urlparse(url).netloc or url
        dir_name = f"{safe_filename_component(host, max_length=64)}_{url_hash}"

        target_dir = self.evidence_dir / dir_name
        target_dir.mkdir(parents=True, exist_ok=True)
        return target_dir

    async def save_screenshot(self, url: str, screenshot_bytes: bytes, username: str = "") -> Path:
        """Save the screenshot taken after a successful login."""
        target_dir = self.get_target_dir(url)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        suffix = f"_{safe_filename_component(username, max_length=32)}" if username else ""
        path = target_dir / f"success{suffix}_{timestamp}.png"
        await asyncio.to_thread(path.write_bytes, screenshot_bytes)
        return path

    async def save_analysis(self, url: str, analysis_data: dict) -> Path:
        """Save page analysis results for a target."""
        target_dir = self.get_target_dir(url)
        path = target_dir / "analysis.json"

        analysis_data = dict(analysis_data)
        analysis_data["url"] = url
        analysis_data["saved_at"] = datetime.now(timezone.utc).isoformat()

        analysis_json = json.dumps(analysis_data, indent=2, ensure_ascii=False)
        await asyncio.to_thread(path.write_text, analysis_json, encoding="utf-8")
        return path

    def get_screenshot_paths(self, url: str) -> list[Path]:
        """List saved success screenshots for a target, oldest first."""
        return sorted(self.get_target_dir(url).glob("success*.png"))

    def get_analysis_path(self, url: str) -> Optional[Path]:
        path = self.get_target_dir(url) / "analysis.json"
        return path if path.exists() else None
