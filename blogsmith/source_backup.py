"""
Incremental source backup to GitHub.

Each configured file is hashed (sha256); files whose hash matches the last
recorded backup are skipped. Records live in ``backup_records.json`` next to
the blog store.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from blogsmith import __version__
from blogsmith.config import Settings
from blogsmith.github_service import GitHubError, GitHubService
from blogsmith.models import GitHubCredentials
from blogsmith.storage import BlogStore, _load_json, _save_json

logger = logging.getLogger("blogsmith.source_backup")
logger.setLevel(logging.INFO)

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_handler)

PROJECT_INFO_PATH = "PROJECT_INFO.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def file_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


@dataclass
class FileBackupRecord:
    file_hash: str
    github_commit_sha: str
    file_size: int
    last_backup_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> FileBackupRecord:
        known = {"file_hash", "github_commit_sha", "file_size", "last_backup_at"}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class BackupReport:
    changed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    configured: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configured": self.configured,
            "filesChanged": len(self.changed),
            "filesSkipped": len(self.skipped),
            "filesFailed": len(self.failed),
            "changed": list(self.changed),
            "failed": list(self.failed),
        }


class SourceBackupService:
    """
    Mirror the project's own source files to the configured repository.

    Parameters
    ----------
    settings : Settings
        Supplies the file list, source root and records location.
    store : BlogStore
        Source of the active GitHub credentials.
    github_factory : callable, optional
        Builds a GitHubService from credentials (tests inject a fake).
    """

    def __init__(
        self,
        settings: Settings,
        store: BlogStore,
        github_factory: Optional[Callable[[GitHubCredentials], GitHubService]] = None,
    ):
        self.settings = settings
        self.store = store
        self.github_factory = github_factory or GitHubService

    @property
    def records_path(self) -> Path:
        return self.settings.backup_records_file

    def load_records(self) -> Dict[str, FileBackupRecord]:
        raw = _load_json(self.records_path, {})
        return {path: FileBackupRecord.from_dict(rec) for path, rec in raw.items()}

    def _save_records(self, records: Dict[str, FileBackupRecord]) -> None:
        _save_json(self.records_path, {p: r.to_dict() for p, r in records.items()})

    def _project_info(self, report: BackupReport) -> str:
        info = {
            "name": "blogsmith",
            "description": "AI blog generation with WordPress publishing and GitHub backup",
            "version": __version__,
            "lastBackup": _now_iso(),
            "filesChanged": len(report.changed),
            "filesSkipped": len(report.skipped),
        }
        return json.dumps(info, indent=2)

    async def backup_source(self) -> BackupReport:
        """
        Upload every configured file whose content changed since its last backup.

        A failure on one file is logged and the rest continue. Without GitHub
        credentials nothing happens.
        """
        report = BackupReport()
        credentials = await self.store.get_github_credentials()
        if credentials is None:
            logger.info("No GitHub credentials configured, skipping source backup")
            report.configured = False
            return report

        records = self.load_records()
        root = Path(self.settings.source_root)

        async with self.github_factory(credentials) as github:
            for rel_path in self.settings.backup_files:
                path = root / rel_path
                if not path.is_file():
                    report.missing.append(rel_path)
                    continue
                content = path.read_bytes()
                digest = file_hash(content)
                previous = records.get(rel_path)
                if previous is not None and previous.file_hash == digest:
                    report.skipped.append(rel_path)
                    continue
                try:
                    commit = await github.put_file(
                        rel_path,
                        content.decode("utf-8", errors="replace"),
                        f"Update {path.name} - incremental backup",
                    )
                except (GitHubError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    logger.warning("Failed to back up %s: %s", rel_path, exc)
                    report.failed.append(rel_path)
                    continue
                records[rel_path] = FileBackupRecord(
                    file_hash=digest,
                    github_commit_sha=commit.get("sha", ""),
                    file_size=len(content),
                )
                self._save_records(records)
                report.changed.append(rel_path)

            if report.changed:
                try:
                    await github.put_file(
                        PROJECT_INFO_PATH,
                        self._project_info(report),
                        "Update project information - incremental backup",
                    )
                except (GitHubError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    logger.warning("Failed to update %s: %s", PROJECT_INFO_PATH, exc)

        logger.info(
            "Source backup finished: %d changed, %d unchanged, %d failed",
            len(report.changed), len(report.skipped), len(report.failed),
        )
        return report
