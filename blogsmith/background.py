"""
Fire-and-forget background jobs: delayed source backups and blog mirroring.

Jobs run as asyncio tasks on the server's loop. A job failure is logged and
never reaches the request that scheduled it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from blogsmith.github_service import GitHubService
from blogsmith.models import GitHubCredentials
from blogsmith.source_backup import SourceBackupService
from blogsmith.storage import BlogStore

logger = logging.getLogger("blogsmith.background")
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


class BackgroundServices:
    """
    Owns the background task set.

    Parameters
    ----------
    store : BlogStore
        Blog and credential store.
    source_backup : SourceBackupService
        Runs the incremental source backup.
    default_delay : float
        Seconds to wait before a scheduled source backup runs.
    """

    def __init__(
        self,
        store: BlogStore,
        source_backup: SourceBackupService,
        default_delay: float = 10.0,
        github_factory: Optional[Callable[[GitHubCredentials], GitHubService]] = None,
    ):
        self.store = store
        self.source_backup = source_backup
        self.default_delay = default_delay
        self.github_factory = github_factory or GitHubService
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _spawn(self, name: str, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(name, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, name: str, coro: Awaitable) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            logger.debug("Background job %s cancelled", name)
            raise
        except Exception as exc:
            logger.warning("Background job %s failed: %s", name, exc)

    async def _delayed_backup(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.source_backup.backup_source()

    def schedule_source_backup(self, delay: Optional[float] = None) -> asyncio.Task:
        """Run a source backup after *delay* seconds (default from settings)."""
        wait = self.default_delay if delay is None else delay
        logger.debug("Source backup scheduled in %.0fs", wait)
        return self._spawn("source_backup", self._delayed_backup(wait))

    async def mirror_blog(self, blog_id: str) -> Optional[dict]:
        """Back up one blog to GitHub and record the file path and commit."""
        credentials = await self.store.get_github_credentials()
        if credentials is None:
            return None
        blog = await self.store.get_blog(blog_id)
        if blog is None:
            return None
        async with self.github_factory(credentials) as github:
            result = await github.backup_blog(blog)
        await self.store.update_blog(
            blog_id,
            {
                "github_file_path": result["filePath"],
                "github_commit_sha": result["commitSha"],
                "backed_up_to_github": True,
            },
        )
        return result

    def schedule_blog_mirror(self, blog_id: str) -> asyncio.Task:
        return self._spawn(f"mirror:{blog_id}", self.mirror_blog(blog_id))

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight jobs (used by tests and shutdown)."""
        if self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Background services stopped")
