"""Tests for incremental source backup and the background job runner."""

import asyncio
import json

import pytest
import pytest_asyncio

from blogsmith.background import BackgroundServices
from blogsmith.github_service import GitHubError
from blogsmith.models import GitHubCredentials
from blogsmith.source_backup import PROJECT_INFO_PATH, SourceBackupService, file_hash


class RecordingGitHub:
    """Collects put_file calls; paths in ``failing`` raise GitHubError."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.puts = []
        self.mirrored = []

    def __call__(self, credentials):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def put_file(self, path, content, message):
        if path in self.failing:
            raise GitHubError("GitHub API error: 409 - conflict", status_code=409)
        self.puts.append((path, content, message))
        return {"sha": f"sha-{len(self.puts)}"}

    async def backup_blog(self, blog):
        self.mirrored.append(blog.id)
        return {"filePath": f"content/blogs/{blog.id}.md", "commitSha": "feed"}


@pytest.fixture
def github():
    return RecordingGitHub()


@pytest.fixture
def source_files(settings):
    root = settings.source_root / "blogsmith"
    root.mkdir(parents=True)
    (root / "config.py").write_text("DEBUG = False\n", encoding="utf-8")
    (root / "models.py").write_text("class Blog: pass\n", encoding="utf-8")
    return root


@pytest_asyncio.fixture
async def with_credentials(store):
    await store.save_github_credentials(
        GitHubCredentials(github_token="t", repository_owner="o", repository_name="r")
    )


# ===================================================================
# SourceBackupService
# ===================================================================

class TestSourceBackup:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_credentials(self, settings, store, github):
        report = await SourceBackupService(settings, store, github).backup_source()
        assert report.configured is False
        assert github.puts == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_run_uploads_everything(self, settings, store, github, source_files, with_credentials):
        service = SourceBackupService(settings, store, github)
        report = await service.backup_source()

        assert report.changed == ["blogsmith/config.py", "blogsmith/models.py"]
        paths = [p for p, _, _ in github.puts]
        assert paths == ["blogsmith/config.py", "blogsmith/models.py", PROJECT_INFO_PATH]
        assert github.puts[0][2] == "Update config.py - incremental backup"

        info = json.loads(github.puts[-1][1])
        assert info["filesChanged"] == 2

        records = service.load_records()
        assert records["blogsmith/config.py"].file_hash == file_hash(b"DEBUG = False\n")
        assert records["blogsmith/config.py"].github_commit_sha == "sha-1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unchanged_files_skipped(self, settings, store, github, source_files, with_credentials):
        service = SourceBackupService(settings, store, github)
        await service.backup_source()
        github.puts.clear()

        (source_files / "models.py").write_text("class Blog:\n    title = ''\n", encoding="utf-8")
        report = await service.backup_source()

        assert report.skipped == ["blogsmith/config.py"]
        assert report.changed == ["blogsmith/models.py"]
        assert [p for p, _, _ in github.puts] == ["blogsmith/models.py", PROJECT_INFO_PATH]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nothing_changed_skips_project_info(self, settings, store, github, source_files, with_credentials):
        service = SourceBackupService(settings, store, github)
        await service.backup_source()
        github.puts.clear()

        report = await service.backup_source()
        assert report.changed == []
        assert github.puts == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_does_not_stop_others(self, settings, store, source_files, with_credentials):
        github = RecordingGitHub(failing={"blogsmith/config.py"})
        service = SourceBackupService(settings, store, github)
        report = await service.backup_source()

        assert report.failed == ["blogsmith/config.py"]
        assert report.changed == ["blogsmith/models.py"]
        assert "blogsmith/config.py" not in service.load_records()
        assert report.to_dict()["filesFailed"] == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_file(self, settings, store, github, with_credentials):
        report = await SourceBackupService(settings, store, github).backup_source()
        assert report.missing == ["blogsmith/config.py", "blogsmith/models.py"]
        assert github.puts == []


# ===================================================================
# BackgroundServices
# ===================================================================

class TestBackgroundServices:

    @pytest.fixture
    def background(self, settings, store, github):
        return BackgroundServices(
            store,
            SourceBackupService(settings, store, github),
            default_delay=0,
            github_factory=github,
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mirror_without_credentials(self, background, store, blog_data):
        blog = await store.create_blog(blog_data)
        assert await background.mirror_blog(blog.id) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mirror_records_commit(self, background, store, blog_data, github, with_credentials):
        blog = await store.create_blog(blog_data)
        result = await background.mirror_blog(blog.id)

        assert result["commitSha"] == "feed"
        saved = await store.get_blog(blog.id)
        assert saved.backed_up_to_github is True
        assert saved.github_commit_sha == "feed"
        assert saved.github_file_path == f"content/blogs/{blog.id}.md"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scheduled_jobs_run(self, background, store, blog_data, github, source_files, with_credentials):
        blog = await store.create_blog(blog_data)
        background.schedule_source_backup()
        background.schedule_blog_mirror(blog.id)
        assert background.pending == 2

        await background.drain(timeout=5)

        assert background.pending == 0
        assert github.mirrored == [blog.id]
        assert "blogsmith/config.py" in [p for p, _, _ in github.puts]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_job_failure_is_contained(self, background, store, blog_data, with_credentials, github):
        async def _boom(blog):
            raise GitHubError("GitHub API error: 500 - boom", status_code=500)

        github.backup_blog = _boom
        blog = await store.create_blog(blog_data)
        task = background.schedule_blog_mirror(blog.id)
        await asyncio.wait_for(task, timeout=5)

        assert task.exception() is None
        assert (await store.get_blog(blog.id)).backed_up_to_github is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self, background):
        background.schedule_source_backup(delay=60)
        assert background.pending == 1
        await background.shutdown()
        await asyncio.sleep(0)
        assert background.pending == 0
