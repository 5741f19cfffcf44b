"""Tests for BlogStore persistence and the record types it holds."""

import json

import pytest

from blogsmith.models import Blog, BlogImage, GitHubCredentials, WordPressCredentials, new_blog_id
from blogsmith.storage import BlogStore


class TestBlogRecords:

    @pytest.mark.unit
    def test_new_blog_id_format(self):
        blog_id = new_blog_id()
        prefix, millis, suffix = blog_id.split("_")
        assert prefix == "blog"
        assert millis.isdigit()
        assert len(suffix) == 9

    @pytest.mark.unit
    def test_word_count_derived(self):
        blog = Blog(id="b", keyword="k", title="t", content="one two  three\nfour")
        assert blog.word_count == 4

    @pytest.mark.unit
    def test_from_dict_accepts_camel_case(self):
        blog = Blog.from_dict({
            "id": "b1",
            "keyword": "k",
            "title": "t",
            "content": "c",
            "wordpressPostId": "12",
            "images": [{"url": "u", "thumbUrl": "t", "alt_description": "alt"}],
            "unknownField": True,
        })
        assert blog.wordpress_post_id == "12"
        assert blog.images[0].thumb_url == "t"
        assert blog.images[0].description == "alt"

    @pytest.mark.unit
    def test_to_api_is_camel_case(self):
        blog = Blog(id="b", keyword="k", title="t", content="c", images=[BlogImage(url="u")])
        data = blog.to_api()
        assert data["wordCount"] == 1
        assert data["images"][0]["thumbUrl"] == ""
        assert "word_count" not in data

    @pytest.mark.unit
    def test_credentials_public_views(self):
        wp = WordPressCredentials(wordpress_url="https://x.com/", username="u", password="secret pw")
        assert "password" not in wp.to_public()
        assert "secret" not in repr(wp)
        assert wp.base_url == "https://x.com"

        gh = GitHubCredentials(github_token="ghp_123", repository_owner="o", repository_name="r")
        public = gh.to_public()
        assert public["githubToken"] == "***"
        assert public["basePath"] == "content/blogs"
        assert "ghp_123" not in repr(gh)


class TestBlogStore:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_and_get(self, store, blog_data):
        blog = await store.create_blog(blog_data)
        assert blog.id.startswith("blog_")
        assert blog.status == "draft"
        assert blog.word_count > 0
        assert (await store.get_blog(blog.id)).title == blog_data["title"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_newest_first(self, store):
        for blog_id, created in (("old", "2024-01-01T00:00:00+00:00"), ("new", "2024-06-01T00:00:00+00:00")):
            store._blogs[blog_id] = Blog(
                id=blog_id, keyword="k", title=blog_id, content="c", created_at=created
            )
        assert [b.id for b in await store.list_blogs()] == ["new", "old"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_recomputes_word_count(self, store, blog_data):
        blog = await store.create_blog(blog_data)
        updated = await store.update_blog(blog.id, {"content": "just three words"})
        assert updated.word_count == 3
        assert updated.title == blog.title

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_swaps_record(self, store, blog_data):
        blog = await store.create_blog(blog_data)
        updated = await store.update_blog(blog.id, {"status": "published", "tagIds": [4, 5]})
        assert updated is not blog
        assert blog.status == "draft"
        assert updated.tag_ids == [4, 5]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_ignores_id_and_unknown(self, store, blog_data):
        blog = await store.create_blog(blog_data)
        updated = await store.update_blog(blog.id, {"id": "other", "bogus": 1, "keyword": "new"})
        assert updated.id == blog.id
        assert updated.keyword == "new"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_unknown_blog(self, store):
        assert await store.update_blog("missing", {"title": "x"}) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete(self, store, blog_data):
        blog = await store.create_blog(blog_data)
        assert await store.delete_blog(blog.id) is True
        assert await store.get_blog(blog.id) is None
        assert await store.delete_blog(blog.id) is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_persists_to_disk(self, settings, store, blog_data):
        blog = await store.create_blog(blog_data)
        await store.save_wordpress_credentials(
            WordPressCredentials(wordpress_url="https://x.com", username="u", password="p")
        )
        await store.save_github_credentials(
            GitHubCredentials(github_token="t", repository_owner="o", repository_name="r")
        )

        raw = json.loads(settings.storage_file.read_text(encoding="utf-8"))
        assert blog.id in raw["blogs"]

        reloaded = BlogStore(settings.storage_file)
        assert (await reloaded.get_blog(blog.id)).content == blog.content
        assert (await reloaded.get_wordpress_credentials()).username == "u"
        assert (await reloaded.get_github_credentials()).repository_name == "r"

    @pytest.mark.unit
    def test_corrupt_file_starts_empty(self, settings):
        settings.storage_file.parent.mkdir(parents=True, exist_ok=True)
        settings.storage_file.write_text("{not json", encoding="utf-8")
        store = BlogStore(settings.storage_file)
        assert store._blogs == {}
