"""Tests for image storage helpers and the local provider."""

import uuid

import pytest

from campus_eats.services.effects import AfterCommit
from campus_eats.storage import LocalStorage, build_image_key, resolve_url, sanitize_filename


class TestStorageHelpers:
    def test_sanitize_filename(self):
        assert sanitize_filename("my photo.png") == "my_photo.png"
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\Users\\me\\pic (1).jpg") == "pic__1_.jpg"
        assert sanitize_filename("") == "upload"

    def test_build_image_key(self):
        review_id = uuid.uuid4()
        key = build_image_key(review_id, "dish.jpeg")
        prefix, name = key.split("/")
        assert prefix == str(review_id)
        assert name.endswith("_dish.jpeg")

    def test_resolve_url(self):
        assert resolve_url("/api/v1/uploads/", "a/b.png") == "/api/v1/uploads/a/b.png"
        assert resolve_url("https://cdn.example.com", "/a/b.png") == "https://cdn.example.com/a/b.png"
        assert resolve_url("", "a/b.png") == "/a/b.png"


@pytest.mark.asyncio
async def test_local_storage_save_and_delete(tmp_path):
    storage = LocalStorage(tmp_path, "/files")
    stored = await storage.save("r1/1_x.png", b"data", "image/png")

    assert stored.url == "/files/r1/1_x.png"
    assert (tmp_path / "r1" / "1_x.png").read_bytes() == b"data"

    await storage.delete(stored.key)
    assert not (tmp_path / "r1" / "1_x.png").exists()
    # Deleting twice is harmless.
    await storage.delete(stored.key)


@pytest.mark.asyncio
async def test_local_storage_refuses_escaping_keys(tmp_path):
    storage = LocalStorage(tmp_path / "uploads", "/files")
    with pytest.raises(ValueError):
        await storage.save("../outside.png", b"x")


@pytest.mark.asyncio
async def test_blob_cleanup_survives_failures(tmp_path):
    class FlakyStorage:
        def __init__(self):
            self.deleted = []

        async def save(self, key, data, content_type=None):
            raise NotImplementedError

        async def delete(self, key):
            if key == "bad":
                raise OSError("gone wrong")
            self.deleted.append(key)

    flaky = FlakyStorage()
    effects = AfterCommit()
    effects.delete_blobs(flaky, ["a", "bad", "", "b"])
    await effects.run()

    assert flaky.deleted == ["a", "b"]
    assert len(effects) == 0
