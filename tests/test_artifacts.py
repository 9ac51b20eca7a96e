"""
Tests for the local artifact store.
"""

import pytest

from stepwright.storage.artifacts import LocalArtifactStore, artifact_name


class TestLocalArtifactStore:

    @pytest.mark.asyncio
    async def test_save_writes_file_and_returns_reference(self, tmp_path):
        store = LocalArtifactStore(directory=tmp_path, url_prefix="/screenshots")

        reference = await store.save(b"\x89PNG", artifact_name("ex-1", 3))

        assert reference.startswith("/screenshots/ex-1_step_3.png?t=")
        assert (tmp_path / "ex-1_step_3.png").read_bytes() == b"\x89PNG"
        assert store.path_for(reference) == tmp_path / "ex-1_step_3.png"

    @pytest.mark.asyncio
    async def test_unnamed_artifacts_get_unique_names(self, tmp_path):
        store = LocalArtifactStore(directory=tmp_path, url_prefix="")

        first = await store.save(b"a")
        second = await store.save(b"b")

        assert store.path_for(first) != store.path_for(second)
        assert len(list(tmp_path.glob("*.png"))) == 2

    def test_creates_directory(self, tmp_path):
        target = tmp_path / "nested" / "shots"

        LocalArtifactStore(directory=target, url_prefix="")

        assert target.is_dir()
