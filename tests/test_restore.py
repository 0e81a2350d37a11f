"""Tests for the restore step, local and remote."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from cachemount.config import RestoreSettings
from cachemount.errors import (
    CacheMissError,
    ConfigurationError,
    FilesystemError,
    MetadataError,
    RemoteStoreError,
    ToolIntrospectionError,
)
from cachemount.metadata import ensure_cache_metadata
from cachemount.models import CachePath, Handoff
from cachemount.post import record_post_execution
from cachemount.remote import DirectoryBackend, cache_version
from cachemount.restore import restore, save


class TestLocalRestore:
    """Local mode: bind mounts from the cache volume."""

    def test_cold_volume(self, fake_runner, volume, workspace, job) -> None:
        """Everything misses on a fresh volume; cache-hit is false."""
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a"), str(workspace / "b")])

        result = restore(settings, fake_runner, job)

        assert result.cache_hit is False
        assert result.misses == [str(workspace / "a"), str(workspace / "b")]
        assert job.outputs["cache-hit"] == "false"
        assert (job.output_file).read_text() == "cache-hit=false\n"
        assert any(line.startswith("::warning::Some cache paths missing") for line in job.lines)

    def test_warm_volume(self, fake_runner, volume, workspace, job) -> None:
        """A second restore of the same paths is a full hit."""
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")])

        restore(settings, fake_runner, job)
        result = restore(settings, fake_runner, job)

        assert result.cache_hit is True
        assert job.outputs["cache-hit"] == "true"

    def test_fail_on_cache_miss(self, fake_runner, volume, workspace, job) -> None:
        """A miss is fatal when fail-on-cache-miss is set."""
        settings = RestoreSettings(
            cache_root=volume, paths=[str(workspace / "a")], fail_on_cache_miss=True,
        )

        with pytest.raises(CacheMissError) as exc_info:
            restore(settings, fake_runner, job)

        assert exc_info.value.keys == [str(workspace / "a")]

    def test_missing_volume(self, fake_runner, job) -> None:
        """No cache volume gives an actionable configuration error."""
        with pytest.raises(ConfigurationError, match="runs-on labels"):
            restore(RestoreSettings(paths=["/a"]), fake_runner, job)

    def test_metadata_and_handoff(self, fake_runner, volume, workspace, job) -> None:
        """The request is recorded and handed to the post step."""
        fake_runner.add(["go", "env", "GOCACHE"], f"{workspace}/gocache\n")
        fake_runner.add(["go", "env", "GOMODCACHE"], f"{workspace}/gomod\n")
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")], cache=["go"])

        result = restore(settings, fake_runner, job)

        metadata = ensure_cache_metadata(volume)
        assert metadata.version == 1
        assert {m.cache_framework for m in metadata.user_request.values()} == {"custom", "go"}
        assert set(metadata.user_request) == {p.path_in_cache for p in result.paths}

        handoff = job.load_handoff()
        assert handoff.volume_root == str(volume)
        assert [p.mount_target for p in handoff.paths] == [
            str(workspace / "a"), f"{workspace}/gocache", f"{workspace}/gomod",
        ]

    def test_volume_usage_reported(self, fake_runner, volume, workspace, job) -> None:
        """The summary line about cache space is printed."""
        restore(RestoreSettings(cache_root=volume, paths=[str(workspace / "a")]), fake_runner, job)
        assert any(line.startswith("Total available cache space is") for line in job.lines)

    def test_metadata_failure_not_fatal(self, fake_runner, volume, workspace, job) -> None:
        """A broken metadata document only warns."""
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")])

        with patch("cachemount.restore.record_user_request", side_effect=MetadataError("disk full")):
            result = restore(settings, fake_runner, job)

        assert result.paths
        assert any("disk full" in line for line in job.lines)
        assert job.load_handoff() is not None

    def test_binary_metadata_not_fatal(self, fake_runner, volume, workspace, job) -> None:
        """A metadata file that is not UTF-8 text only warns."""
        ns = volume / ".ns"
        ns.mkdir(parents=True)
        (ns / "cache-metadata.json").write_bytes(b"\xff\xfe\x00garbage")
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")])

        result = restore(settings, fake_runner, job)

        assert [p.mount_target for p in result.paths] == [str(workspace / "a")]
        assert any(line.startswith("::warning::Failed to update cache metadata") for line in job.lines)
        assert job.load_handoff() is not None

    def test_state_file_unwritable(self, fake_runner, volume, workspace, job, tmp_path) -> None:
        """A state file that cannot be written is a reported failure."""
        (tmp_path / "blocker").write_text("not a directory")
        job.state_file = tmp_path / "blocker" / "state.json"
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")])

        with pytest.raises(FilesystemError, match="restore state"):
            restore(settings, fake_runner, job)

    def test_unknown_mode_not_fatal(self, fake_runner, volume, workspace, job) -> None:
        """An unknown mode contributes nothing and the restore continues."""
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")], cache=["foobar"])

        result = restore(settings, fake_runner, job)

        assert [p.mount_target for p in result.paths] == [str(workspace / "a")]
        assert "::warning::Unknown cache option: foobar." in job.lines

    def test_tool_failure_aborts_before_mounting(self, fake_runner, volume, workspace, job) -> None:
        """An ecosystem tool failure stops the restore before any mount."""
        settings = RestoreSettings(cache_root=volume, paths=[str(workspace / "a")], cache=["python"])

        with pytest.raises(ToolIntrospectionError):
            restore(settings, fake_runner, job)

        assert fake_runner.commands_starting("sudo", "mount") == []


class TestRemoteRestore:
    """Remote mode: key resolution against a cache store."""

    def _seed(self, store: Path, source: Path, *keys: str) -> None:
        source.mkdir(parents=True, exist_ok=True)
        (source / "file.txt").write_text("cached")
        backend = DirectoryBackend(store)
        for key in keys:
            backend.save(key, cache_version([str(source)]), [str(source)])

    def test_exact_hit(self, fake_runner, tmp_path, job) -> None:
        """An exact key restores and reports a hit."""
        source = tmp_path / "deps"
        self._seed(tmp_path / "store", source, "v1-abc")
        (source / "file.txt").unlink()
        settings = RestoreSettings(
            local_cache=False, key="v1-abc", paths=[str(source)], remote_dir=tmp_path / "store",
        )

        result = restore(settings, fake_runner, job)

        assert result.cache_hit is True
        assert result.matched_key == "v1-abc"
        assert (source / "file.txt").read_text() == "cached"
        assert job.outputs == {"cache-hit": "true", "cache-matched-key": "v1-abc"}

    def test_stale_handoff_cleared(self, fake_runner, volume, tmp_path, job) -> None:
        """A remote restore drops the mount set of an earlier local run."""
        stale = CachePath(mount_target="/a", path_in_cache=f"{volume}/a")
        job.save_handoff(Handoff(volume_root=str(volume), paths=[stale]))
        settings = RestoreSettings(
            local_cache=False, key="v1-xyz",
            paths=[str(tmp_path / "deps")], remote_dir=tmp_path / "store",
        )

        restore(settings, fake_runner, job)

        assert job.load_handoff() is None
        assert record_post_execution(job, fake_runner) is None
        assert fake_runner.commands_starting("du") == []

    def test_missing_archive(self, fake_runner, tmp_path, job) -> None:
        """An index entry whose archive is gone is a store error."""
        source = tmp_path / "deps"
        self._seed(tmp_path / "store", source, "v1-abc")
        for archive in (tmp_path / "store").glob("*.tar.gz"):
            archive.unlink()
        settings = RestoreSettings(
            local_cache=False, key="v1-abc", paths=[str(source)], remote_dir=tmp_path / "store",
        )

        with pytest.raises(RemoteStoreError, match="v1-abc"):
            restore(settings, fake_runner, job)

    def test_prefix_hit_is_not_exact(self, fake_runner, tmp_path, job) -> None:
        """A restore-key match restores but cache-hit stays false."""
        source = tmp_path / "deps"
        self._seed(tmp_path / "store", source, "v1-abc", "v1-def")
        settings = RestoreSettings(
            local_cache=False, key="v1-xyz", restore_keys=["v1-"],
            paths=[str(source)], remote_dir=tmp_path / "store",
        )

        result = restore(settings, fake_runner, job)

        assert result.matched_key == "v1-def"
        assert result.cache_hit is False
        assert job.outputs["cache-hit"] == "false"

    def test_cold_cache(self, fake_runner, tmp_path, job) -> None:
        """No match is a cold cache, not an error."""
        settings = RestoreSettings(
            local_cache=False, key="v1-xyz", restore_keys=["v1-"],
            paths=[str(tmp_path / "deps")], remote_dir=tmp_path / "store",
        )

        result = restore(settings, fake_runner, job)

        assert result.cache_hit is False
        assert result.matched_key is None
        assert job.outputs == {"cache-hit": "false"}
        assert "Cache not found for input keys: v1-xyz, v1-" in job.lines

    def test_fail_on_cache_miss(self, fake_runner, tmp_path, job) -> None:
        """No match is fatal under fail-on-cache-miss and names the keys."""
        settings = RestoreSettings(
            local_cache=False, key="v1-xyz", restore_keys=["v1-"], fail_on_cache_miss=True,
            paths=[str(tmp_path / "deps")], remote_dir=tmp_path / "store",
        )

        with pytest.raises(CacheMissError, match="v1-xyz, v1-"):
            restore(settings, fake_runner, job)

    def test_lookup_only(self, fake_runner, tmp_path, job) -> None:
        """lookup-only resolves without extracting."""
        source = tmp_path / "deps"
        self._seed(tmp_path / "store", source, "v1-abc")
        (source / "file.txt").unlink()
        settings = RestoreSettings(
            local_cache=False, key="v1-abc", lookup_only=True,
            paths=[str(source)], remote_dir=tmp_path / "store",
        )

        result = restore(settings, fake_runner, job)

        assert result.cache_hit is True
        assert not (source / "file.txt").exists()

    def test_key_required(self, fake_runner, tmp_path, job) -> None:
        """Remote mode needs a primary key."""
        settings = RestoreSettings(local_cache=False, paths=["/a"], remote_dir=tmp_path)
        with pytest.raises(ConfigurationError, match="key"):
            restore(settings, fake_runner, job)

    def test_store_required(self, fake_runner, job) -> None:
        """Remote mode needs a store."""
        settings = RestoreSettings(local_cache=False, key="k", paths=["/a"])
        with pytest.raises(ConfigurationError, match="remote-dir"):
            restore(settings, fake_runner, job)


class TestSave:
    """Tests for saving to the remote store."""

    def test_save_then_restore(self, fake_runner, tmp_path, job) -> None:
        """Paths saved under a key can be restored by that key."""
        source = tmp_path / "cache"
        source.mkdir()
        (source / "a").write_text("1")
        settings = RestoreSettings(
            local_cache=False, key="k-1", paths=[str(source)], remote_dir=tmp_path / "store",
        )

        assert save(settings, fake_runner) is True
        assert save(settings, fake_runner) is False
        assert restore(settings, fake_runner, job).cache_hit is True
