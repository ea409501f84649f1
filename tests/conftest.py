"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from rdump.config import GlobalConfig, LvmVolume, SimpleVolume, ZfsVolume
from rdump.core import RunContext
from rdump.tools import (
    BackupTool,
    IntegrityTool,
    LvmTool,
    ManifestHandle,
    SyncTool,
    Toolkit,
    ToolError,
    ZfsTool,
)

STAMP = "20260101T120000"


class Recorder:
    """Call log shared by every fake tool.

    ``fail`` maps a call name ("lvm.mount") to the exception that call
    raises; ``on_call`` maps a call name to a hook run before it returns.
    """

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.on_call = {}

    def record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.on_call:
            self.on_call[name]()
        if name in self.fail:
            raise self.fail[name]

    def fail_with(self, name, returncode=1, stderr="simulated failure"):
        self.fail[name] = ToolError([name], returncode, stderr)

    @property
    def names(self):
        return [call[0] for call in self.calls]

    def of(self, name):
        return [call[1:] for call in self.calls if call[0] == name]


class FakeLvm(LvmTool):
    def __init__(self, recorder):
        self.recorder = recorder
        self.snapshots = set()
        self.mounted = set()

    def snapshot_exists(self, vg, lv_snap):
        self.recorder.record("lvm.snapshot_exists", vg, lv_snap)
        return f"{vg}/{lv_snap}" in self.snapshots

    def create_snapshot(self, vg, lv, lv_snap, size):
        self.recorder.record("lvm.create_snapshot", vg, lv, lv_snap, size)
        self.snapshots.add(f"{vg}/{lv_snap}")

    def remove_snapshot(self, vg, lv_snap):
        self.recorder.record("lvm.remove_snapshot", vg, lv_snap)
        self.snapshots.discard(f"{vg}/{lv_snap}")

    def mount(self, device, path, options):
        self.recorder.record("lvm.mount", device, Path(path), options)
        Path(path).mkdir(parents=True, exist_ok=True)
        self.mounted.add(Path(path))

    def unmount(self, path):
        self.recorder.record("lvm.unmount", Path(path))
        self.mounted.discard(Path(path))


class FakeZfs(ZfsTool):
    def __init__(self, recorder):
        self.recorder = recorder
        self.datasets = set()

    def exists(self, name, host=None):
        self.recorder.record("zfs.exists", name)
        return name in self.datasets

    def snapshot(self, dataset, name):
        self.recorder.record("zfs.snapshot", dataset, name)
        self.datasets.add(f"{dataset}@{name}")

    def clone(self, snapshot, dataset, mountpoint):
        self.recorder.record("zfs.clone", snapshot, dataset, Path(mountpoint))
        Path(mountpoint).mkdir(parents=True, exist_ok=True)
        self.datasets.add(dataset)

    def destroy(self, name):
        self.recorder.record("zfs.destroy", name)
        self.datasets.discard(name)

    def list_snapshots(self, dataset, host=None):
        self.recorder.record("zfs.list_snapshots", dataset, host)
        prefix = f"{dataset}@"
        return sorted(d[len(prefix) :] for d in self.datasets if d.startswith(prefix))

    def send_receive(self, source, destination):
        self.recorder.record("zfs.send_receive", source, destination)


class FakeRsure(IntegrityTool):
    """Writes a small manifest naming the run into the scanned mount."""

    def __init__(self, recorder):
        self.recorder = recorder

    def update_manifest(self, mount_path, manifest_name, tags):
        self.recorder.record(
            "rsure.update_manifest", Path(mount_path), manifest_name, dict(tags)
        )
        path = Path(mount_path) / manifest_name
        existed = path.is_file()
        path.write_text(f"manifest {tags['name']}\n")
        return ManifestHandle(path=path, updated=existed)


class FakeBorg(BackupTool):
    def __init__(self, recorder):
        self.recorder = recorder

    def archive(self, mount_path, wrapper_path, archive_name):
        self.recorder.record(
            "borg.archive", Path(mount_path), wrapper_path, archive_name
        )


class FakeSync(SyncTool):
    def __init__(self, recorder):
        self.recorder = recorder

    def sync(self, src, dest):
        self.recorder.record("rsync.sync", Path(src), Path(dest))


@pytest.fixture
def recorder():
    """Shared call log for the fake tools."""
    return Recorder()


@pytest.fixture
def tools(recorder):
    """A Toolkit of fakes, all recording into ``recorder``."""
    return Toolkit(
        backup=FakeBorg(recorder),
        integrity=FakeRsure(recorder),
        lvm=FakeLvm(recorder),
        zfs=FakeZfs(recorder),
        sync=FakeSync(recorder),
    )


@pytest.fixture
def global_config():
    return GlobalConfig(borg="/usr/local/sbin/borg-wrapper.sh")


@pytest.fixture
def context(global_config, tools):
    """A run context with a fixed stamp and fake tools."""
    return RunContext(global_config=global_config, tools=tools, stamp=STAMP)


@pytest.fixture
def live_dir(tmp_path):
    """The live mount of the LVM test volume."""
    path = tmp_path / "live"
    path.mkdir()
    return path


@pytest.fixture
def lvm_volume(tmp_path, live_dir):
    """Root filesystem on LVM, snapshotted, checksummed and archived."""
    return LvmVolume(
        name="root",
        mount=str(live_dir),
        actions=["snap", "rsure", "borg"],
        snap=str(tmp_path / "snap"),
        vg="vg0",
        lv="root",
        lv_snap="root_snap",
        fs="ext4",
    )


@pytest.fixture
def zfs_volume(tmp_path):
    """A local ZFS dataset backed up from a clone."""
    home = tmp_path / "home"
    home.mkdir()
    return ZfsVolume(
        name="home",
        mount=str(home),
        actions=["snap", "rsure", "borg"],
        volume="tank/home",
        clone_mount=str(tmp_path / "clone"),
    )


@pytest.fixture
def simple_volume(tmp_path):
    """A /boot-like volume backed up from its live mount."""
    boot = tmp_path / "boot"
    boot.mkdir()
    return SimpleVolume(name="boot", mount=str(boot), actions=["rsure", "borg"])


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_toml():
    """Return a sample valid TOML configuration string."""
    return """
[config]
borg = "/usr/local/sbin/borg-wrapper.sh"
lvm_snapshot_size = "10g"

[[simple]]
name = "boot"
mount = "/boot"
actions = ["rsure", "borg"]

[[lvm]]
name = "root"
mount = "/"
snap = "/mnt/snap/root"
vg = "vg0"
lv = "root"
lv_snap = "root_snap"
fs = "xfs"
actions = ["snap", "rsure", "borg", "mirror"]

[lvm.zfs]
volume = "tank/mirror/root"
mount = "/tank/mirror/root"

[[zfs]]
name = "home"
volume = "tank/home"
mount = "/home"
clone_mount = "/mnt/clone/home"
manifest_snapshot = true
actions = ["snap", "rsure", "borg"]

[[zfs]]
[zfs.src]
volume = "tank/data"
[zfs.dest]
host = "backup.example.com"
volume = "vault/data"
"""


@pytest.fixture
def minimal_config_toml():
    """Return a minimal valid TOML configuration string."""
    return """
[config]
borg = "/usr/local/sbin/borg-wrapper.sh"

[[simple]]
name = "boot"
mount = "/boot"
actions = ["borg"]
"""


@pytest.fixture
def config_file(tmp_config_dir, sample_config_toml):
    """Create a temporary config file with sample content."""
    config_path = tmp_config_dir / "config.toml"
    config_path.write_text(sample_config_toml)
    return config_path


@pytest.fixture
def minimal_config_file(tmp_config_dir, minimal_config_toml):
    """Create a temporary config file with minimal content."""
    config_path = tmp_config_dir / "minimal.toml"
    config_path.write_text(minimal_config_toml)
    return config_path
