"""Tests for configuration loading and validation."""

import tomllib
from unittest import mock

import pytest

from rdump.config import (
    ConfigError,
    LvmVolume,
    SimpleVolume,
    ZfsEndpoint,
    ZfsReplication,
    ZfsVolume,
    find_config_file,
    load_config,
    parse_config,
)
from rdump.config.loader import generate_example_config

BASE = """
[config]
borg = "/usr/local/sbin/borg-wrapper.sh"
"""


def write_config(tmp_path, body, base=BASE):
    path = tmp_path / "rdump.toml"
    path.write_text(base + body)
    return path


class TestFindConfigFile:
    """Tests for config file discovery."""

    def test_explicit_path(self, config_file):
        assert find_config_file(str(config_file)) == config_file

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            find_config_file(str(tmp_path / "missing.toml"))

    def test_search_paths_in_order(self, tmp_path):
        first = tmp_path / "first.toml"
        second = tmp_path / "second.toml"
        second.write_text(BASE)
        with mock.patch("rdump.config.loader.CONFIG_PATHS", [first, second]):
            assert find_config_file() == second
            first.write_text(BASE)
            assert find_config_file() == first

    def test_nothing_found(self, tmp_path):
        with mock.patch("rdump.config.loader.CONFIG_PATHS", [tmp_path / "none"]):
            assert find_config_file() is None


class TestLoadConfig:
    """Tests for loading the sample configuration."""

    def test_volume_kinds_in_order(self, config_file):
        """Simple volumes come first, then lvm, then zfs entries."""
        config, _ = load_config(config_file)
        names = [v.name for v in config.volumes]
        assert names == ["boot", "root", "home", "vault/data"]
        assert isinstance(config.volumes[0], SimpleVolume)
        assert isinstance(config.volumes[1], LvmVolume)
        assert isinstance(config.volumes[2], ZfsVolume)
        assert isinstance(config.volumes[3], ZfsReplication)

    def test_global_values(self, config_file):
        config, _ = load_config(config_file)
        g = config.global_config
        assert g.borg == "/usr/local/sbin/borg-wrapper.sh"
        assert g.lvm_snapshot_size == "10g"
        assert g.manifest == "2sure.dat.gz"
        assert g.stamp == "snapstamp"
        assert g.rsure == "rsure"
        assert g.sudo is False
        assert g.log_file is None

    def test_lvm_volume(self, config_file):
        config, _ = load_config(config_file)
        root = config.volumes[1]
        assert root.device == "/dev/vg0/root_snap"
        assert root.mount_options == "nouuid,noatime"
        assert root.mirror.volume == "tank/mirror/root"
        assert root.mirror.mount == "/tank/mirror/root"

    def test_zfs_volume_defaults(self, config_file):
        config, _ = load_config(config_file)
        home = config.volumes[2]
        assert home.clone == "tank/home-rdump-clone"
        assert home.manifest_snapshot is True
        assert home.mirror is None

    def test_replication_entry(self, config_file):
        """A zfs entry with src/dest is replication, named after its dest."""
        config, _ = load_config(config_file)
        rep = config.volumes[3]
        assert rep.source == ZfsEndpoint(volume="tank/data")
        assert rep.destination == ZfsEndpoint(
            volume="vault/data", host="backup.example.com"
        )
        assert rep.actions == ["sync"]
        assert rep.mount is None
        assert str(rep.destination) == "backup.example.com:vault/data"

    def test_no_warnings(self, config_file):
        _, warnings = load_config(config_file)
        assert warnings == []

    def test_minimal(self, minimal_config_file):
        config, warnings = load_config(minimal_config_file)
        assert len(config.volumes) == 1
        assert warnings == []

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[config\nborg = ")
        with pytest.raises(ConfigError, match="Invalid TOML syntax"):
            load_config(path)

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read config file"):
            load_config(tmp_path / "missing.toml")


class TestConfigErrors:
    """Structural problems are rejected with the entry named."""

    def test_missing_config_block(self):
        with pytest.raises(ConfigError, match=r"\[config\]"):
            parse_config({"simple": []})

    def test_missing_borg(self):
        with pytest.raises(ConfigError, match="borg"):
            parse_config({"config": {}})

    def test_lvm_missing_field(self, tmp_path):
        path = write_config(
            tmp_path,
            """
[[lvm]]
name = "root"
mount = "/"
snap = "/mnt/snap"
lv = "root"
lv_snap = "root_snap"
fs = "ext4"
actions = ["snap"]
""",
        )
        with pytest.raises(ConfigError, match="LVM volume 'root'.*vg"):
            load_config(path)

    def test_actions_required(self, tmp_path):
        path = write_config(tmp_path, '[[simple]]\nname = "boot"\nmount = "/boot"\n')
        with pytest.raises(ConfigError, match="actions"):
            load_config(path)

    def test_actions_must_be_strings(self, tmp_path):
        path = write_config(
            tmp_path, '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = [1]\n'
        )
        with pytest.raises(ConfigError, match="list of strings"):
            load_config(path)

    def test_sudo_must_be_bool(self):
        with pytest.raises(ConfigError, match="'sudo' must be true or false"):
            parse_config({"config": {"borg": "/b", "sudo": "false"}})

    def test_manifest_snapshot_must_be_bool(self, tmp_path):
        path = write_config(
            tmp_path,
            """
[[zfs]]
name = "home"
mount = "/home"
volume = "tank/home"
clone_mount = "/mnt/clone/home"
manifest_snapshot = "no"
actions = ["snap", "rsure"]
""",
        )
        with pytest.raises(ConfigError, match="'manifest_snapshot' must be true"):
            load_config(path)

    @pytest.mark.parametrize(
        "entry",
        [
            {"name": 7, "mount": "/home", "volume": "t/h", "clone_mount": "/c"},
            {"name": "home", "mount": "/home", "volume": ["t/h"], "clone_mount": "/c"},
            {"src": {"volume": "t/d"}, "dest": {"volume": "v/d", "host": 22}},
        ],
    )
    def test_zfs_fields_must_be_strings(self, entry):
        data = {"config": {"borg": "/b"}, "zfs": [dict(entry, actions=["snap"])]}
        with pytest.raises(ConfigError, match="must be a string"):
            parse_config(data)

    def test_mirror_must_be_table(self):
        entry = {"name": "boot", "mount": "/boot", "actions": [], "zfs": "tank"}
        with pytest.raises(ConfigError, match="mirror must be a table"):
            parse_config({"config": {"borg": "/b"}, "simple": [entry]})


    def test_unknown_action(self, tmp_path):
        path = write_config(
            tmp_path,
            '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = ["tar"]\n',
        )
        with pytest.raises(ConfigError, match="unknown action 'tar'"):
            load_config(path)

    def test_rsure_before_snap(self, tmp_path):
        path = write_config(
            tmp_path,
            """
[[lvm]]
name = "root"
mount = "/"
snap = "/mnt/snap"
vg = "vg0"
lv = "root"
lv_snap = "root_snap"
fs = "ext4"
actions = ["rsure", "snap", "borg"]
""",
        )
        with pytest.raises(ConfigError, match="'rsure' must come after 'snap'"):
            load_config(path)

    def test_mirror_without_block(self, tmp_path):
        path = write_config(
            tmp_path,
            '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = ["mirror"]\n',
        )
        with pytest.raises(ConfigError, match="mirror"):
            load_config(path)

    def test_sync_outside_replication(self, tmp_path):
        path = write_config(
            tmp_path,
            '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = ["sync"]\n',
        )
        with pytest.raises(ConfigError, match="only valid for ZFS replication"):
            load_config(path)

    def test_replication_rejects_borg(self, tmp_path):
        path = write_config(
            tmp_path,
            """
[[zfs]]
actions = ["sync", "borg"]
[zfs.src]
volume = "tank/data"
[zfs.dest]
volume = "vault/data"
""",
        )
        with pytest.raises(ConfigError, match="only supports 'sync'"):
            load_config(path)

    def test_replication_needs_both_ends(self, tmp_path):
        path = write_config(tmp_path, '[[zfs]]\n[zfs.src]\nvolume = "tank/data"\n')
        with pytest.raises(ConfigError, match="dest"):
            load_config(path)

    def test_duplicate_names(self, tmp_path):
        body = '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = ["borg"]\n'
        path = write_config(tmp_path, body + body)
        with pytest.raises(ConfigError, match="Duplicate volume names: boot"):
            load_config(path)

    def test_shared_snapshot_lv(self, tmp_path):
        entry = """
[[lvm]]
name = "{name}"
mount = "/{name}"
snap = "/mnt/snap/{name}"
vg = "vg0"
lv = "{name}"
lv_snap = "shared_snap"
fs = "ext4"
actions = ["snap", "borg"]
"""
        path = write_config(tmp_path, entry.format(name="a") + entry.format(name="b"))
        with pytest.raises(ConfigError, match="snapshot LV"):
            load_config(path)

    def test_snap_equals_mount(self, tmp_path):
        path = write_config(
            tmp_path,
            """
[[lvm]]
name = "root"
mount = "/mnt/root"
snap = "/mnt/root"
vg = "vg0"
lv = "root"
lv_snap = "root_snap"
fs = "ext4"
actions = ["snap", "borg"]
""",
        )
        with pytest.raises(ConfigError, match="snapshot mount equals live mount"):
            load_config(path)

    def test_entries_must_be_tables(self):
        with pytest.raises(ConfigError, match=r"\[\[simple\]\]"):
            parse_config({"config": {"borg": "b"}, "simple": {"name": "boot"}})


class TestConfigWarnings:
    """Suspicious but runnable configurations produce warnings."""

    def test_duplicate_action(self, tmp_path):
        path = write_config(
            tmp_path,
            '[[simple]]\nname = "boot"\nmount = "/boot"\n'
            'actions = ["rsure", "rsure", "borg"]\n',
        )
        config, warnings = load_config(path)
        assert config.volumes[0].actions == ["rsure", "rsure", "borg"]
        assert any("more than once" in w for w in warnings)

    def test_empty_actions(self, tmp_path):
        path = write_config(
            tmp_path, '[[simple]]\nname = "boot"\nmount = "/boot"\nactions = []\n'
        )
        _, warnings = load_config(path)
        assert any("no actions" in w for w in warnings)

    def test_no_volumes(self, tmp_path):
        config, warnings = load_config(write_config(tmp_path, ""))
        assert config.volumes == []
        assert "No volumes configured" in warnings


class TestSelect:
    """Tests for Config.select and unknown_names."""

    def test_select_all(self, config_file):
        config, _ = load_config(config_file)
        assert config.select() == config.volumes
        assert config.select([]) == config.volumes

    def test_select_keeps_config_order(self, config_file):
        config, _ = load_config(config_file)
        names = [v.name for v in config.select(["home", "boot"])]
        assert names == ["boot", "home"]

    def test_unknown_names(self, config_file):
        config, _ = load_config(config_file)
        assert config.unknown_names(["boot", "nope"]) == ["nope"]


class TestGenerateExampleConfig:
    """The generated example must itself be a valid configuration."""

    def test_example_parses(self):
        data = tomllib.loads(generate_example_config())
        config, warnings = parse_config(data)
        assert [v.name for v in config.volumes] == ["boot", "root"]
        assert warnings == []
        assert config.global_config.sudo is False
