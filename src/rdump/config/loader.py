"""TOML configuration loading and validation.

Handles config file discovery, parsing, and validation with helpful error messages.
"""

import tomllib
from pathlib import Path
from typing import Any

from ..__util__ import RdumpError
from .schema import (
    Config,
    GlobalConfig,
    LvmVolume,
    MirrorConfig,
    SimpleVolume,
    Volume,
    ZfsEndpoint,
    ZfsReplication,
    ZfsVolume,
)


class ConfigError(RdumpError):
    """Configuration loading or validation error."""

    pass


# Config file search paths in priority order
CONFIG_PATHS = [
    Path("rdump.toml"),
    Path.home() / ".config" / "rdump" / "config.toml",
    Path("/etc/rdump/config.toml"),
]

LVM_REQUIRED = ("name", "mount", "snap", "vg", "lv", "lv_snap", "fs")

STRING_FIELDS = {
    "name",
    "mount",
    "snap",
    "vg",
    "lv",
    "lv_snap",
    "fs",
    "volume",
    "clone",
    "clone_mount",
    "host",
    "borg",
    "rsure",
    "manifest",
    "stamp",
    "lvm_snapshot_size",
    "log_file",
}
BOOL_FIELDS = {"sudo", "manifest_snapshot"}



def find_config_file(explicit_path: str | None = None) -> Path | None:
    """Find configuration file.

    Args:
        explicit_path: Explicitly specified config path (highest priority)

    Returns:
        Path to config file, or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigError(f"Config file not found: {explicit_path}")

    for path in CONFIG_PATHS:
        if path.exists():
            return path

    return None


def _require(data: dict[str, Any], keys, what: str) -> None:
    missing = [k for k in keys if k not in data]
    if missing:
        raise ConfigError(f"{what} missing required field(s): {', '.join(missing)}")


def _check_types(data: dict[str, Any], what: str) -> None:
    """Reject scalar fields of the wrong TOML type."""
    for key, value in data.items():
        if key in STRING_FIELDS and not isinstance(value, str):
            raise ConfigError(f"{what}: '{key}' must be a string")
        if key in BOOL_FIELDS and not isinstance(value, bool):
            raise ConfigError(f"{what}: '{key}' must be true or false")


def _parse_actions(data: dict[str, Any], what: str, default=None) -> list[str]:
    actions = data.get("actions", default)
    if actions is None:
        raise ConfigError(f"{what} missing required field(s): actions")
    if not isinstance(actions, list) or not all(isinstance(a, str) for a in actions):
        raise ConfigError(f"{what}: 'actions' must be a list of strings")
    return list(actions)


def _parse_mirror(data: dict[str, Any], what: str) -> MirrorConfig | None:
    if "zfs" not in data:
        return None
    mirror = data["zfs"]
    if not isinstance(mirror, dict):
        raise ConfigError(f"{what}: 'zfs' mirror must be a table")
    _require(mirror, ("volume", "mount"), f"{what} zfs mirror")
    _check_types(mirror, f"{what} zfs mirror")
    return MirrorConfig(volume=mirror["volume"], mount=mirror["mount"])


def _parse_simple(data: dict[str, Any]) -> SimpleVolume:
    """Parse a [[simple]] entry."""
    _require(data, ("name", "mount"), "Simple volume")
    what = f"Simple volume '{data['name']}'"
    _check_types(data, what)
    return SimpleVolume(
        name=data["name"],
        mount=data["mount"],
        actions=_parse_actions(data, what),
        mirror=_parse_mirror(data, what),
    )


def _parse_lvm(data: dict[str, Any]) -> LvmVolume:
    """Parse an [[lvm]] entry."""
    _require(data, ("name",), "LVM volume")
    what = f"LVM volume '{data['name']}'"
    _check_types(data, what)
    _require(data, LVM_REQUIRED, what)
    return LvmVolume(
        name=data["name"],
        mount=data["mount"],
        actions=_parse_actions(data, what),
        snap=data["snap"],
        vg=data["vg"],
        lv=data["lv"],
        lv_snap=data["lv_snap"],
        fs=data["fs"],
        mirror=_parse_mirror(data, what),
    )


def _parse_endpoint(data: Any, what: str) -> ZfsEndpoint:
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a table")
    _require(data, ("volume",), what)
    _check_types(data, what)
    return ZfsEndpoint(volume=data["volume"], host=data.get("host"))


def _parse_zfs(data: dict[str, Any]) -> Volume:
    """Parse a [[zfs]] entry, either replication (src/dest) or local."""
    if "src" in data or "dest" in data:
        _require(data, ("src", "dest"), "ZFS replication")
        _check_types(data, "ZFS replication")
        source = _parse_endpoint(data["src"], "ZFS replication 'src'")
        destination = _parse_endpoint(data["dest"], "ZFS replication 'dest'")
        name = data.get("name") or destination.volume
        what = f"ZFS replication '{name}'"
        return ZfsReplication(
            name=name,
            source=source,
            destination=destination,
            actions=_parse_actions(data, what, default=["sync"]),
        )

    _require(data, ("name",), "ZFS volume")
    what = f"ZFS volume '{data['name']}'"
    _check_types(data, what)
    _require(data, ("mount", "volume", "clone_mount"), what)
    return ZfsVolume(
        name=data["name"],
        mount=data["mount"],
        actions=_parse_actions(data, what),
        volume=data["volume"],
        clone_mount=data["clone_mount"],
        clone=data.get("clone", ""),
        manifest_snapshot=data.get("manifest_snapshot", False),
        mirror=_parse_mirror(data, what),
    )


def _parse_global(data: dict[str, Any]) -> GlobalConfig:
    """Parse the [config] block."""
    if "borg" not in data:
        raise ConfigError("[config] missing required 'borg' wrapper path")
    _check_types(data, "[config]")

    return GlobalConfig(
        borg=data["borg"],
        rsure=data.get("rsure", "rsure"),
        manifest=data.get("manifest", "2sure.dat.gz"),
        stamp=data.get("stamp", "snapstamp"),
        lvm_snapshot_size=data.get("lvm_snapshot_size", "5g"),
        sudo=data.get("sudo", False),
        log_file=data.get("log_file"),
    )


def _validate_config(config: Config) -> list[str]:
    """Validate configuration, raising on errors and returning warnings."""
    # Imported here: the pipeline module imports this one for ConfigError
    from ..core.pipeline import validate_actions

    warnings = []

    if not config.volumes:
        warnings.append("No volumes configured")

    names = [v.name for v in config.volumes]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate volume names: {', '.join(duplicates)}")

    lv_snaps = [
        (v.vg, v.lv_snap) for v in config.volumes if isinstance(v, LvmVolume)
    ]
    if len(lv_snaps) != len(set(lv_snaps)):
        raise ConfigError("Two LVM volumes share a snapshot LV name")

    clones = [v.clone for v in config.volumes if isinstance(v, ZfsVolume)]
    if len(clones) != len(set(clones)):
        raise ConfigError("Two ZFS volumes share a clone dataset")

    for volume in config.volumes:
        validate_actions(volume)

        if len(volume.actions) != len(set(volume.actions)):
            warnings.append(f"Volume '{volume.name}' lists an action more than once")
        if not volume.actions:
            warnings.append(f"Volume '{volume.name}' has no actions")
        if isinstance(volume, LvmVolume) and volume.snap == volume.mount:
            raise ConfigError(
                f"LVM volume '{volume.name}': snapshot mount equals live mount"
            )

    return warnings


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    entries = data.get(key, [])
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise ConfigError(f"'{key}' must be an array of tables ([[{key}]])")
    return entries


def parse_config(data: dict[str, Any]) -> tuple[Config, list[str]]:
    """Build and validate a Config from already-parsed TOML data."""
    if "config" not in data:
        raise ConfigError("Missing [config] block")
    global_config = _parse_global(data["config"])

    volumes: list[Volume] = []
    volumes.extend(_parse_simple(e) for e in _entries(data, "simple"))
    volumes.extend(_parse_lvm(e) for e in _entries(data, "lvm"))
    volumes.extend(_parse_zfs(e) for e in _entries(data, "zfs"))

    config = Config(global_config=global_config, volumes=volumes)
    warnings = _validate_config(config)
    return config, warnings


def load_config(path: Path | str) -> tuple[Config, list[str]]:
    """Load and validate configuration from TOML file.

    Args:
        path: Path to configuration file

    Returns:
        Tuple of (Config object, list of warnings)

    Raises:
        ConfigError: If config is invalid or cannot be parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML syntax: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}")

    return parse_config(data)


def generate_example_config() -> str:
    """Generate example configuration file content."""
    return """# rdump configuration

[config]
# Wrapper around borg that sets BORG_REPO and BORG_PASSPHRASE
borg = "/usr/local/sbin/borg-wrapper.sh"
rsure = "rsure"
manifest = "2sure.dat.gz"
stamp = "snapstamp"
lvm_snapshot_size = "5g"
# Only when rdump itself can write the live mounts
# sudo = true
# log_file = "/var/log/rdump.log"

# Backed up straight from the live filesystem
[[simple]]
name = "boot"
mount = "/boot"
actions = ["rsure", "borg"]

# Backed up from an LVM2 snapshot
[[lvm]]
name = "root"
mount = "/"
snap = "/mnt/snap/root"
vg = "vg0"
lv = "root"
lv_snap = "root_snap"
fs = "ext4"
actions = ["snap", "rsure", "borg"]

# Optional mirror, refreshed by the "mirror" action
# [lvm.zfs]
# volume = "tank/mirror/root"
# mount = "/tank/mirror/root"

# Local ZFS dataset, backed up from a clone of a fresh snapshot
# [[zfs]]
# name = "home"
# volume = "tank/home"
# mount = "/home"
# clone_mount = "/mnt/clone/home"
# manifest_snapshot = true
# actions = ["snap", "rsure", "borg"]

# Replication of a dataset between hosts
# [[zfs]]
# name = "offsite"
# [zfs.src]
# volume = "tank/data"
# [zfs.dest]
# host = "backup.example.com"
# volume = "vault/data"
"""
