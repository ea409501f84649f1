"""rdump: rdump/__init__.py."""

__version__ = "0.3.0"


def encode_name(name: str) -> str:
    """Replace '/' with '-' and remove leading slash"""
    return name.strip("/").replace("/", "-") or "root"
