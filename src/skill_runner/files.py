# files.py
# Writes tool-produced files under the public directory and returns the
# site-relative URL they are served from.
#
# Filenames are reduced to a safe basename: a tool can never write outside
# its sub-directory, whatever name the model asked for.

import os
import re
import uuid
from pathlib import Path

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str, default_ext: str = "") -> str:
    """Strip directories and unsafe characters. Never returns an empty name."""
    name = os.path.basename(filename.replace("\\", "/")).strip()
    name = _UNSAFE.sub("_", name).lstrip(".")
    if not name:
        name = f"file_{uuid.uuid4().hex[:8]}"
    if default_ext and not os.path.splitext(name)[1]:
        name += default_ext
    return name


class PublicFiles:
    """Public directory with one sub-directory per file family."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def _target(self, sub_dir: str, filename: str) -> tuple[Path, str]:
        sub = safe_filename(sub_dir) if sub_dir else "skill-files"
        directory = self._root / sub
        directory.mkdir(parents=True, exist_ok=True)
        return directory / filename, f"/{sub}/{filename}"

    def write_text(self, content: str, filename: str, sub_dir: str = "skill-files") -> str:
        path, url = self._target(sub_dir, safe_filename(filename))
        path.write_text(content, encoding="utf-8")
        return url

    def write_bytes(self, content: bytes, filename: str, sub_dir: str = "skill-files") -> str:
        path, url = self._target(sub_dir, safe_filename(filename))
        path.write_bytes(content)
        return url

    def unique_name(self, prefix: str, ext: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:10]}{ext}"
