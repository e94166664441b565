from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


def read_text(path: Path, default: str | None = "") -> str | None:
    if not path.exists():
        return default
    return path.read_text(encoding="utf-8")


def yaml_dump(data: Any) -> str:
    if data is None:
        return ""
    rendered = yaml.safe_dump(
        data,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )
    return rendered.rstrip() + "\n"


def write_yaml_atomic(path: Path, data: Any) -> bool:
    """Replace ``path`` with the YAML rendering of ``data``.

    The file is written to a sibling temp file first, so readers see either the
    old or the new document. Returns ``False`` when the content is unchanged.
    """
    rendered = yaml_dump(data)
    if rendered == read_text(path, default=None):
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(rendered)
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return True
