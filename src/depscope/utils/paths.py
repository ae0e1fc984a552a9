"""
Path helpers shared by the parser and the resolver.
"""

import posixpath
from pathlib import Path
from typing import Union


def normalize_path(path: Union[str, Path], project_root: Union[str, Path]) -> str:
    """Root-relative posix node id for ``path``. Paths outside the root stay absolute."""
    p = Path(path)
    if p.is_absolute():
        try:
            p = p.relative_to(Path(project_root))
        except ValueError:
            return p.as_posix()
    normalized = posixpath.normpath(p.as_posix())
    return "" if normalized == "." else normalized
