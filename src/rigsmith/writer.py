"""Materialize artifact trees on disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from rigsmith.errors import WriteError

if TYPE_CHECKING:
    from rigsmith.generators.base import ArtifactTree

logger = logging.getLogger(__name__)


class OutputWriter:
    """Write generated files under an output root.

    Files whose content is already identical are left untouched so that
    regeneration does not bump modification times.
    """

    def __init__(self) -> None:
        self.unchanged: list[Path] = []

    def write(self, tree: ArtifactTree, root: Path) -> list[Path]:
        """Write every file of *tree* under *root*.

        Returns
        -------
        list[Path]
            All paths of the tree, in tree order, whether rewritten or not.

        Raises
        ------
        WriteError
            On the first filesystem failure.  ``written`` holds the files
            already on disk at that point.
        """
        written: list[Path] = []
        for item in tree:
            path = Path(root) / item.path
            try:
                if _same_content(path, item.content):
                    logger.debug("Unchanged: %s", path)
                    self.unchanged.append(path)
                else:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_text(item.content, encoding="utf-8")
                    logger.debug("Wrote %s", path)
            except OSError as exc:
                msg = f"Cannot write {path}: {exc}"
                raise WriteError(msg, scope=tree.family, written=written) from exc
            written.append(path)
        return written


def _same_content(path: Path, content: str) -> bool:
    if not path.is_file():
        return False
    try:
        return path.read_text(encoding="utf-8") == content
    except UnicodeDecodeError:
        return False
