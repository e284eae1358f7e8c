"""File system side of the workflows: scratch copies, comparisons and list files."""

import difflib
import logging
import os
import shutil
from pathlib import Path

from .config import OnFailure
from .errors import CheckFailedError
from .pom_models import Ga

logger = logging.getLogger(__name__)

_SKIPPED_DIRECTORIES = {"target", "src", ".git", "node_modules"}


def copy_poms(src: Path, dest: Path, additional_files=()) -> list:
    """Copy every ``pom.xml`` under ``src`` into an emptied ``dest``.

    ``target`` and ``src`` directories are not descended into.

    Args:
        src: Root of the source tree.
        dest: Scratch directory; deleted first if it exists.
        additional_files: Paths relative to ``src`` copied as well when present.

    Returns:
        The copied paths relative to ``src``, ``/``-separated.
    """
    src = Path(src)
    dest = Path(dest)
    if dest.exists():
        shutil.rmtree(dest)
    copied = []
    for dirpath, dirnames, filenames in os.walk(src):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in _SKIPPED_DIRECTORIES and Path(dirpath, d).resolve() != dest.resolve()
        )
        if "pom.xml" in filenames:
            copied.append(Path(dirpath, "pom.xml").relative_to(src).as_posix())
    copied.extend(f for f in additional_files if (src / f).is_file())
    for rel in copied:
        target = dest / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src / rel, target)
    logger.debug("Copied %d files from %s to %s", len(copied), src, dest)
    return copied


def assert_poms_match(src: Path, dest: Path, paths, charset: str = "utf-8",
                      on_failure: OnFailure = OnFailure.FAIL, fix_hint: str = "pomtuner") -> list:
    """Compare files of two trees and act on differences according to ``on_failure``.

    Args:
        src: The real tree.
        dest: The scratch tree holding the expected content.
        paths: Relative paths to compare.
        charset: Encoding of the files.
        on_failure: ``FAIL`` raises, ``WARN`` logs a warning, ``IGNORE`` does nothing.
        fix_hint: The command that would bring the real tree in sync.

    Returns:
        The paths that differ.

    Raises:
        CheckFailedError: If files differ and ``on_failure`` is ``FAIL``.
    """
    messages = []
    mismatches = []
    for rel in sorted(paths):
        expected = _read(Path(dest) / rel, charset)
        actual = _read(Path(src) / rel, charset)
        if expected == actual:
            continue
        diff = "".join(difflib.unified_diff(
            actual.splitlines(keepends=True),
            expected.splitlines(keepends=True),
            fromfile=f"a/{rel}",
            tofile=f"b/{rel}",
        ))
        mismatches.append(rel)
        messages.append(f"File [{rel}] is not in sync with ref:\n\n{diff}\n\nConsider running {fix_hint}")
    if not mismatches or on_failure is OnFailure.IGNORE:
        return mismatches
    message = "\n\n".join(messages)
    if on_failure is OnFailure.FAIL:
        raise CheckFailedError(message)
    logger.warning(message)
    return mismatches


def _read(path: Path, charset: str) -> str:
    return path.read_bytes().decode(charset) if path.is_file() else ""


def write_excludes_file(path: Path, excludes, charset: str = "utf-8") -> None:
    """Write one ``:artifactId`` line per excluded module, sorted.

    The format is accepted by Maven's ``-pl`` option after prefixing each line with ``!``.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n".join(sorted(f":{ga.artifact_id}" for ga in excludes))
    path.write_bytes(content.encode(charset))
    logger.info("Wrote %d excluded modules to %s", len(excludes), path)


def read_includes_file(path: Path, default_group_id: str, charset: str = "utf-8") -> list:
    """Read GAV patterns, one per line.

    Blank lines and ``#`` comments are skipped; lines of the ``:artifactId``
    form get ``default_group_id`` prepended.
    """
    patterns = []
    for line in Path(path).read_text(encoding=charset).splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(default_group_id + line if line.startswith(":") else line)
    return patterns


def gas_of_excludes_file(path: Path, group_id: str, charset: str = "utf-8") -> set:
    """The modules listed in an excludes file written by :func:`write_excludes_file`."""
    return {
        Ga(group_id, line.strip().lstrip(":"))
        for line in Path(path).read_text(encoding=charset).splitlines()
        if line.strip()
    }
