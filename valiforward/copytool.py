"""Copy a file or a whole directory tree to a destination."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Sequence
from pathlib import Path

USAGE = """Copies a source file or directory to the destination.
Usage:
      cp [source file] [destination]"""


def create_directory(path: str | os.PathLike[str]) -> None:
    """Make sure ``path`` is a directory, creating it (and parents) if missing."""
    target = Path(path)
    if not target.exists():
        target.mkdir(mode=0o750, parents=True, exist_ok=True)
        return
    if not target.is_dir():
        raise NotADirectoryError(f"{os.fspath(path)} already exists and it is not a directory")


def copy_dir(src: str | os.PathLike[str], dst: str | os.PathLike[str]) -> None:
    """Copy the contents of directory ``src`` into ``dst`` recursively."""
    source = Path(os.path.normpath(src))
    destination = Path(os.path.normpath(dst))
    children = sorted(source.iterdir())
    create_directory(destination)
    for child in children:
        copy_file(child, destination / child.name)


def copy_file(src: str | os.PathLike[str], dst: str | os.PathLike[str]) -> None:
    """Copy ``src`` to ``dst``, keeping the file mode; directories are copied whole."""
    info = os.stat(src)
    source = os.path.normpath(src)
    destination = os.path.normpath(dst)
    if stat.S_ISDIR(info.st_mode):
        copy_dir(source, destination)
        return
    data = Path(source).read_bytes()
    fd = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IMODE(info.st_mode))
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)


def _usage_exit(message: str, code: int) -> int:
    if message:
        print(message)
    print(USAGE)
    return code


def main(argv: Sequence[str] | None = None) -> int:
    """Run the copy command; returns the process exit code."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        return _usage_exit("Missing source and destination files arguments", 1)
    if len(args) == 1:
        return _usage_exit("Missing destination path", 2)
    if len(args) > 2:
        return _usage_exit("CP require only two arguments. Found more!", 4)
    try:
        copy_file(args[0], args[1])
    except OSError as exc:
        print(exc)
        return 3
    return 0


if __name__ == "__main__":
    sys.exit(main())