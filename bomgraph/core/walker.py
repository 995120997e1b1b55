import os
import logging
from typing import Iterator, Optional, Pattern, Iterable


def walk_directories(
    path: str,
    excludes: Optional[Pattern] = None,
    skip_names: Iterable[str] = (),
) -> Iterator[str]:
    """
    Yields `path` and every directory below it, depth-first, parents before
    children and siblings in name order.

    A directory whose path matches `excludes` is skipped together with its
    whole subtree, as is any directory named in `skip_names`. Unreadable
    directories are logged and skipped.
    """
    skip_names = frozenset(skip_names)

    if excludes is not None and excludes.search(path):
        logging.debug(f"Skipping excluded path '{path}'")
        return

    yield path

    try:
        entries = sorted(os.scandir(path), key=lambda entry: entry.name)
    except OSError as e:
        logging.warning(f"Cannot list '{path}': {e}")
        return

    for entry in entries:
        if not entry.is_dir(follow_symlinks=False):
            continue
        if entry.name in skip_names:
            logging.debug(f"Skipping '{entry.name}' directory in '{path}'")
            continue
        yield from walk_directories(os.path.join(path, entry.name), excludes, skip_names)
