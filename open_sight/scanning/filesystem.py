import glob
import os
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .. import config
from ..exceptions import StartupError
from ..models import CandidatePath

GLOB_CHARS = ('*', '?', '[')


class PathEnumerator:
    """
    Expands input roots (directories, files or glob patterns) into the
    deduplicated list of candidate files to extract.
    """

    def __init__(self, extensions: Optional[Iterable[str]] = None):
        exts = extensions if extensions is not None else config.CE_EXT
        self.extensions = {e.lower() for e in exts}

    def enumerate(self, roots: Iterable[str]) -> List[CandidatePath]:
        """
        Materializes every candidate under `roots`.

        Raises StartupError if a root does not exist, matches nothing or
        cannot be listed.
        """
        seen: Dict[str, CandidatePath] = {}
        for root in roots:
            for path in self._expand_root(root):
                if path.is_dir():
                    logging.info(f"Walking directory {path}")
                    files = self._iter_files(path)
                else:
                    files = iter([path])

                for file_path in files:
                    candidate = self._make_candidate(file_path)
                    if candidate and candidate.key not in seen:
                        seen[candidate.key] = candidate

        logging.info(f"Found {len(seen)} candidate files.")
        return list(seen.values())

    def matches(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def _expand_root(self, root: str) -> List[Path]:
        path = Path(root)
        # An existing path wins over pattern syntax, e.g. "/data/[2020] export"
        if not path.exists() and any(ch in root for ch in GLOB_CHARS):
            matches = sorted(glob.glob(root, recursive=True))
            if not matches:
                raise StartupError(f"Pattern matched nothing: {root}")
            return [Path(m) for m in matches]

        if not path.exists():
            raise StartupError(f"Input path does not exist: {root}")
        if path.is_dir() and not os.access(path, os.R_OK | os.X_OK):
            raise StartupError(f"Input directory is not readable: {root}")
        return [path]

    def _make_candidate(self, path: Path) -> Optional[CandidatePath]:
        if not self.matches(path):
            return None
        try:
            resolved = path.resolve()
            stat_result = resolved.stat()
        except OSError as e:
            logging.warning(f"Cannot stat {path}: {e}")
            return None

        if stat_result.st_size == 0:
            logging.error(f"Empty file: {resolved}")
            return None

        return CandidatePath(
            path=resolved,
            size_bytes=stat_result.st_size,
            mtime=stat_result.st_mtime,
        )

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir, following directory symlinks once."""
        visited: Set[Tuple[int, int]] = set()
        stack = [root]
        while stack:
            current = stack.pop()
            try:
                st = current.stat()
            except OSError as e:
                logging.warning(f"Cannot stat directory {current}: {e}")
                continue

            dir_key = (st.st_dev, st.st_ino)
            if dir_key in visited:
                logging.warning(f"Skipping already visited directory (symlink loop?): {current}")
                continue
            visited.add(dir_key)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Skipping unreadable directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                try:
                    if e.is_dir():
                        dirs.append(Path(e.path))
                    elif e.is_file():
                        files.append(Path(e.path))
                except OSError as err:
                    logging.warning(f"Cannot inspect {e.path}: {err}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
