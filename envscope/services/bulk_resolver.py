"""Batched filesystem operations for environment file resolution.

Resolving N directories against M patterns one directory at a time issues
N*M globs and re-walks shared work. ``BulkResolver`` builds every
``(directory, pattern)`` search string up front, globs each unique one
once, and buckets the matches back by parent directory.

It also keeps a short-lived file-existence cache so the marker checks made
while validating many workspaces do not stat the same files repeatedly.
"""

from __future__ import annotations

import glob
import logging
import os
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from envscope.core.cache import DetectionCache
from envscope.core.models import ResolveOptions
from envscope.core.utils import is_readable_file, monotonic_ms, unique
from envscope.ports.providers import MonorepoProvider

logger = logging.getLogger(__name__)

EXISTS_CACHE_TTL_MS = 5_000
DEFAULT_LOAD_WORKERS = 4


def hoist_preferred(files: Sequence[Path], preferred_environment: str | None) -> list[Path]:
    """Move files ending in ``.<preferred_environment>`` to the front.

    The sort is stable: relative order inside each group is kept.
    """
    if not preferred_environment:
        return list(files)
    suffix = f".{preferred_environment}"
    return sorted(files, key=lambda f: not f.name.endswith(suffix))


class BulkResolver:
    """Batch glob and existence checks across many directories.

    Example:
        bulk = BulkResolver(cache)
        found = bulk.bulk_resolve_env_files(
            [root, root / "apps" / "web"], [".env", ".env.*"], provider
        )
        found[root]  # [root / ".env"]
    """

    def __init__(
        self,
        cache: DetectionCache,
        clock: Callable[[], float] | None = None,
        exists_ttl: float = EXISTS_CACHE_TTL_MS,
    ) -> None:
        self._cache = cache
        self._clock = clock or monotonic_ms
        self._exists_ttl = exists_ttl
        self._exists_cache: dict[Path, bool] = {}
        self._exists_cache_time: float | None = None

    def bulk_resolve_env_files(
        self,
        paths: Sequence[Path | str],
        patterns: Sequence[str],
        provider: MonorepoProvider | None,
        opts: ResolveOptions | None = None,
    ) -> dict[Path, list[Path]]:
        """Resolve environment files for several directories at once.

        Args:
            paths: Directories to search.
            patterns: Glob patterns relative to each directory.
            provider: Provider whose cache duration applies.
            opts: Resolution options; only ``preferred_environment`` is used.

        Returns:
            Mapping with one entry per requested directory (in request
            order) to the files found there, in pattern order. Directories
            that do not exist map to an empty list.
        """
        opts = opts or ResolveOptions()
        directories = unique(Path(p) for p in paths)
        if not directories:
            return {}

        provider_name = provider.name if provider is not None else "none"
        cache_key = ":".join(
            [
                "bulk_env_files",
                provider_name,
                ",".join(str(d) for d in directories),
                ",".join(patterns),
                opts.preferred_environment or "no_pref",
            ]
        )
        cached = self._cache.get_env_files(cache_key)
        if cached is not None:
            return {directory: list(files) for directory, files in cached.items()}

        # Each unique search string is globbed once; remember which
        # directory asked for it in case a match lands elsewhere.
        searches: dict[str, Path] = {}
        for directory in directories:
            escaped = glob.escape(str(directory))
            for pattern in patterns:
                searches.setdefault(os.path.join(escaped, pattern), directory)

        buckets: dict[Path, list[Path]] = {directory: [] for directory in directories}
        for search, origin in searches.items():
            for match in sorted(glob.glob(search)):
                file_path = Path(match)
                if not os.path.isfile(file_path):
                    continue
                bucket = file_path.parent if file_path.parent in buckets else origin
                buckets[bucket].append(file_path)

        results = {
            directory: hoist_preferred(unique(files), opts.preferred_environment)
            for directory, files in buckets.items()
        }

        get_duration = getattr(provider, "get_cache_duration", None)
        ttl = get_duration() if callable(get_duration) else None
        self._cache.set_env_files(cache_key, results, ttl)
        logger.debug(
            "Bulk resolved %d searches across %d directories (%d files)",
            len(searches),
            len(directories),
            sum(len(files) for files in results.values()),
        )
        return {directory: list(files) for directory, files in results.items()}

    def batch_file_exists(self, file_paths: Iterable[Path | str]) -> dict[Path, bool]:
        """Check readability of many files, reusing answers for a few seconds.

        The whole existence cache is dropped once it is older than the
        configured TTL (5 seconds by default).
        """
        now = self._clock()
        if self._exists_cache_time is None or (now - self._exists_cache_time) > self._exists_ttl:
            self._exists_cache.clear()
            self._exists_cache_time = now

        results: dict[Path, bool] = {}
        for raw in file_paths:
            path = Path(raw)
            exists = self._exists_cache.get(path)
            if exists is None:
                exists = is_readable_file(path)
                self._exists_cache[path] = exists
            results[path] = exists
        return results

    def clear_exists_cache(self) -> None:
        self._exists_cache.clear()
        self._exists_cache_time = None

    def load_env_files(
        self, file_paths: Sequence[Path | str], max_workers: int = DEFAULT_LOAD_WORKERS
    ) -> tuple[dict[Path, list[str]], dict[Path, str]]:
        """Read several files concurrently.

        Args:
            file_paths: Files to read.
            max_workers: Size of the reader thread pool.

        Returns:
            Tuple of (lines per readable file, error message per failed file).
        """
        contents: dict[Path, list[str]] = {}
        errors: dict[Path, str] = {}
        paths = unique(Path(p) for p in file_paths)
        if not paths:
            return contents, errors

        with ThreadPoolExecutor(
            max_workers=min(max_workers, len(paths)), thread_name_prefix="envscope-load-"
        ) as pool:
            for path, lines, error in pool.map(_read_lines, paths):
                if error is None:
                    contents[path] = lines
                else:
                    errors[path] = error

        if errors:
            logger.debug("Failed to read %d of %d env files", len(errors), len(paths))
        return contents, errors

    def stream_process_env_files(
        self,
        file_paths: Sequence[Path | str],
        processor: Callable[[Path, list[str]], None],
    ) -> int:
        """Feed each readable file to ``processor`` in order.

        Unreadable files are skipped.

        Returns:
            The number of files processed.
        """
        processed = 0
        for raw in file_paths:
            path, lines, error = _read_lines(Path(raw))
            if error is not None:
                continue
            processor(path, lines)
            processed += 1
        return processed


def _read_lines(path: Path) -> tuple[Path, list[str], str | None]:
    try:
        return path, path.read_text(encoding="utf-8").splitlines(), None
    except (OSError, UnicodeDecodeError) as e:
        return path, [], str(e)
