"""
Discovery and caching of the files of a project.

A `FileDiscovery` object scans a project folder for text files with
known extensions, skipping hidden and build folders, and keeps the
list of relative paths (with '/' separators) in a cache. The cache is
refreshed when older than `ttl` seconds, or after `invalidate()`.

The object is owned by whoever assembles the tools that use it; there
is no global instance.
"""

import time
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from g0.utils.logging import LoggerBase, get_logger

logger: LoggerBase = get_logger(__name__)

DEFAULT_TTL = 30.0
MAX_CACHED_FILES = 5000

EXCLUDED_DIRECTORIES = frozenset(
    {
        ".git",
        ".godot",
        ".mono",
        ".vs",
        ".vscode",
        ".idea",
        "bin",
        "obj",
        "node_modules",
        "__pycache__",
        ".import",
        "android",
        "ios",
        "export_presets",
    }
)

PRIORITY_EXTENSIONS = frozenset(
    {".cs", ".gd", ".gdscript", ".tscn", ".tres", ".cfg", ".godot"}
)

ALLOWED_EXTENSIONS = frozenset(
    {
        # Godot
        ".cs", ".gd", ".gdscript", ".tscn", ".tres", ".cfg", ".godot",
        ".import",
        # code and data
        ".py", ".js", ".ts", ".json", ".xml", ".yaml", ".yml", ".toml",
        ".html", ".css", ".scss", ".sass", ".less",
        ".md", ".txt", ".rst",
        ".sh", ".bat", ".ps1",
        ".c", ".cpp", ".cc", ".cxx", ".h", ".hpp",
        ".java", ".rs", ".go", ".swift", ".kt", ".rb",
        ".ini", ".env", ".gitignore", ".editorconfig",
        ".csv", ".sql",
        ".csproj", ".sln", ".gradle", ".properties",
    }
)


def is_excluded_directory(name: str) -> bool:
    return name.startswith(".") or name.lower() in EXCLUDED_DIRECTORIES


def _suffix(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def _is_allowed_file(name: str) -> bool:
    # dotfiles like .gitignore are listed by their full name
    if name.startswith("."):
        return name.lower() in ALLOWED_EXTENSIONS
    return _suffix(name) in ALLOWED_EXTENSIONS


def _fuzzy_match(target: str, query: str) -> bool:
    """All the characters of query appear in target, in order."""
    chars = iter(target)
    return all(c in chars for c in query)


def match_score(path: str, query: str) -> int:
    """Score a relative path against a lowercase query. Zero means no
    match."""
    lower_path = path.lower()
    posix = PurePosixPath(lower_path)
    if posix.stem == query:
        score = 1000
    elif posix.stem.startswith(query):
        score = 500
    elif query in posix.name:
        score = 200
    elif query in lower_path:
        score = 100
    elif _fuzzy_match(lower_path, query):
        score = 50
    else:
        return 0
    if posix.suffix in PRIORITY_EXTENSIONS:
        score += 25
    return score


class FileDiscovery:
    """Cached list of the files of a project.

    Args:
        root: the project folder
        ttl: maximum age of the cache, in seconds
        max_files: maximum number of files kept in the cache
        clock: a function returning the current time in seconds
        logger: a logger object
    """

    def __init__(
        self,
        root: str | Path,
        *,
        ttl: float = DEFAULT_TTL,
        max_files: int = MAX_CACHED_FILES,
        clock: Callable[[], float] = time.monotonic,
        logger: LoggerBase = logger,
    ) -> None:
        self.root = Path(root).resolve()
        self.ttl = ttl
        self.max_files = max_files
        self.clock = clock
        self.logger = logger
        self._files: list[str] = []
        self._last_refresh: float | None = None

    def invalidate(self) -> None:
        """Force a rescan at the next access."""
        self._last_refresh = None

    def _stale(self) -> bool:
        if self._last_refresh is None:
            return True
        return self.clock() - self._last_refresh > self.ttl

    def get_files(self, force_refresh: bool = False) -> list[str]:
        """The relative paths of the project files. Files with
        priority extensions come first, then in alphabetical order."""
        if force_refresh or self._stale():
            self.refresh()
        return list(self._files)

    def refresh(self) -> None:
        files: list[str] = []
        if not self.root.is_dir():
            self.logger.error(
                f"Project root not found for file discovery: {self.root}"
            )
        else:
            self._scan(self.root, "", files)
        files.sort(key=lambda f: (_suffix(f) not in PRIORITY_EXTENSIONS, f))
        self._files = files[: self.max_files]
        self._last_refresh = self.clock()
        self.logger.info(f"File discovery cached {len(self._files)} files")

    def _inside_root(self, path: Path) -> bool:
        try:
            return path.resolve().is_relative_to(self.root)
        except OSError:
            return False

    def _scan(self, folder: Path, relative: str, files: list[str]) -> None:
        try:
            children = sorted(folder.iterdir(), key=lambda p: p.name)
        except OSError as e:
            self.logger.warning(f"Error scanning directory {folder}: {e}")
            return

        subfolders: list[Path] = []
        for child in children:
            if len(files) >= self.max_files:
                return
            if child.is_symlink() and not self._inside_root(child):
                self.logger.debug(f"Skipping link out of the project: {child}")
                continue
            if child.is_dir():
                if child.is_symlink():
                    # linked folders may loop back to their ancestors
                    continue
                subfolders.append(child)
            elif _is_allowed_file(child.name):
                files.append(f"{relative}{child.name}")

        for sub in subfolders:
            if len(files) >= self.max_files:
                return
            if is_excluded_directory(sub.name):
                continue
            self._scan(sub, f"{relative}{sub.name}/", files)

    def search(self, query: str, max_results: int = 10) -> list[str]:
        """Fuzzy search of the project files by name. Best matches come
        first; among equal scores, shorter paths first."""
        files = self.get_files()
        query = query.strip().lower()
        if not query:
            return files[:max_results]
        scored = [(match_score(f, query), f) for f in files]
        scored = [item for item in scored if item[0] > 0]
        scored.sort(key=lambda item: (-item[0], len(item[1])))
        return [f for _, f in scored[:max_results]]
