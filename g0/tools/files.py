"""
File tools: reading, listing and searching the files of a project.

All tools are confined to the project root: paths are interpreted
relative to the root, and paths resolving outside of it are refused.
Paths may use '/' or '\\' separators, and may carry a 'res://' or '@'
prefix (the forms used by Godot and by file references in chat).

The tools offered to the model are `read_file`, `list_files`,
`search_files` and `find_files`. Failures are reported to the model as
"Error: ..." texts.
"""

import re
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, Field

from g0.language_models.tools import ToolDescriptor, create_tool
from g0.utils.logging import LoggerBase, get_logger
from .file_discovery import FileDiscovery, is_excluded_directory

logger: LoggerBase = get_logger(__name__)

MAX_FILE_SIZE = 100 * 1024
BINARY_SAMPLE_SIZE = 8192

TEXT_EXTENSIONS = frozenset(
    {
        ".cs", ".gd", ".gdscript", ".txt", ".md", ".json", ".xml",
        ".yaml", ".yml", ".toml", ".cfg", ".ini", ".tres", ".tscn",
        ".godot", ".import", ".html", ".css", ".js", ".ts", ".py", ".sh",
        ".bat", ".ps1", ".c", ".cpp", ".h", ".hpp", ".java", ".rs", ".go",
        ".swift", ".kt", ".gradle", ".properties", ".gitignore",
        ".gitattributes", ".editorconfig", ".csproj", ".sln",
    }
)

LANGUAGES = {
    "cs": "csharp",
    "gd": "gdscript",
    "gdscript": "gdscript",
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "json": "json",
    "xml": "xml",
    "html": "html",
    "css": "css",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sh": "bash",
    "bat": "batch",
    "ps1": "powershell",
    "c": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "h": "cpp",
    "hpp": "cpp",
    "java": "java",
    "rs": "rust",
    "go": "go",
    "swift": "swift",
    "kt": "kotlin",
    "tres": "ini",
    "tscn": "ini",
    "cfg": "ini",
    "godot": "ini",
}

# always excluded from content searches
DEFAULT_SEARCH_EXCLUDES = ("*.import", "*.uid")


def language_from_extension(path: str) -> str:
    return LANGUAGES.get(PurePosixPath(path).suffix.lstrip(".").lower(), "")


def normalize_path(path: str) -> str:
    path = path.strip().replace("\\", "/")
    if path.lower().startswith("res://"):
        path = path[6:]
    if path.startswith("@"):
        path = path[1:]
    return path.lstrip("/")


def format_size(size: int) -> str:
    return f"{size}B" if size < 1024 else f"{size // 1024}KB"


def is_binary_file(path: Path) -> bool:
    if path.suffix.lower() in TEXT_EXTENSIONS:
        return False
    try:
        with path.open('rb') as f:
            sample = f.read(BINARY_SAMPLE_SIZE)
    except OSError:
        return False
    return b"\0" in sample


def _split_list(text: str) -> list[str]:
    return [item.strip() for item in text.split(",") if item.strip()]


# Tool arguments -----------------------------------------------------
class ReadFileArgs(BaseModel):
    file_path: str = Field(
        description="The relative path to the file from the project "
        "root (e.g., 'scripts/player.gd')"
    )


class ListFilesArgs(BaseModel):
    directory: str = Field(
        default="",
        description="The directory to list, relative to project root "
        "(empty string for root directory)",
    )
    search_pattern: str = Field(
        default="",
        description="Optional file pattern to filter results (e.g., "
        "'*.cs', '*.gd'). Leave empty for all files.",
    )


class SearchFilesArgs(BaseModel):
    pattern: str = Field(
        description="The search pattern to find (supports regex). "
        "Examples: 'Node2D', 'func _ready', 'class.*Controller'"
    )
    file_types: str = Field(
        default="",
        description="Comma-separated file extensions to search (e.g., "
        "'cs,gd,json'). Leave empty for all text files.",
    )
    exclude_patterns: str = Field(
        default="",
        description="Comma-separated glob patterns to exclude (e.g., "
        "'*.tscn,tests/*')",
    )
    max_results: int = Field(
        default=50, description="Maximum number of matches to return"
    )
    context_lines: int = Field(
        default=2,
        description="Number of context lines before and after each match",
    )
    case_sensitive: bool = Field(
        default=False, description="Whether the search is case sensitive"
    )
    use_regex: bool = Field(
        default=True,
        description="Whether to interpret the pattern as a regex",
    )
    whole_word: bool = Field(
        default=False, description="Whether to match whole words only"
    )


class FindFilesArgs(BaseModel):
    glob_pattern: str = Field(
        description="Glob pattern to match files (e.g., '*.cs', "
        "'**/*Controller*', '*.gd')"
    )
    max_files: int = Field(
        default=50, description="Maximum number of files to return"
    )


class FileTools:
    """The file tools of a project.

    Args:
        root: the project folder
        discovery: the file cache of the project. If not given, one
            is created
        logger: a logger object
    """

    def __init__(
        self,
        root: str | Path,
        discovery: FileDiscovery | None = None,
        logger: LoggerBase = logger,
    ) -> None:
        self.root = Path(root).resolve()
        self.discovery = discovery or FileDiscovery(self.root, logger=logger)
        self.logger = logger

    def _resolve(self, relative: str) -> Path | None:
        """The absolute path, or None if outside the project."""
        full = (self.root / relative).resolve()
        if full == self.root or full.is_relative_to(self.root):
            return full
        return None

    def _suggestions(self, file_path: str) -> list[str]:
        name = PurePosixPath(file_path).name
        return [
            f
            for f in self.discovery.search(name, 5)
            if f.lower() != file_path.lower()
        ]

    def read_file(self, file_path: str) -> str:
        if not file_path.strip():
            return "Error: Please provide a file path."
        file_path = normalize_path(file_path)
        full = self._resolve(file_path)
        if full is None:
            return (
                f"Error: Access denied - path '{file_path}' is outside "
                "the project directory."
            )

        if not full.is_file():
            suggestions = self._suggestions(file_path)
            if suggestions:
                listing = "\n  - ".join(suggestions)
                return (
                    f"Error: File not found: '{file_path}'\n\n"
                    f"Did you mean one of these?\n  - {listing}"
                )
            return f"Error: File not found: '{file_path}'"

        try:
            size = full.stat().st_size
            if size > MAX_FILE_SIZE:
                return (
                    f"Error: File too large: '{file_path}' "
                    f"({size // 1024}KB exceeds {MAX_FILE_SIZE // 1024}KB "
                    "limit).\n\nTry reading a specific portion of the file "
                    "or ask the user to reference specific sections."
                )
            if is_binary_file(full):
                return (
                    f"Error: Cannot read binary file: '{file_path}'.\n\n"
                    "This appears to be a binary file (e.g., image, "
                    "compiled code). Only text files can be read."
                )
            content = full.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            return f"Error: Could not read file '{file_path}': {e}"

        lines = content.split("\n")
        output = [
            f"**File: {file_path}**",
            f"Lines: {len(lines)} | Size: {size} bytes",
            "",
            "```" + language_from_extension(file_path),
        ]
        output.extend(
            f"{number:>4} | {line}"
            for number, line in enumerate(lines, start=1)
        )
        output.append("```")
        return "\n".join(output)

    def list_files(self, directory: str = "", search_pattern: str = "") -> str:
        directory = normalize_path(directory)
        full = self._resolve(directory)
        if full is None:
            return (
                f"Error: Access denied - path '{directory}' is outside "
                "the project directory."
            )
        if not full.is_dir():
            return f"Error: Directory not found: '{directory}'"

        try:
            children = sorted(full.iterdir(), key=lambda p: p.name)
            folders = [
                p.name
                for p in children
                if p.is_dir() and not is_excluded_directory(p.name)
            ]
            files = [
                (p.name, p.stat().st_size)
                for p in children
                if p.is_file()
                and not p.name.startswith(".")
                and (not search_pattern or fnmatch(p.name, search_pattern))
            ]
        except OSError as e:
            return f"Error: Failed to list directory: {e}"

        output = [f"**Directory: {directory or '/'}**", ""]
        if folders:
            output.append("**Directories:**")
            output.extend(f"  {name}/" for name in folders)
            output.append("")
        if files:
            output.append("**Files:**")
            output.extend(
                f"  {name} ({format_size(size)})" for name, size in files
            )
        elif not folders:
            output.append("(Empty directory)")
        return "\n".join(output)

    def _compile(
        self,
        pattern: str,
        case_sensitive: bool,
        use_regex: bool,
        whole_word: bool,
    ) -> re.Pattern[str]:
        expr = pattern if use_regex else re.escape(pattern)
        if whole_word:
            expr = rf"\b(?:{expr})\b"
        return re.compile(expr, 0 if case_sensitive else re.IGNORECASE)

    def _confined(self, paths: list[str]) -> list[tuple[str, Path]]:
        """The discovered paths with their absolute path, dropping those
        resolving outside the project."""
        confined: list[tuple[str, Path]] = []
        for path in paths:
            full = self._resolve(path)
            if full is None:
                self.logger.warning(f"Skipping {path}: outside the project")
                continue
            confined.append((path, full))
        return confined

    def _searched_files(
        self, file_types: str, exclude_patterns: str
    ) -> list[tuple[str, Path]]:
        extensions = {
            "." + t.lstrip(".").lower() for t in _split_list(file_types)
        }
        excludes = list(DEFAULT_SEARCH_EXCLUDES) + _split_list(
            exclude_patterns
        )
        selected: list[str] = []
        for path in sorted(self.discovery.get_files()):
            posix = PurePosixPath(path)
            if extensions and posix.suffix.lower() not in extensions:
                continue
            if any(
                fnmatch(path, ex.lstrip("!"))
                or fnmatch(posix.name, ex.lstrip("!"))
                or path.startswith(ex.lstrip("!").rstrip("/*") + "/")
                for ex in excludes
            ):
                continue
            selected.append(path)
        return self._confined(selected)

    def search_files(
        self,
        pattern: str,
        file_types: str = "",
        exclude_patterns: str = "",
        max_results: int = 50,
        context_lines: int = 2,
        case_sensitive: bool = False,
        use_regex: bool = True,
        whole_word: bool = False,
    ) -> str:
        if not pattern.strip():
            return "Error: Please provide a search pattern."
        max_results = min(max(max_results, 1), 500)
        context_lines = min(max(context_lines, 0), 10)
        try:
            regex = self._compile(
                pattern, case_sensitive, use_regex, whole_word
            )
        except re.error as e:
            return f"Error: Invalid search pattern: {e}"

        blocks: list[str] = []
        total = 0
        file_count = 0
        truncated = False
        for path, full in self._searched_files(file_types, exclude_patterns):
            if total >= max_results:
                truncated = True
                break
            try:
                if full.stat().st_size > MAX_FILE_SIZE or is_binary_file(full):
                    continue
                lines = full.read_text(
                    encoding='utf-8', errors='replace'
                ).splitlines()
            except OSError as e:
                self.logger.warning(f"Could not search {path}: {e}")
                continue

            matches = [i for i, line in enumerate(lines) if regex.search(line)]
            if not matches:
                continue
            matches = matches[: max_results - total]
            total += len(matches)
            file_count += 1

            shown: set[int] = set()
            for i in matches:
                start = max(0, i - context_lines)
                stop = min(len(lines), i + context_lines + 1)
                shown.update(range(start, stop))
            match_set = set(matches)
            body = [
                f"{i + 1}{':' if i in match_set else '-'}{lines[i]}"
                for i in sorted(shown)
            ]
            blocks.append(
                f"**{path}**\n```{language_from_extension(path)}\n"
                + "\n".join(body)
                + "\n```\n"
            )

        if not blocks:
            return f"No matches found for pattern: \"{pattern}\""

        output = [
            f"Found {total} match(es) in {file_count} file(s) for "
            f"\"{pattern}\":\n"
        ]
        output.extend(blocks)
        if truncated:
            output.append(f"... truncated (showing first {max_results} results)")
        return "\n".join(output)

    def find_files(self, glob_pattern: str, max_files: int = 50) -> str:
        if not glob_pattern.strip():
            return "Error: Please provide a glob pattern."
        max_files = min(max(max_files, 1), 200)
        name_pattern = glob_pattern
        while name_pattern.startswith("**/"):
            name_pattern = name_pattern[3:]

        found = self._confined(
            [
                path
                for path in sorted(self.discovery.get_files())
                if fnmatch(path, glob_pattern)
                or fnmatch(PurePosixPath(path).name, name_pattern)
            ]
        )
        if not found:
            return f"No files found matching pattern: \"{glob_pattern}\""

        output = [
            f"Found {min(len(found), max_files)} file(s) matching "
            f"\"{glob_pattern}\":",
            "",
        ]
        for path, full in found[:max_files]:
            try:
                size = f" ({format_size(full.stat().st_size)})"
            except OSError:
                size = ""
            output.append(f"  {path}{size}")
        if len(found) > max_files:
            output.append("")
            output.append(f"... and {len(found) - max_files} more files")
        return "\n".join(output)


def create_file_tools(
    root: str | Path,
    discovery: FileDiscovery | None = None,
    logger: LoggerBase = logger,
) -> list[ToolDescriptor]:
    """The descriptors of the file tools of a project."""
    tools = FileTools(root, discovery, logger=logger)
    return [
        create_tool(
            tools.read_file,
            name="read_file",
            description="Reads the contents of a file from the project "
            "directory. Use this tool when you need to examine code, "
            "configuration, or other text files in the user's project to "
            "answer questions or provide assistance.",
            args_schema=ReadFileArgs,
        ),
        create_tool(
            tools.list_files,
            name="list_files",
            description="Lists files in a project directory to discover "
            "available files. Use this when you need to explore the "
            "project structure or find specific files.",
            args_schema=ListFilesArgs,
        ),
        create_tool(
            tools.search_files,
            name="search_files",
            description="Searches for content matching a pattern in the "
            "project files. Use this to find code patterns, search for "
            "specific text, or locate usages of functions and classes. "
            "Supports regex patterns, file type filtering, and context "
            "lines.",
            args_schema=SearchFilesArgs,
        ),
        create_tool(
            tools.find_files,
            name="find_files",
            description="Lists files matching a glob pattern in the "
            "project. Use this to find files by name or extension "
            "without searching content. Examples: '*.cs' for all C# "
            "files, '*Controller*' for files with Controller in the name.",
            args_schema=FindFilesArgs,
        ),
    ]
