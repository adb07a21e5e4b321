"""
Documentation tools: search of a local index of the Godot Engine
documentation.

The index is a JSON file containing the sections of the documentation
pages, with their text, code examples, keywords and category:

    {
        "version": "1.0",
        "godot_version": "stable",
        "base_url": "https://docs.godotengine.org/en/stable/",
        "entries": [
            {
                "url": ".../classes/class_node2d.html",
                "title": "Node2D",
                "section": "Description",
                "content": "A 2D game object...",
                "code_examples": [{"language": "gdscript", "code": "..."}],
                "keywords": ["node2d", "transform"],
                "category": "classes"
            }
        ]
    }

The tools offered to the model are `search_docs`, `get_class_info` and
`list_doc_topics`. They return texts in markdown format, and return an
"Error: ..." text instead of raising when the index is not available.
"""

import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from g0.language_models.tools import ToolDescriptor, create_tool
from g0.utils.logging import LoggerBase, get_logger

logger: LoggerBase = get_logger(__name__)

INDEX_NOT_AVAILABLE = (
    "Error: Documentation index is not available. "
    "Please download the documentation first."
)

# a query containing these is taken to be about code
CODE_KEYWORDS = (
    "code",
    "example",
    "how to",
    "gdscript",
    "c#",
    "function",
    "method",
    "class",
)

_TERM_SEPARATORS = re.compile(r"[ ,.?!]+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CodeExample(BaseModel):
    """A code example found in the documentation."""

    language: str = "gdscript"
    code: str = ""


class DocumentationEntry(BaseModel):
    """A section of a documentation page."""

    url: str = ""
    title: str = ""
    section: str = ""
    content: str = ""
    code_examples: list[CodeExample] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    category: str = ""
    indexed_at: datetime = Field(default_factory=_now)

    def relevance(self, query: str) -> float:
        """Score the entry against a query. Matches in the title weigh
        most, followed by the section, the keywords and the content.
        A score of zero means no match."""
        if not query.strip():
            return 0.0

        query_lower = query.lower()
        terms = [t for t in _TERM_SEPARATORS.split(query_lower) if t]
        score = 0.0

        title = self.title.lower()
        section = self.section.lower()
        content = self.content.lower()
        keywords = [k.lower() for k in self.keywords]
        for term in terms:
            if term in title:
                score += 10
            if title == term:
                score += 20
            if term in section:
                score += 5
            for keyword in keywords:
                if keyword == term:
                    score += 3
                elif term in keyword:
                    score += 1
            score += min(content.count(term) * 0.5, 5)

        if self.code_examples and any(
            k in query_lower for k in CODE_KEYWORDS
        ):
            score += 5

        return score

    def format(self, include_code: bool = True) -> str:
        text = f"## {self.title}"
        if self.section:
            text += f" - {self.section}"
        text += f"\n**URL:** {self.url}\n\n{self.content}"
        if include_code and self.code_examples:
            text += "\n\n### Code Examples:\n"
            for example in self.code_examples:
                text += f"\n```{example.language}\n{example.code}\n```\n"
        return text


class DocumentationIndex(BaseModel):
    """The collection of the indexed documentation entries."""

    version: str = "1.0"
    godot_version: str = "stable"
    last_updated: datetime = Field(default_factory=_now)
    base_url: str = "https://docs.godotengine.org/en/stable/"
    entries: list[DocumentationEntry] = Field(default_factory=list)
    total_pages: int = 0

    @classmethod
    def load(
        cls, path: str | Path, logger: LoggerBase = logger
    ) -> 'DocumentationIndex | None':
        """Load the index from a JSON file. Returns None and logs the
        problem if the file is missing or invalid."""
        path = Path(path)
        if not path.is_file():
            logger.warning(f"Documentation index not found: {path}")
            return None
        try:
            index = cls.model_validate_json(path.read_text(encoding='utf-8'))
        except (OSError, ValidationError) as e:
            logger.error(f"Could not load documentation index {path}: {e}")
            return None
        logger.info(
            f"Loaded documentation index with {len(index.entries)} entries"
        )
        return index

    def save(self, path: str | Path) -> None:
        Path(path).write_text(
            self.model_dump_json(indent=2), encoding='utf-8'
        )

    def search(
        self, query: str, max_results: int = 5
    ) -> list[DocumentationEntry]:
        """The entries with positive relevance, best first."""
        if not query.strip() or not self.entries:
            return []
        scored = [(entry.relevance(query), entry) for entry in self.entries]
        scored = [item for item in scored if item[0] > 0]
        # stable sort: ties keep index order
        scored.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in scored[:max_results]]

    def find_class(
        self, class_name: str, max_results: int = 3
    ) -> list[DocumentationEntry]:
        """The entries of the reference page of a class."""
        name = class_name.strip()
        if name.lower().startswith("class_"):
            page = name.lower()
        else:
            page = "class_" + name.lower()
        matches = [
            entry
            for entry in self.entries
            if page in entry.url.lower()
            or name.lower() in entry.title.lower()
        ]
        return matches[:max_results]

    def topics(self) -> list[tuple[str, int]]:
        """The categories of the entries and their number of entries,
        most frequent first. Categories are compared case-insensitively."""
        counts: dict[str, int] = {}
        names: dict[str, str] = {}
        for entry in self.entries:
            if not entry.category:
                continue
            key = entry.category.lower()
            names.setdefault(key, entry.category)
            counts[key] = counts.get(key, 0) + 1
        ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [(names[key], count) for key, count in ordered]


def format_category_name(category: str) -> str:
    """'getting_started' -> 'Getting Started'"""
    return " ".join(w.capitalize() for w in category.split('_') if w)


# Tool arguments -----------------------------------------------------
class SearchDocsArgs(BaseModel):
    query: str = Field(
        description="The search query describing what documentation "
        "to find"
    )
    max_results: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum number of documentation sections to return",
    )


class ClassInfoArgs(BaseModel):
    class_name: str = Field(
        description="The name of the Godot class "
        "(e.g., 'Node2D', 'CharacterBody3D')"
    )


class DocsTools:
    """The documentation tools operating on an index.

    Args:
        index: the documentation index, or None if not available
    """

    def __init__(self, index: DocumentationIndex | None) -> None:
        self.index = index

    def _available(self) -> bool:
        return self.index is not None and bool(self.index.entries)

    def search_docs(self, query: str, max_results: int = 3) -> str:
        if not query.strip():
            return "Error: Please provide a search query."
        if not self._available():
            return INDEX_NOT_AVAILABLE
        assert self.index is not None

        results = self.index.search(query, max_results)
        if not results:
            return (
                f"No documentation found for query: \"{query}\". "
                "Try rephrasing your search or using different keywords."
            )

        parts = [
            f"Found {len(results)} relevant documentation section(s) "
            f"for \"{query}\":\n"
        ]
        for entry in results:
            parts.append("---")
            parts.append(entry.format(include_code=True) + "\n")
        return "\n".join(parts)

    def get_class_info(self, class_name: str) -> str:
        if not class_name.strip():
            return "Error: Please provide a class name."
        if not self._available():
            return INDEX_NOT_AVAILABLE
        assert self.index is not None

        entries = self.index.find_class(class_name)
        if not entries:
            return self.search_docs(class_name, 3)

        parts = [f"Documentation for class '{class_name}':\n"]
        for entry in entries:
            parts.append("---")
            parts.append(entry.format(include_code=True) + "\n")
        return "\n".join(parts)

    def list_doc_topics(self) -> str:
        if not self._available():
            return INDEX_NOT_AVAILABLE
        assert self.index is not None

        lines = ["Available documentation topics:\n"]
        for category, count in self.index.topics():
            lines.append(
                f"- **{format_category_name(category)}** ({count} sections)"
            )
        lines.append(
            f"\nTotal: {len(self.index.entries)} documentation sections "
            "indexed."
        )
        lines.append(
            "Last updated: "
            f"{self.index.last_updated:%Y-%m-%d %H:%M} UTC"
        )
        return "\n".join(lines)


def create_docs_tools(
    index: DocumentationIndex | None,
) -> list[ToolDescriptor]:
    """The descriptors of the documentation tools."""
    tools = DocsTools(index)
    return [
        create_tool(
            tools.search_docs,
            name="search_docs",
            description="Searches the Godot Engine documentation for "
            "information about classes, methods, tutorials, and best "
            "practices. Use this tool when the user asks about "
            "Godot-specific concepts, APIs, or how to accomplish tasks "
            "in Godot.",
            args_schema=SearchDocsArgs,
        ),
        create_tool(
            tools.get_class_info,
            name="get_class_info",
            description="Gets detailed information about a specific "
            "Godot class or node type. Use this when the user asks "
            "about a specific class, its methods, properties, or usage.",
            args_schema=ClassInfoArgs,
        ),
        create_tool(
            tools.list_doc_topics,
            name="list_doc_topics",
            description="Lists the main topics and categories available "
            "in the Godot documentation. Use this to help users "
            "discover what documentation is available.",
        ),
    ]
