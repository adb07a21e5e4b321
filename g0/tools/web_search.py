"""
Web search tool, using the Serper API (Google search).

The tool `search_web` posts the query to serper.dev and formats the
organic results, the knowledge graph and the answer box in markdown.
Network and authentication failures are reported to the model as an
"Error: ..." text.
"""

import requests
from pydantic import BaseModel, Field, ValidationError

from g0.language_models.tools import ToolDescriptor, create_tool
from g0.utils.logging import LoggerBase, get_logger

logger: LoggerBase = get_logger(__name__)

SERPER_API_URL = "https://google.serper.dev/search"
REQUEST_TIMEOUT = 30.0


class SerperOrganicResult(BaseModel):
    title: str = ""
    link: str = ""
    snippet: str = ""
    position: int = 0


class SerperKnowledgeGraph(BaseModel):
    title: str = ""
    type: str = ""
    description: str = ""
    website: str = ""


class SerperAnswerBox(BaseModel):
    title: str = ""
    answer: str = ""
    snippet: str = ""
    link: str = ""


class SerperSearchResponse(BaseModel):
    organic: list[SerperOrganicResult] = Field(default_factory=list)
    knowledge_graph: SerperKnowledgeGraph | None = Field(
        default=None, alias="knowledgeGraph"
    )
    answer_box: SerperAnswerBox | None = Field(
        default=None, alias="answerBox"
    )


class SearchWebArgs(BaseModel):
    query: str = Field(description="The search query to find information about")
    num_results: int = Field(
        default=5,
        description="Maximum number of search results to return (1-10)",
    )


def format_search_response(query: str, response: SerperSearchResponse) -> str:
    lines = [f"Found {len(response.organic)} web result(s) for \"{query}\":\n"]
    for i, result in enumerate(response.organic, start=1):
        lines.append("---")
        lines.append(f"**{i}. {result.title}**")
        if result.snippet:
            lines.append(result.snippet)
        lines.append(f"Link: {result.link}\n")

    graph = response.knowledge_graph
    if graph is not None and graph.description:
        lines.append("---")
        lines.append("**Quick Answer:**")
        if graph.title:
            lines.append(f"**{graph.title}**")
        lines.append(graph.description + "\n")

    box = response.answer_box
    if box is not None and box.answer:
        lines.append("---")
        lines.append("**Featured Answer:**")
        lines.append(box.answer + "\n")

    return "\n".join(lines)


class SerperWebSearch:
    """Client of the Serper search API.

    Args:
        api_key: the serper.dev API key
        timeout: request timeout in seconds
        logger: a logger object
    """

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = REQUEST_TIMEOUT,
        logger: LoggerBase = logger,
    ) -> None:
        if not api_key:
            raise ValueError("Serper API key is required")
        self.api_key = api_key
        self.timeout = timeout
        self.logger = logger

    def search_web(self, query: str, num_results: int = 5) -> str:
        if not query.strip():
            return "Error: Please provide a search query."
        num_results = min(max(num_results, 1), 10)

        headers = {
            "Content-Type": "application/json",
            "X-API-KEY": self.api_key,
        }
        payload = {"q": query, "num": num_results}
        try:
            resp = requests.post(
                SERPER_API_URL,
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout:
            return "Error: Web search timed out. Please try again."
        except requests.RequestException as e:
            self.logger.error(f"Web search network error: {e}")
            return (
                "Error: Network error during web search. Please check "
                "your internet connection."
            )

        if not resp.ok:
            self.logger.error(
                f"Serper API error: {resp.status_code} - {resp.text}"
            )
            return (
                f"Error: Web search failed with status {resp.status_code}."
                " Please check your Serper API key."
            )

        try:
            response = SerperSearchResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            self.logger.error(f"Web search error: {e}")
            return f"Error: Failed to search the web: {e}"

        if not response.organic:
            return (
                f"No results found for query: \"{query}\". "
                "Try rephrasing your search."
            )
        return format_search_response(query, response)


def create_web_search_tool(
    api_key: str, logger: LoggerBase = logger
) -> ToolDescriptor:
    client = SerperWebSearch(api_key, logger=logger)
    return create_tool(
        client.search_web,
        name="search_web",
        description="Searches the web for current information, "
        "tutorials, library documentation, or general programming "
        "topics. Use this when the user asks about topics not covered "
        "in Godot documentation, recent updates, external libraries, or "
        "needs current web information.",
        args_schema=SearchWebArgs,
    )
