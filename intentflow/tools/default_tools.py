from __future__ import annotations

from .registry import ToolRegistry, ToolSpec

DEFAULT_TOOL_SPECS = [
    ToolSpec(
        name="job_search",
        description="Search job postings",
        parameters={"what": "job title or keywords", "where": "location", "radius": "km"},
    ),
    ToolSpec(
        name="company_career_contact_finder",
        description="Find career contacts for a company",
        parameters={"company_name": "company to look up"},
    ),
    ToolSpec(
        name="user_document_search",
        description="Search the user's documents",
        parameters={"searchTerm": "text to search", "category": "document category"},
    ),
    ToolSpec(
        name="user_document_read",
        description="Read one of the user's documents",
        parameters={"identifier": "document id or name"},
    ),
    ToolSpec(
        name="user_document_list",
        description="List the user's documents",
        parameters={"category": "optional document category"},
    ),
    ToolSpec(
        name="send_email",
        description="Send an email",
        parameters={
            "to": "recipient address",
            "subject": "subject line",
            "body": "message text",
            "attachments": "list of document ids",
        },
        communication=True,
    ),
    ToolSpec(
        name="google_search",
        description="Search the web",
        parameters={"query": "search query"},
    ),
    ToolSpec(
        name="web_scraper",
        description="Fetch and extract the text of a web page",
        parameters={"url": "page to fetch"},
    ),
]


def default_registry() -> ToolRegistry:
    """Registry holding the default, agent-mediated tool catalog."""
    return ToolRegistry(DEFAULT_TOOL_SPECS)
