"""Prompt templates and response parsing for the pipeline stages."""

from __future__ import annotations

import json
import logging
import re

logger = logging.getLogger(__name__)

QUERY_SYSTEM = (
    "You are an expert research strategist. You break a topic down into "
    "targeted web search queries that cover it from several angles."
)

SUMMARY_SYSTEM = (
    "You are an expert at analyzing and summarizing web content. You identify "
    "key information, main ideas and relevant details. Always respond with "
    "valid JSON in the exact format specified."
)

SECTION_SYSTEM = (
    "You are a research writer. You write clear, factual report sections that "
    "cite their sources with bracketed numbers."
)


def query_prompt(topic: str, research_goal: str = "") -> str:
    goal = f"\nResearch goal: {research_goal}\n" if research_goal else ""
    return f"""Generate a set of search queries for the research topic: "{topic}".
{goal}
Consider:
- The core research question
- Different aspects of the topic to explore
- Potential contradictory viewpoints
- Recent developments

Return 3-5 distinct search queries that together give comprehensive coverage.
Respond with JSON: {{"queries": ["query 1", "query 2", "query 3"]}}"""


def summary_prompt(query: str, url: str, title: str, content: str) -> str:
    return f"""Analyze and summarize the following web content in the context of the search query "{query}".

URL: {url}
Title: {title}

Content:
{content}

Provide:
1. A concise summary (2-3 sentences) focusing on information relevant to the search query
2. 3-5 key points or facts from the content
3. A relevance score from 0-10 indicating how relevant this content is to the search query

Respond with JSON in exactly this structure:
{{"summary": "...", "keyPoints": ["Point 1", "Point 2", "Point 3"], "relevance": 8}}"""


def section_prompt(topic: str, title: str, sources: list[tuple[int, str, str, str]]) -> str:
    """`sources` holds (number, title, url, summary) tuples."""
    listing = "\n\n".join(
        f"[{number}] {src_title or url}\nURL: {url}\nSummary: {summary}"
        for number, src_title, url, summary in sources
    )
    return f"""Write the report section "{title}" for a research report on "{topic}".

Use only the sources below and cite them inline as [n].

{listing}

Write 2-4 paragraphs of plain prose. Do not repeat the section title."""


def _strip_fences(text: str) -> str:
    text = text.strip()
    if "```" in text:
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def parse_json(text: str):
    """Parse a JSON value from a model response, tolerating fences and chatter."""
    cleaned = _strip_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    match = re.search(r"\{[\s\S]*\}|\[[\s\S]*\]", cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse JSON: %s. Response: %s", e, text[:200])
            return None
    logger.warning("No JSON found in response: %s", text[:200])
    return None


def parse_queries(text: str) -> list[str]:
    parsed = parse_json(text)
    if isinstance(parsed, dict):
        parsed = parsed.get("queries", [])
    if not isinstance(parsed, list):
        return []
    queries = []
    for item in parsed:
        if isinstance(item, dict):
            item = item.get("query", "")
        if isinstance(item, str) and item.strip():
            queries.append(item.strip())
    return queries


def parse_summary(text: str) -> tuple[str, list[str], float] | None:
    """Return (summary, key points, relevance 0-10) or None when unparseable."""
    parsed = parse_json(text)
    if not isinstance(parsed, dict):
        return None
    summary = str(parsed.get("summary") or "").strip()
    points = parsed.get("keyPoints", parsed.get("key_points", []))
    key_points = [str(p).strip() for p in points if str(p).strip()] if isinstance(points, list) else []
    try:
        relevance = float(parsed.get("relevance") or 0)
    except (TypeError, ValueError):
        relevance = 0.0
    return summary, key_points, max(0.0, min(10.0, relevance))
