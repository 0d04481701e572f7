"""
Summary reply formatting.

Turns raw model replies into the shapes the journal stores: newline-separated
bullet points for a day, and a normalized review document for a month.
The same normalization is applied to cached and imported reviews.
"""
import json
import re
from typing import Any, Dict, List

from app.services.errors import GenerationFailed

MAX_POINT_LENGTH = 30
NO_OVERVIEW = "No overview available."

# Leading filler that carries no information in a bullet point
FILLER_PREFIX = re.compile(
    r"^(今天|今日|完成了|晚上|上午|下午|早上|中午|傍晚|深夜|today,?|tonight,?)\s*",
    re.IGNORECASE,
)
NUMBERING_PREFIX = re.compile(r"^\s*(\d+[\.、)]|[-•*])\s*", re.MULTILINE)
JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _shorten(point: str) -> str:
    point = FILLER_PREFIX.sub("", point.strip()).strip()
    if len(point) > MAX_POINT_LENGTH:
        point = point[:MAX_POINT_LENGTH].rstrip("。，,")
    return point


def split_summary_into_points(summary: str) -> str:
    """Split a one-line reply into points on sentence, then clause, punctuation."""
    if "\n" in summary:
        return summary

    sentences = [s.strip() for s in re.split(r"[。；;!?！？]", summary)]
    sentences = [s for s in sentences if len(s) > 5]
    if len(sentences) > 1:
        points = [_shorten(s) for s in sentences]
        return "\n".join(p for p in points if p)

    parts = [p.strip() for p in re.split(r"[，,]", summary)]
    parts = [p for p in parts if len(p) > 5]
    if len(parts) > 1:
        return "\n".join(_shorten(p) for p in parts)

    return summary


def points_from_paragraphs(content: str) -> List[str]:
    """Use the author's own paragraphs as points."""
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", content)]
    points = [_shorten(p) for p in paragraphs if len(p) > 10]
    return [p for p in points if len(p) > 5]


def clean_daily_summary(reply: str, content: str) -> str:
    """Normalize a model reply into newline-separated points."""
    summary = NUMBERING_PREFIX.sub("", reply.strip())
    summary = "\n".join(line.strip() for line in summary.splitlines() if line.strip())

    if "\n" not in summary:
        summary = split_summary_into_points(summary)
        if "\n" not in summary and "\n" in content:
            points = points_from_paragraphs(content)
            if len(points) > 1:
                return "\n".join(points)

    return summary


def parse_json_reply(reply: str) -> Dict[str, Any]:
    """Parse a JSON object reply, tolerating a markdown code fence."""
    text = JSON_FENCE.sub("", reply.strip())
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise GenerationFailed(f"Model returned malformed JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise GenerationFailed("Model returned JSON that is not an object")
    return parsed


def normalize_keywords(items: Any) -> List[Dict[str, Any]]:
    """Accept {word|name, count} entries; drop empties, default count to 1."""
    if not isinstance(items, list):
        return []
    keywords = []
    for item in items:
        if not isinstance(item, dict):
            continue
        word = item.get("word") or item.get("name") or ""
        if not isinstance(word, str) or not word.strip():
            continue
        count = item.get("count")
        if isinstance(count, bool) or not isinstance(count, (int, float)):
            count = 1
        keywords.append({"word": word.strip(), "count": int(count)})
    return keywords


def normalize_monthly_summary(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a review document into overview/takeaways/themes/keywords."""
    themes = []
    for theme in parsed.get("themes") or []:
        if isinstance(theme, dict) and theme.get("name"):
            themes.append({
                "name": str(theme["name"]),
                "description": str(theme.get("description") or ""),
            })
    takeaways = parsed.get("takeaways")
    return {
        "overview": parsed.get("overview") or NO_OVERVIEW,
        "takeaways": [str(t) for t in takeaways] if isinstance(takeaways, list) else [],
        "themes": themes,
        "keywords": normalize_keywords(parsed.get("keywords")),
    }
