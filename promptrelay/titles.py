"""
Session title generation.

The orchestrator asks a TitleGenerator for a title the first time a
session sees a user message. KeywordTitleGenerator is the default:
a topic pattern table, then a question-shaped title, then the message
itself with greetings stripped.
"""

from __future__ import annotations

import abc
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New conversation"

# (pattern, title template). {0} is the matched keyword, title-cased.
TOPIC_PATTERNS: list[tuple[str, str]] = [
    (r"\b(python|java|javascript|typescript|c#|rust|golang|react|angular|vue)\b",
     "{0} Programming"),
    (r"\b(algorithm|algorithms|data structure|sorting|binary search)\b", "Algorithm Questions"),
    (r"\b(machine learning|ml|ai|artificial intelligence|neural network)\b",
     "Artificial Intelligence"),
    (r"\b(web development|frontend|backend|api|rest)\b", "Web Development"),
    (r"\b(database|sql|mongodb|redis|postgres)\b", "Databases"),
    (r"\b(how to learn|learning|tutorial|course)\b", "Learning Guide"),
    (r"\b(career|job|salary|promotion|interview)\b", "Career Growth"),
    (r"\b(self improvement|personal growth|skills)\b", "Personal Development"),
    (r"\b(what is|what does .+ mean|definition|define)\b", "Concept Explanation"),
    (r"\b(how do i|step by step|guide|walkthrough)\b", "How-To"),
    (r"\b(example|examples|sample|snippet)\b", "Examples"),
    (r"\b(compare|comparison|difference|vs|versus)\b", "Comparison"),
    (r"\b(project|application|app idea)\b", "Project Development"),
    (r"\b(problem|error|bug|exception|fix)\b", "Troubleshooting"),
    (r"\b(advice|recommend|recommendation|suggestion)\b", "Advice"),
]

_QUESTION_WORDS = re.compile(r"\b(how|what|who|why|which|when|where)\b", re.IGNORECASE)
_GREETINGS = re.compile(r"\b(hello|hi|hey|greetings|good morning|good evening)\b[,!.]?",
                        re.IGNORECASE)


def _title_case(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split())


class TitleGenerator(abc.ABC):
    @abc.abstractmethod
    def generate_title(self, first_message: str) -> str:
        ...


class KeywordTitleGenerator(TitleGenerator):
    def __init__(self, patterns: list[tuple[str, str]] | None = None):
        self._patterns = [
            (re.compile(p, re.IGNORECASE), template)
            for p, template in (patterns or TOPIC_PATTERNS)
        ]

    def generate_title(self, first_message: str) -> str:
        """Never raises; falls back to DEFAULT_TITLE."""
        try:
            message = (first_message or "").strip()
            if not message:
                return DEFAULT_TITLE

            for pattern, template in self._patterns:
                match = pattern.search(message)
                if match:
                    return template.format(_title_case(match.group(0)))

            if "?" in message or _QUESTION_WORDS.search(message):
                title = self._question_title(message)
                if title:
                    return f"? {title}"

            return self._fallback_title(message)
        except (re.error, IndexError, KeyError, ValueError) as e:
            logger.error("Title generation failed for %r: %s", first_message, e)
            return DEFAULT_TITLE

    @staticmethod
    def _question_title(message: str) -> str:
        clean = _GREETINGS.sub("", message).strip()
        if len(clean) <= 3:
            return ""
        if len(clean) > 40:
            clean = clean[:37] + "..."
        return _title_case(clean)

    @staticmethod
    def _fallback_title(message: str) -> str:
        clean = _GREETINGS.sub("", message).strip()
        if not clean:
            return DEFAULT_TITLE
        if len(clean) > 30:
            clean = clean[:27] + "..."
        return _title_case(clean)
