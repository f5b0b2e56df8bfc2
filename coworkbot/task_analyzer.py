"""Task complexity analysis.

Scores an instruction against weighted patterns to decide whether the agent
should be told to write a todo plan before using other tools.
"""

import math
import re
from dataclasses import dataclass

from coworkbot.logging import get_logger

log = get_logger(__name__)

THRESHOLD = 1.0
COMPLEX_SCORE = 6.0


@dataclass(frozen=True)
class Pattern:
    regex: re.Pattern[str]
    weight: float
    type: str


@dataclass(frozen=True)
class Indicator:
    type: str
    weight: float
    count: int


@dataclass(frozen=True)
class TaskAnalysis:
    score: float
    complexity: str  # "simple", "moderate", "complex"
    requires_todo: bool
    reason: str
    estimated_steps: int


def _p(pattern: str, weight: float, type: str) -> Pattern:
    return Pattern(re.compile(pattern, re.IGNORECASE), weight, type)


COMPLEXITY_PATTERNS: tuple[Pattern, ...] = (
    _p(
        r"\b(create|build|implement|set up|develop|make)\b.*\b(component|module|feature|system"
        r"|application|project|app|website|api|service|server|cli|library)\b",
        3,
        "creation",
    ),
    _p(r"\b(refactor|rewrite|migrate|convert|transform)\b", 2.5, "refactoring"),
    _p(r"\b(test|debug|fix|resolve)\b.*\b(and|then|after|also|plus|additionally)\b", 2, "sequential-work"),
    _p(r"\b(read|write|create|delete|modify|edit)\b.*\b(file|files)\b", 2, "file-ops"),
    _p(r"\bmultiple\b.*\b(file|files|documents|steps|tasks)\b", 2, "multiple-items"),
    _p(r"\beach\b.*\b(file|step|task|item)\b", 1.5, "iterative"),
    _p(r"\b(first|then|next|after|finally|step \d+|firstly|secondly|lastly)\b", 1.5, "sequential"),
    _p(
        r",\s*(and\s+)?(then\s+)?(write|add|create|build|deploy|run|test|fix|update|implement"
        r"|configure|install)\b",
        1.5,
        "action-list",
    ),
    _p(r"\b(write|add|run)\s+(unit\s+|integration\s+)?tests?\b", 1.5, "testing"),
    _p(r"\b(set up|configure|install|initialize)\b.*\b(project|environment|dependencies)\b", 2.5, "setup"),
    _p(r"\b(deploy|publish|release)\b", 2, "deployment"),
    _p(r"\b(add|implement|integrate)\b.*\b(feature|functionality|function|method)\b", 2, "feature-work"),
    _p(r"\b(analyze|process|parse|extract|transform)\b.*\b(multiple|several|batch|all)\b", 1.5, "batch-processing"),
    _p(
        r"\b(create|build|design|make)\b.*\b(page|screen|view|interface|ui|component|layout)\b",
        2,
        "ui-work",
    ),
    _p(
        r"\b(create|add|modify|update)\b.*\b(database|schema|model|api|endpoint|route|controller)\b",
        2,
        "backend-work",
    ),
)

SIMPLICITY_PATTERNS: tuple[Pattern, ...] = (
    _p(r"\b(what|how|why|when|where|who|which|explain|tell me|show me)\b", -1, "question"),
    _p(r"\b(read|open|view|show|display)\b\s+(?!.*\band\s)", -0.5, "simple-read"),
    _p(r"^\s*(what|how|tell|explain|is|are|do|does|can|could|would|should)\b", -1, "simple-query"),
)

_INFO_START_RE = re.compile(
    r"^(what|how|why|when|where|who|which|explain|tell me|show me|describe|define)",
    re.IGNORECASE,
)
_ACTION_VERB_RE = re.compile(
    r"\b(create|build|make|write|implement|add|modify|delete|fix|set up|install|deploy)\b",
    re.IGNORECASE,
)


class TaskAnalyzer:
    """Pure scorer deciding whether a plan-first directive is needed."""

    def analyze(self, message: str) -> TaskAnalysis:
        indicators = self.check_indicators(message)
        score = sum(ind.weight * ind.count for ind in indicators)
        result = self._determine_complexity(score, indicators)
        log.debug(
            "Task analyzed",
            score=score,
            complexity=result.complexity,
            requires_todo=result.requires_todo,
        )
        return result

    @staticmethod
    def check_indicators(message: str) -> list[Indicator]:
        indicators: list[Indicator] = []
        for pattern in (*COMPLEXITY_PATTERNS, *SIMPLICITY_PATTERNS):
            count = sum(1 for _ in pattern.regex.finditer(message or ""))
            if count:
                indicators.append(Indicator(pattern.type, pattern.weight, count))
        return indicators

    def _determine_complexity(self, score: float, indicators: list[Indicator]) -> TaskAnalysis:
        positive = [ind for ind in indicators if ind.weight > 0]
        negative = [ind for ind in indicators if ind.weight < 0]

        adjusted = score + sum(abs(ind.weight) for ind in negative) * 0.5

        if adjusted < 0 or len(negative) > len(positive):
            complexity = "simple"
            types = ", ".join(ind.type for ind in negative)
            reason = f"Simple task: {types or 'single operation'}"
            steps = 1
        elif adjusted < THRESHOLD:
            complexity = "simple"
            reason = "Single operation or simple query"
            steps = 1
        elif score < COMPLEX_SCORE:
            complexity = "moderate"
            main = " and ".join([ind.type for ind in positive if ind.weight >= 1.5][:2])
            reason = f"Multiple operations: {main or 'several steps'}"
            steps = max(2, math.ceil(score / 2))
        else:
            complexity = "complex"
            main = ", ".join([ind.type for ind in positive if ind.weight >= 2][:3])
            reason = f"Complex multi-step workflow: {main or 'multiple phases'}"
            steps = max(3, math.ceil(score / 1.5))

        return TaskAnalysis(
            score=score,
            complexity=complexity,
            requires_todo=score >= THRESHOLD and len(negative) <= len(positive),
            reason=reason,
            estimated_steps=steps,
        )

    @staticmethod
    def is_informational_query(message: str) -> bool:
        """Short question-style text without action verbs."""
        text = (message or "").strip()
        return (
            bool(_INFO_START_RE.match(text))
            and len(message) < 100
            and not _ACTION_VERB_RE.search(message)
        )
