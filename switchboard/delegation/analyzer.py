"""Delegation intent detection: proposes a specialist for a piece of text.

The analyzer never decides whether delegation happens. Callers compare the returned
confidence against their own thresholds (auto-enable a delegation tool vs. force a hand-off).
"""

import logging
import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Protocol, runtime_checkable

from switchboard.agents.profiles import AgentProfile, AgentRegistry
from switchboard.context import RequestContext

logger = logging.getLogger(__name__)

MENTION_SCORE = 0.8
PHRASING_BONUS = 0.15
KEYWORD_CAP = 0.75
PRIMARY_WEIGHT = 0.3
SECONDARY_WEIGHT = 0.15
CONTEXTUAL_WEIGHT = 0.25
GENERIC_CUE_BONUS = 0.05
SHORT_TEXT_CHARS = 15


class Signal(IntEnum):
    """Signal specificity; higher wins ties."""

    PHRASING = 1
    KEYWORD = 2
    MENTION = 3


@dataclass(frozen=True)
class DelegationIntent:
    target_agent_id: str
    tool_name: str
    confidence: float
    signal: Signal = Signal.KEYWORD
    reasons: tuple[str, ...] = ()


@runtime_checkable
class DelegationAnalyzer(Protocol):
    """Pluggable strategy; a classifier can replace the heuristic without touching the graph."""

    def analyze(self, text: str, ctx: RequestContext | None = None) -> DelegationIntent | None: ...


def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term.lower())}(?!\w)")


_GENERIC_CUES = re.compile(
    r"\b(delegate|hand (?:this|it) off|ask (?:a|the) specialist|deleg(?:a|ar|aci[oó]n))\b"
)


def _directed_cue(name: str) -> re.Pattern[str]:
    n = re.escape(name)
    return re.compile(
        rf"\b(?:ask|tell|have|let|get|delegate to|hand (?:this|it) (?:off )?to|pass (?:this|it) to"
        rf"|dile a|p[ií]dele a|deleg[aá] a)\s+{n}\b"
    )


@dataclass
class _Candidate:
    agent: AgentProfile
    confidence: float
    signal: Signal
    reasons: list[str]


class HeuristicDelegationAnalyzer:
    """Scores explicit name mentions, keyword clusters and delegation phrasing per specialist."""

    def __init__(self, agents: AgentRegistry | Iterable[AgentProfile]) -> None:
        self._registry = agents if isinstance(agents, AgentRegistry) else None
        self._static = None
        if self._registry is None:
            self._static = [a for a in agents if not a.supervisor]

    def _specialists(self) -> list[AgentProfile]:
        if self._registry is not None:
            return self._registry.specialists()
        return list(self._static or [])

    def analyze(self, text: str, ctx: RequestContext | None = None) -> DelegationIntent | None:
        lowered = (text or "").lower().strip()
        if not lowered:
            return None
        generic_cue = bool(_GENERIC_CUES.search(lowered))
        scored = (self._score(agent, lowered) for agent in self._specialists())
        candidates = [c for c in scored if c]
        if not candidates:
            return None
        if generic_cue:
            for c in candidates:
                if c.signal == Signal.KEYWORD:
                    c.confidence = min(KEYWORD_CAP, c.confidence + GENERIC_CUE_BONUS)
                    c.reasons.append("delegation phrasing")
        best = max(candidates, key=lambda c: (round(c.confidence, 6), c.signal, c.agent.id))
        intent = DelegationIntent(
            target_agent_id=best.agent.id,
            tool_name=best.agent.delegation_tool,
            confidence=round(best.confidence, 4),
            signal=best.signal,
            reasons=tuple(best.reasons),
        )
        logger.debug(
            "Delegation intent for request %s: %s (%.2f, %s)",
            ctx.request_id if ctx else "-",
            intent.target_agent_id,
            intent.confidence,
            intent.signal.name,
        )
        return intent

    def _score(self, agent: AgentProfile, text: str) -> _Candidate | None:
        mention = self._mention(agent, text)
        if mention is not None:
            return mention
        return self._keywords(agent, text)

    def _mention(self, agent: AgentProfile, text: str) -> _Candidate | None:
        for name in agent.mention_names:
            if not _term_pattern(name).search(text):
                continue
            confidence = MENTION_SCORE
            reasons = [f"mentions {name}"]
            if _directed_cue(name).search(text):
                confidence += PHRASING_BONUS
                reasons.append(f"asks {name} directly")
            return _Candidate(agent, min(1.0, confidence), Signal.MENTION, reasons)
        return None

    def _keywords(self, agent: AgentProfile, text: str) -> _Candidate | None:
        kw = agent.keywords
        if any(_term_pattern(term).search(text) for term in kw.exclusions):
            return None
        matched: list[str] = []
        score = 0.0
        for terms, weight in (
            (kw.primary, PRIMARY_WEIGHT),
            (kw.secondary, SECONDARY_WEIGHT),
            (kw.contextual, CONTEXTUAL_WEIGHT),
        ):
            for term in terms:
                if _term_pattern(term).search(text):
                    score += weight
                    matched.append(term)
        if not matched:
            return None
        if len(text) < SHORT_TEXT_CHARS:
            score *= 0.85
        elif "\n" in text and len(text) > 120:
            score *= 1.05
        return _Candidate(
            agent,
            min(KEYWORD_CAP, score),
            Signal.KEYWORD,
            [f"matched: {', '.join(matched[:3])}"],
        )
