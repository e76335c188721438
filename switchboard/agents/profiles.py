"""Agent profiles: the supervisor and the specialists it may hand work to."""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any

logger = logging.getLogger(__name__)

DELEGATION_TOOL_PREFIX = "delegate_to_"


def delegation_tool_name(agent_id: str) -> str:
    return f"{DELEGATION_TOOL_PREFIX}{agent_id}"


@dataclass(frozen=True)
class KeywordProfile:
    """Domain keyword clusters. Primary terms weigh most; exclusions veto the agent."""

    primary: tuple[str, ...] = ()
    secondary: tuple[str, ...] = ()
    contextual: tuple[str, ...] = ()
    exclusions: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.primary or self.secondary or self.contextual)


@dataclass(frozen=True)
class AgentProfile:
    id: str
    name: str
    description: str = ""
    instructions: str = ""
    aliases: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    tools: tuple[str, ...] = ()
    keywords: KeywordProfile = field(default_factory=KeywordProfile)
    supervisor: bool = False
    enabled: bool = True

    @property
    def delegation_tool(self) -> str:
        return delegation_tool_name(self.id)

    @property
    def mention_names(self) -> tuple[str, ...]:
        """Lowercased names the user may address this agent by."""
        names = {self.id.lower(), self.name.lower(), *(a.lower() for a in self.aliases)}
        return tuple(sorted(n for n in names if n))


_BUILTIN_AGENTS: tuple[AgentProfile, ...] = (
    AgentProfile(
        id="cleo",
        name="Cleo",
        description="Supervisor. Answers directly or hands work to a specialist.",
        supervisor=True,
        tools=("get_current_time",),
    ),
    AgentProfile(
        id="toby",
        name="Toby",
        description=(
            "Technical specialist: programming, debugging, APIs, infrastructure, data processing."
        ),
        aliases=("toby-technical",),
        keywords=KeywordProfile(
            primary=(
                "code", "debug", "api", "sql", "script", "programming", "bug", "backend",
                "frontend", "typescript", "javascript", "python", "docker", "kubernetes",
                "endpoint", "deploy",
            ),
            secondary=(
                "refactor", "stack trace", "traceback", "exception", "unit test", "ci/cd",
                "latency", "performance", "migration", "webhook",
            ),
            contextual=(
                "not working", "build failed", "how to implement", "deployment failed",
                "cannot connect to database", "fix this error",
            ),
            exclusions=("shopify", "tweet", "calendar", "social media"),
        ),
    ),
    AgentProfile(
        id="ami",
        name="Ami",
        description=(
            "Productivity specialist: calendar, scheduling, email triage, spreadsheets, notes, "
            "travel planning."
        ),
        aliases=("ami-creative",),
        tools=("createCalendarEvent", "sendGmailMessage", "uploadToDrive"),
        keywords=KeywordProfile(
            primary=(
                "calendar", "schedule", "meeting", "appointment", "agenda", "reminder",
                "spreadsheet", "sheet", "inbox", "email", "gmail", "notion", "notes", "flight",
                "hotel", "reservation",
            ),
            secondary=("productivity", "deadline", "workflow", "template", "booking", "itinerary"),
            contextual=(
                "help me organize", "book a table", "plan a trip", "check my inbox",
                "manage my calendar", "draft reply",
            ),
            exclusions=("code", "programming", "shopify", "tweet"),
        ),
    ),
    AgentProfile(
        id="peter",
        name="Peter",
        description="Finance specialist: budgets, accounting, investments, financial models.",
        aliases=("peter-financial",),
        keywords=KeywordProfile(
            primary=(
                "finance", "financial", "budget", "accounting", "investment", "roi", "profit",
                "revenue", "expense", "portfolio", "tax", "taxes", "crypto", "bitcoin",
            ),
            secondary=(
                "cash flow", "balance sheet", "valuation", "projection", "business plan", "pricing",
            ),
            contextual=(
                "financial planning", "investment analysis", "budget analysis", "tax planning",
            ),
            exclusions=("email", "calendar", "shopify", "code"),
        ),
    ),
    AgentProfile(
        id="emma",
        name="Emma",
        description="E-commerce specialist: Shopify stores, products, orders, sales analytics.",
        aliases=("emma-ecommerce",),
        keywords=KeywordProfile(
            primary=(
                "shopify", "store", "products", "orders", "inventory", "ecommerce", "e-commerce",
                "catalog", "bestsellers", "checkout",
            ),
            secondary=("conversion rate", "customers", "shipping", "aov", "ltv", "roas", "churn"),
            contextual=("my store", "sales data", "product performance", "abandoned checkouts"),
        ),
    ),
    AgentProfile(
        id="apu",
        name="Apu",
        description=(
            "Research specialist: web research, news, weather, markets, competitive intelligence."
        ),
        aliases=("apu-research", "apu-support"),
        keywords=KeywordProfile(
            primary=(
                "research", "investigate", "news", "weather", "forecast", "temperature", "trends",
                "market", "stock", "stocks", "sources",
            ),
            secondary=(
                "industry", "report", "statistics", "dataset", "press release", "competitor",
            ),
            contextual=(
                "what are the trends", "latest data", "find sources", "industry analysis",
                "what is the weather",
            ),
            exclusions=("shopify", "calendar", "meeting"),
        ),
    ),
    AgentProfile(
        id="jenn",
        name="Jenn",
        description=(
            "Community specialist: social media posts, Twitter/X, Instagram, Telegram channels."
        ),
        aliases=("jenn-community",),
        tools=("postTweet",),
        keywords=KeywordProfile(
            primary=(
                "twitter", "tweet", "tweets", "social media", "instagram", "facebook", "telegram",
                "hashtag", "hashtags",
            ),
            secondary=("engagement", "audience", "followers", "viral", "community"),
            contextual=(
                "post to twitter", "create tweet", "social media strategy", "schedule posts",
            ),
            exclusions=("email", "shopify"),
        ),
    ),
)

_WORD = re.compile(r"^[a-z]+$")


def derive_keywords(profile: AgentProfile) -> KeywordProfile:
    """Keywords for agents configured without any.

    Name and tags are primary; up to five long description words are secondary.
    """
    primary = [profile.name.lower(), *(t.lower() for t in profile.tags)]
    words = [w for w in profile.description.lower().split() if len(w) > 4 and _WORD.match(w)]
    return KeywordProfile(
        primary=tuple(dict.fromkeys(primary)),
        secondary=tuple(dict.fromkeys(words[:5])),
    )


def _tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _profile_from_dict(
    agent_id: str, data: dict[str, Any], base: AgentProfile | None
) -> AgentProfile:
    kw = data.get("keywords") or {}
    keywords = KeywordProfile(
        primary=_tuple(kw.get("primary")),
        secondary=_tuple(kw.get("secondary")),
        contextual=_tuple(kw.get("contextual")),
        exclusions=_tuple(kw.get("exclusions")),
    )
    fields: dict[str, Any] = {
        "name": data.get("name"),
        "description": data.get("description"),
        "instructions": data.get("instructions"),
        "aliases": _tuple(data.get("aliases")) or None,
        "tags": _tuple(data.get("tags")) or None,
        "tools": _tuple(data.get("tools")) if "tools" in data else None,
        "keywords": None if keywords.is_empty() and not keywords.exclusions else keywords,
        "supervisor": data.get("supervisor"),
        "enabled": data.get("enabled"),
    }
    updates = {k: v for k, v in fields.items() if v is not None}
    if base is not None:
        return replace(base, **updates)
    name = str(updates.pop("name", agent_id.capitalize()))
    return AgentProfile(id=agent_id, name=name, **updates)


class AgentRegistry:
    """Built-in roster overlaid with the `agents:` section of settings."""

    def __init__(
        self, settings: dict[str, Any] | None = None, include_builtin: bool = True
    ) -> None:
        self._agents: dict[str, AgentProfile] = {}
        if include_builtin:
            for profile in _BUILTIN_AGENTS:
                self._agents[profile.id] = profile
        for aid, adata in ((settings or {}).get("agents") or {}).items():
            if isinstance(adata, dict):
                self.register(_profile_from_dict(str(aid), adata, self._agents.get(str(aid))))

    def register(self, profile: AgentProfile) -> None:
        if not profile.supervisor and profile.keywords.is_empty():
            derived = replace(derive_keywords(profile), exclusions=profile.keywords.exclusions)
            profile = replace(profile, keywords=derived)
        self._agents[profile.id] = profile

    def get(self, agent_id: str) -> AgentProfile | None:
        profile = self._agents.get(agent_id)
        if profile is None or not profile.enabled:
            return None
        return profile

    def supervisor(self) -> AgentProfile:
        for profile in self._agents.values():
            if profile.supervisor and profile.enabled:
                return profile
        raise LookupError("No supervisor agent configured")

    def specialists(self) -> list[AgentProfile]:
        return [p for p in self._agents.values() if p.enabled and not p.supervisor]

    def for_tool(self, tool_name: str) -> AgentProfile | None:
        """Return the specialist targeted by a delegation tool name, enabled or not."""
        if not tool_name.startswith(DELEGATION_TOOL_PREFIX):
            return None
        return self._agents.get(tool_name[len(DELEGATION_TOOL_PREFIX):])
