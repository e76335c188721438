"""ModelRouter: pure decision from TaskDescriptor to primary + fallback model."""

import logging
import re
from typing import Any

from switchboard.context import RequestContext
from switchboard.errors import RoutingDegraded
from switchboard.llm.protocol import ModelSpec, RoutingDecision
from switchboard.task import ContentKind, TaskDescriptor

logger = logging.getLogger(__name__)

_TOOL_INTENT = re.compile(
    r"\b("
    r"weather|forecast|clima|tiempo|pron[oó]stico"
    r"|search|google|look up|buscar|busca|b[uú]squeda"
    r"|news|noticias|latest"
    r"|price|prices|precio|precios|crypto|cripto|stock"
    r"|calendar|calendario|schedule|agenda|event|evento"
    r"|email|e-mail|correo|gmail|inbox"
    r"|drive|document|documento|spreadsheet|sheet"
    r"|delegate|delegar|ask \w+ to"
    r")\b",
    re.IGNORECASE,
)
_REASONING_INTENT = re.compile(
    r"\b(analy[sz]e|analysis|explain why|compare|trade-?offs?"
    r"|step by step|prove|derive|plan out)\b",
    re.IGNORECASE,
)

_FALLBACK_DEFAULT = "openai:gpt-4o-mini"


def _catalog_from_settings(models: dict[str, Any]) -> dict[str, ModelSpec]:
    catalog: dict[str, ModelSpec] = {}
    for model_id, caps in (models or {}).items():
        caps = caps if isinstance(caps, dict) else {}
        catalog[str(model_id)] = ModelSpec(
            id=str(model_id),
            vision=bool(caps.get("vision", False)),
            tools=bool(caps.get("tools", True)),
            reasoning=bool(caps.get("reasoning", False)),
            local=bool(caps.get("local", False)),
        )
    return catalog


class ModelRouter:
    """Routes a task to a model. Deterministic for a given task and settings; never raises.

    Priority: forced model hint > content kind (multimodal) > length/intent heuristic
    > profile default.
    """

    def __init__(self, settings: dict[str, Any]) -> None:
        router_cfg = settings.get("router") or {}
        self._catalog = _catalog_from_settings(settings.get("models") or {})
        self._profiles: dict[str, dict[str, str]] = {
            str(k): dict(v)
            for k, v in (router_cfg.get("profiles") or {}).items()
            if isinstance(v, dict)
        }
        self._default_profile = str(router_cfg.get("default_profile", "balanced"))
        self._aliases: dict[str, str] = dict(router_cfg.get("aliases") or {})
        self._allow_local = bool(router_cfg.get("allow_local", False))
        self._long_chars = int(router_cfg.get("long_content_chars", 1000))

    @property
    def catalog(self) -> dict[str, ModelSpec]:
        return dict(self._catalog)

    def route(self, task: TaskDescriptor, ctx: RequestContext | None = None) -> RoutingDecision:
        """Return the routing decision for task. Any internal error yields the default model."""
        try:
            decision = self._route(task)
        except Exception as e:
            logger.exception("Routing failed, using default model: %s", e)
            default = self._profile_model(self._profile_for(task), "default")
            decision = RoutingDecision(
                selected_model=default,
                fallback_model=self._fallback_for(default, self._profile_for(task)),
                reasoning=f"{RoutingDegraded.kind}: router error ({e})",
                confidence=0.0,
            )
        logger.info(
            "Routed request %s: %s (fallback %s, confidence %.2f) - %s",
            ctx.request_id if ctx else "-",
            decision.selected_model,
            decision.fallback_model,
            decision.confidence,
            decision.reasoning,
        )
        return decision

    def _route(self, task: TaskDescriptor) -> RoutingDecision:
        profile = self._profile_for(task)

        forced = task.hint("forceModel")
        if forced:
            model = self._aliases.get(str(forced), str(forced))
            how = "provider alias" if str(forced) in self._aliases else "exact model id"
            return self._decision(model, profile, f"Forced via metadata.forceModel ({how})", 1.0)

        if task.content_kind in (ContentKind.IMAGE, ContentKind.DOCUMENT):
            return self._pick(
                profile,
                "vision",
                lambda m: m.vision,
                f"{task.content_kind.value.capitalize()} task requires multimodal capabilities",
                0.95,
            )

        if self._tool_likely(task):
            return self._pick(
                profile,
                "tools",
                lambda m: m.tools,
                "Tool or search intent detected; routed to a tool-calling model",
                0.9,
            )

        if len(task.content) > self._long_chars or _REASONING_INTENT.search(task.content):
            return self._pick(
                profile,
                "reasoning",
                lambda m: m.reasoning,
                "Large context or reasoning task; routed to a reasoning model",
                0.95,
            )

        model = self._local_guard(self._profile_model(profile, "default"), profile)
        return self._decision(model, profile, f"Simple task; {profile} profile default", 0.85)

    def _tool_likely(self, task: TaskDescriptor) -> bool:
        if task.metadata.get("enableTools") is True:
            return True
        if task.allowed_tools:
            return True
        return bool(_TOOL_INTENT.search(task.content))

    def _pick(
        self,
        profile: str,
        slot: str,
        capable: Any,
        reasoning: str,
        confidence: float,
    ) -> RoutingDecision:
        """Profile model for slot if capable, else any capable catalog model, else degrade."""
        preferred = self._local_guard(self._profile_model(profile, slot), profile)
        spec = self._catalog.get(preferred)
        if spec is not None and capable(spec):
            return self._decision(preferred, profile, f"{reasoning} ({profile})", confidence)
        for spec in self._catalog.values():
            if capable(spec) and (self._allow_local or not spec.local):
                return self._decision(
                    spec.id,
                    profile,
                    f"{reasoning}; profile model unsuitable, using {spec.id}",
                    confidence * 0.8,
                )
        default = self._profile_model(profile, "default")
        logger.warning("No model in catalog satisfies %r; degrading to %s", slot, default)
        return self._decision(
            default,
            profile,
            f"{RoutingDegraded.kind}: no model satisfies '{slot}'; best-effort default",
            0.0,
        )

    def _local_guard(self, model: str, profile: str) -> str:
        """Local models are only routed to when local routing is enabled."""
        spec = self._catalog.get(model)
        if spec is not None and spec.local and not self._allow_local:
            return self._profile_model(profile, "fallback")
        return model

    def _decision(
        self, model: str, profile: str, reasoning: str, confidence: float
    ) -> RoutingDecision:
        return RoutingDecision(
            selected_model=model,
            fallback_model=self._fallback_for(model, profile),
            reasoning=reasoning,
            confidence=confidence,
        )

    def _profile_for(self, task: TaskDescriptor) -> str:
        requested = task.hint("routerType")
        if requested and str(requested) in self._profiles:
            return str(requested)
        if requested:
            logger.debug("Unknown router profile %r, using %s", requested, self._default_profile)
        return self._default_profile

    def _profile_model(self, profile: str, slot: str) -> str:
        slots = self._profiles.get(profile) or self._profiles.get(self._default_profile) or {}
        return slots.get(slot) or slots.get("default") or _FALLBACK_DEFAULT

    def _fallback_for(self, selected: str, profile: str) -> str:
        """Fallback differs from selected whenever the configuration offers another model."""
        candidates = [
            self._profile_model(profile, "fallback"),
            self._profile_model(profile, "default"),
            *(m.id for m in self._catalog.values() if self._allow_local or not m.local),
        ]
        for candidate in candidates:
            spec = self._catalog.get(candidate)
            if spec is not None and spec.local and not self._allow_local:
                continue
            if candidate != selected:
                return candidate
        return selected
