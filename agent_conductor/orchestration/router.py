"""
Keyword-priority command routing for Agent Conductor.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..agents.base import BaseAgent
from ..models.core import RoutingRule
from ..models.errors import NoRouteFound, TargetNotFound
from ..utils.config import RoutingConfig
from ..utils.logging import get_logger
from .registry import AgentRegistry

logger = get_logger(__name__)


class RouteKind(str, Enum):
    """How a command was routed."""
    DIRECT = "direct"
    SINGLE = "single"
    COORDINATION = "coordination"
    FALLBACK = "fallback"
    DISABLED = "disabled"


class RouteDecision(BaseModel):
    """Outcome of routing a command."""
    kind: RouteKind
    agent: Optional[BaseAgent] = None
    rule: Optional[RoutingRule] = None
    matched_keywords: List[str] = Field(default_factory=list)
    message: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def describe(self, verbose: bool = False) -> Dict[str, Any]:
        info: Dict[str, Any] = {"kind": self.kind.value}
        if self.agent is not None:
            info["agent"] = self.agent.name
        if self.rule is not None:
            info["category"] = self.rule.category
        if verbose and self.rule is not None:
            info.update({
                "matched_keywords": list(self.matched_keywords),
                "capabilities": list(self.rule.capabilities),
                "description": self.rule.description,
            })
        return info


class CommandRouter:
    """
    Maps free text to a worker or a coordination plan.

    Matching runs in a fixed order: explicit override, coordination rules,
    then individual rules by match count with priority as tie-break, then
    the first active worker.
    """

    def __init__(self, registry: AgentRegistry, config: Optional[RoutingConfig] = None):
        self.registry = registry
        self.config = config or RoutingConfig()
        self.logger = get_logger(f"{__name__}.CommandRouter")

    @property
    def rules(self) -> List[RoutingRule]:
        return self.config.rules

    @property
    def coordination_rules(self) -> List[RoutingRule]:
        return [rule for rule in self.rules if rule.is_coordination]

    @property
    def individual_rules(self) -> List[RoutingRule]:
        return [rule for rule in self.rules if not rule.is_coordination]

    def available_agent_types(self) -> List[str]:
        """Configured worker types, in rule order."""
        return list(dict.fromkeys(rule.target for rule in self.rules))

    def keyword_hints(self, limit: int = 3) -> List[Dict[str, Any]]:
        return [
            {
                "category": rule.category,
                "agent": rule.target,
                "suggested_keywords": rule.keywords[:limit]
            }
            for rule in self.rules
        ]

    # -- resolution --------------------------------------------------------

    def resolve_target(self, target: str) -> BaseAgent:
        """
        Resolve an explicit override to an active worker.

        The hint may be an id, a name, a worker type or a rule category
        alias such as ``"blog"``.

        Raises:
            TargetNotFound: If nothing active matches
        """
        agent = self.registry.find_by_identity(target)
        if agent is None:
            agent = self.registry.find_by_type(target)
        if agent is None:
            alias = next((rule for rule in self.individual_rules if rule.category == target.lower()), None)
            if alias is not None:
                agent = self.registry.find_by_type(alias.target)

        if agent is None or not agent.is_active:
            self.logger.error(f"Explicit target {target} not found in registry")
            raise TargetNotFound(f"Target agent {target} is not registered or not active", target=target)

        return agent

    def route(self, command: str, target_agent: Optional[str] = None) -> RouteDecision:
        """
        Decide who handles ``command``.

        Raises:
            TargetNotFound: If an explicit override cannot be resolved
            NoRouteFound: If nothing matched and no worker is active
        """
        if target_agent:
            agent = self.resolve_target(target_agent)
            self.logger.info(f"Using explicitly specified agent: {agent.name}")
            return RouteDecision(kind=RouteKind.DIRECT, agent=agent)

        if not self.config.auto_routing:
            self.logger.warning("Auto-routing disabled by configuration")
            return RouteDecision(
                kind=RouteKind.DISABLED,
                message=(
                    "Auto-routing is disabled. Specify the target agent explicitly. "
                    f"Available agents: {', '.join(self.available_agent_types())}"
                )
            )

        # Coordination rules always win over individual ones
        for rule in self.coordination_rules:
            matched = rule.matched_keywords(command)
            if matched:
                self.logger.info(f"Coordination match: {rule.category}", matched_keywords=matched)
                return RouteDecision(kind=RouteKind.COORDINATION, rule=rule, matched_keywords=matched)

        best_rule: Optional[RoutingRule] = None
        best_matches: List[str] = []
        for rule in self.individual_rules:
            matched = rule.matched_keywords(command)
            if not matched:
                continue
            if (
                best_rule is None
                or len(matched) > len(best_matches)
                or (len(matched) == len(best_matches) and rule.priority < best_rule.priority)
            ):
                best_rule = rule
                best_matches = matched

        if best_rule is not None:
            # agent may be None here; dispatch then reports WorkerUnavailable
            agent = self.registry.find_by_type(best_rule.target)
            if agent is None:
                self.logger.warning(f"No active agent found for type: {best_rule.target}")
            else:
                self.logger.info(f"Match: {best_rule.category} -> {best_rule.target}", matches=len(best_matches))
            return RouteDecision(
                kind=RouteKind.SINGLE,
                agent=agent,
                rule=best_rule,
                matched_keywords=best_matches
            )

        fallback = self.registry.first_active()
        if fallback is not None:
            self.logger.info(f"No rule matched, falling back to {fallback.name}")
            return RouteDecision(kind=RouteKind.FALLBACK, agent=fallback)

        self.logger.info("No route found for command")
        raise NoRouteFound(
            "Could not determine which agent should handle this command",
            available_agents=self.available_agent_types()
        )

    def required_agent_types(self, command: str) -> List[RoutingRule]:
        """Every individual rule with at least one keyword match, in rule order."""
        return [rule for rule in self.individual_rules if rule.matched_keywords(command)]
