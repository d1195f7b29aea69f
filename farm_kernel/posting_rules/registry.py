"""
Posting rule registry.

Maps each EventType to the rule that posts it.  ``default_registry()``
holds one rule per event type and refuses to build if any type is left
without a rule, so dispatch in the engine is exhaustive.
"""

from farm_kernel.domain.plans import PostingContext, PostingPlan
from farm_kernel.exceptions import PostingRuleNotFoundError
from farm_kernel.models.event import EventType
from farm_kernel.posting_rules.base import BasePostingRule
from farm_kernel.posting_rules.rules import ALL_RULES


class PostingRuleRegistry:
    """Registry of posting rules keyed by event type."""

    def __init__(self):
        self._rules: dict[EventType, BasePostingRule] = {}

    def register(self, rule: BasePostingRule) -> None:
        self._rules[EventType(rule.event_type)] = rule

    def get_rule(self, event_type: EventType | str) -> BasePostingRule:
        try:
            return self._rules[EventType(event_type)]
        except (KeyError, ValueError):
            raise PostingRuleNotFoundError(str(getattr(event_type, "value", event_type))) from None

    def build_plan(self, ctx: PostingContext) -> PostingPlan:
        return self.get_rule(ctx.event.event_type).build_plan(ctx)

    def list_event_types(self) -> list[EventType]:
        return list(self._rules)

    def missing_event_types(self) -> set[EventType]:
        return set(EventType) - set(self._rules)


def build_default_registry() -> PostingRuleRegistry:
    registry = PostingRuleRegistry()
    for rule_cls in ALL_RULES:
        registry.register(rule_cls())
    missing = registry.missing_event_types()
    if missing:
        raise RuntimeError(
            f"No posting rule for event types: {sorted(t.value for t in missing)}"
        )
    return registry


_default_registry: PostingRuleRegistry | None = None


def default_registry() -> PostingRuleRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = build_default_registry()
    return _default_registry
