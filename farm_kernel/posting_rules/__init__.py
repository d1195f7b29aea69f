"""Posting rules for transforming events into posting plans."""

from farm_kernel.posting_rules.base import BasePostingRule
from farm_kernel.posting_rules.registry import (
    PostingRuleRegistry,
    build_default_registry,
    default_registry,
)

__all__ = [
    "BasePostingRule",
    "PostingRuleRegistry",
    "build_default_registry",
    "default_registry",
]
