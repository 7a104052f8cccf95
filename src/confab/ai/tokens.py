"""Token estimation and history trimming for chat requests."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence, Union

from ..chat.message_model import Message, Role
from ..errors import ContextClippedWarning
from ..services import telemetry

LOGGER = logging.getLogger(__name__)

# Rough allowances; not tied to any particular tokenizer.
DEFAULT_MESSAGE_OVERHEAD = 4
DEFAULT_COMPLETION_PRIMING = 3

BudgetResolver = Callable[[str, Sequence[Message]], "int | None"]
BudgetSpec = Union[int, BudgetResolver, None]


@dataclass(slots=True, frozen=True)
class TokenEstimator:
    """Deterministic heuristic estimator for message lists.

    Each message costs ``message_overhead`` plus its character length divided
    by ``message_overhead``; the list as a whole adds ``completion_priming``.
    """

    message_overhead: int = DEFAULT_MESSAGE_OVERHEAD
    completion_priming: int = DEFAULT_COMPLETION_PRIMING

    def __post_init__(self) -> None:
        if int(self.message_overhead) < 1:
            raise ValueError("message_overhead must be at least 1")
        if int(self.completion_priming) < 0:
            raise ValueError("completion_priming must not be negative")

    def estimate_message(self, message: Any) -> int:
        content = Message.from_value(message).content
        return self.message_overhead + len(content) // self.message_overhead

    def estimate(self, messages: Iterable[Any]) -> int:
        """Return the approximate token cost of ``messages``."""

        return sum(self.estimate_message(message) for message in messages) + self.completion_priming

    def trim(self, messages: Iterable[Any], budget: int) -> list[Message]:
        """Return the longest suffix of ``messages`` whose estimate fits ``budget``.

        Suffixes always begin at a user message (or at the first message) so an
        exchange is never split. When even the most recent exchange is over
        budget it is returned anyway and a :class:`ContextClippedWarning` is
        issued.
        """

        resolved = [Message.from_value(message) for message in messages]
        if not resolved:
            return []
        costs = [self.estimate_message(message) for message in resolved]
        suffix_costs = [0] * (len(costs) + 1)
        for index in range(len(costs) - 1, -1, -1):
            suffix_costs[index] = suffix_costs[index + 1] + costs[index]

        boundaries = [0] + [
            index for index, message in enumerate(resolved) if index > 0 and message.role is Role.USER
        ]
        for boundary in boundaries:
            if suffix_costs[boundary] + self.completion_priming <= budget:
                if boundary:
                    LOGGER.debug("Trimmed %s oldest message(s) to fit %s tokens", boundary, budget)
                return resolved[boundary:]

        latest = boundaries[-1]
        clipped_estimate = suffix_costs[latest] + self.completion_priming
        _report_clipping(clipped_estimate, budget, dropped=latest)
        return resolved[latest:]


DEFAULT_ESTIMATOR = TokenEstimator()


def _report_clipping(estimate_value: int, budget: int, *, dropped: int) -> None:
    telemetry.emit(
        telemetry.CONTEXT_CLIPPED,
        {"estimate": estimate_value, "budget": budget, "dropped_messages": dropped},
    )
    warnings.warn(ContextClippedWarning(estimate_value, budget), stacklevel=3)


def estimate(messages: Iterable[Any], estimator: TokenEstimator | None = None) -> int:
    """Estimate ``messages`` with ``estimator`` or the default constants."""

    return (estimator or DEFAULT_ESTIMATOR).estimate(messages)


def trim(messages: Iterable[Any], budget: int, estimator: TokenEstimator | None = None) -> list[Message]:
    """Trim ``messages`` to ``budget`` with ``estimator`` or the default constants."""

    return (estimator or DEFAULT_ESTIMATOR).trim(messages, budget)


def resolve_message_limit(spec: BudgetSpec, model: str, history: Sequence[Message]) -> int | None:
    """Turn a budget spec into a maximum message count (``None`` = unbounded).

    An integer ``n`` (given directly or returned by a resolver) keeps ``n``
    prior exchanges plus the in-flight prompt: ``2 * n + 1`` messages.
    """

    if spec is None:
        return None
    if callable(spec):
        pairs = spec(model, list(history))
        if pairs is None:
            return None
    else:
        pairs = spec
    if isinstance(pairs, bool):
        raise TypeError("Budget turn counts must be integers, not booleans")
    pairs = int(pairs)
    if pairs < 0:
        raise ValueError("Budget turn counts must not be negative")
    return 2 * pairs + 1


def apply_budget(
    messages: Iterable[Any],
    spec: BudgetSpec,
    *,
    model: str = "",
    token_budget: int | None = None,
    estimator: TokenEstimator | None = None,
) -> list[Message]:
    """Window ``messages`` by turn count, then by token estimate when requested.

    A turn-count window always opens on a user message; assistant messages
    cut loose from their prompt are dropped.
    """

    resolved = [Message.from_value(message) for message in messages]
    limit = resolve_message_limit(spec, model, resolved)
    if limit is not None and len(resolved) > limit:
        start = len(resolved) - limit
        while start < len(resolved) and resolved[start].role is not Role.USER:
            start += 1
        resolved = resolved[start:]
    if token_budget is not None:
        resolved = trim(resolved, token_budget, estimator)
    return resolved


__all__ = [
    "BudgetResolver",
    "BudgetSpec",
    "DEFAULT_COMPLETION_PRIMING",
    "DEFAULT_ESTIMATOR",
    "DEFAULT_MESSAGE_OVERHEAD",
    "TokenEstimator",
    "apply_budget",
    "estimate",
    "resolve_message_limit",
    "trim",
]
