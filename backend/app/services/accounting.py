from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from ..core.config import get_settings

# Crude approximation, not tied to any specific tokenizer.
CHARS_PER_TOKEN = 4
COST_QUANTUM = Decimal("0.000001")  # matches Numeric(14, 6)


def estimate_tokens(length: int) -> int:
    """Ceiling of ``length / CHARS_PER_TOKEN``; never negative."""
    length = max(0, int(length))
    return -(-length // CHARS_PER_TOKEN)


def default_cost_rate() -> Decimal:
    return Decimal(str(get_settings().COST_PER_1K_TOKENS_USD))


def cost_for_tokens(total_tokens: int, rate_per_1k: Decimal | float | None = None) -> Decimal:
    """
    Linear cost in USD for ``total_tokens`` at ``rate_per_1k`` per 1000 tokens.
    """
    if rate_per_1k is None:
        rate = default_cost_rate()
    else:
        rate = Decimal(str(rate_per_1k))
    tokens = Decimal(max(0, int(total_tokens)))
    return (tokens / Decimal(1000) * rate).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass
class TokenLedger:
    """
    In-memory accumulator for one research run.

    Totals are the sum of per-step estimates, so the final ``total_tokens``
    always equals the sum of ``tokens_used`` over the persisted steps.
    """

    session_id: str
    rate_per_1k: Decimal = field(default_factory=default_cost_rate)
    total_tokens: int = 0
    step_count: int = 0
    _by_type: Dict[str, Dict[str, int]] = field(default_factory=dict)

    def record_step(self, step_type: str, tokens_used: int) -> None:
        tokens = max(0, int(tokens_used))
        self.total_tokens += tokens
        self.step_count += 1
        entry = self._by_type.setdefault(step_type, {"steps": 0, "tokens": 0})
        entry["steps"] += 1
        entry["tokens"] += tokens

    @property
    def total_cost(self) -> Decimal:
        return cost_for_tokens(self.total_tokens, self.rate_per_1k)

    def summarize(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "steps": self.step_count,
            "total_tokens": self.total_tokens,
            "total_cost_usd": float(self.total_cost),
            "by_step_type": {k: dict(v) for k, v in self._by_type.items()},
        }
