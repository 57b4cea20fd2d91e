from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import yaml

from .models import IntelligenceTier, StrategyType


@dataclass
class StrategyToggles:
    direct: bool = True
    triangular: bool = True
    quadrilateral: bool = False

    def enabled(self) -> Tuple[StrategyType, ...]:
        out = []
        if self.direct:
            out.append(StrategyType.DIRECT)
        if self.triangular:
            out.append(StrategyType.TRIANGULAR)
        if self.quadrilateral:
            out.append(StrategyType.QUADRILATERAL)
        return tuple(out)


@dataclass
class RiskLimits:
    """
    - max_consecutive_failures: kill switch after this many failed executions in a row
    - max_drawdown_usd: kill switch once session PnL drops below -max_drawdown_usd
    - max_exposure_per_trade: hard cap on a single trade size (None = no cap)
    """
    max_consecutive_failures: int = 5
    max_drawdown_usd: float = 50.0
    max_exposure_per_trade: Optional[float] = None


@dataclass
class BotConfig:
    """
    Everything the core reads during a tick. External collaborators
    (the CLI in main.py, a UI) own it and may replace it between ticks.

    - investment_amount: total amount available to the bot
    - max_per_trade: per-trade cap, 0 means "use investment_amount"
    - base_token: token every cycle starts and ends in
    - fee_token: native token gas is paid in (used for the SOL reference price)
    - reference_venue: venue whose quote is used for reference prices
    - detection_interval / execution_interval: tick cadences in seconds
    - latency_range: simulated network round-trip in seconds
    """
    strategies: StrategyToggles = field(default_factory=StrategyToggles)
    intelligence: IntelligenceTier = IntelligenceTier.MEDIUM
    investment_amount: float = 0.0
    max_per_trade: float = 0.0

    base_token: str = "USDC"
    fee_token: str = "SOL"
    reference_venue: str = "Raydium"

    detection_interval: float = 10.0
    execution_interval: float = 2.0
    auto_run: bool = False

    history_size: int = 100
    latency_range: Tuple[float, float] = (0.8, 1.8)
    quad_samples: int = 3

    risk: RiskLimits = field(default_factory=RiskLimits)
    audit_log: Optional[str] = None

    def __post_init__(self):
        if self.investment_amount < 0:
            raise ValueError(f"investment_amount must be >= 0, got {self.investment_amount}")
        if self.max_per_trade < 0:
            raise ValueError(f"max_per_trade must be >= 0, got {self.max_per_trade}")
        low, high = self.latency_range
        if low < 0 or high < low:
            raise ValueError(f"latency_range must satisfy 0 <= low <= high, got {self.latency_range}")
        if self.history_size <= 0:
            raise ValueError("history_size must be positive")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BotConfig":
        raw = dict(raw or {})
        bot = raw.get('bot', {}) or {}
        target = raw.get('target', {}) or {}
        timing = raw.get('timing', {}) or {}
        risk = raw.get('risk_compliance', {}) or {}
        audit = raw.get('audit', {}) or {}

        latency = timing.get('latency_range_seconds', [0.8, 1.8])

        return cls(
            strategies=StrategyToggles(**(raw.get('strategies') or {})),
            intelligence=IntelligenceTier(bot.get('intelligence', 'medium')),
            investment_amount=float(target.get('investment_amount', 0.0)),
            max_per_trade=float(target.get('max_per_trade', 0.0)),
            base_token=bot.get('base_token', 'USDC'),
            fee_token=bot.get('fee_token', 'SOL'),
            reference_venue=bot.get('reference_venue', 'Raydium'),
            detection_interval=float(timing.get('detection_interval_seconds', 10.0)),
            execution_interval=float(timing.get('execution_interval_seconds', 2.0)),
            auto_run=bool(bot.get('auto_run', False)),
            history_size=int(bot.get('history_size', 100)),
            latency_range=(float(latency[0]), float(latency[1])),
            quad_samples=int(bot.get('quad_samples', 3)),
            risk=RiskLimits(
                max_consecutive_failures=int(risk.get('max_consecutive_failures', 5)),
                max_drawdown_usd=float(risk.get('max_drawdown_usd', 50.0)),
                max_exposure_per_trade=risk.get('max_exposure_per_trade'),
            ),
            audit_log=audit.get('trade_log'),
        )


def load_raw_config(path: str = "config.yaml") -> Dict[str, Any]:
    """The parsed YAML as-is, for the bits main.py reads directly (quote source, venues)."""
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}
