"""
Market Context Model
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any


@dataclass
class MarketContext:
    """Read-only snapshot of market conditions"""
    volatility_index: float = 20.0
    sector_performance: Dict[str, float] = field(default_factory=dict)
    sentiment: str = "neutral"  # bullish, bearish, neutral
    relevant_news: List[str] = field(default_factory=list)
    key_insights: List[str] = field(default_factory=list)
    captured_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def neutral(cls) -> "MarketContext":
        return cls(volatility_index=20.0, sentiment="neutral")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "volatility_index": self.volatility_index,
            "sector_performance": dict(self.sector_performance),
            "sentiment": self.sentiment,
            "relevant_news": list(self.relevant_news),
            "key_insights": list(self.key_insights),
            "captured_at": self.captured_at.isoformat(),
        }
