"""
Dispatch strategies, one class per Strategy value.
"""
from promptrelay.storage.models import Strategy
from promptrelay.strategies.base import BaseStrategy
from promptrelay.strategies.consensus import ConsensusStrategy
from promptrelay.strategies.cost_effective import CostEffectiveStrategy
from promptrelay.strategies.quality import QualityStrategy
from promptrelay.strategies.speed import SpeedStrategy

STRATEGY_CLASSES: dict[Strategy, type[BaseStrategy]] = {
    Strategy.QUALITY: QualityStrategy,
    Strategy.SPEED: SpeedStrategy,
    Strategy.CONSENSUS: ConsensusStrategy,
    Strategy.COST_EFFECTIVE: CostEffectiveStrategy,
}

__all__ = [
    "BaseStrategy",
    "QualityStrategy",
    "SpeedStrategy",
    "ConsensusStrategy",
    "CostEffectiveStrategy",
    "STRATEGY_CLASSES",
]
