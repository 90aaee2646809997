"""
Evolution strategies for snake-controller genomes.

All strategies share the sample -> evaluate -> evolve cycle defined by
EvolutionStrategyBase, so a driver can swap one for another.
"""

from evosnake.strategies.base import (
	EvaluatedGenome,
	EvolutionResult,
	EvolutionStrategyBase,
	OptimizationLogger,
	TRACE,
)
from evosnake.strategies.cmaes import CMAESConfig, CMAESStrategy


__all__ = [
	'EvaluatedGenome',
	'EvolutionResult',
	'EvolutionStrategyBase',
	'OptimizationLogger',
	'TRACE',
	'CMAESConfig',
	'CMAESStrategy',
]
