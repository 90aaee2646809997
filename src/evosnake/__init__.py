"""evosnake - CMA-ES evolution of snake-controller networks."""

from evosnake.logger import Logger, create_logger
from evosnake.progress import ProgressTracker, PopulationTracker, ProgressStats
from evosnake.genome import GenomeLayout
from evosnake.fitness import EpisodeOutcome, episode_fitness
from evosnake.strategies import (
	CMAESConfig,
	CMAESStrategy,
	EvaluatedGenome,
	EvolutionResult,
	EvolutionStrategyBase,
)
from evosnake.runner import EarlyStoppingConfig, EvolutionRunResult, StopReason, run_evolution

__all__ = [
	'Logger', 'create_logger',
	'ProgressTracker', 'PopulationTracker', 'ProgressStats',
	'GenomeLayout',
	'EpisodeOutcome', 'episode_fitness',
	'CMAESConfig', 'CMAESStrategy',
	'EvaluatedGenome', 'EvolutionResult', 'EvolutionStrategyBase',
	'EarlyStoppingConfig', 'EvolutionRunResult', 'StopReason', 'run_evolution',
]
