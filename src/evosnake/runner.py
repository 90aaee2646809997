"""
Generation driver: sample -> evaluate -> evolve, one generation at a time.

The driver owns the fitness evaluator (one full game episode per genome),
feeds each generation to the strategy in sampling order, and keeps the best
genome seen over the whole run.
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Callable, Optional

from torch import Tensor

from evosnake.progress import PopulationTracker
from evosnake.strategies.base import EvaluatedGenome, EvolutionStrategyBase


class StopReason(IntEnum):
	"""Why a run ended."""
	MAX_GENERATIONS = auto()  # Ran every requested generation
	CONVERGENCE = auto()  # No improvement for patience checks
	TARGET_REACHED = auto()  # Best fitness reached the target


@dataclass
class EarlyStoppingConfig:
	"""
	Early stopping for evolution runs.

	- patience: consecutive failed checks before stopping
	- check_interval: check every N generations
	- min_improvement: best fitness must grow by more than this per check
	- target_fitness: stop as soon as the best fitness reaches it
	"""
	patience: int = 5
	check_interval: int = 5
	min_improvement: float = 0.0
	target_fitness: Optional[float] = None

	def __post_init__(self):
		if self.patience < 1:
			raise ValueError(f"patience must be >= 1, got {self.patience}")
		if self.check_interval < 1:
			raise ValueError(f"check_interval must be >= 1, got {self.check_interval}")


@dataclass
class EvolutionRunResult:
	"""
	Result of a full run.

	Attributes:
		best_genome: Best genome evaluated during the run (None if every
			evaluation returned NaN)
		best_fitness: Its fitness (-inf if none)
		generations_run: Generations evaluated and evolved
		method_name: Strategy name
		history: (generation, best_fitness_so_far) after each generation
		sigma_history: Step size after each generation, for strategies with one
		stop_reason: Why the run ended
	"""
	best_genome: Optional[Tensor]
	best_fitness: float
	generations_run: int
	method_name: str
	history: list[tuple[int, float]] = field(default_factory=list)
	sigma_history: list[float] = field(default_factory=list)
	stop_reason: StopReason = StopReason.MAX_GENERATIONS

	@property
	def early_stopped(self) -> bool:
		return self.stop_reason != StopReason.MAX_GENERATIONS

	def __repr__(self) -> str:
		return (
			f"EvolutionRunResult(method={self.method_name}, best={self.best_fitness:.4f}, "
			f"generations={self.generations_run}, stop={self.stop_reason.name})"
		)


def run_evolution(
	strategy: EvolutionStrategyBase,
	evaluate_fn: Callable[[Tensor], float],
	generations: int,
	early_stopping: Optional[EarlyStoppingConfig] = None,
	tracker: Optional[PopulationTracker] = None,
	logger: Optional[Callable[[str], None]] = None,
) -> EvolutionRunResult:
	"""
	Run a strategy for up to `generations` generations.

	Args:
		strategy: Any EvolutionStrategyBase; it is not reset, so a run can
			continue a previous one
		evaluate_fn: Plays one episode with a genome and returns its fitness
		generations: Maximum number of generations
		early_stopping: Optional patience / target settings
		tracker: Progress tracker (default: a maximizing PopulationTracker
			logging to `logger`)
		logger: Callable for run messages (default: print)

	Returns:
		EvolutionRunResult
	"""
	if generations < 1:
		raise ValueError(f"generations must be >= 1, got {generations}")

	log = logger or print
	tracker = tracker or PopulationTracker(
		logger=log, minimize=False, prefix=f"[{strategy.name}]", total_generations=generations,
	)

	best_genome: Optional[Tensor] = None
	best_fitness = -math.inf
	history: list[tuple[int, float]] = []
	sigma_history: list[float] = []
	stop_reason = StopReason.MAX_GENERATIONS

	patience_counter = 0
	prev_best_for_patience = best_fitness

	log(f"[{strategy.name}] Starting run: population={strategy.population_size}, generations={generations}")

	genomes = strategy.sample_population()
	generation = 0
	for generation in range(generations):
		tracker.start_population_eval(len(genomes))
		evaluated = []
		for genome in genomes:
			fitness = float(evaluate_fn(genome))
			tracker.record_individual(fitness)
			evaluated.append(EvaluatedGenome(genome=genome, fitness=fitness))

		fitness_values = [e.fitness for e in evaluated]
		if all(math.isnan(f) for f in fitness_values):
			# Nothing comparable to track; the strategy still adapts (NaN ranks last)
			log(f"[{strategy.name}] Gen {generation + 1}: every evaluation returned NaN")
		else:
			tracker.tick(fitness_values, generation=generation)
		result = strategy.evolve(evaluated)

		if not math.isnan(result.best.fitness) and result.best.fitness > best_fitness:
			best_fitness = result.best.fitness
			best_genome = result.best.genome.clone()

		history.append((generation + 1, best_fitness))
		sigma = getattr(strategy, "sigma", None)
		if sigma is not None:
			sigma_history.append(float(sigma))

		genomes = result.next_genomes

		if early_stopping is None:
			continue

		if early_stopping.target_fitness is not None and best_fitness >= early_stopping.target_fitness:
			log(f"[{strategy.name}] Target fitness {early_stopping.target_fitness:.4f} reached at gen {generation + 1}")
			stop_reason = StopReason.TARGET_REACHED
			break

		if (generation + 1) % early_stopping.check_interval == 0:
			gain = best_fitness - prev_best_for_patience
			if gain > early_stopping.min_improvement:
				patience_counter = 0
				prev_best_for_patience = best_fitness
			else:
				patience_counter += 1

			if patience_counter >= early_stopping.patience:
				log(
					f"[{strategy.name}] Early stop at gen {generation + 1}: no gain > "
					f"{early_stopping.min_improvement} for {patience_counter * early_stopping.check_interval} generations"
				)
				stop_reason = StopReason.CONVERGENCE
				break

	tracker.log_summary()

	return EvolutionRunResult(
		best_genome=best_genome,
		best_fitness=best_fitness,
		generations_run=generation + 1,
		method_name=strategy.name,
		history=history,
		sigma_history=sigma_history,
		stop_reason=stop_reason,
	)
