"""
Progress tracking for generational optimizers.

Records per-generation fitness statistics and logs them in one consistent
format, whichever strategy produced the population.
"""

import math
from typing import Callable, List, Optional, Protocol
from dataclasses import dataclass


class HasFitness(Protocol):
	"""Protocol for objects that carry an externally computed fitness."""
	@property
	def fitness(self) -> float: ...


@dataclass
class ProgressStats:
	"""Statistics for a single generation."""
	generation: int
	best_global: float
	best_current: float
	avg_current: float
	worst_current: float
	improved: bool = False


class ProgressTracker:
	"""
	Tracks optimization progress and logs standardized metrics.

	Usage:
		tracker = ProgressTracker(logger=log, minimize=False, prefix="[CMA-ES]")

		for gen in range(generations):
			fitness_values = [evaluate(g) for g in genomes]
			tracker.tick(fitness_values, generation=gen)

		tracker.log_summary()

	Logged lines look like:
		[CMA-ES] [Gen 3/50] best=4.2100, current=3.9800, avg=1.0412 *
	"""

	def __init__(
		self,
		logger: Optional[Callable[[str], None]] = None,
		minimize: bool = False,
		prefix: str = "",
		total_generations: Optional[int] = None,
	):
		"""
		Args:
			logger: Callable that logs messages (e.g., Logger instance, print)
			minimize: If True, lower fitness is better. Game fitness is maximized.
			prefix: Prefix for log messages (e.g., "[CMA-ES]")
			total_generations: Total expected generations (for progress display)
		"""
		self._log = logger or print
		self._minimize = minimize
		self._prefix = prefix + " " if prefix else ""
		self._total = total_generations

		self._best_global: Optional[float] = None
		self._best_generation: int = 0
		self._history: List[ProgressStats] = []

	def _better(self, candidate: float, reference: float) -> bool:
		return candidate < reference if self._minimize else candidate > reference

	def tick(
		self,
		fitness_values: List[float],
		generation: Optional[int] = None,
		log: bool = True,
	) -> ProgressStats:
		"""
		Record one generation of fitness values.

		NaN values (crashed evaluations) are left out of every statistic.

		Raises:
			ValueError: if fitness_values is empty or contains no finite number
		"""
		if not fitness_values:
			raise ValueError("fitness_values cannot be empty")
		values = [f for f in fitness_values if not math.isnan(f)]
		if not values:
			raise ValueError("fitness_values contains no comparable value")

		gen = generation if generation is not None else len(self._history)

		if self._minimize:
			best_current, worst_current = min(values), max(values)
		else:
			best_current, worst_current = max(values), min(values)
		avg_current = sum(values) / len(values)

		improved = False
		if self._best_global is None or self._better(best_current, self._best_global):
			self._best_global = best_current
			self._best_generation = gen
			improved = True

		stats = ProgressStats(
			generation=gen,
			best_global=self._best_global,
			best_current=best_current,
			avg_current=avg_current,
			worst_current=worst_current,
			improved=improved,
		)
		self._history.append(stats)

		if log:
			self._log_tick(stats)

		return stats

	def _log_tick(self, stats: ProgressStats) -> None:
		gen_str = f"Gen {stats.generation + 1}"
		if self._total:
			gen_str = f"Gen {stats.generation + 1}/{self._total}"

		improved_str = " *" if stats.improved else ""

		self._log(
			f"{self._prefix}[{gen_str}] "
			f"best={stats.best_global:.4f}, "
			f"current={stats.best_current:.4f}, "
			f"avg={stats.avg_current:.4f}{improved_str}"
		)

	@property
	def best_global(self) -> Optional[float]:
		"""Best fitness value seen so far."""
		return self._best_global

	@property
	def best_generation(self) -> int:
		"""Generation where the best fitness was found."""
		return self._best_generation

	@property
	def history(self) -> List[ProgressStats]:
		return self._history.copy()

	@property
	def generations_run(self) -> int:
		return len(self._history)

	def summary(self) -> dict:
		"""Get summary statistics of the run so far."""
		if not self._history:
			return {"generations": 0}

		first = self._history[0]
		last = self._history[-1]

		# Game fitness can be zero or negative, so report an absolute gain
		if self._minimize:
			gain = first.best_current - last.best_global
		else:
			gain = last.best_global - first.best_current

		return {
			"generations": len(self._history),
			"initial_fitness": first.best_current,
			"final_fitness": last.best_global,
			"gain": gain,
			"best_generation": self._best_generation,
			"improvements": sum(1 for s in self._history if s.improved),
		}

	def log_summary(self) -> None:
		s = self.summary()
		if s["generations"] == 0:
			self._log(f"{self._prefix}No generations completed")
			return

		self._log(f"{self._prefix}Summary:")
		self._log(f"  Generations: {s['generations']}")
		self._log(f"  Initial: {s['initial_fitness']:.4f}")
		self._log(f"  Final: {s['final_fitness']:.4f}")
		self._log(f"  Gain: {s['gain']:+.4f}")
		self._log(f"  Best at generation: {s['best_generation'] + 1}")
		self._log(f"  Total improvements: {s['improvements']}")


class PopulationTracker(ProgressTracker):
	"""
	Tracker for population-based strategies.

	Adds per-individual evaluation logging for slow fitness functions
	(one full game episode per genome).
	"""

	def __init__(self, *args, log_individuals: bool = False, **kwargs):
		super().__init__(*args, **kwargs)
		self._log_individuals = log_individuals
		self._current_eval_count = 0
		self._current_eval_total = 0

	def start_population_eval(self, population_size: int, phase: str = "Evaluating") -> None:
		self._current_eval_count = 0
		self._current_eval_total = population_size
		if self._log_individuals:
			self._log(f"{self._prefix}{phase} {population_size} genomes...")

	def record_individual(self, fitness: float) -> None:
		self._current_eval_count += 1
		if self._log_individuals:
			self._log(
				f"  [{self._current_eval_count}/{self._current_eval_total}] "
				f"fitness={fitness:.4f}"
			)

	@property
	def evaluated(self) -> int:
		"""Number of genomes evaluated in the current generation."""
		return self._current_eval_count
