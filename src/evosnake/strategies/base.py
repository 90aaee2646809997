"""
Base classes for generational evolution strategies.

Every strategy follows the same cycle, driven from outside:

	genomes = strategy.sample_population()
	evaluated = [EvaluatedGenome(g, play_episode(g)) for g in genomes]
	result = strategy.evolve(evaluated)
	genomes = result.next_genomes

Fitness is computed by the caller (one game episode per genome) and is
maximized. Strategies never evaluate genomes themselves.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from torch import Tensor

from evosnake.progress import HasFitness

# Custom TRACE level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

E = TypeVar('E', bound=HasFitness)


class OptimizationLogger:
	"""
	Logger wrapper with TRACE, DEBUG, INFO, WARNING and ERROR levels.

	TRACE: per-candidate numbers (very verbose)
	DEBUG: per-generation distribution state (sigma, hsig, eigen range)
	INFO: run progress and phase changes
	ERROR: errors and warnings

	When a file_logger callable is given (e.g. a Logger instance) messages at
	DEBUG and above are forwarded to it instead of the standard handlers.
	"""

	def __init__(
		self,
		name: str,
		level: int = logging.INFO,
		file_logger: Optional[Callable[[str], None]] = None,
	):
		self._logger = logging.getLogger(f"evosnake.optimizer.{name}")
		if not file_logger and not self._logger.handlers:
			handler = logging.StreamHandler()
			handler.setFormatter(logging.Formatter("%(message)s"))
			self._logger.addHandler(handler)
		self._logger.setLevel(level)
		self._name = name
		self._file_logger = file_logger

	@property
	def name(self) -> str:
		return self._name

	def is_enabled_for(self, level: int) -> bool:
		return self._logger.isEnabledFor(level)

	def _emit(self, level: int, msg: str) -> None:
		if not self._logger.isEnabledFor(level):
			return
		if self._file_logger:
			self._file_logger(msg)
		else:
			self._logger.log(level, msg)

	def trace(self, msg: str) -> None:
		self._emit(TRACE, msg)

	def debug(self, msg: str) -> None:
		self._emit(logging.DEBUG, msg)

	def info(self, msg: str) -> None:
		self._emit(logging.INFO, msg)

	def warning(self, msg: str) -> None:
		self._emit(logging.WARNING, msg)

	def error(self, msg: str) -> None:
		self._emit(logging.ERROR, msg)

	def __call__(self, msg: str) -> None:
		"""Default: INFO level (print-style logging)."""
		self.info(msg)

	def set_level(self, level: int) -> None:
		self._logger.setLevel(level)


@dataclass
class EvaluatedGenome:
	"""A genome together with the fitness its episode scored."""
	genome: Tensor
	fitness: float
	metadata: dict[str, Any] = field(default_factory=dict)

	def __repr__(self) -> str:
		return f"EvaluatedGenome(len={self.genome.numel()}, fitness={self.fitness:.4f})"


@dataclass
class EvolutionResult(Generic[E]):
	"""
	Outcome of one evolve() call.

	Attributes:
		best: The top-ranked entry of the evaluated population (same object
			the caller passed in)
		next_genomes: The freshly sampled population for the next generation
	"""
	best: E
	next_genomes: list[Tensor]

	def __repr__(self) -> str:
		return (
			f"EvolutionResult(best_fitness={self.best.fitness:.4f}, "
			f"next_genomes={len(self.next_genomes)})"
		)


class EvolutionStrategyBase(ABC):
	"""
	Abstract base class for generational evolution strategies.

	Subclasses must implement:
	- name property
	- reset(): start an independent run
	- sample_population(): propose the current generation's genomes
	- evolve(): consume the evaluated generation and propose the next one
	"""

	def __init__(
		self,
		seed: Optional[int] = None,
		verbose: bool = False,
		logger: Optional[Callable[[str], None]] = None,
	):
		self._seed = seed
		self._verbose = verbose
		self._log = OptimizationLogger(
			self.name,
			level=logging.DEBUG if verbose else logging.INFO,
			file_logger=logger,
		)

	@property
	def seed(self) -> Optional[int]:
		return self._seed

	@property
	def verbose(self) -> bool:
		return self._verbose

	@property
	@abstractmethod
	def name(self) -> str:
		"""Strategy name for logging."""
		...

	@property
	@abstractmethod
	def population_size(self) -> int:
		...

	@abstractmethod
	def reset(self) -> None:
		"""Discard all search state and start a new, independent run."""
		...

	@abstractmethod
	def sample_population(self) -> list[Tensor]:
		"""Return the genomes to evaluate this generation."""
		...

	@abstractmethod
	def evolve(self, population: Sequence[E]) -> EvolutionResult[E]:
		"""
		Update the strategy from an evaluated population.

		Args:
			population: One entry per genome of the last sample_population()
				call, in the same order, each exposing a `fitness` attribute

		Returns:
			EvolutionResult with the best entry and the next genomes
		"""
		...

	def __repr__(self) -> str:
		return f"{self.__class__.__name__}(seed={self._seed}, verbose={self._verbose})"
