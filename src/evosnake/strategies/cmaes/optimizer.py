"""
CMA-ES strategy for evolving snake-controller genomes.

Maintains a multivariate Gaussian search distribution (mean, covariance,
step size) and adapts it every generation from the ranked population:
- Weighted recombination of the best mu candidates moves the mean
- The conjugate evolution path (ps) drives step-size control
- The covariance path (pc) gives the rank-one update
- The weighted outer products of the best steps give the rank-mu update

Fitness is maximized and supplied by the caller.
"""

import math
import random
from typing import Callable, Optional, Sequence

import torch
from torch import Tensor

from evosnake.strategies.base import E, EvolutionResult, EvolutionStrategyBase, TRACE
from evosnake.strategies.cmaes.config import CMAESConfig
from evosnake.strategies.cmaes.eigen import EigenSystem, JacobiEigensolver, check_orthonormal
from evosnake.strategies.cmaes.hyperparameters import CMAESHyperparameters, derive_hyperparameters
from evosnake.strategies.cmaes.sampler import GaussianSource, PopulationSampler, Sample

# Minimum expected path norm in the hsig test
HSIG_NORM_FLOOR = 1e-12


def _rank_key(fitness: float) -> float:
	# NaN fitness (crashed episode) ranks below everything
	return -math.inf if math.isnan(fitness) else fitness


class CMAESStrategy(EvolutionStrategyBase):
	"""
	Covariance Matrix Adaptation Evolution Strategy.

	Usage:
		strategy = CMAESStrategy(CMAESConfig(dimension=layout.gene_count), seed=42)

		genomes = strategy.sample_population()
		while training:
			evaluated = [EvaluatedGenome(g, play_episode(g)) for g in genomes]
			result = strategy.evolve(evaluated)
			genomes = result.next_genomes

	evolve() resamples internally, so after the first sample_population()
	each generation is exactly one evolve() call.
	"""

	def __init__(
		self,
		config: CMAESConfig,
		seed: Optional[int] = None,
		verbose: bool = False,
		logger: Optional[Callable[[str], None]] = None,
	):
		super().__init__(seed=seed, verbose=verbose, logger=logger)
		self._config = config
		self._hp = derive_hyperparameters(config.dimension, config.population_size)
		self._solver = JacobiEigensolver(
			max_sweeps=config.max_jacobi_sweeps,
			epsilon=config.jacobi_epsilon,
		)
		self._rng = random.Random(seed)
		self._source = GaussianSource(self._rng)
		self._sampler = PopulationSampler(self._source)

		n = config.dimension
		self._generation = 0
		self._sigma = config.initial_sigma
		self._mean = torch.zeros(n, dtype=torch.float64)
		self._covariance = torch.eye(n, dtype=torch.float64)
		self._eigen = EigenSystem.identity(n)
		self._ps = torch.zeros(n, dtype=torch.float64)
		self._pc = torch.zeros(n, dtype=torch.float64)
		self._samples: list[Sample] = []
		self._hsig = 1.0

		self.reset()
		self._log.debug(f"[CMA-ES] {self._hp}")

	@property
	def name(self) -> str:
		return "CMA-ES"

	@property
	def config(self) -> CMAESConfig:
		return self._config

	@property
	def hyperparameters(self) -> CMAESHyperparameters:
		return self._hp

	@property
	def dimension(self) -> int:
		return self._config.dimension

	@property
	def population_size(self) -> int:
		return self._hp.population_size

	@property
	def generation(self) -> int:
		return self._generation

	@property
	def sigma(self) -> float:
		return self._sigma

	@property
	def mean(self) -> Tensor:
		return self._mean.clone()

	@property
	def covariance(self) -> Tensor:
		return self._covariance.clone()

	@property
	def eigen_values(self) -> Tensor:
		return self._eigen.values.clone()

	@property
	def eigen_vectors(self) -> Tensor:
		return self._eigen.vectors.clone()

	@property
	def eigen_system(self) -> EigenSystem:
		return self._eigen

	@property
	def evolution_paths(self) -> tuple[Tensor, Tensor]:
		"""(ps, pc) copies."""
		return self._ps.clone(), self._pc.clone()

	@property
	def has_samples(self) -> bool:
		return len(self._samples) == self._hp.population_size

	@property
	def samples(self) -> list[Sample]:
		"""Cached samples of the latest generation, in sampling order."""
		return list(self._samples)

	@property
	def hsig(self) -> float:
		"""Heaviside gate of the last update (1.0 before the first one)."""
		return self._hsig

	def reset(self) -> None:
		"""Start an independent run: random mean, identity covariance, initial sigma."""
		n = self._config.dimension
		r = self._config.initial_mean_range

		self._generation = 0
		self._sigma = self._config.initial_sigma
		self._source.clear_spare()
		self._samples = []
		self._hsig = 1.0

		self._mean = torch.tensor(
			[self._source.uniform(-r, r) for _ in range(n)], dtype=torch.float64
		)
		self._ps = torch.zeros(n, dtype=torch.float64)
		self._pc = torch.zeros(n, dtype=torch.float64)
		self._covariance = torch.eye(n, dtype=torch.float64)
		self._eigen = EigenSystem.identity(n)

	def sample_population(self) -> list[Tensor]:
		"""Draw a new generation, replacing the cached samples."""
		self._samples = self._sampler.sample(
			self._hp.population_size, self._mean, self._sigma, self._eigen
		)
		return [sample.genome for sample in self._samples]

	def evolve(self, population: Sequence[E]) -> EvolutionResult[E]:
		"""
		Update the search distribution from the evaluated generation.

		Args:
			population: Exactly population_size entries with a `fitness`
				attribute, ordered like the last sampled genomes

		Returns:
			EvolutionResult with the best entry and the next generation

		Raises:
			ValueError: population has the wrong length
			RuntimeError: no generation has been sampled since reset()
		"""
		hp = self._hp
		if len(population) != hp.population_size:
			raise ValueError(
				f"CMA-ES expected population of {hp.population_size}, got {len(population)}"
			)
		if not self.has_samples:
			raise RuntimeError(
				"CMA-ES population not initialized. Call sample_population() before evolve()."
			)

		n = hp.dimension
		ranked = sorted(
			range(hp.population_size),
			key=lambda i: _rank_key(population[i].fitness),
			reverse=True,
		)
		parents = [self._samples[i] for i in ranked[:hp.mu]]
		weights = hp.weights

		# Recombination
		parent_z = torch.stack([s.normalized_step for s in parents])
		parent_y = torch.stack([s.step for s in parents])
		weighted_z = weights @ parent_z
		weighted_y = weights @ parent_y
		self._mean = self._mean + self._sigma * weighted_y

		# Conjugate evolution path
		transformed_zw = self._eigen.rotate(weighted_z)
		ps_factor = math.sqrt(hp.cs * (2 - hp.cs) * hp.mueff)
		self._ps = (1 - hp.cs) * self._ps + ps_factor * transformed_zw

		# Heaviside gate: stall pc while ps is still long from the start-up phase
		ps_norm = float(torch.linalg.vector_norm(self._ps))
		expected_norm = math.sqrt(1 - (1 - hp.cs) ** (2 * (self._generation + 1))) * hp.chi_n
		hsig = 1.0 if ps_norm / max(HSIG_NORM_FLOOR, expected_norm) < 1.4 + 2 / (n + 1) else 0.0
		self._hsig = hsig

		# Covariance evolution path
		pc_factor = math.sqrt(hp.cc * (2 - hp.cc) * hp.mueff)
		self._pc = (1 - hp.cc) * self._pc + hsig * pc_factor * weighted_y

		# Rank-mu term: sum_r w_r y_r y_r^T
		rank_mu = (parent_y * weights.unsqueeze(1)).T @ parent_y

		decay = 1 - hp.c1 - hp.cmu + (1 - hsig) * hp.c1 * hp.cc * (2 - hp.cc)
		self._covariance = (
			decay * self._covariance
			+ hp.c1 * torch.outer(self._pc, self._pc)
			+ hp.cmu * rank_mu
		)
		self._symmetrize_covariance()

		sigma_scale = math.exp((hp.cs / hp.damps) * (ps_norm / hp.chi_n - 1))
		self._sigma = min(
			self._config.max_sigma,
			max(self._config.min_sigma, self._sigma * sigma_scale),
		)

		self._generation += 1
		self._update_eigen_decomposition()

		best = population[ranked[0]]
		self._log.debug(
			f"[CMA-ES] Gen {self._generation}: best={best.fitness:.4f}, sigma={self._sigma:.5f}, "
			f"|ps|={ps_norm:.4f}, hsig={int(hsig)}, "
			f"eig=[{float(self._eigen.values[-1]):.3e}, {float(self._eigen.values[0]):.3e}], "
			f"cond={self._eigen.condition_number():.3e}"
		)
		if self._log.is_enabled_for(TRACE):
			for rank, index in enumerate(ranked[:hp.mu]):
				self._log.trace(
					f"  rank {rank}: candidate {index}, fitness={population[index].fitness:.4f}, "
					f"weight={float(weights[rank]):.4f}"
				)

		return EvolutionResult(best=best, next_genomes=self.sample_population())

	def _symmetrize_covariance(self) -> None:
		"""Average (i, j)/(j, i) pairs and floor the diagonal."""
		c = 0.5 * (self._covariance + self._covariance.T)
		c.diagonal().clamp_(min=self._config.min_eigenvalue)
		self._covariance = c

	def _update_eigen_decomposition(self) -> None:
		"""Refresh B and D, then rebuild C from them so sampling and updates agree."""
		self._eigen = self._solver.refresh(self._covariance, self._config.min_eigenvalue)
		if not self._eigen.converged:
			self._log.debug(
				f"[CMA-ES] Jacobi did not converge in {self._solver.max_sweeps} sweeps, "
				f"using the approximation (orthonormal={check_orthonormal(self._eigen.vectors)})"
			)
		self._covariance = self._eigen.reconstruct()

	def __repr__(self) -> str:
		return (
			f"CMAESStrategy(n={self.dimension}, lambda={self.population_size}, "
			f"sigma={self._sigma:.4f}, generation={self._generation}, seed={self._seed})"
		)
