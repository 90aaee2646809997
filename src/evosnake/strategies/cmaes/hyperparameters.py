"""
Closed-form CMA-ES constants derived from the dimension and population size.

Standard settings from Hansen's CMA-ES tutorial:
- Log-rank recombination weights over the best half of the population
- Learning rates for the two evolution paths (cc, cs)
- Rank-one and rank-mu covariance learning rates (c1, cmu)
- Step-size damping and the expected norm of N(0, I)
"""

import math
from dataclasses import dataclass

import torch
from torch import Tensor


def build_recombination_weights(mu: int) -> Tensor:
	"""
	Log-rank recombination weights w[i] = ln(mu + 0.5) - ln(i + 1).

	Returns:
		float64 tensor of length mu, strictly descending, positive, summing to 1
	"""
	if mu < 1:
		raise ValueError(f"mu must be >= 1, got {mu}")
	ranks = torch.arange(1, mu + 1, dtype=torch.float64)
	weights = math.log(mu + 0.5) - torch.log(ranks)
	return weights / weights.sum()


def effective_sample_size(weights: Tensor) -> float:
	"""mueff = 1 / sum(w^2); lies in [1, mu] for normalized positive weights."""
	return 1.0 / float((weights * weights).sum())


def expected_gaussian_norm(dimension: int) -> float:
	"""Approximation of E||N(0, I_n)||."""
	n = dimension
	return math.sqrt(n) * (1 - 1 / (4 * n) + 1 / (21 * n * n))


@dataclass(frozen=True)
class CMAESHyperparameters:
	"""Constants fixed for the lifetime of a CMA-ES instance."""
	dimension: int
	population_size: int
	mu: int
	weights: Tensor
	mueff: float
	cc: float
	cs: float
	c1: float
	cmu: float
	damps: float
	chi_n: float

	def __repr__(self) -> str:
		return (
			f"CMAESHyperparameters(n={self.dimension}, lambda={self.population_size}, "
			f"mu={self.mu}, mueff={self.mueff:.3f}, cc={self.cc:.4f}, cs={self.cs:.4f}, "
			f"c1={self.c1:.5f}, cmu={self.cmu:.5f}, damps={self.damps:.4f}, chi_n={self.chi_n:.4f})"
		)


def derive_hyperparameters(dimension: int, population_size: int) -> CMAESHyperparameters:
	"""
	Compute all CMA-ES constants for problem dimension n and population lambda.

	Raises:
		ValueError: if dimension < 1 or population_size < 2
	"""
	if dimension < 1:
		raise ValueError(f"dimension must be >= 1, got {dimension}")
	if population_size < 2:
		raise ValueError(f"population_size must be >= 2, got {population_size}")

	n = dimension
	mu = max(1, population_size // 2)
	weights = build_recombination_weights(mu)
	mueff = effective_sample_size(weights)

	cc = (4 + mueff / n) / (n + 4 + 2 * mueff / n)
	cs = (mueff + 2) / (n + mueff + 5)
	c1 = 2 / ((n + 1.3) ** 2 + mueff)
	cmu = min(1 - c1, 2 * (mueff - 2 + 1 / mueff) / ((n + 2) ** 2 + mueff))
	damps = 1 + 2 * max(0.0, math.sqrt((mueff - 1) / (n + 1)) - 1) + cs

	return CMAESHyperparameters(
		dimension=n,
		population_size=population_size,
		mu=mu,
		weights=weights,
		mueff=mueff,
		cc=cc,
		cs=cs,
		c1=c1,
		cmu=cmu,
		damps=damps,
		chi_n=expected_gaussian_norm(n),
	)
