"""
CMA-ES (Covariance Matrix Adaptation Evolution Strategy).

Usage:
	from evosnake.strategies.cmaes import CMAESConfig, CMAESStrategy

	strategy = CMAESStrategy(CMAESConfig(dimension=5, population_size=10), seed=7)
	genomes = strategy.sample_population()
	result = strategy.evolve([EvaluatedGenome(g, fitness_fn(g)) for g in genomes])
"""

from evosnake.strategies.cmaes.config import (
	CMAESConfig,
	default_population_size,
	MIN_EIGENVALUE,
	MIN_SIGMA,
	MAX_SIGMA,
	MAX_JACOBI_SWEEPS,
	JACOBI_EPSILON,
)
from evosnake.strategies.cmaes.hyperparameters import (
	CMAESHyperparameters,
	build_recombination_weights,
	derive_hyperparameters,
	effective_sample_size,
	expected_gaussian_norm,
)
from evosnake.strategies.cmaes.eigen import EigenSystem, JacobiEigensolver, check_orthonormal
from evosnake.strategies.cmaes.sampler import GaussianSource, PopulationSampler, Sample
from evosnake.strategies.cmaes.optimizer import CMAESStrategy


__all__ = [
	# Config
	'CMAESConfig',
	'default_population_size',
	'MIN_EIGENVALUE',
	'MIN_SIGMA',
	'MAX_SIGMA',
	'MAX_JACOBI_SWEEPS',
	'JACOBI_EPSILON',
	# Hyperparameters
	'CMAESHyperparameters',
	'build_recombination_weights',
	'derive_hyperparameters',
	'effective_sample_size',
	'expected_gaussian_norm',
	# Eigensolver
	'EigenSystem',
	'JacobiEigensolver',
	'check_orthonormal',
	# Sampling
	'GaussianSource',
	'PopulationSampler',
	'Sample',
	# Strategy
	'CMAESStrategy',
]
