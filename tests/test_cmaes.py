#!/usr/bin/env python3
"""
Unit tests for the CMA-ES strategy.

Tests:
- Sampling shape, distinctness and determinism under a fixed seed
- evolve(): best selection, mean recombination, covariance symmetry,
  eigen-system consistency, sigma bounds
- Update equations against a hand computation, including a closed hsig gate
- Precondition failures leave the search state untouched
- Step size shrinks on a sharp single optimum

Run with:
	pytest tests/test_cmaes.py
"""

import logging
import math
import random

import pytest
import torch

from evosnake.strategies import EvaluatedGenome
from evosnake.strategies.cmaes import (
	CMAESConfig,
	CMAESStrategy,
	GaussianSource,
	check_orthonormal,
)


def make_strategy(dimension: int = 5, population_size: int = 10, seed: int = 42, **kwargs) -> CMAESStrategy:
	config = CMAESConfig(dimension=dimension, population_size=population_size, **kwargs)
	return CMAESStrategy(config, seed=seed)


def sphere(target: torch.Tensor):
	"""Sharp single optimum at target (maximized)."""
	def fitness(genome: torch.Tensor) -> float:
		return -float(((genome.to(torch.float64) - target) ** 2).sum())
	return fitness


def evaluate(genomes, fitness_fn) -> list[EvaluatedGenome]:
	return [EvaluatedGenome(genome=g, fitness=fitness_fn(g)) for g in genomes]


def test_gaussian_source_spare():
	"""Box-Muller yields pairs: the second value is cached for the next call."""
	source = GaussianSource(random.Random(0))
	assert not source.has_spare

	source.normal()
	assert source.has_spare
	source.normal()
	assert not source.has_spare

	source.normal()
	source.clear_spare()
	assert not source.has_spare


def test_gaussian_source_moments():
	source = GaussianSource(random.Random(123))
	draws = source.normal_vector(20000)
	assert abs(float(draws.mean())) < 0.05
	assert abs(float(draws.std()) - 1.0) < 0.05


def test_initial_state_after_reset():
	"""reset(): identity covariance, zero paths, initial sigma, mean in [-1, 1]."""
	strategy = make_strategy()

	assert strategy.generation == 0
	assert strategy.sigma == strategy.config.initial_sigma
	assert torch.equal(strategy.covariance, torch.eye(5, dtype=torch.float64))
	assert torch.equal(strategy.eigen_vectors, torch.eye(5, dtype=torch.float64))
	assert torch.equal(strategy.eigen_values, torch.ones(5, dtype=torch.float64))
	ps, pc = strategy.evolution_paths
	assert torch.equal(ps, torch.zeros(5, dtype=torch.float64))
	assert torch.equal(pc, torch.zeros(5, dtype=torch.float64))
	assert bool((strategy.mean.abs() <= 1.0).all())
	assert not strategy.has_samples


def test_scenario_a_sample_population():
	"""n=5, lambda=10: ten distinct length-5 genomes."""
	strategy = make_strategy()
	genomes = strategy.sample_population()

	assert len(genomes) == 10
	for genome in genomes:
		assert genome.shape == (5,)
		assert genome.dtype == torch.float32
	distinct = {tuple(g.tolist()) for g in genomes}
	assert len(distinct) == 10

	print("PASS: Scenario A - 10 distinct genomes of length 5")


def test_sampling_is_deterministic_for_a_seed():
	"""Identical seed and state give identical populations; other seeds differ."""
	a = make_strategy(seed=7)
	b = make_strategy(seed=7)
	c = make_strategy(seed=8)

	pop_a = a.sample_population()
	pop_b = b.sample_population()
	pop_c = c.sample_population()

	assert all(torch.equal(x, y) for x, y in zip(pop_a, pop_b))
	assert not all(torch.equal(x, y) for x, y in zip(pop_a, pop_c))

	# Whole generations stay in lockstep
	fitness_fn = sphere(torch.zeros(5, dtype=torch.float64))
	next_a = a.evolve(evaluate(pop_a, fitness_fn)).next_genomes
	next_b = b.evolve(evaluate(pop_b, fitness_fn)).next_genomes
	assert all(torch.equal(x, y) for x, y in zip(next_a, next_b))
	assert a.sigma == b.sigma


def test_reset_starts_independent_run():
	strategy = make_strategy(seed=3)
	genomes = strategy.sample_population()
	strategy.evolve(evaluate(genomes, sphere(torch.zeros(5, dtype=torch.float64))))
	assert strategy.generation == 1

	strategy.reset()

	assert strategy.generation == 0
	assert strategy.sigma == strategy.config.initial_sigma
	assert torch.equal(strategy.covariance, torch.eye(5, dtype=torch.float64))
	assert not strategy.has_samples
	with pytest.raises(RuntimeError):
		strategy.evolve([EvaluatedGenome(torch.zeros(5), 0.0) for _ in range(10)])


def test_scenario_b_best_and_next_generation():
	"""Fitness [10..1] in population order: best is the fitness-10 entry."""
	strategy = make_strategy()
	genomes = strategy.sample_population()
	population = [
		EvaluatedGenome(genome=g, fitness=float(10 - i)) for i, g in enumerate(genomes)
	]

	result = strategy.evolve(population)

	assert result.best is population[0]
	assert result.best.fitness == 10.0
	assert len(result.next_genomes) == 10
	assert all(g.shape == (5,) for g in result.next_genomes)
	assert strategy.generation == 1

	print("PASS: Scenario B - best selected, next generation sampled")


def test_best_is_found_regardless_of_position():
	strategy = make_strategy()
	genomes = strategy.sample_population()
	fitness = [3.0, 1.0, 4.0, 1.5, 9.0, 2.6, 5.0, 3.5, 8.0, 7.0]
	population = [EvaluatedGenome(g, f) for g, f in zip(genomes, fitness)]

	result = strategy.evolve(population)
	assert result.best is population[4]


def test_nan_fitness_ranks_last():
	strategy = make_strategy()
	genomes = strategy.sample_population()
	fitness = [float("nan")] + [float(i) for i in range(9)]
	population = [EvaluatedGenome(g, f) for g, f in zip(genomes, fitness)]

	result = strategy.evolve(population)
	assert result.best is population[9]


def test_mean_moves_to_weighted_parents():
	"""New mean = sum of w_r * genome_r over the best mu candidates."""
	strategy = make_strategy()
	genomes = strategy.sample_population()
	fitness_fn = sphere(torch.zeros(5, dtype=torch.float64))
	population = evaluate(genomes, fitness_fn)

	ranked = sorted(range(10), key=lambda i: population[i].fitness, reverse=True)
	weights = strategy.hyperparameters.weights
	parents = torch.stack([genomes[i].to(torch.float64) for i in ranked[:strategy.hyperparameters.mu]])
	expected_mean = weights @ parents

	strategy.evolve(population)

	assert torch.allclose(strategy.mean, expected_mean, atol=1e-5)


def test_state_invariants_over_generations():
	"""Symmetric covariance, floored orthonormal eigen-system, sigma in bounds."""
	strategy = make_strategy(dimension=6, population_size=12, seed=5)
	config = strategy.config
	fitness_fn = sphere(torch.full((6,), 0.3, dtype=torch.float64))

	genomes = strategy.sample_population()
	for _ in range(30):
		result = strategy.evolve(evaluate(genomes, fitness_fn))
		genomes = result.next_genomes

		covariance = strategy.covariance
		assert torch.allclose(covariance, covariance.T, atol=1e-6)
		assert bool((covariance.diagonal() >= config.min_eigenvalue).all())

		values = strategy.eigen_values
		assert bool((values >= config.min_eigenvalue).all())
		assert bool((values[:-1] >= values[1:]).all()), "eigenvalues not descending"
		assert check_orthonormal(strategy.eigen_vectors, atol=1e-4)

		# Covariance is rebuilt from the eigen-system used for sampling
		rebuilt = (strategy.eigen_vectors * values) @ strategy.eigen_vectors.T
		assert torch.allclose(covariance, rebuilt, atol=1e-10)

		assert config.min_sigma <= strategy.sigma <= config.max_sigma

	assert strategy.generation == 30
	print("PASS: invariants hold for 30 generations")


def hand_update(strategy: CMAESStrategy, population) -> dict:
	"""Recompute one evolve() step from a snapshot of the strategy state."""
	hp = strategy.hyperparameters
	config = strategy.config
	n = hp.dimension
	mean, sigma, covariance = strategy.mean, strategy.sigma, strategy.covariance
	ps, pc = strategy.evolution_paths
	vectors = strategy.eigen_vectors
	samples = strategy.samples

	ranked = sorted(range(hp.population_size), key=lambda i: population[i].fitness, reverse=True)
	parents = ranked[:hp.mu]
	z = torch.stack([samples[i].normalized_step for i in parents])
	y = torch.stack([samples[i].step for i in parents])
	weighted_z = hp.weights @ z
	weighted_y = hp.weights @ y

	mean = mean + sigma * weighted_y
	ps = (1 - hp.cs) * ps + math.sqrt(hp.cs * (2 - hp.cs) * hp.mueff) * (vectors @ weighted_z)
	ps_norm = float(torch.linalg.vector_norm(ps))
	expected_norm = hp.chi_n * math.sqrt(1 - (1 - hp.cs) ** (2 * (strategy.generation + 1)))
	hsig = 1.0 if ps_norm / expected_norm < 1.4 + 2 / (n + 1) else 0.0
	pc = (1 - hp.cc) * pc + hsig * math.sqrt(hp.cc * (2 - hp.cc) * hp.mueff) * weighted_y

	rank_mu = torch.zeros(n, n, dtype=torch.float64)
	for r in range(hp.mu):
		rank_mu += float(hp.weights[r]) * torch.outer(y[r], y[r])
	rank_one = torch.outer(pc, pc)
	decay = 1 - hp.c1 - hp.cmu + (1 - hsig) * hp.c1 * hp.cc * (2 - hp.cc)
	covariance = decay * covariance + hp.c1 * rank_one + hp.cmu * rank_mu

	sigma = sigma * math.exp((hp.cs / hp.damps) * (ps_norm / hp.chi_n - 1))
	sigma = min(config.max_sigma, max(config.min_sigma, sigma))

	return {
		"mean": mean,
		"ps": ps,
		"pc": pc,
		"hsig": hsig,
		"decay": decay,
		"rank_one": rank_one,
		"rank_mu": rank_mu,
		"covariance": 0.5 * (covariance + covariance.T),
		"sigma": sigma,
	}


def test_update_matches_hand_computation():
	"""Mean, paths, hsig, covariance and sigma follow the update equations exactly."""
	strategy = make_strategy(seed=21)
	fitness_fn = sphere(torch.tensor([0.4, -0.2, 0.1, 0.0, 0.3], dtype=torch.float64))

	# One generation first so paths are non-zero and C is not the identity
	genomes = strategy.sample_population()
	genomes = strategy.evolve(evaluate(genomes, fitness_fn)).next_genomes
	population = evaluate(genomes, fitness_fn)

	expected = hand_update(strategy, population)
	strategy.evolve(population)

	ps, pc = strategy.evolution_paths
	assert torch.allclose(strategy.mean, expected["mean"], rtol=0, atol=1e-12)
	assert torch.allclose(ps, expected["ps"], rtol=0, atol=1e-12)
	assert torch.allclose(pc, expected["pc"], rtol=0, atol=1e-12)
	assert strategy.hsig == expected["hsig"]
	assert strategy.sigma == pytest.approx(expected["sigma"], rel=1e-12)
	assert torch.allclose(strategy.covariance, expected["covariance"], rtol=0, atol=1e-10)
	assert strategy.generation == 2

	print(f"PASS: update matches hand computation (sigma={strategy.sigma:.6f})")


def test_long_path_closes_hsig_gate(monkeypatch):
	"""A long ps at generation 0 sets hsig=0: pc only decays and C gets the c1*cc*(2-cc) term."""
	strategy = make_strategy(seed=4)
	hp = strategy.hyperparameters
	genomes = strategy.sample_population()
	population = evaluate(genomes, sphere(torch.zeros(5, dtype=torch.float64)))

	monkeypatch.setattr(strategy, "_ps", torch.full((5,), 100.0, dtype=torch.float64))
	monkeypatch.setattr(strategy, "_pc", torch.ones(5, dtype=torch.float64))

	expected = hand_update(strategy, population)
	assert expected["hsig"] == 0.0
	assert expected["decay"] == pytest.approx(
		1 - hp.c1 - hp.cmu + hp.c1 * hp.cc * (2 - hp.cc)
	)

	strategy.evolve(population)

	assert strategy.hsig == 0.0
	_, pc = strategy.evolution_paths
	assert torch.allclose(pc, (1 - hp.cc) * torch.ones(5, dtype=torch.float64), rtol=0, atol=1e-15)
	assert torch.allclose(strategy.covariance, expected["covariance"], rtol=0, atol=1e-10)
	assert strategy.sigma == pytest.approx(expected["sigma"], rel=1e-12)

	# Without the hsig correction the covariance would differ
	open_gate = (1 - hp.c1 - hp.cmu) * torch.eye(5, dtype=torch.float64) \
		+ hp.c1 * expected["rank_one"] + hp.cmu * expected["rank_mu"]
	assert not torch.allclose(strategy.covariance, open_gate, atol=1e-6)


def test_sigma_clamped_at_max():
	"""A linear slope makes sigma grow until it hits max_sigma."""
	strategy = make_strategy(seed=1, initial_sigma=0.5, max_sigma=0.8)

	sigmas = []
	genomes = strategy.sample_population()
	for _ in range(40):
		population = [EvaluatedGenome(g, float(g.sum())) for g in genomes]
		genomes = strategy.evolve(population).next_genomes
		sigmas.append(strategy.sigma)

	assert all(strategy.config.min_sigma <= s <= 0.8 for s in sigmas)
	assert 0.8 in sigmas


def test_sigma_clamped_at_min():
	"""On a sharp optimum sigma shrinks until it hits min_sigma."""
	strategy = make_strategy(seed=2, min_sigma=0.1)
	fitness_fn = sphere(torch.zeros(5, dtype=torch.float64))

	sigmas = []
	genomes = strategy.sample_population()
	for _ in range(120):
		genomes = strategy.evolve(evaluate(genomes, fitness_fn)).next_genomes
		sigmas.append(strategy.sigma)

	assert all(0.1 <= s <= strategy.config.max_sigma for s in sigmas)
	assert 0.1 in sigmas


def test_scenario_c_wrong_population_size():
	"""A population of 9 for lambda=10 raises and leaves the state unchanged."""
	strategy = make_strategy()
	genomes = strategy.sample_population()
	strategy.evolve(evaluate(genomes, sphere(torch.zeros(5, dtype=torch.float64))))

	sigma = strategy.sigma
	mean = strategy.mean
	covariance = strategy.covariance
	generation = strategy.generation

	short = [EvaluatedGenome(g, 1.0) for g in strategy.sample_population()[:9]]
	with pytest.raises(ValueError):
		strategy.evolve(short)

	assert strategy.sigma == sigma
	assert torch.equal(strategy.mean, mean)
	assert torch.equal(strategy.covariance, covariance)
	assert strategy.generation == generation

	print("PASS: Scenario C - size mismatch rejected without side effects")


def test_evolve_without_sampling_fails():
	strategy = make_strategy()
	population = [EvaluatedGenome(torch.zeros(5), 0.0) for _ in range(10)]

	with pytest.raises(RuntimeError):
		strategy.evolve(population)

	assert strategy.generation == 0
	assert torch.equal(strategy.covariance, torch.eye(5, dtype=torch.float64))


def test_scenario_d_sigma_shrinks_on_sharp_optimum():
	"""Over 50 generations on a sphere, sigma trends downward."""
	strategy = make_strategy(seed=11)
	target = torch.tensor([0.5, -0.25, 0.1, 0.0, 0.3], dtype=torch.float64)
	fitness_fn = sphere(target)

	sigmas = [strategy.sigma]
	genomes = strategy.sample_population()
	for _ in range(50):
		genomes = strategy.evolve(evaluate(genomes, fitness_fn)).next_genomes
		sigmas.append(strategy.sigma)

	early = sum(sigmas[:10]) / 10
	late = sum(sigmas[-10:]) / 10
	assert late < early, f"sigma did not shrink: early={early:.4f}, late={late:.4f}"
	assert sigmas[-1] < sigmas[0]

	# The mean approaches the optimum
	assert float(((strategy.mean - target) ** 2).sum()) < 0.05

	print(f"PASS: Scenario D - sigma {sigmas[0]:.4f} -> {sigmas[-1]:.6f}")


def test_agent_like_entries_accepted():
	"""Any object with a fitness attribute can be passed to evolve()."""
	class Agent:
		def __init__(self, genome, fitness):
			self.genome = genome
			self.fitness = fitness

	strategy = make_strategy()
	agents = [Agent(g, float(i)) for i, g in enumerate(strategy.sample_population())]
	result = strategy.evolve(agents)
	assert result.best is agents[-1]


def test_verbose_logs_generation():
	messages = []
	config = CMAESConfig(dimension=5, population_size=10)
	strategy = CMAESStrategy(config, seed=0, verbose=True, logger=messages.append)

	genomes = strategy.sample_population()
	strategy.evolve(evaluate(genomes, sphere(torch.zeros(5, dtype=torch.float64))))

	assert any("Gen 1" in m and "sigma=" in m and "cond=" in m for m in messages), messages


def test_sweep_cap_is_logged_and_tolerated():
	"""A single Jacobi sweep leaves C unconverged; evolve() logs it and carries on."""
	messages = []
	config = CMAESConfig(dimension=5, population_size=10, max_jacobi_sweeps=1)
	strategy = CMAESStrategy(config, seed=0, verbose=True, logger=messages.append)
	fitness_fn = sphere(torch.full((5,), 0.5, dtype=torch.float64))

	genomes = strategy.sample_population()
	for _ in range(3):
		genomes = strategy.evolve(evaluate(genomes, fitness_fn)).next_genomes

	assert not strategy.eigen_system.converged
	assert any("did not converge" in m and "orthonormal=True" in m for m in messages), messages
	assert check_orthonormal(strategy.eigen_vectors)
	assert bool((strategy.eigen_values >= config.min_eigenvalue).all())


def test_standard_logging_when_no_logger(caplog):
	caplog.set_level(logging.DEBUG, logger="evosnake.optimizer.CMA-ES")
	strategy = CMAESStrategy(CMAESConfig(dimension=3, population_size=4), seed=0, verbose=True)

	genomes = strategy.sample_population()
	strategy.evolve([EvaluatedGenome(g, 0.0) for g in genomes])

	assert any("Gen 1" in record.getMessage() for record in caplog.records)


if __name__ == "__main__":
	test_scenario_a_sample_population()
	test_scenario_b_best_and_next_generation()
	test_scenario_c_wrong_population_size()
	test_scenario_d_sigma_shrinks_on_sharp_optimum()
	test_state_invariants_over_generations()
	print("\nAll CMA-ES tests passed!")
