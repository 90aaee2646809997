"""
Population sampling for CMA-ES.

Each candidate is drawn as
	z ~ N(0, I)              (normalized step)
	y = B (D^1/2 * z)        (step in covariance shape)
	x = mean + sigma * y     (genome)
and all three are kept so evolve() can recombine z and y by rank.
"""

import math
import random
import sys
from dataclasses import dataclass
from typing import Optional

import torch
from torch import Tensor

from evosnake.strategies.cmaes.eigen import EigenSystem


@dataclass
class Sample:
	"""One candidate of a generation."""
	normalized_step: Tensor
	step: Tensor
	genome: Tensor


class GaussianSource:
	"""
	Standard normal draws from a single uniform stream (Box-Muller).

	Each transform yields two normals; the second is kept as a spare and
	returned by the next call, including the next sample_population() call.
	"""

	def __init__(self, rng: random.Random):
		self._rng = rng
		self._spare: Optional[float] = None

	@property
	def has_spare(self) -> bool:
		return self._spare is not None

	def clear_spare(self) -> None:
		self._spare = None

	def uniform(self, low: float, high: float) -> float:
		return low + self._rng.random() * (high - low)

	def normal(self) -> float:
		if self._spare is not None:
			spare = self._spare
			self._spare = None
			return spare

		u1 = 0.0
		while u1 <= sys.float_info.epsilon:
			u1 = self._rng.random()
		u2 = self._rng.random()

		magnitude = math.sqrt(-2.0 * math.log(u1))
		theta = 2.0 * math.pi * u2
		self._spare = magnitude * math.sin(theta)
		return magnitude * math.cos(theta)

	def normal_vector(self, size: int) -> Tensor:
		return torch.tensor([self.normal() for _ in range(size)], dtype=torch.float64)


class PopulationSampler:
	"""
	Draws a generation of candidates from the current search distribution.

	Usage:
		sampler = PopulationSampler(GaussianSource(random.Random(42)))
		samples = sampler.sample(population_size, mean, sigma, eigen_system)
		genomes = [s.genome for s in samples]
	"""

	def __init__(self, source: GaussianSource, genome_dtype: torch.dtype = torch.float32):
		self._source = source
		self._genome_dtype = genome_dtype

	@property
	def source(self) -> GaussianSource:
		return self._source

	def sample(
		self,
		population_size: int,
		mean: Tensor,
		sigma: float,
		eigen_system: EigenSystem,
	) -> list[Sample]:
		"""
		Draw population_size candidates.

		Draw order is candidate by candidate, coordinate by coordinate, so a
		given uniform stream always produces the same population.
		"""
		dimension = mean.shape[0]
		normals = torch.stack([
			self._source.normal_vector(dimension) for _ in range(population_size)
		])
		steps = eigen_system.transform(normals)
		genomes = (mean + sigma * steps).to(self._genome_dtype)

		return [
			Sample(normalized_step=normals[i], step=steps[i], genome=genomes[i])
			for i in range(population_size)
		]
