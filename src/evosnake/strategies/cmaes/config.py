"""
Configuration for the CMA-ES strategy.
"""

import math
from dataclasses import dataclass
from typing import Optional

# Numeric floors and ceilings
MIN_EIGENVALUE = 1e-12
MIN_SIGMA = 1e-4
MAX_SIGMA = 5.0

# Jacobi eigensolver limits
MAX_JACOBI_SWEEPS = 50
JACOBI_EPSILON = 1e-12

DEFAULT_INITIAL_SIGMA = 0.5


def default_population_size(dimension: int) -> int:
	"""Standard CMA-ES population size heuristic: 4 + floor(3 ln n)."""
	return 4 + int(3 * math.log(dimension))


@dataclass
class CMAESConfig:
	"""
	Configuration for CMA-ES optimization.

	All values are fixed for the lifetime of a strategy instance.

	- dimension: genome length n (number of network weights and biases)
	- population_size: lambda, candidates per generation (None = 4 + 3 ln n)
	- initial_sigma: step size after reset()
	- min_sigma / max_sigma: step size is clamped to this range every generation
	- min_eigenvalue: floor for covariance diagonal and eigenvalues
	- max_jacobi_sweeps / jacobi_epsilon: eigensolver sweep cap and
	  off-diagonal convergence threshold
	- initial_mean_range: reset() draws the mean uniformly in [-r, r]
	"""
	dimension: int
	population_size: Optional[int] = None
	initial_sigma: float = DEFAULT_INITIAL_SIGMA
	min_sigma: float = MIN_SIGMA
	max_sigma: float = MAX_SIGMA
	min_eigenvalue: float = MIN_EIGENVALUE
	max_jacobi_sweeps: int = MAX_JACOBI_SWEEPS
	jacobi_epsilon: float = JACOBI_EPSILON
	initial_mean_range: float = 1.0

	def __post_init__(self):
		if self.dimension < 1:
			raise ValueError(f"dimension must be >= 1, got {self.dimension}")
		if self.population_size is None:
			self.population_size = default_population_size(self.dimension)
		if self.population_size < 2:
			raise ValueError(f"population_size must be >= 2, got {self.population_size}")
		if not 0 < self.min_sigma <= self.max_sigma:
			raise ValueError(
				f"need 0 < min_sigma <= max_sigma, got {self.min_sigma}, {self.max_sigma}"
			)
		if not self.min_sigma <= self.initial_sigma <= self.max_sigma:
			raise ValueError(
				f"initial_sigma {self.initial_sigma} outside [{self.min_sigma}, {self.max_sigma}]"
			)
		if self.min_eigenvalue <= 0:
			raise ValueError(f"min_eigenvalue must be > 0, got {self.min_eigenvalue}")
		if self.max_jacobi_sweeps < 1:
			raise ValueError(f"max_jacobi_sweeps must be >= 1, got {self.max_jacobi_sweeps}")
		if self.jacobi_epsilon < 0:
			raise ValueError(f"jacobi_epsilon must be >= 0, got {self.jacobi_epsilon}")
		if self.initial_mean_range < 0:
			raise ValueError(f"initial_mean_range must be >= 0, got {self.initial_mean_range}")
