"""
Cyclic Jacobi eigensolver for the CMA-ES covariance matrix.

The covariance matrix is decomposed as C = V diag(d) V^T every generation:
- V (eigenvectors, as columns) rotates isotropic noise into C's orientation
- sqrt(d) scales each principal axis

Rotation details follow the classic Numerical Recipes `jacobi` routine:
- During the first 3 sweeps only rotate entries above 0.2 * offsum / n^2
- After sweep 3, entries too small to change either eigenvalue are zeroed
- The tangent of the rotation angle uses the overflow-safe formula
- Eigenvalue shifts are summed in a separate accumulator (z) and folded
  into the running estimate (b) once per sweep, so many tiny shifts are
  not lost against a large diagonal value

Pairs are visited in round-robin order instead of row by row: every sweep
still rotates each (p, q) pair once, but the n/2 pairs of a round share no
index, so their rotations commute and are applied as one batch of tensor
slice updates. Thresholds, zeroing and the z accumulator stay per pair.
"""

from dataclasses import dataclass

import torch
from torch import Tensor

from evosnake.strategies.cmaes.config import JACOBI_EPSILON, MAX_JACOBI_SWEEPS, MIN_EIGENVALUE


@dataclass
class EigenSystem:
	"""
	Sorted, floored eigen-decomposition of a symmetric matrix.

	Attributes:
		values: Eigenvalues, descending, each >= the floor used to build it
		vectors: Orthonormal eigenvectors as columns, matched to values
		scales: sqrt(values), the per-axis standard deviations
		sweeps: Jacobi sweeps performed
		converged: False if the sweep cap was hit before the off-diagonal
			sum dropped below epsilon
	"""
	values: Tensor
	vectors: Tensor
	scales: Tensor
	sweeps: int = 0
	converged: bool = True

	@classmethod
	def identity(cls, dimension: int) -> 'EigenSystem':
		return cls(
			values=torch.ones(dimension, dtype=torch.float64),
			vectors=torch.eye(dimension, dtype=torch.float64),
			scales=torch.ones(dimension, dtype=torch.float64),
		)

	def reconstruct(self) -> Tensor:
		"""Return V diag(values) V^T, symmetric to the last bit."""
		product = (self.vectors * self.values) @ self.vectors.T
		return 0.5 * (product + product.T)

	def transform(self, normal: Tensor) -> Tensor:
		"""Map isotropic draws z (vector or [k, n] batch) to B (scales * z)."""
		return (normal * self.scales) @ self.vectors.T

	def rotate(self, vector: Tensor) -> Tensor:
		"""Map a vector through the eigenvector matrix: B v."""
		return self.vectors @ vector

	def condition_number(self) -> float:
		return float(self.values[0] / self.values[-1])


class JacobiEigensolver:
	"""
	Symmetric eigensolver based on cyclic Jacobi rotations.

	Usage:
		solver = JacobiEigensolver()
		values, vectors, sweeps, converged = solver.decompose(covariance)
		system = solver.refresh(covariance, min_eigenvalue=1e-12)
		covariance = system.reconstruct()
	"""

	def __init__(
		self,
		max_sweeps: int = MAX_JACOBI_SWEEPS,
		epsilon: float = JACOBI_EPSILON,
	):
		if max_sweeps < 1:
			raise ValueError(f"max_sweeps must be >= 1, got {max_sweeps}")
		self._max_sweeps = max_sweeps
		self._epsilon = epsilon

	@property
	def max_sweeps(self) -> int:
		return self._max_sweeps

	@property
	def epsilon(self) -> float:
		return self._epsilon

	def decompose(self, matrix: Tensor) -> tuple[Tensor, Tensor, int, bool]:
		"""
		Diagonalize a symmetric matrix. The input is not modified.

		Returns:
			(values, vectors, sweeps, converged): unsorted eigenvalues,
			eigenvectors as columns, sweeps run, and whether the off-diagonal
			sum fell below epsilon within the sweep cap
		"""
		if matrix.dim() != 2 or matrix.shape[0] != matrix.shape[1]:
			raise ValueError(f"expected a square matrix, got shape {tuple(matrix.shape)}")

		n = matrix.shape[0]
		a = matrix.detach().to(torch.float64).clone()
		v = torch.eye(n, dtype=torch.float64)

		values = a.diagonal().clone()
		b = values.clone()
		z = torch.zeros(n, dtype=torch.float64)

		upper = torch.triu(torch.ones(n, n, dtype=torch.bool), diagonal=1)
		rounds = self.pair_rounds(n)
		sweeps = 0
		converged = False

		for sweep in range(self._max_sweeps):
			off_diagonal_sum = float(a[upper].abs().sum())
			if off_diagonal_sum <= self._epsilon:
				converged = True
				break
			sweeps += 1

			threshold = 0.2 * off_diagonal_sum / (n * n) if sweep < 3 else 0.0

			for p, q in rounds:
				apq = a[p, q]
				g = 100.0 * apq.abs()
				rotate = apq.abs() > threshold

				if sweep > 3:
					d_p = values[p].abs()
					d_q = values[q].abs()
					negligible = (d_p + g == d_p) & (d_q + g == d_q)
					if bool(negligible.any()):
						apq = apq.masked_fill(negligible, 0.0)
						a[p, q] = apq
						a[q, p] = apq
						rotate &= ~negligible

				if not bool(rotate.any()):
					continue

				p, q, apq, g = p[rotate], q[rotate], apq[rotate], g[rotate]

				delta = values[q] - values[p]
				theta = 0.5 * delta / apq
				t = 1.0 / (theta.abs() + torch.sqrt(1.0 + theta * theta))
				t = torch.where(theta < 0, -t, t)
				t = torch.where(delta.abs() + g == delta.abs(), apq / delta, t)

				c = 1.0 / torch.sqrt(1.0 + t * t)
				s = t * c
				tau = s / (1.0 + c)
				shift = t * apq

				z[p] -= shift
				z[q] += shift
				values[p] -= shift
				values[q] += shift

				self._rotate_symmetric(a, p, q, s, tau)
				self._rotate_columns(v, p, q, s, tau)

			b += z
			values = b.clone()
			z.zero_()
		else:
			converged = float(a[upper].abs().sum()) <= self._epsilon

		return values, v, sweeps, converged

	@staticmethod
	def pair_rounds(n: int) -> list[tuple[Tensor, Tensor]]:
		"""
		Order all (p, q) pairs with p < q into rounds of disjoint pairs
		(round-robin / circle method). Each pair appears exactly once per
		sweep, and rotations within a round commute.
		"""
		players = list(range(n)) + ([-1] if n % 2 else [])
		m = len(players)
		rounds = []
		for _ in range(m - 1):
			ps, qs = [], []
			for i in range(m // 2):
				x, y = players[i], players[m - 1 - i]
				if x < 0 or y < 0:
					continue
				ps.append(min(x, y))
				qs.append(max(x, y))
			if ps:
				rounds.append((torch.tensor(ps, dtype=torch.long), torch.tensor(qs, dtype=torch.long)))
			# Keep the first player fixed, rotate the rest
			players = [players[0], players[-1]] + players[1:-1]
		return rounds

	@staticmethod
	def _rotate_symmetric(a: Tensor, p: Tensor, q: Tensor, s: Tensor, tau: Tensor) -> None:
		"""Apply a round of disjoint (p, q) rotations to both sides: a <- J^T a J."""
		g = a[:, p]
		h = a[:, q]
		a[:, p] = g - s * (h + g * tau)
		a[:, q] = h + s * (g - h * tau)

		s_row = s.unsqueeze(1)
		tau_row = tau.unsqueeze(1)
		g = a[p, :]
		h = a[q, :]
		a[p, :] = g - s_row * (h + g * tau_row)
		a[q, :] = h + s_row * (g - h * tau_row)

		# Pivots are annihilated; diagonal entries are tracked in the eigenvalue estimates
		a[p, q] = 0.0
		a[q, p] = 0.0

	@staticmethod
	def _rotate_columns(v: Tensor, p: Tensor, q: Tensor, s: Tensor, tau: Tensor) -> None:
		g = v[:, p]
		h = v[:, q]
		v[:, p] = g - s * (h + g * tau)
		v[:, q] = h + s * (g - h * tau)

	@staticmethod
	def sort_descending(values: Tensor, vectors: Tensor) -> tuple[Tensor, Tensor]:
		"""
		Selection-sort eigenpairs by descending eigenvalue, permuting the
		matching eigenvector columns. Returns new tensors.
		"""
		keys = values.tolist()
		order = list(range(len(keys)))
		n = len(keys)

		for i in range(n - 1):
			best = i
			for j in range(i + 1, n):
				if keys[j] > keys[best]:
					best = j
			if best == i:
				continue
			keys[i], keys[best] = keys[best], keys[i]
			order[i], order[best] = order[best], order[i]

		index = torch.tensor(order, dtype=torch.long)
		return values[index].clone(), vectors[:, index].clone()

	def refresh(self, covariance: Tensor, min_eigenvalue: float = MIN_EIGENVALUE) -> EigenSystem:
		"""
		Decompose, sort and floor the eigen-system of a covariance matrix.

		Non-convergence within the sweep cap is tolerated: the best available
		approximation is returned with converged=False.
		"""
		values, vectors, sweeps, converged = self.decompose(covariance)
		values, vectors = self.sort_descending(values, vectors)
		values = values.clamp(min=min_eigenvalue)
		return EigenSystem(
			values=values,
			vectors=vectors,
			scales=values.sqrt(),
			sweeps=sweeps,
			converged=converged,
		)

	def __repr__(self) -> str:
		return f"JacobiEigensolver(max_sweeps={self._max_sweeps}, epsilon={self._epsilon})"


def check_orthonormal(vectors: Tensor, atol: float = 1e-4) -> bool:
	"""True if V^T V is the identity within atol."""
	identity = torch.eye(vectors.shape[1], dtype=vectors.dtype)
	return bool(torch.allclose(vectors.T @ vectors, identity, atol=atol))
