"""
Genome layout for feed-forward snake controllers.

A genome is a flat float tensor holding every weight and bias of a small
fully connected network, layer after layer:

	[W1 (hidden1 x inputs, row-major), b1, W2, b2, ..., Wk, bk]

The strategies only see the flat vector; the layout tells how long it is
and how to split it back into layers.

Usage:
	layout = GenomeLayout((24, 16, 3))
	config = CMAESConfig(dimension=layout.gene_count)
	for weight, bias in layout.unpack(genome):
		...
"""

import random
from dataclasses import dataclass
from typing import Optional, Sequence

import torch
from torch import Tensor


@dataclass(frozen=True)
class GenomeLayout:
	"""
	Shape of a feed-forward network encoded in a genome.

	Attributes:
		layer_sizes: Units per layer, inputs first and outputs last
	"""
	layer_sizes: tuple[int, ...]

	def __post_init__(self):
		sizes = tuple(int(s) for s in self.layer_sizes)
		if len(sizes) < 2:
			raise ValueError(f"need at least input and output layers, got {sizes}")
		if any(s < 1 for s in sizes):
			raise ValueError(f"layer sizes must be positive, got {sizes}")
		object.__setattr__(self, 'layer_sizes', sizes)

	@classmethod
	def from_sizes(cls, inputs: int, hidden: Sequence[int], outputs: int) -> 'GenomeLayout':
		return cls((inputs, *hidden, outputs))

	@property
	def inputs(self) -> int:
		return self.layer_sizes[0]

	@property
	def outputs(self) -> int:
		return self.layer_sizes[-1]

	@property
	def layer_shapes(self) -> list[tuple[int, int]]:
		"""(fan_out, fan_in) of each weight matrix."""
		return [
			(fan_out, fan_in)
			for fan_in, fan_out in zip(self.layer_sizes[:-1], self.layer_sizes[1:])
		]

	@property
	def gene_count(self) -> int:
		"""Total number of weights and biases."""
		return sum(fan_out * fan_in + fan_out for fan_out, fan_in in self.layer_shapes)

	def unpack(self, genome: Tensor) -> list[tuple[Tensor, Tensor]]:
		"""
		Split a flat genome into per-layer (weight, bias) views.

		Returns:
			List of (weight [fan_out, fan_in], bias [fan_out]) sharing storage
			with the genome

		Raises:
			ValueError: genome is not 1D or has the wrong length
		"""
		if genome.dim() != 1 or genome.numel() != self.gene_count:
			raise ValueError(
				f"genome of shape {tuple(genome.shape)} does not match layout "
				f"{self.layer_sizes} ({self.gene_count} genes)"
			)

		layers = []
		offset = 0
		for fan_out, fan_in in self.layer_shapes:
			weight_end = offset + fan_out * fan_in
			weight = genome[offset:weight_end].view(fan_out, fan_in)
			bias = genome[weight_end:weight_end + fan_out]
			layers.append((weight, bias))
			offset = weight_end + fan_out
		return layers

	def random_genome(self, rng: Optional[random.Random] = None) -> Tensor:
		"""Genome with every gene drawn uniformly from [-1, 1]."""
		rng = rng or random.Random()
		return torch.tensor(
			[rng.uniform(-1.0, 1.0) for _ in range(self.gene_count)], dtype=torch.float32
		)

	def __repr__(self) -> str:
		arch = "-".join(str(s) for s in self.layer_sizes)
		return f"GenomeLayout({arch}, genes={self.gene_count})"
