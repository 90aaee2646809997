"""
Episode fitness for snake agents.

One genome plays one episode; its fitness rewards food eaten and penalizes
dying by collision and wasting steps:

	fitness = score - death_penalty - steps / grid_size^2

death_penalty is 1 when the snake died with hunger left (hit a wall or
itself) and 0 when it starved or is still alive.
"""

from dataclasses import dataclass


@dataclass
class EpisodeOutcome:
	"""Final state of one simulated episode."""
	score: int
	steps: int
	alive: bool
	hunger: int


def episode_fitness(outcome: EpisodeOutcome, grid_size: int) -> float:
	"""Shaped fitness of an episode on a grid_size x grid_size board."""
	if grid_size < 1:
		raise ValueError(f"grid_size must be >= 1, got {grid_size}")
	death_penalty = 1.0 if not outcome.alive and outcome.hunger > 0 else 0.0
	step_penalty = outcome.steps / (grid_size * grid_size)
	return outcome.score - death_penalty - step_penalty
