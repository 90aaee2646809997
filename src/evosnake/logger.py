"""
Logging utilities for evolution runs.

Provides a Logger that can be configured once and passed to strategies
and drivers as a plain Callable[[str], None]. It supports:
- File and console output with timestamps
- Date-based log directory structure (logs/YYYY/MM/DD/)
- Separator and header formatting for run reports
"""

import os
import logging
from datetime import datetime
from typing import Optional


class Logger:
	"""
	Logger that writes timestamped lines to a run log file and the console.

	Usage:
		log = Logger("cmaes_snake")
		log.header("CMA-ES run")
		log(f"population={strategy.population_size}")

		# Pass wherever a Callable[[str], None] is accepted
		strategy = CMAESStrategy(config, logger=log)
		run_evolution(strategy, evaluate_fn, generations=100, logger=log)

	Attributes:
		name: Run name (used for the log filename)
		log_file: Path to the log file
	"""

	def __init__(
		self,
		name: str = "evolution",
		log_dir: Optional[str] = None,
		project_root: Optional[str] = None,
		console: bool = True,
		timestamp_format: str = '%H:%M:%S',
	):
		"""
		Args:
			name: Base name for the log file (e.g., "cmaes_snake")
			log_dir: Override log directory (default: project_root/logs/YYYY/MM/DD/)
			project_root: Project root directory (default: two levels above the package)
			console: Whether to also log to console
			timestamp_format: strftime format for log timestamps
		"""
		self.name = name
		self._console = console

		if project_root is None:
			# src/evosnake/logger.py -> project root
			this_dir = os.path.dirname(os.path.abspath(__file__))
			project_root = os.path.dirname(os.path.dirname(this_dir))

		now = datetime.now()
		if log_dir is None:
			log_dir = os.path.join(
				project_root, "logs",
				now.strftime("%Y"),
				now.strftime("%m"),
				now.strftime("%d"),
			)
		os.makedirs(log_dir, exist_ok=True)

		timestamp = now.strftime("%Y%m%d_%H%M%S")
		self.log_file = os.path.join(log_dir, f"{name}_{timestamp}.log")

		# id() keeps two loggers created within the same second apart
		self._logger = logging.getLogger(f'evosnake.run.{name}.{timestamp}.{id(self)}')
		self._logger.setLevel(logging.INFO)
		self._logger.propagate = False
		self._logger.handlers.clear()

		formatter = logging.Formatter('%(asctime)s | %(message)s', datefmt=timestamp_format)

		file_handler = logging.FileHandler(self.log_file)
		file_handler.setLevel(logging.INFO)
		file_handler.setFormatter(formatter)
		self._logger.addHandler(file_handler)

		if console:
			console_handler = logging.StreamHandler()
			console_handler.setLevel(logging.INFO)
			console_handler.setFormatter(formatter)
			self._logger.addHandler(console_handler)

	def __call__(self, message: str = "", flush: bool = True) -> None:
		self.log(message, flush=flush)

	def log(self, message: str = "", flush: bool = True) -> None:
		"""Log a message to file (and console if enabled)."""
		self._logger.info(message)
		if flush:
			for handler in self._logger.handlers:
				handler.flush()

	def separator(self, char: str = "=", width: int = 70) -> None:
		self.log(char * width)

	def header(self, title: str, char: str = "=", width: int = 70) -> None:
		"""Log a title framed by separator lines."""
		self.log()
		self.separator(char, width)
		self.log(f"  {title}")
		self.separator(char, width)

	def close(self) -> None:
		"""Close and detach all handlers (releases the log file)."""
		for handler in list(self._logger.handlers):
			handler.close()
			self._logger.removeHandler(handler)

	def __repr__(self) -> str:
		return f"Logger(name='{self.name}', log_file='{self.log_file}')"


def create_logger(
	name: str = "evolution",
	log_dir: Optional[str] = None,
	console: bool = True,
) -> Logger:
	"""Create a Logger writing to log_dir (or the dated default directory)."""
	return Logger(name=name, log_dir=log_dir, console=console)
