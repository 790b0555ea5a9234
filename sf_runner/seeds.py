"""Seed resolution: explicit seeds, seed files and random generation."""

from __future__ import annotations

import logging
import random
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from sf_common.errors import ConfigurationError
from sf_runner.models.config import FinderConfig
from sf_runner.models.types import MAX_SEED

logger = logging.getLogger(__name__)


def _parse_seed(raw: str) -> int:
    if not (raw.isascii() and raw.isdigit()):
        raise ValueError(f"not an unsigned integer: {raw!r}")
    seed = int(raw)
    if seed > MAX_SEED:
        raise ValueError(f"seed {seed} is outside [0, {MAX_SEED}]")
    return seed


def parse_seed_file(path: Path) -> List[int]:
    """Read one unsigned seed per line.

    Any malformed line makes the whole file invalid; the error names the
    offending line so it can be fixed before the session starts.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(
            f"Cannot read seed file {path}: {exc}",
            context={"seed_file": path},
            cause=exc,
        ) from exc

    seeds: List[int] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        token = line.strip()
        try:
            if not token:
                raise ValueError("empty line")
            seeds.append(_parse_seed(token))
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid seed on line {lineno} of {path}: {exc}",
                context={"seed_file": path, "line": lineno, "value": line},
                cause=exc,
            ) from exc
    logger.debug("Loaded %d seed(s) from %s", len(seeds), path)
    return seeds


def merge_user_defined_seeds(
    seeds: Optional[Sequence[int]],
    seed_file: Optional[Path],
) -> Optional[List[int]]:
    """Concatenate explicit seeds with seeds from a file.

    Explicit seeds come first, file seeds after, both in their given order.
    Duplicates are kept. Returns None when neither source is supplied.
    """
    file_seeds = parse_seed_file(seed_file) if seed_file is not None else None
    if seeds is None:
        return file_seeds
    merged = list(seeds)
    for seed in merged:
        if seed < 0 or seed > MAX_SEED:
            raise ConfigurationError(
                f"Seed {seed} is outside [0, {MAX_SEED}]",
                context={"seed": seed},
            )
    if file_seeds:
        merged.extend(file_seeds)
    return merged


class SeedSource:
    """Producer of seeds for a session, bounded by an optional cap.

    A finite seed list is replayed as given and never topped up with random
    seeds. Without one, seeds are drawn at random until the cap is reached
    (or forever when there is no cap).
    """

    def __init__(
        self,
        seeds: Optional[Sequence[int]] = None,
        max_iterations: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_iterations is not None and max_iterations < 0:
            raise ConfigurationError(
                "max_iterations must be >= 0",
                context={"max_iterations": max_iterations},
            )
        self._seeds = list(seeds) if seeds is not None else None
        self._max_iterations = max_iterations
        self._rng = rng or random.Random()
        self._position = 0
        self._issued = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: FinderConfig, rng: Optional[random.Random] = None
    ) -> "SeedSource":
        seeds = merge_user_defined_seeds(config.seeds, config.seed_file)
        return cls(seeds=seeds, max_iterations=config.max_iterations, rng=rng)

    @property
    def issued(self) -> int:
        with self._lock:
            return self._issued

    @property
    def total(self) -> Optional[int]:
        """Planned number of seeds, or None when unbounded."""
        if self._seeds is None:
            return self._max_iterations
        if self._max_iterations is None:
            return len(self._seeds)
        return min(len(self._seeds), self._max_iterations)

    def _has_more_locked(self) -> bool:
        if self._max_iterations is not None and self._issued >= self._max_iterations:
            return False
        if self._seeds is not None:
            return self._position < len(self._seeds)
        return True

    def has_more(self) -> bool:
        with self._lock:
            return self._has_more_locked()

    def next_batch(self, n: int) -> List[int]:
        """Return up to ``n`` seeds; empty once the source is exhausted."""
        batch: List[int] = []
        with self._lock:
            while len(batch) < n and self._has_more_locked():
                if self._seeds is not None:
                    seed = self._seeds[self._position]
                    self._position += 1
                else:
                    seed = self._rng.randrange(0, MAX_SEED + 1)
                batch.append(seed)
                self._issued += 1
        return batch
