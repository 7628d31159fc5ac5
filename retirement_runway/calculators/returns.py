"""Annual real-return sampling.

Returns are drawn from a normal distribution via the Box-Muller transform on
two uniforms taken from a :class:`numpy.random.Generator`.  Each chunk of
trials gets its own generator, so nothing is shared between concurrent
workers and a fixed seed reproduces a run exactly.

>>> sampler = BoxMullerSampler(make_rng(0))
>>> sampler.sample(0.05, 0.0)
0.05
"""

from __future__ import annotations

import math
from typing import Callable, List, Protocol, Union

import numpy as np

Seed = Union[None, int, np.random.SeedSequence]


class ReturnSampler(Protocol):
    def sample(self, mean: float, std_dev: float) -> float:
        ...


SamplerFactory = Callable[[np.random.Generator], ReturnSampler]


def normal_return(mean: float, std_dev: float, rng: np.random.Generator) -> float:
    # 1 - U[0, 1) lies in (0, 1], so log(u1) is always finite
    u1 = 1.0 - rng.random()
    u2 = rng.random()
    z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    return mean + z * std_dev


class BoxMullerSampler:
    """Default :class:`ReturnSampler` backed by a numpy generator."""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def sample(self, mean: float, std_dev: float) -> float:
        return normal_return(mean, std_dev, self.rng)


def make_rng(seed: Seed = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def seed_sequence(seed: Seed) -> np.random.SeedSequence:
    """A fresh sequence for ``seed``.

    ``SeedSequence.spawn`` is stateful, so an existing sequence is copied: two
    runs given the same sequence spawn the same children.
    """
    if isinstance(seed, np.random.SeedSequence):
        return np.random.SeedSequence(seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size)
    return np.random.SeedSequence(seed)



def spawn_rngs(seed: Seed, n: int) -> List[np.random.Generator]:
    """``n`` independent generators spawned from ``seed``, in a fixed order."""
    return [np.random.default_rng(s) for s in seed_sequence(seed).spawn(n)]
