"""Document identity assignment.

By default a document's identity is its input-derived key (the input
location). For load testing, the same inputs can be indexed many times under
distinct identities by prefixing the key, either with a fixed string or with a
random number drawn per document from a per-task seeded generator.

The policy is chosen once at task setup and never changes afterwards.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from ingestline.contracts.enums import IdentityMode
from ingestline.core.config import RANDOM_ID_PREFIX

# Largest value drawn for random prefixes: non-negative 31-bit integers
_RANDOM_PREFIX_BOUND = 2**31 - 1


@dataclass
class IdentityPolicy:
    """Maps an input-derived key to a document identity.

    Use the factory methods; the constructor is not part of the API.

    Example:
        policy = IdentityPolicy.fixed_prefix("LOAD-")
        policy.assign("/data/a.txt")  # "LOAD-/data/a.txt"
    """

    mode: IdentityMode
    prefix: str | None = None
    seed: str | None = None
    _random: random.Random | None = field(default=None, repr=False, compare=False)

    @classmethod
    def passthrough(cls) -> IdentityPolicy:
        return cls(mode=IdentityMode.PASSTHROUGH)

    @classmethod
    def fixed_prefix(cls, prefix: str) -> IdentityPolicy:
        return cls(mode=IdentityMode.FIXED_PREFIX, prefix=prefix)

    @classmethod
    def random_prefix(cls, seed: str) -> IdentityPolicy:
        """Random "<n>#" prefixes from a generator seeded with seed.

        The same seed always yields the same sequence of prefixes.
        """
        return cls(mode=IdentityMode.RANDOM_PREFIX, seed=seed, _random=random.Random(seed))

    @classmethod
    def from_settings(cls, id_prefix: str | None, *, seed: str | None, task_id: str) -> IdentityPolicy:
        """Resolve the policy from task configuration.

        Args:
            id_prefix: Configured prefix, "random", or None for passthrough
            seed: Explicit random seed; defaults to task_id
            task_id: Framework task id, used as the fallback seed
        """
        if id_prefix is None:
            return cls.passthrough()
        if id_prefix == RANDOM_ID_PREFIX:
            return cls.random_prefix(seed if seed is not None else task_id)
        return cls.fixed_prefix(id_prefix)

    def assign(self, key: str) -> str:
        """Return the identity for an input-derived key."""
        if self.mode is IdentityMode.FIXED_PREFIX:
            return f"{self.prefix}{key}"
        if self.mode is IdentityMode.RANDOM_PREFIX:
            if self._random is None:
                raise RuntimeError("Random identity policy built without a generator; use IdentityPolicy.random_prefix()")
            return f"{self._random.randint(0, _RANDOM_PREFIX_BOUND)}#{key}"
        return key

    @property
    def rewrites(self) -> bool:
        """True when assign() can return something other than the key."""
        return self.mode is not IdentityMode.PASSTHROUGH
