# tests/unit/core/test_identity.py
"""Tests for document identity assignment."""

import re

from ingestline.contracts.enums import IdentityMode
from ingestline.core.identity import IdentityPolicy

_RANDOM_IDENTITY = re.compile(r"^(\d+)#(.*)$")


class TestIdentityPolicy:
    def test_passthrough_returns_key(self) -> None:
        policy = IdentityPolicy.passthrough()

        assert policy.assign("/data/a.txt") == "/data/a.txt"
        assert policy.rewrites is False

    def test_fixed_prefix(self) -> None:
        policy = IdentityPolicy.fixed_prefix("LOAD-")

        assert policy.assign("/data/a.txt") == "LOAD-/data/a.txt"
        assert policy.rewrites is True

    def test_random_prefix_shape(self) -> None:
        policy = IdentityPolicy.random_prefix("seed")
        identity = policy.assign("/data/a.txt")
        match = _RANDOM_IDENTITY.match(identity)

        assert match is not None
        assert 0 <= int(match.group(1)) <= 2**31 - 1
        assert match.group(2) == "/data/a.txt"

    def test_random_prefix_is_reproducible_per_seed(self) -> None:
        keys = [f"/data/{i}.txt" for i in range(20)]
        first = IdentityPolicy.random_prefix("task_0001")
        second = IdentityPolicy.random_prefix("task_0001")

        assert [first.assign(k) for k in keys] == [second.assign(k) for k in keys]

    def test_random_prefix_draws_per_document(self) -> None:
        """The same key indexed twice gets two distinct identities."""
        policy = IdentityPolicy.random_prefix("task_0001")

        assert len({policy.assign("/data/a.txt") for _ in range(10)}) > 1


class TestFromSettings:
    def test_no_prefix_is_passthrough(self) -> None:
        policy = IdentityPolicy.from_settings(None, seed=None, task_id="t1")

        assert policy.mode is IdentityMode.PASSTHROUGH

    def test_literal_prefix(self) -> None:
        policy = IdentityPolicy.from_settings("LOAD-", seed=None, task_id="t1")

        assert policy.mode is IdentityMode.FIXED_PREFIX
        assert policy.prefix == "LOAD-"

    def test_random_seed_defaults_to_task_id(self) -> None:
        policy = IdentityPolicy.from_settings("random", seed=None, task_id="t1")

        assert policy.mode is IdentityMode.RANDOM_PREFIX
        assert policy.seed == "t1"

    def test_explicit_seed_wins(self) -> None:
        policy = IdentityPolicy.from_settings("random", seed="42", task_id="t1")

        assert policy.seed == "42"
