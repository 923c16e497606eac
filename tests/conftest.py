"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import pytest

from batchcache.config import BatcherConfig
from batchcache.core.batcher import Batcher
from batchcache.resolver.interface import Resolver


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> BatcherConfig:
    """Create a test configuration."""
    return BatcherConfig(
        window_size=10,
        fetch_timeout_seconds=None,
        resolver_url="http://resolver.test",
        resolver_path="/items",
        log_level="DEBUG",
    )


# ============================================================================
# Mock Resolvers
# ============================================================================

class ControlledResolver(Resolver):
    """Resolver whose calls stay outstanding until the test completes them."""

    def __init__(self):
        self.calls: List[List[int]] = []
        self._futures: List[asyncio.Future] = []

    async def resolve(self, batch: List[int]) -> Mapping[int, Any]:
        self.calls.append(list(batch))
        future = asyncio.get_running_loop().create_future()
        self._futures.append(future)
        return await future

    def complete(self, values: Optional[Mapping[int, Any]], call: int = -1) -> None:
        """Finish a recorded call with a result mapping (or None)."""
        self._futures[call].set_result(values)

    def fail(self, error: Exception, call: int = -1) -> None:
        """Finish a recorded call by raising."""
        self._futures[call].set_exception(error)


class EchoResolver(Resolver):
    """Resolver that answers every identifier immediately."""

    def __init__(self):
        self.calls: List[List[int]] = []

    async def resolve(self, batch: List[int]) -> Dict[int, str]:
        self.calls.append(list(batch))
        return {i: f"value-{i}" for i in batch}


async def settle(rounds: int = 5) -> None:
    """Let scheduled resolver tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class Recorder:
    """Collects continuation and error callback invocations."""

    def __init__(self):
        self.values: List[Any] = []
        self.errors: List[Exception] = []

    def __call__(self, value: Any) -> None:
        self.values.append(value)

    def error(self, error: Exception) -> None:
        self.errors.append(error)


@pytest.fixture
def controlled_resolver() -> ControlledResolver:
    return ControlledResolver()


@pytest.fixture
def echo_resolver() -> EchoResolver:
    return EchoResolver()


@pytest.fixture
def controlled_batcher(controlled_resolver, test_config) -> Batcher:
    """Batcher over universe 1..20 whose resolver calls are completed manually."""
    batcher = Batcher(controlled_resolver, config=test_config)
    batcher.set_universe(range(1, 21))
    return batcher


@pytest.fixture
def echo_batcher(echo_resolver, test_config) -> Batcher:
    """Batcher over universe 1..20 with an immediate resolver."""
    batcher = Batcher(echo_resolver, config=test_config)
    batcher.set_universe(range(1, 21))
    return batcher
