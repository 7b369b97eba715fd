from __future__ import annotations

import fakeredis
import numpy as np
import pytest

from client.redis import Client as RedisClient
from feed.batchCache import BatchCache
from feed.candidateBlender import CandidateBlender
from feed.collaborativeScorer import CollaborativeScorer
from feed.config import FeedConfig
from feed.feedAssembler import FeedAssembler
from fakes import InMemoryCatalog, InMemoryHistory


@pytest.fixture()
def config() -> FeedConfig:
    return FeedConfig()


@pytest.fixture()
def fake_redis() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def redis_client(fake_redis) -> RedisClient:
    return RedisClient(client=fake_redis)


@pytest.fixture()
def batch_cache(redis_client, config) -> BatchCache:
    return BatchCache(redis_client, config)


@pytest.fixture()
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture()
def history() -> InMemoryHistory:
    return InMemoryHistory()


@pytest.fixture()
def scorer(history, config) -> CollaborativeScorer:
    return CollaborativeScorer(history, config)


@pytest.fixture()
def blender(scorer, catalog, config) -> CandidateBlender:
    return CandidateBlender(scorer, catalog, config, rng=np.random.default_rng(42))


@pytest.fixture()
def assembler(catalog, history, blender, batch_cache, config) -> FeedAssembler:
    return FeedAssembler(catalog, history, blender=blender, batch_cache=batch_cache, config=config)
