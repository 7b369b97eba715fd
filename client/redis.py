import redis
import logging
import os
from typing import Dict, List, Sequence

from feed.errors import UpstreamUnavailable


class Client:
    def __init__(self, redis_url: str = None, client: redis.Redis = None):
        """
        Initialize Redis client for the recommendation batch cache

        Args:
            redis_url: Redis connection URL (from environment)
            client: Pre-built redis client, used instead of connecting by URL
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if client is not None:
            self.client = client
            return

        if not redis_url:
            redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379')

        try:
            self.client = redis.from_url(redis_url, decode_responses=True)
            # Test connection
            self.client.ping()
            self.logger.info("Redis connection established")
        except Exception as e:
            self.logger.error(f"Failed to connect to Redis: {e}")
            raise

    def replace_list(self, key: str, values: Sequence[str], ttl: int) -> bool:
        """
        Atomically replace a list and set its expiry

        Args:
            key: Redis key
            values: Ordered values to append
            ttl: Time to live in seconds

        Returns:
            True if the list was written
        """
        try:
            pipeline = self.client.pipeline(transaction=True)
            pipeline.delete(key)
            pipeline.rpush(key, *values)
            pipeline.expire(key, ttl)
            pipeline.execute()

            self.logger.debug(f"Stored {len(values)} values at {key} for {ttl}s")
            return True
        except redis.RedisError as e:
            self.logger.error(f"Failed to store list {key}: {e}")
            raise UpstreamUnavailable('redis', f"RPUSH {key} failed: {e}") from e

    def create_list(self, key: str, values: Sequence[str], ttl: int) -> bool:
        """
        Write a list with expiry only if the key does not exist yet

        Args:
            key: Redis key
            values: Ordered values to append
            ttl: Time to live in seconds

        Returns:
            True if the list was written, False if the key existed or was
            written concurrently
        """
        try:
            with self.client.pipeline(transaction=True) as pipeline:
                pipeline.watch(key)
                if pipeline.exists(key):
                    pipeline.unwatch()
                    self.logger.debug(f"List {key} already exists, not overwriting")
                    return False

                pipeline.multi()
                pipeline.rpush(key, *values)
                pipeline.expire(key, ttl)
                pipeline.execute()

            self.logger.debug(f"Created {key} with {len(values)} values for {ttl}s")
            return True
        except redis.WatchError:
            self.logger.debug(f"List {key} was written concurrently, not overwriting")
            return False
        except redis.RedisError as e:
            self.logger.error(f"Failed to create list {key}: {e}")
            raise UpstreamUnavailable('redis', f"RPUSH {key} failed: {e}") from e

    def get_list_range(self, key: str, start: int, end: int) -> List[str]:
        """
        Read an inclusive index range of a list

        Args:
            key: Redis key
            start: First index
            end: Last index (inclusive, -1 for the tail)

        Returns:
            Values in the range, empty if the key does not exist
        """
        try:
            return self.client.lrange(key, start, end)
        except redis.RedisError as e:
            self.logger.error(f"Failed to read list {key}[{start}:{end}]: {e}")
            raise UpstreamUnavailable('redis', f"LRANGE {key} failed: {e}") from e

    def get_list_length(self, key: str) -> int:
        """Length of a list, 0 when the key does not exist"""
        try:
            return int(self.client.llen(key))
        except redis.RedisError as e:
            self.logger.error(f"Failed to read length of {key}: {e}")
            raise UpstreamUnavailable('redis', f"LLEN {key} failed: {e}") from e

    def delete_matching(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern

        Args:
            pattern: Redis glob pattern

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if not keys:
                return 0
            deleted = self.client.delete(*keys)
            self.logger.info(f"Deleted {deleted} keys matching {pattern}")
            return deleted
        except redis.RedisError as e:
            self.logger.error(f"Failed to delete keys matching {pattern}: {e}")
            raise UpstreamUnavailable('redis', f"SCAN/DEL {pattern} failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            self.logger.error(f"Redis ping failed: {e}")
            return False

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        try:
            info = self.client.info()
            return {
                'connected_clients': info.get('connected_clients', 0),
                'used_memory_human': info.get('used_memory_human', '0B'),
                'total_commands_processed': info.get('total_commands_processed', 0),
                'keyspace_hits': info.get('keyspace_hits', 0),
                'keyspace_misses': info.get('keyspace_misses', 0)
            }
        except Exception as e:
            self.logger.error(f"Failed to get Redis stats: {e}")
            return {}
