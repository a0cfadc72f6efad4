import redis
from functools import lru_cache


@lru_cache
def get_redis(url: str):
    return redis.Redis.from_url(url, decode_responses=True)
