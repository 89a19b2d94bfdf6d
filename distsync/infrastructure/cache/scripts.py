"""Lua scripts for every check-then-act step. Each runs as one atomic unit inside Redis."""

from distsync.infrastructure.cache.base import StoreScript

# KEYS[1] counter; ARGV[1] window ms. Returns {count, pttl_ms}.
RATE_LIMIT_INCREMENT = StoreScript(
    name="rate_limit_increment",
    source="""
local current = redis.call('INCR', KEYS[1])
if current == 1 or redis.call('PTTL', KEYS[1]) < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return {current, redis.call('PTTL', KEYS[1])}
""",
)

# KEYS[1] lock key; ARGV[1] token, ARGV[2] ttl ms. Returns 1 if acquired.
LOCK_ACQUIRE = StoreScript(
    name="lock_acquire",
    source="""
if redis.call('SET', KEYS[1], ARGV[1], 'NX', 'PX', ARGV[2]) then
    return 1
end
return 0
""",
)

LOCK_RELEASE = StoreScript(
    name="lock_release",
    source="""
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
""",
)

LOCK_EXTEND = StoreScript(
    name="lock_extend",
    source="""
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return 0
""",
)

# KEYS[1] holder set; ARGV[1] max permits, ARGV[2] token, ARGV[3] ttl ms.
# Returns the new holder count, or 0 when the set is full.
SEMAPHORE_ACQUIRE = StoreScript(
    name="semaphore_acquire",
    source="""
local current = redis.call('SCARD', KEYS[1])
if current < tonumber(ARGV[1]) then
    if redis.call('SADD', KEYS[1], ARGV[2]) == 1 then
        redis.call('PEXPIRE', KEYS[1], ARGV[3])
        return current + 1
    end
end
return 0
""",
)

SEMAPHORE_RELEASE = StoreScript(
    name="semaphore_release",
    source="""
return redis.call('SREM', KEYS[1], ARGV[1])
""",
)

# The set carries one TTL, so this refreshes every holder's lease.
SEMAPHORE_EXTEND = StoreScript(
    name="semaphore_extend",
    source="""
if redis.call('SISMEMBER', KEYS[1], ARGV[1]) == 1 then
    return redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return 0
""",
)

SEMAPHORE_COUNT = StoreScript(
    name="semaphore_count",
    source="""
return redis.call('SCARD', KEYS[1])
""",
)
