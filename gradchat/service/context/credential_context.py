import logging

from redis.exceptions import RedisError

from gradchat.client.db.redis import redis_client
from gradchat.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _credential_key(user_id: str) -> str:
    return f"chat:credential:{user_id}"


def get_api_key(user_id: str) -> str:
    if not user_id:
        return ""
    try:
        data = redis_client.get(_credential_key(user_id))
    except RedisError:
        logger.exception("credential lookup failed user=%s", user_id)
        return ""
    return data or ""


def save_api_key(user_id: str, api_key: str) -> None:
    """Store the query-service key with no expiry; it survives restarts."""
    if not user_id:
        raise ConfigurationError("user_id is required")
    if not api_key or not api_key.strip():
        raise ConfigurationError("api_key must not be blank")
    redis_client.set(_credential_key(user_id), api_key.strip())
