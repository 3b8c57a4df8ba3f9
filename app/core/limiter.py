from app.core.config import Settings


def build_limiter(config: Settings):
    if config.env.lower() == "test":
        return None
    from slowapi import Limiter
    from slowapi.util import get_remote_address

    return Limiter(
        key_func=get_remote_address,
        default_limits=[config.rate_limit_global],
        headers_enabled=False,
    )
