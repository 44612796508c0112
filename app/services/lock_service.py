import redis
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua,s krypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec tu jest get + porownanie + del wszystko naraz


def payment_session_key(order_id: int) -> str:
    return f"order:{order_id}:payment-session"


class LockService:
    """
    -krotki lock na klucz (np. otwieranie sesji platnosci dla zamowienia)
    -zwalnianie tylko przez wlasciciela
    -atomowosc przy pomocy lua
    Lock jest pomocniczy, prawda i tak jest w bazie (CAS na zamowieniu).
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, owner: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key} for {owner}")
        #SET order:1:payment-session "abc" NX EX 30
        return bool(
            self.redis.set(
                name=key,
                value=owner,
                nx=True, #not eXists, jesli nie istnieje to True, jak jest to nic nie rob i False
                ex=ttl, #Expire - lock porzucony przez padniety proces sam wygasa
            )
        )

    @redis_retry()
    def release(self, key: str, owner: str) -> bool:
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
