from app.sessions.airtable_store import AirtableSessionStore
from app.sessions.factory import build_session_store
from app.sessions.redis_store import RedisSessionStore
from app.sessions.reliable_store import ReliableSessionStore
from app.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_cookie_mode_has_no_server_store():
    assert build_session_store(_settings(SESSION_STORE="cookie")) is None


def test_airtable_without_credentials_is_memory_only():
    store = build_session_store(_settings(SESSION_STORE="airtable", AIRTABLE_API_KEY=None, AIRTABLE_BASE_ID=None))
    assert isinstance(store, ReliableSessionStore)
    assert store.using_fallback
    assert store.status()["has_primary"] is False


def test_airtable_with_credentials_wraps_primary():
    store = build_session_store(
        _settings(
            SESSION_STORE="airtable",
            AIRTABLE_API_KEY="keyX",
            AIRTABLE_BASE_ID="appX",
            SESSION_TTL_SECONDS=120,
            SESSION_FALLBACK_COOLDOWN_SECONDS=30,
        )
    )
    assert isinstance(store, ReliableSessionStore)
    assert not store.using_fallback
    assert store.cooldown_seconds == 30
    assert isinstance(store._primary, AirtableSessionStore)
    assert store._primary.ttl_seconds == 120


def test_redis_mode():
    store = build_session_store(_settings(SESSION_STORE="redis", REDIS_KEY_PREFIX="t:"))
    assert isinstance(store, RedisSessionStore)
    assert store.prefix == "t:"
