"""Shared FastAPI dependencies.

Process-wide collaborators are built lazily from settings and cached, so
the API and the SMTP receiver share one attachment store, one subscriber
registry and one fanout. Tests replace them through
app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from .auth.oauth_state import InMemoryOAuthStateStore, OAuthStateStore, RedisOAuthStateStore
from .config import settings
from .database import get_db
from .domain.attachments.ports import AttachmentStoragePort
from .infrastructure.identity import IdentityProviderClient
from .infrastructure.storage import create_attachment_storage, load_storage_config
from .notifications.broadcast import SubscriberRegistry
from .notifications.fanout import NotificationFanout
from .notifications.webhook import WebhookNotifier
from .uploads.service import UploadLifecycleManager


@lru_cache()
def get_storage() -> AttachmentStoragePort:
    return create_attachment_storage(load_storage_config(settings))


@lru_cache()
def get_subscriber_registry() -> SubscriberRegistry:
    return SubscriberRegistry()


@lru_cache()
def get_webhook_notifier() -> WebhookNotifier:
    return WebhookNotifier(settings.WEBHOOK_URL, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)


@lru_cache()
def get_fanout() -> NotificationFanout:
    return NotificationFanout(get_webhook_notifier(), get_subscriber_registry())


@lru_cache()
def get_identity_client() -> IdentityProviderClient:
    return IdentityProviderClient(
        oauth_base_url=settings.OAUTH_BASE_URL,
        api_base_url=settings.IDENTITY_API_URL,
        client_id=settings.OAUTH_CLIENT_ID,
        client_secret=settings.OAUTH_CLIENT_SECRET,
        redirect_uri=f"{settings.SELF_BASE_URL.rstrip('/')}/oauth/code",
        timeout=settings.IDENTITY_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_oauth_state_store() -> OAuthStateStore:
    """Redis-backed when REDIS_URL is set, otherwise in-process."""
    if settings.REDIS_URL:
        return RedisOAuthStateStore.from_url(
            settings.REDIS_URL, ttl_seconds=settings.OAUTH_STATE_TTL_SECONDS
        )
    return InMemoryOAuthStateStore(
        ttl_seconds=settings.OAUTH_STATE_TTL_SECONDS,
        max_entries=settings.OAUTH_STATE_MAX_ENTRIES,
    )


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    storage: AttachmentStoragePort = Depends(get_storage),
    fanout: NotificationFanout = Depends(get_fanout),
) -> UploadLifecycleManager:
    return UploadLifecycleManager(db, storage, fanout)
