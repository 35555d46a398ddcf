"""Engine factory shared by the scheduler, the CLI and the HTTP API."""

import logging

from taskbridge.core.config import AppConfig
from taskbridge.core.engine import (
    AlexaRemindersSyncEngine,
    AlexaShoppingSyncEngine,
    GoogleSyncEngine,
    MicrosoftSyncEngine,
    SyncEngine,
)
from taskbridge.core.errors import ConfigurationError
from taskbridge.sources.alexa.client import AlexaClient, AlexaRemindersSource, AlexaShoppingSource
from taskbridge.sources.google.client import GoogleTasksClient, GoogleTasksSource
from taskbridge.sources.microsoft.client import MicrosoftTodoClient, MicrosoftTodoSource
from taskbridge.sources.todoist.client import TodoistClient
from taskbridge.utils.tokens import OAuthTokenFile

logger = logging.getLogger(__name__)

SERVICES = ("google", "alexa_reminders", "alexa_shopping", "microsoft")

MICROSOFT_SCOPE = "offline_access Tasks.ReadWrite User.Read"


def enabled_services(config: AppConfig) -> list[str]:
    """Services that are switched on in the configuration."""
    services = []
    if config.google.enabled:
        services.append("google")
    if config.alexa.enabled and config.alexa.lists:
        services.append("alexa_reminders")
    if config.alexa.enabled and config.alexa.sync_shopping_list.enabled:
        services.append("alexa_shopping")
    if config.microsoft.enabled:
        services.append("microsoft")
    return services


def poll_interval(config: AppConfig, service: str) -> int:
    """Poll interval in minutes for a service."""
    if service == "google":
        return config.google.poll_interval_minutes
    if service == "microsoft":
        return config.microsoft.poll_interval_minutes
    return config.alexa.poll_interval_minutes


def build_todoist_client(config: AppConfig) -> TodoistClient:
    """
    Create a Todoist client from configuration.

    Raises:
        ConfigurationError: If no API token is available
    """
    return TodoistClient(
        config.todoist.get_api_token(),
        config.todoist.base_url,
        max_attempts=config.sync.retry_attempts,
        initial_delay=config.sync.retry_initial_delay,
        max_delay=config.sync.retry_max_delay,
    )


def build_engine(service: str, config: AppConfig) -> SyncEngine:
    """
    Create the sync engine for a service.

    Every engine gets its own clients; closing one engine never affects
    another.

    Args:
        service: One of ``SERVICES``
        config: Application configuration

    Returns:
        Uninitialized engine

    Raises:
        ConfigurationError: If the service is unknown or misconfigured
    """
    if service not in SERVICES:
        raise ConfigurationError(f"Unknown service: {service}. Expected one of: {', '.join(SERVICES)}")

    todoist = build_todoist_client(config)

    if service == "google":
        tokens = OAuthTokenFile(config.google.token_path, config.google.token_uri)
        source = GoogleTasksSource(GoogleTasksClient(tokens.get_access_token))
        return GoogleSyncEngine(config, todoist, source)

    if service in ("alexa_reminders", "alexa_shopping"):
        client = AlexaClient(
            config.alexa.cookie_path,
            config.alexa.amazon_page,
            max_attempts=config.alexa.max_retries,
        )
        if service == "alexa_reminders":
            return AlexaRemindersSyncEngine(config, todoist, AlexaRemindersSource(client))
        return AlexaShoppingSyncEngine(config, todoist, AlexaShoppingSource(client))

    if not config.microsoft.client_id:
        logger.debug("No Microsoft client_id configured, relying on the token file")
    tokens = OAuthTokenFile(
        config.microsoft.token_path,
        config.microsoft.token_uri,
        client_id=config.microsoft.client_id,
        scope=MICROSOFT_SCOPE,
    )
    source = MicrosoftTodoSource(MicrosoftTodoClient(tokens.get_access_token))
    return MicrosoftSyncEngine(config, todoist, source)
