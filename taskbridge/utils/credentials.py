"""Secure credential storage using system keyring."""

import logging

import keyring
import keyring.errors

logger = logging.getLogger(__name__)

# Keyring service name for taskbridge
SERVICE_NAME = "taskbridge"

TODOIST_TOKEN_KEY = "todoist:api_token"


class CredentialStore:
    """Manages secure storage of the Todoist API token using system keyring."""

    def __init__(self, service_name: str = SERVICE_NAME):
        """
        Initialize credential store.

        Args:
            service_name: Name of the service in keyring (default: "taskbridge")
        """
        self.service_name = service_name

    def set_todoist_token(self, token: str) -> None:
        """
        Store the Todoist API token in system keyring.

        Args:
            token: Todoist API token

        Raises:
            keyring.errors.PasswordSetError: If the token cannot be stored
        """
        try:
            keyring.set_password(self.service_name, TODOIST_TOKEN_KEY, token)
            logger.info("Stored Todoist API token in system keyring")
        except Exception as e:
            logger.error(f"Failed to store Todoist API token: {e}")
            raise

    def get_todoist_token(self) -> str | None:
        """
        Retrieve the Todoist API token from system keyring.

        Returns:
            Token if found, None otherwise
        """
        try:
            token = keyring.get_password(self.service_name, TODOIST_TOKEN_KEY)
            if not token:
                logger.debug("No Todoist API token found in keyring")
            return token
        except Exception as e:
            logger.error(f"Failed to retrieve Todoist API token: {e}")
            return None

    def delete_todoist_token(self) -> bool:
        """
        Delete the Todoist API token from system keyring.

        Returns:
            True if deleted, False if not found or error
        """
        try:
            keyring.delete_password(self.service_name, TODOIST_TOKEN_KEY)
            logger.info("Deleted Todoist API token from system keyring")
            return True
        except keyring.errors.PasswordDeleteError:
            logger.warning("No Todoist API token found to delete")
            return False
        except Exception as e:
            logger.error(f"Failed to delete Todoist API token: {e}")
            return False
