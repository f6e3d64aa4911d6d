"""Staff login: flat username/password equality against ``/admins``.

There are no tokens or hashes. A successful login only sets the client's
session flag; the first deployment without an ``/admins`` entry accepts the
configured fallback pair.
"""

import logging

from tableorder.core.config import Settings, settings as default_settings
from tableorder.core.errors import AuthenticationError
from tableorder.db.store import DocumentStore
from tableorder.services.sync_service import to_ordered_list

logger = logging.getLogger(__name__)


def authenticate(store: DocumentStore, username: str, password: str,
                 config: Settings = default_settings) -> None:
    """Raise ``AuthenticationError`` unless the pair matches an admin entry."""
    admins = [a for a in to_ordered_list(store.read_all().get("admins")) if isinstance(a, dict)]

    if admins:
        if any(a.get("username") == username and a.get("password") == password for a in admins):
            logger.info(f"Staff login succeeded for '{username}'")
            return
        logger.warning(f"Staff login failed for '{username}'")
        raise AuthenticationError("Incorrect username or password")

    if username == config.fallback_admin_username and password == config.fallback_admin_password:
        logger.info("Staff login accepted with the fallback admin account")
        return
    logger.warning(f"Staff login failed for '{username}': no admin accounts configured")
    raise AuthenticationError("No admin accounts are configured yet")
