"""
TeamTime Workflow Client
Client factory.

Usage:
    from teamtime import init_client
    client = init_client()           # defaults to APP_ENV or "development"
    client = init_client("testing")  # explicit config
"""

import logging
from dataclasses import dataclass

from teamtime.config import Config, get_config
from teamtime.integrations.api_gateway import api_gateway
from teamtime.logging_config import configure_logging
from teamtime.services.import_workflow import ImportWorkflow
from teamtime.services.session_service import SessionManager, SessionStore

__version__ = "1.0.0"

logger = logging.getLogger(__name__)


@dataclass
class Client:
    """What init_client() wired together."""

    config: Config
    session: SessionManager

    def new_import_workflow(self) -> ImportWorkflow:
        return ImportWorkflow(
            poll_interval=self.config.IMPORT_POLL_INTERVAL,
            poll_timeout=self.config.IMPORT_POLL_TIMEOUT,
        )


def init_client(config_name=None, *, session_file=None) -> Client:
    """
    Configure logging, restore the session and bind the API gateway.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        session_file: Overrides SESSION_FILE from the config.

    Returns:
        Client holding the active config and session manager.
    """
    cfg = get_config(config_name)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(cfg)

    # ── Session ──────────────────────────────────────────────────────────
    store = SessionStore(session_file or cfg.SESSION_FILE)
    session = SessionManager(store).init()

    # ── Gateway ──────────────────────────────────────────────────────────
    api_gateway.configure(
        base_url=cfg.API_BASE_URL,
        timeout=cfg.REQUEST_TIMEOUT,
        upload_timeout=cfg.UPLOAD_TIMEOUT,
        token_provider=session.token_provider,
        on_unauthorized=session.handle_unauthorized,
    )
    logger.debug("TeamTime client bound to %s", cfg.API_BASE_URL)
    return Client(config=cfg, session=session)
