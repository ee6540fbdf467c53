"""
Wiring: config → remote → notifier → controller.

UI shells call build_board() once per session and drive the returned
controller from their event loop.
"""
import logging
from typing import Optional

from .config import Config, configure_logging
from .controller import BoardController
from .notify import Notifier
from .remote import HttpRemoteSync, RemoteSync

logger = logging.getLogger(__name__)


def build_board(
    config_path: Optional[str] = None,
    config: Optional[Config] = None,
    remote: Optional[RemoteSync] = None,
    setup_logging: bool = True,
) -> BoardController:
    cfg = config or Config.load(config_path)
    if setup_logging:
        configure_logging(cfg.log_level)
    if remote is None:
        remote = HttpRemoteSync(
            base_url=cfg.api_base_url,
            api_prefix=cfg.api_prefix,
            timeout=cfg.request_timeout,
        )
    controller = BoardController(
        remote,
        notifier=Notifier(history_size=cfg.notification_history),
        transitions=cfg.transition_table(),
    )
    logger.info(f"Board ready ({type(remote).__name__}, {cfg.api_base_url})")
    return controller
