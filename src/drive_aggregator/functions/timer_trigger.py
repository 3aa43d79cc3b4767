"""Timer trigger blueprint — scheduled auto-relieve of the primary account."""

import logging

import azure.functions as func

from drive_aggregator.config import load_config
from drive_aggregator.orchestration.session import session_from_config

logger = logging.getLogger(__name__)

bp = func.Blueprint()


@bp.timer_trigger(
    schedule="0 0 * * * *",
    arg_name="timer",
    run_on_startup=False,
)
def timer_trigger(timer: func.TimerRequest) -> None:
    """Scheduled trigger that keeps the primary account below its low-space threshold.

    Runs hourly. Does nothing until a primary account has been connected.
    """
    logger.info("Timer trigger fired")

    try:
        if timer.past_due:
            logger.warning("Timer trigger is past due")

        session = session_from_config(load_config())
        primary = session.accounts.primary()
        if primary is None:
            logger.info("No primary account connected; nothing to relieve")
            return

        moved = session.allocator.check_and_auto_relieve(primary.account_id)
        logger.info("Auto-relieve complete; account_id:%s;moved:%d", primary.account_id, len(moved))

    except Exception:
        logger.exception("Timer trigger failed")
        raise
