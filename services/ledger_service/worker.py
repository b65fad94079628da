"""ARQ worker for bonus calculation and scheduled ledger jobs."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def startup(ctx: dict):
    configure_logging()


async def task_calculate_payment_bonuses(ctx: dict, payment_id: str):
    from services.ledger_service.tasks import calculate_payment_bonuses

    logger.info("Running: calculate_payment_bonuses(%s)", payment_id)
    return await calculate_payment_bonuses(payment_id)


async def task_allocate_payment(ctx: dict, payment_id: str, product_id: str):
    from services.ledger_service.tasks import allocate_payment

    logger.info("Running: allocate_payment(%s, %s)", payment_id, product_id)
    return await allocate_payment(payment_id, product_id)


async def task_process_celebration_bonuses(ctx: dict):
    from services.ledger_service.tasks import process_celebration_bonuses

    logger.info("Running: process_celebration_bonuses")
    return await process_celebration_bonuses()


async def task_refresh_referral_multipliers(ctx: dict):
    from services.ledger_service.tasks import refresh_referral_multipliers

    logger.info("Running: refresh_referral_multipliers")
    return await refresh_referral_multipliers()


async def task_refresh_risk_scores(ctx: dict):
    from services.ledger_service.tasks import refresh_risk_scores

    logger.info("Running: refresh_risk_scores")
    return await refresh_risk_scores()


async def task_reconcile_wallets(ctx: dict):
    from services.ledger_service.tasks import reconcile_wallets

    logger.info("Running: reconcile_wallets")
    return await reconcile_wallets()


class WorkerSettings:
    redis_settings = get_redis_settings()
    on_startup = startup

    functions = [
        task_calculate_payment_bonuses,
        task_allocate_payment,
        task_process_celebration_bonuses,
        task_refresh_referral_multipliers,
        task_refresh_risk_scores,
        task_reconcile_wallets,
    ]

    # Times are UTC; 19:00 UTC is 00:30 IST.
    cron_jobs = [
        cron(task_process_celebration_bonuses, hour={19}, minute={0}),
        cron(task_refresh_referral_multipliers, hour={19}, minute={15}),
        cron(task_refresh_risk_scores, hour={19}, minute={30}),
        cron(task_reconcile_wallets, hour={20}, minute={0}),
    ]
