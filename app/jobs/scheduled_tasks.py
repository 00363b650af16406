import threading
import time

import schedule

from infrastructure.configuration import Settings
from infrastructure.logging import get_module_logger
from infrastructure.notifications.service import NotificationService
from infrastructure.resilience import get_open_circuit_breakers

logger = get_module_logger()


def safe_run(job):
    def wrapper(*args, **kwargs):
        try:
            job(*args, **kwargs)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "safe_run_error",
                error=str(e),
                function=job.__name__,
                module=job.__module__,
            )

    wrapper.__name__ = job.__name__
    return wrapper


def init(settings: Settings, service: NotificationService):
    logger.info(
        "scheduled_tasks_initialized",
        dispatch_interval_seconds=settings.dispatch.interval_seconds,
        sweep_interval_minutes=settings.dispatch.sweep_interval_minutes,
    )

    schedule.every(5).minutes.do(safe_run(scheduler_heartbeat))
    schedule.every(settings.dispatch.interval_seconds).seconds.do(
        safe_run(dispatch_due_notifications), service=service
    )
    schedule.every(settings.dispatch.sweep_interval_minutes).minutes.do(
        safe_run(archive_expired_notifications), service=service
    )
    schedule.every(5).minutes.do(safe_run(integration_healthchecks), service=service)


def scheduler_heartbeat():
    logger.info("scheduler_heartbeat", time=time.ctime())


def dispatch_due_notifications(service: NotificationService):
    stats = service.run_due_dispatch()
    if stats["failed"] or stats["unavailable"]:
        logger.warning("dispatch_cycle_with_failures", **stats)


def archive_expired_notifications(service: NotificationService):
    logger.info("expiry_sweep_started")
    archived = service.cleanup_expired()
    logger.info("expiry_sweep_completed", archived=archived)


def integration_healthchecks(service: NotificationService):
    logger.info("integration_healthchecks_started")
    for key, result in service.channel_health().items():
        if result.is_success:
            logger.info("integration_healthy", integration=key)
        else:
            logger.error(
                "integration_unhealthy",
                integration=key,
                status=result.status.value,
                error=result.message,
                error_code=result.error_code,
            )
    open_circuits = get_open_circuit_breakers()
    if open_circuits:
        logger.warning("circuit_breakers_open", circuits=open_circuits)


def run_continuously(interval=1):
    """Continuously run, while executing pending jobs at each
    elapsed time interval.
    @return cease_continuous_run: threading. Event which can
    be set to cease continuous run. Please note that it is
    *intended behavior that run_continuously() does not run
    missed jobs*. For example, if you've registered a job that
    should run every minute and you set a continuous run
    interval of one hour then your job won't be run 60 times
    at each interval but only once.
    """
    cease_continuous_run = threading.Event()

    class ScheduleThread(threading.Thread):
        @classmethod
        def run(cls):
            while not cease_continuous_run.is_set():
                schedule.run_pending()
                time.sleep(interval)

    continuous_thread = ScheduleThread(daemon=True)
    continuous_thread.start()
    return cease_continuous_run


def stop(cease_continuous_run: threading.Event):
    cease_continuous_run.set()
    schedule.clear()
    logger.info("scheduled_tasks_stopped")
