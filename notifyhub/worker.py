"""
Delivery worker for NotifyHub (the consumer service).

Joins the consumer group on the notification and retry topics, renders and
sends each message, and records the outcome.

Run with:
    python -m notifyhub.worker
"""
import asyncio
import signal

from prometheus_client import start_http_server

from notifyhub.config import Settings, settings
from notifyhub.logging_config import configure_logging, get_logger
from notifyhub.sentry_config import configure_sentry
from notifyhub.services.context import ServiceContext
from notifyhub.services.delivery import DeliveryWorker
from notifyhub.services.email_gateway import SMTPEmailGateway
from notifyhub.services.log_shipper import log_shipper

log = get_logger(component="worker")


async def main(config: Settings = settings) -> None:
    configure_logging()
    configure_sentry(service="consumer")
    log_shipper.start(config.LOG_SERVER_URL, service="consumer")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    # No cache in the worker: templates are read straight from the database
    context = ServiceContext.from_settings(
        config,
        client_id=f"{config.KAFKA_CLIENT_ID}-consumer",
        with_cache=False,
    )
    tasks: list[asyncio.Task] = []
    try:
        await context.start()

        gateway = SMTPEmailGateway.from_settings(config)
        if not await gateway.verify():
            log.warning("smtp_unverified", host=config.SMTP_HOST, port=config.SMTP_PORT)

        if config.WORKER_METRICS_PORT:
            start_http_server(config.WORKER_METRICS_PORT)

        worker = DeliveryWorker(
            context.session_factory,
            gateway,
            context.broker,
            retry_topic=config.RETRY_TOPIC,
            retry_delays=config.RETRY_DELAYS,
            send_timeout=config.SMTP_TIMEOUT,
            stop_event=stop_event,
        )

        async def handler(value: bytes) -> None:
            await worker.handle_record(value)

        tasks = [
            asyncio.create_task(
                context.broker.consume(topic, config.KAFKA_CONSUMER_GROUP, handler, stop_event)
            )
            for topic in (config.NOTIFICATION_TOPIC, config.RETRY_TOPIC)
        ]
        log.info(
            "worker_started",
            topics=[config.NOTIFICATION_TOPIC, config.RETRY_TOPIC],
            group_id=config.KAFKA_CONSUMER_GROUP,
        )

        # A consumer that dies takes the worker down with it
        stopped = asyncio.create_task(stop_event.wait())
        done, _ = await asyncio.wait(
            [stopped, *tasks],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in done:
            if task in tasks and task.exception() is not None:
                raise task.exception()
        stopped.cancel()
    finally:
        stop_event.set()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await context.stop()
        log.info("worker_stopped")
        await log_shipper.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
