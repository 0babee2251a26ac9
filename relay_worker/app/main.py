import asyncio
import signal
from typing import Any

from loguru import logger

from relay_worker.app.composition import create_worker_dependencies
from relay_worker.app.core import SERVICE_NAME
from relay_worker.app.messaging.consumer import create_batch_handler


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker() -> None:
    deps = create_worker_dependencies()
    shutdown = asyncio.Event()
    batch_handler_errors: asyncio.Queue[Exception] = asyncio.Queue()
    consumer_tag: str | None = None

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    try:
        await deps.connect()
        handler = create_batch_handler(deps.dispatcher, batch_handler_errors)
        consumer_tag = await deps.message_consumer.start_consuming(handler)
        _log("worker_started", consumer_tag=consumer_tag)

        shutdown_wait = asyncio.create_task(shutdown.wait())
        fatal_wait = asyncio.create_task(batch_handler_errors.get())
        done, pending = await asyncio.wait(
            {shutdown_wait, fatal_wait},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        if fatal_wait in done:
            # Configuration errors make every delivery impossible; stop instead of spinning.
            raise fatal_wait.result()
    finally:
        if consumer_tag is not None:
            try:
                await deps.message_consumer.cancel(consumer_tag)
            except Exception as exc:
                logger.warning("consumer cancel failed: {}", exc)
        await deps.close()
        _log("worker_stopped")


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
