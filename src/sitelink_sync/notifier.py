"""
Status notifications delivered to a chat webhook.

The synchronizer pushes one-line status messages (site checked, page
moved, site links updated) while it works.  ``WebhookMessenger`` posts
them to a Discord-compatible webhook from a background thread so the
engine never waits on the chat service, and ``WebhookLogHandler`` lets
the logging system forward warnings and errors to the same channel.
"""

import logging
import os
import queue
import threading
import time

import requests

logger = logging.getLogger(__name__)

# Discord rejects message content longer than this.
MAX_MESSAGE_LENGTH = 2000
DEFAULT_QUEUE_SIZE = 1024
MAX_RATE_LIMIT_RETRIES = 5

_STOP = object()


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Shorten *message* to *limit* characters, marking the cut."""
    if len(message) <= limit:
        return message
    marker = "\n...(truncated)"
    return message[: limit - len(marker)] + marker


class NullMessenger:
    """Messenger used when no webhook is configured; discards everything."""

    def push(self, message: str) -> None:
        pass

    def close(self, timeout: float | None = None) -> None:
        pass

    def __enter__(self) -> "NullMessenger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class WebhookMessenger:
    """Fire-and-forget status sink backed by one worker thread.

    Messages are queued in a bounded queue and posted in order.  ``push``
    blocks only while the queue is full; an accepted message is never
    dropped.  If the worker fails (e.g. the webhook was deleted), the
    failure is re-raised by every later ``push``.

    Args:
        webhook_url: Discord-compatible webhook URL.
        queue_size: Maximum number of undelivered messages.
        session: HTTP session to post with (tests inject a fake one).
        timeout: Connect/read timeout for each post.
    """

    def __init__(
        self,
        webhook_url: str,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        session: requests.Session | None = None,
        timeout: tuple[float, float] = (10, 30),
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()
        self._error: Exception | None = None
        self._worker = threading.Thread(
            target=self._run, name="webhook-messenger", daemon=True
        )
        self._worker.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def push(self, message: str) -> None:
        """
        Queue *message* for delivery.

        Messages pushed after ``close()`` are ignored.

        Raises:
            Exception: The error that stopped the worker, if any.
        """
        if self._closed.is_set():
            return
        if self._error is not None:
            raise self._error
        self._queue.put(message)

    def close(self, timeout: float | None = 15) -> None:
        """Deliver what is queued, then stop the worker.

        Args:
            timeout: Seconds to wait for the queue to drain.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        if self._worker.is_alive():
            try:
                self._queue.put(_STOP, timeout=timeout)
            except queue.Full:
                logger.warning("Webhook queue still full at shutdown")
                return
            self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning(
                "Webhook worker did not finish in %ss; about %d message(s) "
                "may be lost",
                timeout,
                self._queue.qsize(),
            )

    def __enter__(self) -> "WebhookMessenger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            if message is _STOP:
                return
            try:
                self._send(message)
            except Exception as exc:
                logger.error("Webhook delivery failed: %s", exc)
                self._error = exc
                return

    def _send(self, message: str) -> None:
        payload = {
            "content": truncate_message(message),
            "allowed_mentions": {"parse": []},
        }
        for _ in range(MAX_RATE_LIMIT_RETRIES):
            response = self._session.post(
                self.webhook_url, json=payload, timeout=self.timeout
            )
            if response.status_code != 429:
                response.raise_for_status()
                return
            delay = _retry_after(response)
            logger.debug("Webhook rate limited; retrying in %.2fs", delay)
            time.sleep(delay)
        response.raise_for_status()


def _retry_after(response: requests.Response) -> float:
    """Seconds to wait before retrying a rate-limited post."""
    try:
        return float(response.json()["retry_after"])
    except (ValueError, KeyError, TypeError):
        pass
    try:
        return float(response.headers.get("Retry-After", 1))
    except ValueError:
        return 1.0


# ---------------------------------------------------------------------------
# Logging integration
# ---------------------------------------------------------------------------

_LEVEL_TAGS = {
    logging.DEBUG: "DBG",
    logging.INFO: "INF",
    logging.WARNING: "**WRN**",
    logging.ERROR: "**ERR**",
    logging.CRITICAL: "**CRT**",
}


class ChatLogFormatter(logging.Formatter):
    """Format a record as a short chat block.

    Output example::

        **WRN**: sitelink_sync.sync.engine
                 Max check duration reached on enwiki.

    The current working directory is replaced by ``$PWD`` so local
    paths in tracebacks are not published.
    """

    def format(self, record: logging.LogRecord) -> str:
        tag = _LEVEL_TAGS.get(record.levelno, record.levelname)
        margin = " " * (len(tag) + 2)
        text = f"{tag}: {record.name}\n{margin}{record.getMessage()}"
        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            text += "\n" + "\n".join(
                margin + line for line in exc_text.splitlines()
            )
        return text.replace(os.getcwd(), "$PWD")


class WebhookLogHandler(logging.Handler):
    """Forward log records to a messenger.

    Records emitted by this module are skipped, so delivery problems
    cannot feed back into the queue.
    """

    def __init__(self, messenger, level: int = logging.WARNING):
        super().__init__(level)
        self.messenger = messenger
        self.setFormatter(ChatLogFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == __name__:
            return
        try:
            self.messenger.push(self.format(record))
        except Exception:
            self.handleError(record)


def create_messenger(
    webhook_url: str | None, queue_size: int = DEFAULT_QUEUE_SIZE
):
    """Return a ``WebhookMessenger``, or a ``NullMessenger`` if no URL."""
    if not webhook_url:
        return NullMessenger()
    return WebhookMessenger(webhook_url, queue_size=queue_size)
