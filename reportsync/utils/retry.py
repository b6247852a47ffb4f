import time
import functools
from typing import Callable, Optional, Type, Tuple
from reportsync.logging_config.logger import setup_logger

logger = setup_logger(__name__)


def retry_on_exception(
    exception_types: Tuple[Type[Exception], ...] = (Exception,),
    max_retries: int = 3,
    delay_seconds: float = 5,
    backoff_factor: float = 1.0,
    sleep: Optional[Callable[[float], None]] = None,
) -> Callable:
    """
    Decorator retrying a function when it raises one of the given exceptions

    Args:
        exception_types: Exception types to react to
        max_retries: Maximum number of attempts
        delay_seconds: Delay between attempts in seconds
        backoff_factor: Delay multiplier per attempt (1.0 = constant delay)
        sleep: Sleep function (defaults to time.sleep at call time)

    Example:
        @retry_on_exception(exception_types=(httpx.TransportError,), max_retries=3, delay_seconds=2)
        def fetch_data():
            return client.post(url)
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            current_delay = delay_seconds

            while True:
                try:
                    return func(*args, **kwargs)
                except exception_types as e:
                    attempt += 1

                    if attempt >= max_retries:
                        logger.error(
                            f"Failed after {max_retries} attempts in {func.__name__}: {e}",
                            exc_info=True
                        )
                        raise

                    logger.warning(
                        f"Attempt {attempt}/{max_retries} failed in {func.__name__}. "
                        f"Retrying in {current_delay:.1f}s... Error: {e}"
                    )

                    (sleep or time.sleep)(current_delay)
                    current_delay *= backoff_factor

        return wrapper
    return decorator
