"""Bounded retries with exponential backoff for the HTTP collaborator."""

import time
from functools import wraps
from typing import Any, Callable, Tuple, Type, TypeVar, cast

from freshgate.core.logger import logger

F = TypeVar('F', bound=Callable[..., Any])


def with_retries(
    max_retries: int = 1,
    initial_delay: float = 0.5,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    max_delay: float = 4.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[F], F]:
    """
    Retry the wrapped call on the listed exceptions, doubling the pause each time.

    A fetch sits inside a per-source time budget, so the pause is capped at
    ``max_delay`` and the attempt count stays small.

    Args:
        max_retries (int): Retries after the first attempt; 0 disables retrying.
        initial_delay (float): Pause before the first retry, in seconds.
        exceptions (tuple): Exception types that trigger a retry. Anything
            else propagates on the first occurrence.
        max_delay (float): Upper bound for any single pause.
        sleep (Callable): Pause function, replaceable in tests.

    Returns:
        Callable: The decorator.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        logger.warning(
                            f"with_retries: func={func.__name__} gave up attempts={attempt + 1} error={e}"
                        )
                        raise
                    attempt += 1
                    pause = min(delay, max_delay)
                    logger.info(
                        f"with_retries: func={func.__name__} retry={attempt}/{max_retries} "
                        f"wait={pause:.2f}s error={e}"
                    )
                    if pause > 0:
                        sleep(pause)
                    delay *= 2
        return cast(F, wrapper)
    return decorator
