"""
재시도 로직 유틸리티.

저장소 호출 실패 시 지수 백오프로 자동 재시도합니다.
UpdateError는 retryable 플래그가 True일 때만 재시도합니다.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.core.settings import RetrySettings
from src.domain.errors import UpdateError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: Exception) -> bool:
    """UpdateError면 retryable 플래그, 그 외 예외는 재시도 안 함."""
    return isinstance(error, UpdateError) and error.retryable


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetrySettings | None = None,
    exceptions: tuple[type[Exception], ...] = (UpdateError,),
    should_retry: Callable[[Exception], bool] = is_retryable,
    operation: str = "",
    **kwargs: Any,
) -> T:
    """
    지수 백오프를 사용한 재시도.

    Args:
        func: 재시도할 비동기 함수
        *args: func에 전달할 위치 인자
        policy: 재시도 설정 (max_retries, initial_delay, max_delay, exponential_base)
        exceptions: 잡을 예외 타입들
        should_retry: 잡은 예외를 재시도할지 판정
        operation: 로그용 작업 이름
        **kwargs: func에 전달할 키워드 인자

    Returns:
        func의 반환값

    Raises:
        마지막 시도에서 발생한 예외 (재시도 불가 예외는 즉시)
    """
    policy = policy or RetrySettings()
    delay = policy.initial_delay
    label = operation or getattr(func, "__name__", "operation")

    for attempt in range(policy.max_retries + 1):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(
                    f"{label}: retry succeeded on attempt "
                    f"{attempt + 1}/{policy.max_retries + 1}"
                )
            return result

        except exceptions as e:
            if not should_retry(e):
                raise

            if attempt == policy.max_retries:
                logger.error(
                    f"{label}: all {policy.max_retries + 1} attempts failed. "
                    f"Last error: {e}"
                )
                raise

            logger.warning(
                f"{label}: attempt {attempt + 1}/{policy.max_retries + 1} failed: {e}. "
                f"Retrying in {delay:.2f}s..."
            )

            await asyncio.sleep(delay)

            # 지수 백오프
            delay = min(delay * policy.exponential_base, policy.max_delay)

    # Should never reach here
    msg = "Unexpected retry logic error"
    raise RuntimeError(msg)
