"""
Quiz engine core logic for the QuizMaster bot.
Handles the countdown timer and the pure projections of session state
(progress, score and answer review).
"""
import asyncio
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import Question, ReviewEntry, UNANSWERED

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_created(timer_id: str, interval: float) -> None:
        """Log timer creation event with structured data."""
        logger.info(
            f"Timer lifecycle: CREATED - Timer {timer_id}, Interval {interval:.2f}s",
            extra={
                'event_type': 'timer_created',
                'timer_id': timer_id,
                'interval': interval,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_start(timer_id: str) -> None:
        """Log timer countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Timer {timer_id}",
            extra={
                'event_type': 'timer_countdown_start',
                'timer_id': timer_id,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(timer_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if remaining_time % 10 == 0 or remaining_time <= 5:
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Timer {timer_id}, Remaining {remaining_time}s ({progress_percent:.1f}% elapsed)",
                extra={
                    'event_type': 'timer_update',
                    'timer_id': timer_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(timer_id: str, completion_type: str, tick_count: int) -> None:
        """Log timer completion (cancellation or task teardown)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Timer {timer_id}, Type {completion_type}, Ticks {tick_count}",
            extra={
                'event_type': 'timer_completed',
                'timer_id': timer_id,
                'completion_type': completion_type,
                'tick_count': tick_count,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(timer_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.info(
            f"Timer lifecycle: STATE_TRANSITION - Timer {timer_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'timer_id': timer_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(timer_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Timer {timer_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer_id': timer_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_race_condition_detected(timer_id: str, details: str) -> None:
        """Log race condition detection."""
        logger.warning(
            f"Timer lifecycle: RACE_CONDITION - Timer {timer_id}: {details}",
            extra={
                'event_type': 'timer_race_condition',
                'timer_id': timer_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class QuizTimer:
    """Repeating countdown tick that fires a callback once per interval."""

    _next_id = 0

    def __init__(self, interval: float, callback: Callable[[], Any]):
        """
        Initialize the timer.

        Args:
            interval: Seconds between ticks
            callback: Called once per tick until the timer is cancelled
        """
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")

        QuizTimer._next_id += 1
        self._timer_id = f"timer-{QuizTimer._next_id}"
        self._interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self._is_cancelled = False
        self._tick_count = 0

        TimerLifecycleLogger.log_timer_created(self._timer_id, interval)

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Timer {self._timer_id} already started")
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        TimerLifecycleLogger.log_timer_start(self._timer_id)

        try:
            while not self._is_cancelled:
                await asyncio.sleep(self._interval)
                if self._is_cancelled:
                    TimerLifecycleLogger.log_race_condition_detected(
                        self._timer_id,
                        "tick woke up after cancellation and was dropped"
                    )
                    break
                self._tick_count += 1
                self._callback()

            TimerLifecycleLogger.log_timer_completion(
                self._timer_id,
                "cancelled",
                self._tick_count
            )

        except asyncio.CancelledError:
            self._is_cancelled = True
            TimerLifecycleLogger.log_timer_completion(
                self._timer_id,
                "asyncio_cancelled",
                self._tick_count
            )
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._timer_id,
                "tick_execution_error",
                str(e),
                "run"
            )
            raise

    def cancel(self) -> None:
        """
        Cancel the timer. No tick callback runs after this returns.

        Safe to call from inside the tick callback itself and safe to call
        more than once.
        """
        if self._is_cancelled:
            return

        TimerLifecycleLogger.log_timer_state_transition(
            self._timer_id,
            "running",
            "cancelled",
            "cancel requested"
        )
        self._is_cancelled = True

        if self._task and not self._task.done() and self._task is not _current_task():
            logger.debug(f"Cancelling task for {self._timer_id}")
            self._task.cancel()

    @property
    def is_cancelled(self) -> bool:
        """Check if timer is cancelled."""
        return self._is_cancelled

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def timer_id(self) -> str:
        return self._timer_id

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class AsyncioScheduler:
    """Time source that runs repeating ticks on the asyncio event loop."""

    def schedule_repeating(self, interval: float, callback: Callable[[], Any]) -> QuizTimer:
        """
        Arm a repeating tick.

        Must be called while an event loop is running.

        Returns:
            The started timer; call ``cancel()`` on it to stop ticking
        """
        timer = QuizTimer(interval, callback)
        timer.start()
        return timer


def progress_percent(position: int, total: int) -> int:
    """
    Navigational progress through the quiz.

    Counts the question being shown as reached, independent of whether it
    has been answered. Halves round up.
    """
    if total <= 0:
        return 0
    return int(math.floor(100 * (position + 1) / total + 0.5))


def time_percent(remaining_seconds: int, duration: int) -> int:
    """Share of the countdown still left, as a whole percentage."""
    if duration <= 0:
        return 0
    return int(math.floor(100 * remaining_seconds / duration + 0.5))


def calculate_score(questions: Sequence[Question], answers: Dict[int, int]) -> int:
    """Count answers that match their question's correct option."""
    return sum(
        1 for index, selected in answers.items()
        if 0 <= index < len(questions) and selected == questions[index].correct_index
    )


def build_review(questions: Sequence[Question], answers: Dict[int, int]) -> List[ReviewEntry]:
    """
    Build the per-question answer review.

    Args:
        questions: The session's questions, in order
        answers: Question index -> selected option index

    Returns:
        One entry per question, in question order
    """
    review = []
    for index, question in enumerate(questions):
        selected = answers.get(index)
        review.append(ReviewEntry(
            index=index,
            question=question.text,
            correct_answer=question.correct_answer,
            user_answer=question.options[selected] if selected is not None else UNANSWERED,
            selected_index=selected,
            is_correct=selected == question.correct_index
        ))
    return review
