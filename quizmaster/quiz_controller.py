"""
Quiz session controller for the QuizMaster bot.
Owns the single quiz session and applies every state transition to it.
"""
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import FinishResult, Phase, Question, QuizSettings, ReviewEntry, Session
from .quiz_engine import (
    TimerLifecycleLogger,
    build_review,
    progress_percent,
    time_percent,
)


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class ConfigurationError(QuizControllerError):
    """Raised when a quiz cannot start because its questions are malformed."""
    pass


def validate_questions(questions: Sequence[Question]) -> List[Question]:
    """
    Check a question source before a session is built from it.

    Args:
        questions: Ordered questions for the session

    Returns:
        The questions as a new list

    Raises:
        ConfigurationError: If the list is empty or any question is malformed
    """
    if questions is None or len(questions) == 0:
        raise ConfigurationError("Cannot start a quiz without questions")

    for i, question in enumerate(questions):
        if not isinstance(question, Question):
            raise ConfigurationError(f"Question {i} must be a Question, got {type(question).__name__}")
        if not isinstance(question.text, str) or not question.text.strip():
            raise ConfigurationError(f"Question {i} must have non-empty text")
        if len(question.options) < 2:
            raise ConfigurationError(f"Question {i} must have at least 2 options, got {len(question.options)}")
        if isinstance(question.correct_index, bool) or not isinstance(question.correct_index, int):
            raise ConfigurationError(f"Question {i} correct index must be an integer")
        if not 0 <= question.correct_index < len(question.options):
            raise ConfigurationError(
                f"Question {i} correct index {question.correct_index} is out of range "
                f"for {len(question.options)} options"
            )

    return list(questions)


class QuizController:
    """
    Runs one timed multiple-choice quiz session at a time.

    Transitions never raise for requests that arrive in the wrong phase or
    would change a locked answer; they are ignored and reported through the
    return value. Only ``start()`` fails, and only for a malformed question
    source.
    """

    def __init__(
        self,
        store,
        scheduler,
        settings: Optional[QuizSettings] = None,
        on_finish: Optional[Callable[[FinishResult], Any]] = None,
        on_tick: Optional[Callable[[int], Any]] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            store: High score store with ``get()`` and ``set(value)``
            scheduler: Time source with ``schedule_repeating(interval, callback)``
            settings: Default duration and tick interval
            on_finish: Called with the result whenever a session finishes
            on_tick: Called with the remaining seconds after each countdown tick
        """
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.scheduler = scheduler
        self.settings = settings or QuizSettings()
        self.on_finish = on_finish
        self.on_tick = on_tick

        self._session: Optional[Session] = None
        self._timer = None
        self._generation = 0
        self._high_score = store.get()

        self.logger.info(f"QuizController initialized (high score {self._high_score})")

    # -- transitions -------------------------------------------------------

    def start(self, questions: Sequence[Question], duration: Optional[int] = None) -> Session:
        """
        Start a fresh session, discarding any previous one.

        Args:
            questions: Ordered questions for this session
            duration: Countdown length in seconds, defaults to the settings value

        Returns:
            The new session

        Raises:
            ConfigurationError: If the questions or duration are invalid
        """
        validated = validate_questions(questions)

        if duration is None:
            duration = self.settings.duration
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ConfigurationError(f"Quiz duration must be a positive integer, got {duration!r}")

        self._cancel_timer("session restarted")
        self._generation += 1

        self._session = Session(
            questions=validated,
            duration=duration,
            remaining_seconds=duration
        )
        self._timer = self.scheduler.schedule_repeating(
            self.settings.tick_interval,
            functools.partial(self._on_tick, self._generation)
        )

        self.logger.info(
            f"Quiz started: {len(validated)} questions, {duration}s "
            f"(session {self._generation})"
        )
        return self._session

    def select_answer(self, option_index: int) -> bool:
        """
        Lock in an answer for the current question.

        Returns:
            True if the answer was recorded, False if it was ignored
        """
        session = self._session
        if not self._in_progress():
            self.logger.debug("Answer ignored: no quiz in progress")
            return False

        if session.is_answered(session.position):
            self.logger.debug(f"Answer ignored: question {session.position + 1} already answered")
            return False

        question = session.current_question
        if (isinstance(option_index, bool) or not isinstance(option_index, int)
                or not 0 <= option_index < len(question.options)):
            self.logger.debug(f"Answer ignored: option {option_index!r} out of range")
            return False

        session.answers[session.position] = option_index
        if option_index == question.correct_index:
            session.score += 1

        self.logger.debug(
            f"Question {session.position + 1} answered with option {option_index} "
            f"(score {session.score})"
        )
        return True

    def next_question(self) -> bool:
        """Move to the next question. False at the last question."""
        session = self._session
        if not self._in_progress() or session.position >= session.total - 1:
            return False
        session.position += 1
        return True

    def previous_question(self) -> bool:
        """Move to the previous question. False at the first question."""
        session = self._session
        if not self._in_progress() or session.position <= 0:
            return False
        session.position -= 1
        return True

    def finish(self) -> Optional[FinishResult]:
        """
        End the session at the user's request.

        Unanswered questions simply score nothing.

        Returns:
            The result, or None if no quiz was in progress
        """
        if not self._in_progress():
            self.logger.debug("Finish ignored: no quiz in progress")
            return None
        return self._finish(timed_out=False)

    def timer_expire(self) -> Optional[FinishResult]:
        """
        End the session because the countdown ran out.

        Any answer not committed before this call is lost.

        Returns:
            The result, or None if no quiz was in progress
        """
        if not self._in_progress():
            return None
        self._session.remaining_seconds = 0
        return self._finish(timed_out=True)

    def review(self) -> Optional[List[ReviewEntry]]:
        """
        Switch a finished session into review.

        Returns:
            The answer review, or None unless the session is finished
        """
        session = self._session
        if session is None or session.phase is not Phase.FINISHED:
            self.logger.debug("Review ignored: quiz is not finished")
            return None
        session.phase = Phase.REVIEWING
        return build_review(session.questions, session.answers)

    # -- read-only surface -------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._session.phase if self._session else Phase.NOT_STARTED

    @property
    def position(self) -> int:
        return self._session.position if self._session else 0

    @property
    def remaining_seconds(self) -> int:
        if self._session is None:
            return self.settings.duration
        return self._session.remaining_seconds

    @property
    def score(self) -> int:
        return self._session.score if self._session else 0

    @property
    def high_score(self) -> int:
        return self._high_score

    @property
    def total_questions(self) -> int:
        return self._session.total if self._session else 0

    @property
    def answers(self) -> Dict[int, int]:
        return dict(self._session.answers) if self._session else {}

    def current_question(self) -> Optional[Question]:
        if self._session is None:
            return None
        return self._session.current_question

    def is_current_answered(self) -> bool:
        if self._session is None:
            return False
        return self._session.is_answered(self._session.position)

    def selected_option(self) -> Optional[int]:
        """Option chosen for the current question, if any."""
        if self._session is None:
            return None
        return self._session.answers.get(self._session.position)

    def get_review(self) -> Optional[List[ReviewEntry]]:
        """The answer review, available only while reviewing."""
        if self.phase is not Phase.REVIEWING:
            return None
        return build_review(self._session.questions, self._session.answers)

    def get_status(self) -> Dict[str, Any]:
        """
        Snapshot of the session for presentation.

        Returns:
            Dictionary with phase, position, timing and scoring information
        """
        session = self._session
        if session is None:
            return {
                'phase': Phase.NOT_STARTED,
                'position': 0,
                'total_questions': 0,
                'answered_count': 0,
                'is_current_answered': False,
                'score': 0,
                'high_score': self._high_score,
                'remaining_seconds': self.settings.duration,
                'duration': self.settings.duration,
                'progress_percent': 0,
                'time_percent': 100
            }

        return {
            'phase': session.phase,
            'position': session.position,
            'total_questions': session.total,
            'answered_count': len(session.answers),
            'is_current_answered': session.is_answered(session.position),
            'score': session.score,
            'high_score': self._high_score,
            'remaining_seconds': session.remaining_seconds,
            'duration': session.duration,
            'progress_percent': progress_percent(session.position, session.total),
            'time_percent': time_percent(session.remaining_seconds, session.duration)
        }

    # -- internals ---------------------------------------------------------

    def _in_progress(self) -> bool:
        return self._session is not None and self._session.phase is Phase.IN_PROGRESS

    def _on_tick(self, generation: int) -> None:
        if generation != self._generation or not self._in_progress():
            TimerLifecycleLogger.log_race_condition_detected(
                f"session-{generation}",
                f"stale tick ignored (current session {self._generation}, phase {self.phase.value})"
            )
            return

        session = self._session
        session.remaining_seconds -= 1
        TimerLifecycleLogger.log_timer_update(
            f"session-{generation}",
            session.remaining_seconds,
            session.duration
        )

        if session.remaining_seconds <= 0:
            self.timer_expire()
        elif self.on_tick:
            self.on_tick(session.remaining_seconds)

    def _finish(self, timed_out: bool) -> FinishResult:
        session = self._session
        self._cancel_timer("time expired" if timed_out else "quiz finished")
        session.phase = Phase.FINISHED

        previous_high_score = self._high_score
        if session.score > previous_high_score:
            self._high_score = session.score
            self.logger.info(f"New high score: {session.score} (was {previous_high_score})")
            try:
                self.store.set(session.score)
            except OSError as e:
                # The in-memory high score stays raised for this process
                self.logger.error(f"Failed to persist high score {session.score}: {e}")

        result = FinishResult(
            score=session.score,
            total=session.total,
            high_score=self._high_score,
            previous_high_score=previous_high_score,
            timed_out=timed_out
        )
        self.logger.info(
            f"Quiz finished{' (time up)' if timed_out else ''}: "
            f"score {result.score}/{result.total}, "
            f"{len(session.answers)} answered, {session.remaining_seconds}s left"
        )

        if self.on_finish:
            self.on_finish(result)
        return result

    def _cancel_timer(self, reason: str) -> None:
        if self._timer is None:
            return
        self.logger.debug(f"Cancelling countdown: {reason}")
        self._timer.cancel()
        self._timer = None
