"""
Unit tests for the QuizController session state machine.
"""
import random
import unittest
from unittest.mock import Mock

from quizmaster.models import Phase, Question, QuizSettings, UNANSWERED
from quizmaster.quiz_controller import (
    ConfigurationError,
    QuizController,
    QuizControllerError,
    validate_questions,
)
from quizmaster.quiz_engine import calculate_score
from quizmaster.score_store import InMemoryHighScoreStore
from tests.test_fixtures import ManualScheduler, TestFixtures


class ControllerTestCase(unittest.TestCase):
    """Shared setup: five questions, manual ticks, in-memory high score."""

    def setUp(self):
        self.questions = TestFixtures.create_sample_questions()
        self.scheduler = ManualScheduler()
        self.store = InMemoryHighScoreStore()
        self.controller = QuizController(
            self.store,
            self.scheduler,
            QuizSettings(duration=60, tick_interval=1.0)
        )

    def assert_score_consistent(self):
        self.assertEqual(
            self.controller.score,
            calculate_score(self.questions, self.controller.answers)
        )
        self.assertLessEqual(len(self.controller.answers), len(self.questions))


class TestStart(ControllerTestCase):
    """Test cases for starting and restarting a session."""

    def test_initial_state_is_not_started(self):
        self.assertEqual(self.controller.phase, Phase.NOT_STARTED)
        self.assertIsNone(self.controller.current_question())
        self.assertFalse(self.controller.is_current_answered())
        self.assertEqual(self.controller.remaining_seconds, 60)

    def test_start_resets_session(self):
        session = self.controller.start(self.questions)

        self.assertEqual(self.controller.phase, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.position, 0)
        self.assertEqual(self.controller.answers, {})
        self.assertEqual(self.controller.score, 0)
        self.assertEqual(self.controller.remaining_seconds, 60)
        self.assertEqual(session.total, 5)
        self.assertEqual(len(self.scheduler.active_handles), 1)
        self.assertEqual(self.scheduler.active_handles[0].interval, 1.0)

    def test_start_with_explicit_duration(self):
        self.controller.start(self.questions, duration=30)
        self.assertEqual(self.controller.remaining_seconds, 30)

    def test_restart_mid_quiz_resets_everything(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)
        self.controller.next_question()
        self.scheduler.tick(5)

        self.controller.start(self.questions)

        self.assertEqual(self.controller.position, 0)
        self.assertEqual(self.controller.answers, {})
        self.assertEqual(self.controller.score, 0)
        self.assertEqual(self.controller.remaining_seconds, 60)

    def test_restart_cancels_previous_timer(self):
        self.controller.start(self.questions)
        first_handle = self.scheduler.handles[0]

        self.controller.start(self.questions)

        self.assertTrue(first_handle.cancelled)
        self.assertEqual(len(self.scheduler.active_handles), 1)

    def test_stale_tick_from_previous_session_is_ignored(self):
        self.controller.start(self.questions)
        stale_handle = self.scheduler.handles[0]
        self.controller.start(self.questions)

        # A firing already queued before the restart
        stale_handle.callback()

        self.assertEqual(self.controller.remaining_seconds, 60)

    def test_start_from_every_phase(self):
        self.controller.start(self.questions)
        self.controller.finish()
        self.controller.start(self.questions)
        self.assertEqual(self.controller.phase, Phase.IN_PROGRESS)

        self.controller.finish()
        self.controller.review()
        self.controller.start(self.questions)
        self.assertEqual(self.controller.phase, Phase.IN_PROGRESS)


class TestConfigurationErrors(ControllerTestCase):
    """Test cases for malformed question sources."""

    def test_empty_question_list(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start([])

    def test_none_question_list(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start(None)

    def test_correct_index_out_of_bounds(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start([Question("Q?", ["a", "b"], 2)])
        with self.assertRaises(ConfigurationError):
            self.controller.start([Question("Q?", ["a", "b"], -1)])

    def test_too_few_options(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start([Question("Q?", ["only"], 0)])

    def test_non_integer_correct_index(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start([Question("Q?", ["a", "b"], "0")])
        with self.assertRaises(ConfigurationError):
            self.controller.start([Question("Q?", ["a", "b"], True)])

    def test_invalid_duration(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start(self.questions, duration=0)

    def test_configuration_error_is_controller_error(self):
        self.assertTrue(issubclass(ConfigurationError, QuizControllerError))

    def test_failed_start_leaves_running_session_untouched(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)

        with self.assertRaises(ConfigurationError):
            self.controller.start([])

        self.assertEqual(self.controller.phase, Phase.IN_PROGRESS)
        self.assertEqual(self.controller.answers, {0: 2})
        self.assertEqual(len(self.scheduler.active_handles), 1)
        self.assertEqual(len(self.scheduler.handles), 1)

    def test_failed_start_does_not_arm_timer(self):
        with self.assertRaises(ConfigurationError):
            self.controller.start([])
        self.assertEqual(self.scheduler.handles, [])
        self.assertEqual(self.controller.phase, Phase.NOT_STARTED)

    def test_validate_questions_returns_copy(self):
        result = validate_questions(self.questions)
        self.assertEqual(result, self.questions)
        self.assertIsNot(result, self.questions)


class TestSelectAnswer(ControllerTestCase):
    """Test cases for locking in answers."""

    def setUp(self):
        super().setUp()
        self.controller.start(self.questions)

    def test_correct_answer_scores(self):
        self.assertTrue(self.controller.select_answer(2))
        self.assertEqual(self.controller.score, 1)
        self.assertEqual(self.controller.answers, {0: 2})
        self.assertTrue(self.controller.is_current_answered())
        self.assertEqual(self.controller.selected_option(), 2)

    def test_wrong_answer_does_not_score(self):
        self.assertTrue(self.controller.select_answer(0))
        self.assertEqual(self.controller.score, 0)
        self.assertEqual(self.controller.answers, {0: 0})

    def test_answer_lock_same_option(self):
        self.controller.select_answer(2)
        self.assertFalse(self.controller.select_answer(2))
        self.assertEqual(self.controller.answers, {0: 2})
        self.assertEqual(self.controller.score, 1)

    def test_answer_lock_different_option(self):
        self.controller.select_answer(0)
        self.assertFalse(self.controller.select_answer(2))
        self.assertEqual(self.controller.answers, {0: 0})
        self.assertEqual(self.controller.score, 0)

    def test_answer_lock_survives_navigation(self):
        self.controller.select_answer(2)
        self.controller.next_question()
        self.controller.previous_question()
        self.assertFalse(self.controller.select_answer(1))
        self.assertEqual(self.controller.answers, {0: 2})

    def test_out_of_range_option_ignored(self):
        self.assertFalse(self.controller.select_answer(4))
        self.assertFalse(self.controller.select_answer(-1))
        self.assertFalse(self.controller.select_answer(None))
        self.assertEqual(self.controller.answers, {})
        self.assertFalse(self.controller.is_current_answered())

    def test_answer_ignored_when_not_in_progress(self):
        controller = QuizController(InMemoryHighScoreStore(), ManualScheduler())
        self.assertFalse(controller.select_answer(0))

        self.controller.finish()
        self.assertFalse(self.controller.select_answer(2))
        self.assertEqual(self.controller.answers, {})


class TestNavigation(ControllerTestCase):
    """Test cases for next/previous clamping."""

    def setUp(self):
        super().setUp()
        self.controller.start(self.questions)

    def test_prev_at_first_question_is_noop(self):
        self.assertFalse(self.controller.previous_question())
        self.assertEqual(self.controller.position, 0)

    def test_next_at_last_question_is_noop(self):
        for _ in range(4):
            self.assertTrue(self.controller.next_question())
        self.assertEqual(self.controller.position, 4)
        self.assertFalse(self.controller.next_question())
        self.assertEqual(self.controller.position, 4)

    def test_next_then_prev(self):
        self.controller.next_question()
        self.controller.next_question()
        self.controller.previous_question()
        self.assertEqual(self.controller.position, 1)
        self.assertEqual(self.controller.current_question(), self.questions[1])

    def test_navigation_allowed_without_answering(self):
        self.assertTrue(self.controller.next_question())
        self.assertFalse(self.controller.is_current_answered())

    def test_navigation_ignored_after_finish(self):
        self.controller.next_question()
        self.controller.finish()
        self.assertFalse(self.controller.next_question())
        self.assertFalse(self.controller.previous_question())
        self.assertEqual(self.controller.position, 1)

    def test_single_question_quiz(self):
        self.controller.start([Question("Only?", ["yes", "no"], 0)])
        self.assertFalse(self.controller.next_question())
        self.assertFalse(self.controller.previous_question())
        self.assertEqual(self.controller.get_status()['progress_percent'], 100)


class TestFinish(ControllerTestCase):
    """Test cases for finishing and high score updates."""

    def test_finish_stops_timer_and_freezes_time(self):
        self.controller.start(self.questions)
        self.scheduler.tick(3)
        handle = self.scheduler.handles[0]

        result = self.controller.finish()

        self.assertIsNotNone(result)
        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertTrue(handle.cancelled)
        self.assertEqual(self.controller.remaining_seconds, 57)

        # A firing that sneaks through after finish changes nothing
        handle.callback()
        self.assertEqual(self.controller.remaining_seconds, 57)
        self.assertEqual(self.controller.phase, Phase.FINISHED)

    def test_finish_when_not_in_progress_is_noop(self):
        self.assertIsNone(self.controller.finish())
        self.controller.start(self.questions)
        self.controller.finish()
        self.assertIsNone(self.controller.finish())

    def test_high_score_updated_and_persisted(self):
        store = Mock()
        store.get.return_value = 0
        controller = QuizController(store, ManualScheduler())
        controller.start(self.questions)
        controller.select_answer(2)

        result = controller.finish()

        store.set.assert_called_once_with(1)
        self.assertEqual(controller.high_score, 1)
        self.assertEqual(result.high_score, 1)
        self.assertEqual(result.previous_high_score, 0)
        self.assertTrue(result.is_new_high_score)

    def test_high_score_not_written_when_equal_or_lower(self):
        store = Mock()
        store.get.return_value = 3
        controller = QuizController(store, ManualScheduler())

        controller.start(self.questions)
        controller.select_answer(2)
        result = controller.finish()

        store.set.assert_not_called()
        self.assertEqual(controller.high_score, 3)
        self.assertFalse(result.is_new_high_score)

    def test_high_score_is_monotonic_across_sessions(self):
        # Scores per session: number of leading questions answered correctly
        session_scores = [2, 1, 4, 0, 3, 5, 2]
        expected_high = 0

        for target in session_scores:
            self.controller.start(self.questions)
            for index in range(target):
                self.controller.select_answer(self.questions[index].correct_index)
                self.controller.next_question()
            self.controller.finish()

            expected_high = max(expected_high, target)
            self.assertEqual(self.controller.score, target)
            self.assertEqual(self.controller.high_score, expected_high)
            self.assertEqual(self.store.get(), expected_high)

    def test_high_score_loaded_from_store(self):
        controller = QuizController(InMemoryHighScoreStore(4), ManualScheduler())
        self.assertEqual(controller.high_score, 4)

    def test_on_finish_listener_called(self):
        listener = Mock()
        self.controller.on_finish = listener
        self.controller.start(self.questions)

        result = self.controller.finish()

        listener.assert_called_once_with(result)

    def test_failed_high_score_write_still_finishes(self):
        store = Mock()
        store.get.return_value = 0
        store.set.side_effect = OSError("disk full")
        listener = Mock()
        controller = QuizController(store, ManualScheduler(), on_finish=listener)
        controller.start(self.questions)
        controller.select_answer(2)

        with self.assertLogs('quizmaster.quiz_controller', level='ERROR'):
            result = controller.finish()

        self.assertEqual(controller.phase, Phase.FINISHED)
        self.assertEqual(controller.high_score, 1)
        self.assertTrue(result.is_new_high_score)
        listener.assert_called_once_with(result)

    def test_failed_high_score_write_on_expiry_still_notifies(self):
        store = Mock()
        store.get.return_value = 0
        store.set.side_effect = OSError("disk full")
        listener = Mock()
        scheduler = ManualScheduler()
        controller = QuizController(store, scheduler, QuizSettings(duration=3), on_finish=listener)
        controller.start(self.questions)
        controller.select_answer(2)

        with self.assertLogs('quizmaster.quiz_controller', level='ERROR'):
            scheduler.tick(3)

        self.assertEqual(controller.phase, Phase.FINISHED)
        listener.assert_called_once()
        self.assertTrue(listener.call_args[0][0].timed_out)
        self.assertEqual(scheduler.active_handles, [])


class TestTimerExpiry(ControllerTestCase):
    """Test cases for the countdown running out."""

    def test_ticks_decrement_remaining_seconds(self):
        self.controller.start(self.questions, duration=10)
        self.scheduler.tick(4)
        self.assertEqual(self.controller.remaining_seconds, 6)
        self.assertEqual(self.controller.phase, Phase.IN_PROGRESS)

    def test_on_tick_listener_receives_remaining(self):
        listener = Mock()
        self.controller.on_tick = listener
        self.controller.start(self.questions, duration=10)
        self.scheduler.tick(2)
        listener.assert_any_call(9)
        listener.assert_called_with(8)

    def test_last_tick_forces_finish(self):
        listener = Mock()
        self.controller.on_finish = listener
        self.controller.start(self.questions, duration=3)

        self.scheduler.tick(3)

        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertEqual(self.controller.remaining_seconds, 0)
        self.assertEqual(self.scheduler.active_handles, [])
        result = listener.call_args[0][0]
        self.assertTrue(result.timed_out)

    def test_ticks_after_expiry_do_not_go_negative(self):
        self.controller.start(self.questions, duration=2)
        handle = self.scheduler.handles[0]
        self.scheduler.tick(2)
        handle.callback()
        self.assertEqual(self.controller.remaining_seconds, 0)

    def test_timer_dominates_pending_user_actions(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)

        result = self.controller.timer_expire()

        # Requests that arrive after expiry are not applied
        self.assertFalse(self.controller.select_answer(1))
        self.assertFalse(self.controller.next_question())
        self.assertIsNone(self.controller.finish())

        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertEqual(self.controller.answers, {0: 2})
        self.assertEqual(result.score, 1)
        self.assertTrue(result.timed_out)

    def test_timer_expire_when_not_in_progress_is_noop(self):
        self.assertIsNone(self.controller.timer_expire())
        self.controller.start(self.questions)
        self.controller.finish()
        self.assertIsNone(self.controller.timer_expire())
        self.assertEqual(self.controller.phase, Phase.FINISHED)

    def test_no_user_action_until_expiry(self):
        self.controller.start(self.questions, duration=60)
        self.scheduler.tick(60)

        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertEqual(self.controller.score, 0)
        self.assertEqual(self.controller.answers, {})
        self.assertEqual(self.controller.high_score, 0)


class TestReview(ControllerTestCase):
    """Test cases for the answer review."""

    def test_review_only_from_finished(self):
        self.assertIsNone(self.controller.review())
        self.controller.start(self.questions)
        self.assertIsNone(self.controller.review())
        self.assertIsNone(self.controller.get_review())

        self.controller.finish()
        self.assertIsNone(self.controller.get_review())
        review = self.controller.review()

        self.assertIsNotNone(review)
        self.assertEqual(self.controller.phase, Phase.REVIEWING)
        self.assertIsNone(self.controller.review())
        self.assertEqual(self.controller.get_review(), review)

    def test_review_is_complete_and_flags_correctness(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)   # correct
        self.controller.next_question()
        self.controller.select_answer(3)   # wrong
        self.controller.finish()

        review = self.controller.review()

        self.assertEqual(len(review), len(self.questions))
        self.assertTrue(review[0].is_correct)
        self.assertEqual(review[0].user_answer, "Paris")
        self.assertFalse(review[1].is_correct)
        self.assertEqual(review[1].user_answer, "Joyce")
        self.assertEqual(review[1].correct_answer, "Shakespeare")
        for entry in review[2:]:
            self.assertFalse(entry.is_correct)
            self.assertEqual(entry.user_answer, UNANSWERED)
            self.assertIsNone(entry.selected_index)

    def test_no_mutation_while_reviewing(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)
        self.controller.finish()
        self.controller.review()

        self.assertFalse(self.controller.select_answer(0))
        self.assertFalse(self.controller.next_question())
        self.assertIsNone(self.controller.finish())
        self.assertIsNone(self.controller.timer_expire())
        self.assertEqual(self.controller.score, 1)
        self.assertEqual(self.controller.phase, Phase.REVIEWING)


class TestStatus(ControllerTestCase):
    """Test cases for the presentation snapshot."""

    def test_status_before_start(self):
        status = self.controller.get_status()
        self.assertEqual(status['phase'], Phase.NOT_STARTED)
        self.assertEqual(status['high_score'], 0)
        self.assertEqual(status['remaining_seconds'], 60)

    def test_status_in_progress(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)
        self.controller.next_question()
        self.scheduler.tick(15)

        status = self.controller.get_status()

        self.assertEqual(status['phase'], Phase.IN_PROGRESS)
        self.assertEqual(status['position'], 1)
        self.assertEqual(status['total_questions'], 5)
        self.assertEqual(status['answered_count'], 1)
        self.assertFalse(status['is_current_answered'])
        self.assertEqual(status['score'], 1)
        self.assertEqual(status['remaining_seconds'], 45)
        self.assertEqual(status['progress_percent'], 40)
        self.assertEqual(status['time_percent'], 75)

    def test_answers_property_is_a_copy(self):
        self.controller.start(self.questions)
        self.controller.answers[0] = 2
        self.assertEqual(self.controller.answers, {})


class TestRandomizedSequences(ControllerTestCase):
    """Score and answer invariants hold after every transition."""

    def test_invariants_after_every_transition(self):
        rng = random.Random(1234)
        operations = [
            lambda: self.controller.select_answer(rng.randint(-1, 4)),
            self.controller.next_question,
            self.controller.previous_question,
            lambda: self.scheduler.tick(rng.randint(1, 5)),
            self.controller.finish,
            self.controller.review,
            self.controller.timer_expire,
        ]
        weights = [30, 20, 15, 10, 3, 2, 1]

        for _ in range(50):
            self.controller.start(self.questions, duration=rng.randint(10, 40))
            previous_answers = {}
            last_remaining = self.controller.remaining_seconds

            for _ in range(60):
                rng.choices(operations, weights)[0]()
                self.assert_score_consistent()

                answers = self.controller.answers
                for index, selected in previous_answers.items():
                    self.assertEqual(answers[index], selected)
                previous_answers = answers

                self.assertTrue(0 <= self.controller.position < len(self.questions))
                self.assertLessEqual(self.controller.remaining_seconds, last_remaining)
                self.assertGreaterEqual(self.controller.remaining_seconds, 0)
                if self.controller.phase is not Phase.IN_PROGRESS:
                    self.assertEqual(self.scheduler.active_handles, [])
                last_remaining = self.controller.remaining_seconds


class TestEndToEnd(ControllerTestCase):
    """Full sessions from start to review."""

    def test_answer_first_then_skip_to_end(self):
        self.controller.start(self.questions)
        self.controller.select_answer(2)
        self.assertEqual(self.controller.score, 1)
        for _ in range(4):
            self.controller.next_question()
        self.assertEqual(self.controller.position, 4)

        result = self.controller.finish()

        self.assertEqual(self.controller.score, 1)
        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertEqual(self.controller.high_score, 1)
        self.assertEqual(result.score, 1)
        self.assertEqual(result.total, 5)

        review = self.controller.review()
        self.assertTrue(review[0].is_correct)
        self.assertEqual([entry.user_answer for entry in review[1:]], [UNANSWERED] * 4)

    def test_timer_runs_out_with_no_action(self):
        self.controller.start(self.questions, duration=60)
        self.scheduler.tick(59)
        self.assertEqual(self.controller.remaining_seconds, 1)

        result = self.controller.timer_expire()

        self.assertEqual(self.controller.phase, Phase.FINISHED)
        self.assertEqual(self.controller.score, 0)
        self.assertEqual(self.controller.answers, {})
        self.assertEqual(self.controller.remaining_seconds, 0)
        self.assertTrue(result.timed_out)


if __name__ == '__main__':
    unittest.main()
