"""
Configuration manager for QuizMaster bot settings and quiz parameters.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

from .models import QuizSettings


class ConfigManager:
    """Manages bot configuration settings and quiz parameters."""

    # Default configuration values
    DEFAULT_DURATION = 60
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_QUIZ_NAME = "general_knowledge"
    DEFAULT_HIGH_SCORE_FILE = "./data/highscore.json"

    # Validation limits
    MIN_DURATION = 10
    MAX_DURATION = 3600  # 1 hour

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = QuizSettings(duration=self.DEFAULT_DURATION)
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._default_quiz = self.DEFAULT_QUIZ_NAME
        self._high_score_file = self.DEFAULT_HIGH_SCORE_FILE

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the current QuizSettings
        """
        return QuizSettings(duration=self._settings.duration)

    def set_duration(self, duration: int) -> Dict[str, any]:
        """
        Set the quiz countdown length.

        Args:
            duration: Quiz duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            error_msg = f"Quiz duration must be an integer, got {type(duration).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            }

        if duration < self.MIN_DURATION:
            error_msg = f"Quiz duration must be at least {self.MIN_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_DURATION} seconds"
            }

        if duration > self.MAX_DURATION:
            error_msg = f"Quiz duration cannot exceed {self.MAX_DURATION} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_DURATION} seconds ({self.MAX_DURATION // 60} minutes)"
            }

        self._settings.duration = duration
        self.logger.info(f"Quiz duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Quiz duration set to {duration} seconds",
            'user_message': f"✅ Quiz timer set to {duration} seconds"
        }

    def get_duration(self) -> int:
        return self._settings.duration

    def set_quiz_directory(self, directory: str) -> Dict[str, any]:
        """
        Set the directory path for quiz files.

        Args:
            directory: Path to quiz files directory

        Returns:
            Dictionary with success status and messages
        """
        result = self._validate_path_setting(directory, "Quiz directory")
        if not result['success']:
            return result

        self._quiz_directory = directory
        self.logger.info(f"Quiz directory set to {directory}")
        return {
            'success': True,
            'message': f"Quiz directory set to {directory}",
            'user_message': f"✅ Quiz directory set to {directory}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def set_default_quiz(self, quiz_name: str) -> Dict[str, any]:
        """Set the quiz used when /start is given no name."""
        if not isinstance(quiz_name, str) or not quiz_name.strip():
            error_msg = "Default quiz name must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Quiz name cannot be empty"
            }

        self._default_quiz = quiz_name.strip()
        self.logger.info(f"Default quiz set to {self._default_quiz}")
        return {
            'success': True,
            'message': f"Default quiz set to {self._default_quiz}",
            'user_message': f"✅ Default quiz set to {self._default_quiz}"
        }

    def get_default_quiz(self) -> str:
        return self._default_quiz

    def set_high_score_file(self, path: str) -> Dict[str, any]:
        """Set the JSON file the high score is persisted in."""
        result = self._validate_path_setting(path, "High score file")
        if not result['success']:
            return result

        self._high_score_file = path
        self.logger.info(f"High score file set to {path}")
        return {
            'success': True,
            'message': f"High score file set to {path}",
            'user_message': f"✅ High score file set to {path}"
        }

    def get_high_score_file(self) -> str:
        return self._high_score_file

    def apply_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply settings from a loaded config.json structure.

        Invalid entries are skipped and reported; valid ones still apply.

        Args:
            config: Parsed configuration with 'quiz' and 'storage' sections

        Returns:
            Dictionary with overall success and the list of errors
        """
        errors: List[str] = []
        quiz_config = config.get('quiz', {}) or {}
        storage_config = config.get('storage', {}) or {}

        setters = [
            (quiz_config, 'quiz_directory', self.set_quiz_directory),
            (quiz_config, 'default_quiz', self.set_default_quiz),
            (quiz_config, 'duration_seconds', self.set_duration),
            (storage_config, 'high_score_file', self.set_high_score_file),
        ]
        for section, key, setter in setters:
            if key not in section:
                continue
            result = setter(section[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} errors")
        else:
            self.logger.info("Configuration applied successfully")

        return {
            'success': not errors,
            'errors': errors
        }

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings(duration=self.DEFAULT_DURATION)
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self._default_quiz = self.DEFAULT_QUIZ_NAME
        self._high_score_file = self.DEFAULT_HIGH_SCORE_FILE
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        duration = self._settings.duration
        if (not isinstance(duration, int) or
                duration < self.MIN_DURATION or
                duration > self.MAX_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid quiz duration: {duration}")

        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid quiz directory: {self._quiz_directory}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        return (
            f"Quiz Settings:\n"
            f"• Timer: {self._settings.duration} seconds\n"
            f"• Default Quiz: {self._default_quiz}\n"
            f"• Quiz Directory: {self._quiz_directory}\n"
            f"• High Score File: {self._high_score_file}"
        )

    def _validate_path_setting(self, value: Optional[str], label: str) -> Dict[str, any]:
        if not isinstance(value, str):
            error_msg = f"{label} must be a string, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(value).__name__}"
            }

        if not value.strip():
            error_msg = f"{label} cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} cannot be empty"
            }

        try:
            Path(value).resolve()
        except (OSError, ValueError) as e:
            error_msg = f"Invalid path format for {label.lower()}: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {value}"
            }

        return {'success': True}
