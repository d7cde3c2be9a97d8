"""
Data manager for JSON question bank files and quiz data validation.
"""
import json
import os
import logging
from typing import Dict, List, Optional
from pathlib import Path

from .models import Question


SAMPLE_QUIZ_NAME = "general_knowledge"

SAMPLE_QUIZ_DATA = {
    "quiz": [
        {
            "question": "What is the capital city of France?",
            "options": ["Berlin", "London", "Paris", "Madrid"],
            "answer": 2
        },
        {
            "question": "Who wrote the play 'Romeo and Juliet'?",
            "options": ["Shakespeare", "Dickens", "Hemingway", "Joyce"],
            "answer": 0
        },
        {
            "question": "What is the boiling point of water at sea level (°C)?",
            "options": ["90°C", "80°C", "100°C", "120°C"],
            "answer": 2
        },
        {
            "question": "Which element has the symbol 'O'?",
            "options": ["Gold", "Oxygen", "Osmium", "Oganesson"],
            "answer": 1
        },
        {
            "question": "What's the largest planet in our Solar System?",
            "options": ["Jupiter", "Saturn", "Earth", "Mars"],
            "answer": 0
        }
    ]
}

MAX_QUIZ_FILE_SIZE = 10 * 1024 * 1024  # 10MB


class DataManager:
    """Manages loading and validation of JSON quiz files."""

    def __init__(self, quiz_directory: str = "./quizzes/"):
        """
        Initialize DataManager with quiz directory path.

        Args:
            quiz_directory: Path to directory containing JSON quiz files
        """
        self.quiz_directory = Path(quiz_directory)
        self.loaded_quizzes: Dict[str, List[Question]] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []  # Track loading errors for user feedback
        self.fallback_quiz_created = False

    def load_quiz_files(self) -> Dict[str, List[Question]]:
        """
        Load all JSON files from the quiz directory.

        Falls back to the built-in sample quiz when the directory is
        unusable or no file loads.

        Returns:
            Dictionary mapping quiz names to lists of Question objects
        """
        self.loaded_quizzes.clear()
        self.load_errors.clear()
        self.fallback_quiz_created = False

        directory_result = self._ensure_quiz_directory()
        if not directory_result['success']:
            self.load_errors.append(directory_result['error'])
            return self._create_fallback_quiz()

        try:
            json_files = sorted(self.quiz_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.quiz_directory}: {e}")
            return self._create_fallback_quiz()

        if not json_files:
            self.logger.warning(f"No JSON files found in {self.quiz_directory}")
            self.load_errors.append(f"No quiz files found in {self.quiz_directory}")
            return self._create_sample_quiz()

        successful_loads = 0
        for json_file in json_files:
            load_result = self._load_quiz_file_safely(json_file)
            if load_result['success']:
                successful_loads += 1
            else:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        if successful_loads == 0:
            self.logger.error("No quiz files could be loaded successfully")
            self.load_errors.append("All quiz files failed to load")
            return self._create_fallback_quiz()

        self.logger.info(f"Successfully loaded {successful_loads} quiz files")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_quizzes

    def validate_quiz_structure(self, data: dict) -> bool:
        """
        Validate that JSON data has the correct quiz structure.

        Expected structure:
        {
            "quiz": [
                {
                    "question": str,
                    "options": [str, str, ...],  # at least two
                    "answer": int                # index into options
                }
            ]
        }

        Args:
            data: Parsed JSON data to validate

        Returns:
            True if structure is valid, False otherwise
        """
        if not isinstance(data, dict):
            self.logger.error("Quiz data must be a JSON object")
            return False

        if "quiz" not in data:
            self.logger.error("Quiz data must contain a 'quiz' key")
            return False

        quiz_array = data["quiz"]
        if not isinstance(quiz_array, list):
            self.logger.error("'quiz' value must be an array")
            return False

        if not quiz_array:
            self.logger.error("Quiz array cannot be empty")
            return False

        for i, question_data in enumerate(quiz_array):
            if not isinstance(question_data, dict):
                self.logger.error(f"Question {i} must be an object")
                return False

            for required in ("question", "options", "answer"):
                if required not in question_data:
                    self.logger.error(f"Question {i} missing '{required}' field")
                    return False

            if not isinstance(question_data["question"], str):
                self.logger.error(f"Question {i} 'question' field must be a string")
                return False

            options = question_data["options"]
            if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
                self.logger.error(f"Question {i} 'options' field must be an array of strings")
                return False

            if len(options) < 2:
                self.logger.error(f"Question {i} needs at least 2 options")
                return False

            answer = question_data["answer"]
            if isinstance(answer, bool) or not isinstance(answer, int):
                self.logger.error(f"Question {i} 'answer' field must be an option index")
                return False

            if not 0 <= answer < len(options):
                self.logger.error(f"Question {i} 'answer' index {answer} is out of range")
                return False

        return True

    def get_available_quizzes(self) -> List[str]:
        """
        Get list of available quiz names.

        Returns:
            List of quiz names (without file extensions)
        """
        return list(self.loaded_quizzes.keys())

    def get_quiz_questions(self, quiz_name: str) -> Optional[List[Question]]:
        """
        Retrieve questions for a specific quiz.

        Returns:
            List of Question objects for the quiz, or None if quiz not found
        """
        return self.loaded_quizzes.get(quiz_name)

    def quiz_exists(self, quiz_name: str) -> bool:
        return quiz_name in self.loaded_quizzes

    def get_load_errors(self) -> List[str]:
        """Errors encountered during the last load operation."""
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def is_fallback_quiz_active(self) -> bool:
        return self.fallback_quiz_created

    def get_loading_summary(self) -> Dict[str, any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_quizzes': len(self.loaded_quizzes),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'fallback_active': self.is_fallback_quiz_active(),
            'quiz_directory': str(self.quiz_directory),
            'available_quizzes': self.get_available_quizzes()
        }

    def _ensure_quiz_directory(self) -> Dict[str, any]:
        """
        Ensure quiz directory exists.

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            if not self.quiz_directory.exists():
                self.quiz_directory.mkdir(parents=True, exist_ok=True)
                self.logger.info(f"Created quiz directory: {self.quiz_directory}")

            if not self.quiz_directory.is_dir():
                return {
                    'success': False,
                    'error': f"Not a directory: {self.quiz_directory}"
                }

            if not os.access(self.quiz_directory, os.R_OK):
                return {
                    'success': False,
                    'error': f"Permission denied: Cannot read from {self.quiz_directory}"
                }

            return {'success': True}

        except PermissionError:
            return {
                'success': False,
                'error': f"Permission denied: Cannot access {self.quiz_directory}"
            }
        except OSError as e:
            return {
                'success': False,
                'error': f"System error accessing {self.quiz_directory}: {e}"
            }

    def _load_single_file(self, file_path: Path) -> Optional[dict]:
        """
        Load and parse a single JSON file.

        Returns:
            Parsed JSON data or None if loading failed
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Invalid JSON in {file_path}: {e}")
            return None
        except OSError as e:
            self.logger.error(f"Failed to read quiz file {file_path}: {e}")
            return None

        if not self.validate_quiz_structure(data):
            self.logger.error(f"Invalid quiz structure in {file_path}")
            return None
        return data

    def _load_quiz_file_safely(self, json_file: Path) -> Dict[str, any]:
        """
        Load a single quiz file.

        Returns:
            Dictionary with success status and error message if applicable
        """
        try:
            file_size = json_file.stat().st_size
        except OSError as e:
            return {
                'success': False,
                'error': f"System error: {e}"
            }

        if file_size > MAX_QUIZ_FILE_SIZE:
            return {
                'success': False,
                'error': f"File too large ({file_size / 1024 / 1024:.1f}MB). Maximum size is {MAX_QUIZ_FILE_SIZE / 1024 / 1024}MB"
            }

        quiz_data = self._load_single_file(json_file)
        if quiz_data is None:
            return {
                'success': False,
                'error': "Invalid JSON structure or validation failed"
            }

        quiz_name = json_file.stem
        self.loaded_quizzes[quiz_name] = self._parse_questions(quiz_data)
        self.logger.info(f"Loaded quiz '{quiz_name}' with {len(self.loaded_quizzes[quiz_name])} questions")

        return {'success': True}

    def _parse_questions(self, quiz_data: dict) -> List[Question]:
        """Parse validated quiz data into Question objects."""
        return [
            Question(
                text=question_data["question"],
                options=list(question_data["options"]),
                correct_index=question_data["answer"]
            )
            for question_data in quiz_data["quiz"]
        ]

    def _create_sample_quiz(self) -> Dict[str, List[Question]]:
        """
        Write the built-in sample quiz into an empty quiz directory and load it.

        Returns:
            Dictionary with the sample quiz loaded
        """
        sample_file_path = self.quiz_directory / f"{SAMPLE_QUIZ_NAME}.json"
        try:
            with open(sample_file_path, 'w', encoding='utf-8') as f:
                json.dump(SAMPLE_QUIZ_DATA, f, indent=2, ensure_ascii=False)
            self.logger.info(f"Created sample quiz file: {sample_file_path}")
        except OSError as e:
            self.logger.error(f"Failed to create sample quiz: {e}")
            self.load_errors.append(f"Failed to create sample quiz: {e}")
            return self._create_fallback_quiz()

        self.loaded_quizzes[SAMPLE_QUIZ_NAME] = self._parse_questions(SAMPLE_QUIZ_DATA)
        self.logger.info(f"Loaded sample quiz with {len(SAMPLE_QUIZ_DATA['quiz'])} questions")
        return self.loaded_quizzes

    def _create_fallback_quiz(self) -> Dict[str, List[Question]]:
        """
        Load the built-in sample quiz in memory when file operations fail.

        Returns:
            Dictionary with the fallback quiz loaded
        """
        self.loaded_quizzes[SAMPLE_QUIZ_NAME] = self._parse_questions(SAMPLE_QUIZ_DATA)
        self.fallback_quiz_created = True
        self.logger.warning("Using built-in sample quiz due to file loading failures")
        return self.loaded_quizzes
