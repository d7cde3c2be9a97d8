"""
High score persistence for the QuizMaster bot.
"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Union


HIGH_SCORE_KEY = "quizmaster_highscore_v1"


class InMemoryHighScoreStore:
    """High score cell kept in process memory."""

    def __init__(self, initial: int = 0):
        self._value = initial

    def get(self) -> int:
        return self._value

    def set(self, value: int) -> None:
        self._value = value


class JsonHighScoreStore:
    """High score cell persisted under a single key in a JSON file."""

    def __init__(self, path: Union[str, Path] = "./data/highscore.json", key: str = HIGH_SCORE_KEY):
        """
        Initialize the store.

        Args:
            path: JSON file holding the score; created on first write
            key: Entry name inside the file
        """
        self.path = Path(path)
        self.key = key
        self.logger = logging.getLogger(__name__)

    def get(self) -> int:
        """
        Read the stored high score.

        Returns:
            The stored score, or 0 when missing or unreadable
        """
        data = self._read()
        value = data.get(self.key, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            self.logger.warning(f"Ignoring invalid high score {value!r} in {self.path}")
            return 0
        return value

    def set(self, value: int) -> None:
        """
        Persist a new high score, keeping any other keys in the file.

        Raises:
            OSError: If the file cannot be written
        """
        data = self._read()
        data[self.key] = int(value)

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            self.logger.error(f"Failed to write high score to {self.path}: {e}")
            tmp_path.unlink(missing_ok=True)
            raise

        self.logger.info(f"High score {value} saved to {self.path}")

    def _read(self) -> Dict[str, object]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Invalid JSON in high score file {self.path}: {e}")
            return {}
        except OSError as e:
            self.logger.warning(f"Failed to read high score file {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            self.logger.warning(f"High score file {self.path} must contain a JSON object")
            return {}
        return data
