"""Configuration loading from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BCRYPT_ROUNDS = 12


@dataclass
class Config:
    db_path: Path = field(default_factory=lambda: Path.home() / ".wbs_tracker" / "wbs.db")
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS
    log_level: str = "INFO"
    log_file: str | None = None
    acting_user_id: int | None = None

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if db := os.environ.get("WBS_DB_PATH"):
            config.db_path = Path(db)

        if rounds := os.environ.get("WBS_BCRYPT_ROUNDS"):
            config.bcrypt_rounds = int(rounds)

        if level := os.environ.get("WBS_LOG_LEVEL"):
            config.log_level = level

        config.log_file = os.environ.get("WBS_LOG_FILE")

        if user_id := os.environ.get("WBS_USER_ID"):
            config.acting_user_id = int(user_id)

        return config


def get_config() -> Config:
    return Config.from_env()
