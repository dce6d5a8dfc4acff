"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings

from vitalscore.domains.health.domain_logic.models import GoalConfig


class Settings(BaseSettings):
    """Vitalscore insight server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; there is no auth layer in front of the tools.
    insight_host: str = "127.0.0.1"
    insight_port: int = 8011
    insight_log_level: str = "info"
    insight_allow_insecure_bind: bool = False

    # Result cache
    cache_backend: Literal["memory", "sqlite"] = "memory"
    cache_db_path: str = "~/.vitalscore/cache.db"

    # Encryption of persisted cache values (Fernet key, empty = plaintext JSON)
    encryption_key: str = ""

    # Daily goals
    goal_steps: float = 8000
    goal_active_energy_kcal: float = 500
    goal_exercise_minutes: float = 30
    goal_stand_hours: float = 12
    sleep_target_hours: float = 7.5

    def goals(self) -> GoalConfig:
        """Build the immutable goal config. Raises ValueError on negative goals."""
        return GoalConfig(
            steps=self.goal_steps,
            active_energy_kcal=self.goal_active_energy_kcal,
            exercise_minutes=self.goal_exercise_minutes,
            stand_hours=self.goal_stand_hours,
            sleep_target_hours=self.sleep_target_hours,
        )


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
