import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

PLACEHOLDER_API_KEY = "your-api-key-here"

DATABASE_PATH = os.getenv("TASKATI_DATABASE_PATH", "taskati.db")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("TASKATI_CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("TASKATI_LOG_LEVEL", "INFO").upper()

# Dev subscription mode: subscriptions are activated immediately instead of
# waiting for the billing provider's ACTIVATED webhook
DEV_SUBSCRIPTION_MODE = os.getenv("TASKATI_DEV_SUBSCRIPTIONS", "1").lower() in ("1", "true", "yes")

# Active (Todo + In Progress) task caps per subscription plan
FREE_PLAN_TASK_LIMIT = 5
SUBSCRIPTION_PLAN_LIMITS = {
    "P-90N57053P66221623NBETAGI": 10,  # Basic
    "P-4U238456CC281673FNBETEFI": 25,  # Pro
    "P-18M969130R0964230NBETENQ": 50,  # Premium
}


class ExtractorConfig(BaseModel):
    """Connection settings for the text-generation endpoint used by TaskExtractor."""
    api_key: str = ""
    base_url: Optional[str] = None
    model: str = "claude-sonnet-4-5"
    timeout: float = 30.0
    temperature: float = 0.2
    max_tokens: int = 500

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_API_KEY

    @classmethod
    def from_env(cls) -> "ExtractorConfig":
        values = {"api_key": os.getenv("ANTHROPIC_API_KEY", "")}
        if os.getenv("ANTHROPIC_BASE_URL"):
            values["base_url"] = os.getenv("ANTHROPIC_BASE_URL")
        if os.getenv("TASKATI_MODEL"):
            values["model"] = os.getenv("TASKATI_MODEL")
        if os.getenv("TASKATI_AI_TIMEOUT"):
            values["timeout"] = float(os.getenv("TASKATI_AI_TIMEOUT"))
        return cls(**values)
