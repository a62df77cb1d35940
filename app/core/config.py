from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from dotenv import load_dotenv


# Get the path to the .env file
CONFIG_DIR = Path(__file__).resolve().parent
# Assuming .env is in the project root (two levels up from app/core)
PROJECT_ROOT = CONFIG_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT / '.env'

# Load environment variables from .env file
load_dotenv(ENV_FILE_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding='utf-8',
        extra='ignore'
    )

    DEBUG_MODE: bool = False
    LOG_JSON: bool = False

    # Transcript source (ElevenLabs conversational AI)
    ELEVENLABS_API_KEY: str = ""
    ELEVENLABS_API_BASE_URL: str = "https://api.elevenlabs.io/v1"
    TRANSCRIPT_REQUEST_TIMEOUT: float = 30.0  # seconds per poll

    # Transcript polling: delay after poll k (0-indexed) is BASE * MULTIPLIER**k
    TRANSCRIPT_POLL_BASE_DELAY: float = 3.0
    TRANSCRIPT_POLL_MULTIPLIER: float = 1.5
    TRANSCRIPT_POLL_MAX_ATTEMPTS: int = 5

    # Scoring LLM
    GROQ_API_KEY: str = ""
    SCORING_MODEL: str = "openai/gpt-oss-120b"
    SCORING_TEMPERATURE: float = 0.2
    SCORING_MAX_TOKENS: int = 8192

    # Input bounds (characters)
    MAX_TRANSCRIPT_LENGTH: int = 200_000
    MAX_CV_TEXT_LENGTH: int = 100_000

    # Rate limiting (requests per window, per caller identity)
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0
    RATE_LIMIT_CONVERSATIONS_MAX: int = 200
    RATE_LIMIT_SCORING_MAX: int = 30
    RATE_LIMIT_UPLOAD_MAX: int = 100
    RATE_LIMIT_SWEEP_INTERVAL: int = 100  # full sweep every N admission checks

    # Cosmetic dwell before results are shown
    DELIBERATION_SECONDS: float = 0.8

    # File Upload Limits
    MAX_FILE_SIZE_MB: int = 10  # Maximum CV file size in MB


settings = Settings()
