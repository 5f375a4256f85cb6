import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parents[1]


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    ENV = os.getenv("ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    GEMINI_EMBEDDING_MODEL = os.getenv("GEMINI_EMBEDDING_MODEL", "gemini-embedding-001")
    GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.2"))

    # Patient context is skipped entirely when no base URL is configured
    PATIENT_API_BASE_URL = os.getenv("PATIENT_API_BASE_URL")
    PATIENT_API_TIMEOUT_SECONDS = float(os.getenv("PATIENT_API_TIMEOUT_SECONDS", "5.0"))

    DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
    CHROMA_COLLECTION = os.getenv("CHROMA_COLLECTION", "clinical_knowledge")
    SKILLS_DIR = Path(os.getenv("SKILLS_DIR", str(BASE_DIR / "skills" / "core")))
    GUIDELINES_DIR = Path(os.getenv("GUIDELINES_DIR", str(BASE_DIR / "data" / "guidelines")))

    KNOWLEDGE_SEED_ON_STARTUP = _getenv_bool("KNOWLEDGE_SEED_ON_STARTUP", False)
    KNOWLEDGE_CHUNK_SIZE = int(os.getenv("KNOWLEDGE_CHUNK_SIZE", "500"))
    KNOWLEDGE_CHUNK_OVERLAP = int(os.getenv("KNOWLEDGE_CHUNK_OVERLAP", "100"))

    BATCH_PATIENT_UTTERANCE_THRESHOLD = int(os.getenv("BATCH_PATIENT_UTTERANCE_THRESHOLD", "5"))
    BATCH_INTERVAL_SECONDS = float(os.getenv("BATCH_INTERVAL_SECONDS", "60"))
    SPEAKER_CHANGE_GAP_SECONDS = float(os.getenv("SPEAKER_CHANGE_GAP_SECONDS", "3.0"))
    CONTEXT_WINDOW_LINES = int(os.getenv("CONTEXT_WINDOW_LINES", "10"))

    VOSK_MODEL_PATH = os.getenv("VOSK_MODEL_PATH", "models/vosk/en")
    VOSK_SAMPLE_RATE = int(os.getenv("VOSK_SAMPLE_RATE", "16000"))


settings = Settings()
