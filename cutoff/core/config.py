from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    STORAGE_DIR: str = "storage"          # bucket folder on disk
    STORAGE_BASE_URL: str = "/storage"    # URL prefix to serve bucket objects from
    PUBLIC_BASE_URL: str = ""             # e.g. "http://localhost:8000"; empty keeps URLs relative

    UPLOADS_DIR: str = "uploads"          # staged source files
    PROCESSED_DIR: str = "processed"      # filter output files
    PROCESSED_PREFIX: str = "processed-"  # bucket access policy only admits this prefix

    MIN_FREQUENCY: float = 20.0
    MAX_FREQUENCY: float = 20000.0

    FFMPEG_BINARY: str = "ffmpeg"
    FILTER_WORKERS: int = 4
    FILTER_QUEUE_SIZE: int = 32

    SAMPLE_RATE: int = 44100
    CROSSFADE_SECONDS: float = 1.0
    ANALYSER_FFT_SIZE: int = 2048
    DEFAULT_FILTER_FREQUENCY: float = 10000.0


settings = Settings()
