from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    llm_provider: str = "gemini"
    llm_model: str = "gemini-2.5-flash"
    gemini_api_key: str = ""
    gemini_api_url: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:3b"
    completion_temperature: float = 0.8
    completion_max_tokens: int = 200
    judgment_temperature: float = 0.3
    judgment_max_tokens: int = 700

    collaborator_timeout_seconds: float = 20.0
    fluency_gate_seconds: float = 3.0
    fluency_gate_tick_ms: int = 100
    objective_min_user_turns: int = 3
    objective_window_turns: int = 10

    runtime_data_dir: str = "data/sessions"
    persist_snapshots: bool = True
    event_history_size: int = 200

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
