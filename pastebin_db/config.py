from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    data_path: str = "data/pastes.db"
    page_size: int = 4096
    initial_size: int = 4096
    bucket_size: int = 65536
    max_record_size: int = 1024
    default_per_page: int = 5

    model_config = SettingsConfigDict(env_prefix="PASTEDB_")

settings = Settings()
