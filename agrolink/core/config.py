from pydantic_settings import BaseSettings
from dotenv import load_dotenv


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "AgroLink API"
    debug: bool = False
    database_url: str = "sqlite:///./agrolink.db"
    host: str = "127.0.0.1"
    port: int = 8000
    secret_key: str = ""
    access_token_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    allowed_hosts: str = ""

    # Relationship & visibility rules
    invitation_expire_hours: int = 72
    revalidate_shared_access: bool = True

    log_file: str = "logs/application.log"
    log_level: str = "INFO"


settings = Settings()

if not settings.secret_key:
    raise RuntimeError("Secret key not configured.")
