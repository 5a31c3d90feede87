from pydantic_settings import BaseSettings


class ConfigurationError(Exception):
    """Raised at startup when a required collaborator or option is wrong."""


class Settings(BaseSettings):
    # Auth routes and pages
    auth_base_path: str = "/auth"
    auth_pages: str = "auth"
    templates_dir: str = ""

    # Sessions
    session_secret: str = "change-me-in-production"
    session_store: str = "sqlite"
    session_cookie_name: str = "passlink_session"
    session_cookie_secure: bool = False
    # Seconds; rolled forward on every visit (default 4 weeks)
    session_max_age: int = 60 * 60 * 24 * 7 * 4
    # Milliseconds the client may cache /session before asking again
    client_max_age: int = 60000

    # Public URL used in sign-in links; inferred from the request when empty
    server_url: str = ""

    # Comma-separated paths that skip CSRF verification
    csrf_exempt_paths: str = ""

    # Seconds a sign-in token stays valid; 0 disables expiry
    sign_in_token_max_age: int = 0

    # Mail
    mail_transport: str = "smtp"
    mail_from: str = ""
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_starttls: bool = False
    smtp_timeout: float = 30.0
    mail_api_url: str = "https://api.resend.com/emails"
    mail_api_key: str = ""

    # Database
    database_path: str = "./data/passlink.db"

    # Logging
    log_level: str = "info"

    # CORS
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def csrf_exempt_path_set(self) -> set[str]:
        return {p.strip() for p in self.csrf_exempt_paths.split(",") if p.strip()}

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
