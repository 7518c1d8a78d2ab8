from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://collabrio:collabrio@db:5432/collabrio"
  app_version: str = "v2026-10-17"
  build_sha: str = "dev"
  api_docs_enabled: bool = True
  log_level: str = "INFO"

  cookie_secure: bool = False
  cookie_domain: str | None = None

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  # shared login rate limit counters; unset keeps them in process memory
  redis_url: str | None = "redis://redis:6379/0"

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  # deep links in invitation emails
  public_base_url: str = "http://localhost:3000"
  company_name: str = "Collabrio"
  support_email: str = "support@collabrio.com"

  smtp_enabled: bool = False
  smtp_host: str | None = None
  smtp_port: int = 587
  smtp_username: str | None = None
  smtp_password: str | None = None
  smtp_from: str | None = None
  smtp_starttls: bool = True

  upload_dir: str = "data/uploads"
  max_attachment_bytes: int = 10 * 1024 * 1024

  boards_page_size: int = 6
  board_delete_cascade: bool = True
  upload_rollback: bool = True

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def board_url(self, board_id: str) -> str:
    return f"{self.public_base_url.rstrip('/')}/boards/{board_id}"

  def login_url(self) -> str:
    return f"{self.public_base_url.rstrip('/')}/login"


settings = Settings()
