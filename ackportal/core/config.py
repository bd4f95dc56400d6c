"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./ackportal.db"

    # Portal link used in notification bodies
    APP_URL: str = "http://localhost:3000"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_ACK: int = 30  # Acknowledgement submissions
    RATE_LIMIT_API: int = 120  # General API

    # Microsoft Graph (app registration, client credentials)
    GRAPH_TENANT_ID: str = ""
    GRAPH_CLIENT_ID: str = ""
    GRAPH_CLIENT_SECRET: str = ""
    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_AUTHORITY_URL: str = "https://login.microsoftonline.com"

    # Outbound mail (Graph sendMail on behalf of this mailbox)
    MAIL_SENDER: str = ""
    MAIL_SAVE_TO_SENT_ITEMS: bool = True
    MAIL_MAX_RECIPIENTS_PER_MESSAGE: int = 90  # keep well under Graph's practical limits
    MAIL_MAX_ATTACHMENTS_PER_MESSAGE: int = 8
    MAIL_MAX_ATTACHMENT_BYTES_PER_MESSAGE: int = 15 * 1024 * 1024

    # Completion notifications
    ADMIN_NOTIFICATION_EMAILS: str = ""  # Fallback when no addresses are stored
    NOTIFY_USER_ON_COMPLETION: bool = False  # cc the completing user

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0
    PROXY_MAX_REDIRECTS: int = 3

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def admin_notification_emails_list(self) -> list[str]:
        """Parse ADMIN_NOTIFICATION_EMAILS into a lowercase list."""
        if not self.ADMIN_NOTIFICATION_EMAILS:
            return []
        return [
            e.strip().lower() for e in self.ADMIN_NOTIFICATION_EMAILS.split(",") if e.strip()
        ]

    @property
    def graph_configured(self) -> bool:
        """True when app credentials for Graph are present."""
        return bool(self.GRAPH_TENANT_ID and self.GRAPH_CLIENT_ID and self.GRAPH_CLIENT_SECRET)

    @property
    def mail_configured(self) -> bool:
        """True when outbound mail can actually be sent."""
        return self.graph_configured and bool(self.MAIL_SENDER)


settings = Settings()
