from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(24 * 60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Payee shown in UPI wallets
    school_upi_id: str = Field("astraschool@paytm", alias="SCHOOL_UPI_ID")
    school_name: str = Field("Astra Preschool", alias="SCHOOL_NAME")
    # Receipt dates and period labels follow the school's calendar day
    school_timezone: str = Field("Asia/Kolkata", alias="SCHOOL_TIMEZONE")

    # Email-to-SMS gateway; when smtp_host is unset notifications are only logged
    smtp_host: Optional[str] = Field(None, alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASSWORD")
    smtp_use_ssl: bool = Field(False, alias="SMTP_USE_SSL")
    sms_sender: Optional[str] = Field(None, alias="SMS_SENDER")
    notification_timeout_seconds: float = Field(10.0, alias="NOTIFICATION_TIMEOUT_SECONDS")

    qr_box_size: int = Field(10, alias="QR_BOX_SIZE")
    qr_border: int = Field(2, alias="QR_BORDER")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    admin_username: Optional[str] = Field(None, alias="ADMIN_USERNAME")
    admin_password: Optional[str] = Field(None, alias="ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
