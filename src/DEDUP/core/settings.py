"""
Centralized configuration management using Pydantic.

This module defines the Settings class which loads and validates application
configuration from environment variables or .env file.

Module Input:
    - Environment variables from OS
    - .env file in project root (optional)
    - Default values defined in class

Module Output:
    - Validated configuration object (singleton)
    - Helper methods for boto3 session arguments and output naming
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigError


# DynamoDB per-request item limits
DYNAMODB_MAX_BATCH_GET = 100
DYNAMODB_MAX_BATCH_WRITE = 25

# DynamoDB number type: 38 significant digits, positive range 1E-130 to
# 9.99E+125, narrowed to what the boto3 serializer context allows
DYNAMODB_MAX_NUMBER_DIGITS = 38
DYNAMODB_EXPONENT_RANGE = (-128, 125)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables and .env file.

    Attributes:
        AWS Configuration:
            aws_access_key_id (Optional[str]): AWS access key for API calls
            aws_secret_access_key (Optional[str]): AWS secret key
            aws_default_region (str): Default AWS region (default: "us-east-1")
            aws_profile (Optional[str]): Named AWS profile to use

        Store Configuration:
            store_backend (str): "dynamodb" or "memory"
            dynamodb_table_name (str): Table holding known identifiers
            dynamodb_key_attribute (str): Numeric partition key name (default: "ID")
            dynamodb_endpoint_url (Optional[str]): Override for DynamoDB Local
            dynamodb_sdk_max_attempts (int): botocore standard-mode attempts

        Batching Configuration:
            lookup_batch_size (int): Keys per existence lookup (max 100)
            lookup_max_concurrency (int): Lookups in flight at once
            write_batch_size (int): Items per batch write (max 25)
            write_max_concurrency (int): Batch writes in flight at once
            store_max_retries (int): Retries per batch on transient faults
            store_retry_delay_sec (float): Fixed delay between retries

        Upload/Output Configuration:
            upload_dir (Path): Directory where result files are written
            upload_url_prefix (str): URL prefix result files are served under
            max_upload_size_mb (int): Largest accepted upload
            output_mode (str): "pair" (new + duplicate) or "single" (new only)
            output_format (str): "csv" or "match_input"
            output_retention_hours (float): Age after which a run's result
                directory is deleted (0 keeps results forever)
            output_sweep_interval_sec (float): Interval between retention sweeps

        API Configuration:
            cors_origins (List[str]): Allowed browser origins
            request_timeout_sec (float): Ceiling for one upload's processing
            disconnect_poll_sec (float): Interval for client disconnect checks
            api_host (str), api_port (int): uvicorn bind address

        Logging Configuration:
            log_level (str): Minimum log level (default: "INFO")
            log_dir (Path): Directory for log files (default: "logs")
            log_file (str): Log file name (default: "app.log")
            log_to_file (bool): Attach the rotating file handler
    """

    # ---------------- AWS Configuration ----------------
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_default_region: str = "us-east-1"
    aws_profile: Optional[str] = None

    # ---------------- Known-Identifier Store ----------------
    store_backend: Literal["dynamodb", "memory"] = "dynamodb"
    dynamodb_table_name: str = "KnownIdentifiers"
    dynamodb_key_attribute: str = "ID"
    dynamodb_endpoint_url: Optional[str] = None
    dynamodb_sdk_max_attempts: int = 3

    # ---------------- Batching ----------------
    lookup_batch_size: int = Field(default=DYNAMODB_MAX_BATCH_GET, ge=1, le=DYNAMODB_MAX_BATCH_GET)
    lookup_max_concurrency: int = Field(default=10, ge=1)
    write_batch_size: int = Field(default=DYNAMODB_MAX_BATCH_WRITE, ge=1, le=DYNAMODB_MAX_BATCH_WRITE)
    write_max_concurrency: int = Field(default=4, ge=1)
    store_max_retries: int = Field(default=5, ge=0)
    store_retry_delay_sec: float = Field(default=1.0, ge=0)

    # ---------------- Upload / Output ----------------
    upload_dir: Path = Path("uploads")
    upload_url_prefix: str = "/uploads"
    max_upload_size_mb: int = 50
    output_mode: Literal["pair", "single"] = "pair"
    output_format: Literal["csv", "match_input"] = "csv"
    output_retention_hours: float = Field(default=24.0, ge=0)
    output_sweep_interval_sec: float = Field(default=3600.0, gt=0)

    # ---------------- API ----------------
    cors_origins: List[str] = ["http://localhost:5173"]
    request_timeout_sec: float = 6000.0
    disconnect_poll_sec: float = 1.0
    api_host: str = "0.0.0.0"
    api_port: int = 8301

    # ---------------- Logging ----------------
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_file: str = "app.log"
    log_to_file: bool = True

    # ---------------- Pydantic Settings ----------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- Helper Methods ----------------
    def get_boto3_session_kwargs(self) -> Dict[str, Any]:
        """
        Build keyword arguments for boto3.Session.

        A named profile wins over explicit keys; with neither set, boto3 falls
        back to its default credential chain (IAM role, env vars, ...).

        Returns:
            Dict[str, Any]: region plus optional profile or key pair
        """
        session_kwargs: Dict[str, Any] = {"region_name": self.aws_default_region}
        if self.aws_profile:
            session_kwargs["profile_name"] = self.aws_profile
        elif self.aws_access_key_id and self.aws_secret_access_key:
            session_kwargs.update({
                "aws_access_key_id": self.aws_access_key_id,
                "aws_secret_access_key": self.aws_secret_access_key,
            })
        return session_kwargs

    def get_table_name(self) -> str:
        """
        Get the DynamoDB table name.

        Returns:
            str: Table name with surrounding whitespace removed

        Raises:
            ConfigError: If the table name is empty
        """
        name = self.dynamodb_table_name.strip()
        if not name:
            raise ConfigError(
                "DynamoDB table name cannot be empty",
                details={"setting": "dynamodb_table_name"}
            )
        return name


# Singleton instance shared across the app
settings = Settings()
