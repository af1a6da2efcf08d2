from __future__ import annotations

import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from access_migrate.models.table_metadata import MigrationConfig

# Load environment variables from .env file
load_dotenv()

ACCESS_ODBC_DRIVER = "Microsoft Access Driver (*.mdb, *.accdb)"
SQLSERVER_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class ConfigError(Exception):
    """Configuration validation error."""

    pass


class DBConfig:
    """Connection and migration configuration read from the environment."""

    def __init__(self):
        # Access (source)
        self.access_connection_string = self._access_connection_string()

        # SQL Server (target)
        self.sqlserver_connection_string = self._sqlserver_connection_string()

        # Migration settings
        self.tables_to_migrate = self._parse_list(os.getenv("TABLES_TO_MIGRATE", ""))
        self.create_indexes = self._validate_bool("CREATE_INDEXES", True)
        self.create_foreign_keys = self._validate_bool("CREATE_FOREIGN_KEYS", True)
        self.drop_existing_tables = self._validate_bool("DROP_EXISTING_TABLES", True)
        self.batch_size = self._validate_positive_int("BATCH_SIZE", 1000)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    def _require_env(self, key: str) -> str:
        """Get required environment variable or raise ConfigError."""
        value = os.getenv(key)
        if not value:
            raise ConfigError(f"Missing required environment variable: {key}")
        return value

    def _access_connection_string(self) -> str:
        conn_str = os.getenv("ACCESS_CONNECTION_STRING")
        if conn_str:
            return conn_str
        db_path = os.getenv("ACCESS_DB_PATH")
        if not db_path:
            raise ConfigError(
                "Missing required environment variable: ACCESS_CONNECTION_STRING "
                "(or ACCESS_DB_PATH)"
            )
        driver = os.getenv("ACCESS_DRIVER", ACCESS_ODBC_DRIVER)
        return f"DRIVER={{{driver}}};DBQ={db_path};"

    def _sqlserver_connection_string(self) -> str:
        conn_str = os.getenv("SQLSERVER_CONNECTION_STRING")
        if conn_str:
            return conn_str
        if not os.getenv("SQLSERVER_HOST"):
            raise ConfigError(
                "Missing required environment variable: SQLSERVER_CONNECTION_STRING "
                "(or SQLSERVER_HOST)"
            )
        host = self._require_env("SQLSERVER_HOST")
        port = self._validate_port("SQLSERVER_PORT", 1433)
        database = self._require_env("SQLSERVER_DB")
        user = self._require_env("SQLSERVER_USER")
        password = self._require_env("SQLSERVER_PASSWORD")
        driver = os.getenv("SQLSERVER_DRIVER", SQLSERVER_ODBC_DRIVER)
        trust = "yes" if self._validate_bool("SQLSERVER_TRUST_CERTIFICATE", False) else "no"
        return (
            f"DRIVER={{{driver}}};SERVER={host},{port};DATABASE={database};"
            f"UID={user};PWD={password};TrustServerCertificate={trust};"
        )

    def _parse_int(self, value: str, min_val: int, max_val: int, error_msg: str) -> int:
        """Parse and validate an integer value within range."""
        try:
            num = int(value)
        except ValueError:
            raise ConfigError(f"{value} is not a valid integer")
        if not (min_val <= num <= max_val):
            raise ConfigError(error_msg)
        return num

    def _parse_bool(self, value: str) -> bool:
        """Parse a boolean value from string."""
        if value.lower() in ("true", "1", "yes", "y"):
            return True
        elif value.lower() in ("false", "0", "no", "n"):
            return False
        else:
            raise ConfigError(f"{value} is not a valid boolean value")

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        return [item.strip() for item in value.split(",") if item.strip()]

    def _validate_port(self, key: str, default: int) -> int:
        """Validate port number is in valid range (1-65535)."""
        value = os.getenv(key, str(default))
        return self._parse_int(
            value,
            1,
            65535,
            f"{key}={value} is not a valid port number (must be 1-65535)",
        )

    def _validate_positive_int(self, key: str, default: int) -> int:
        """Validate that a value is a positive integer."""
        value = os.getenv(key, str(default))
        return self._parse_int(
            value, 1, sys.maxsize, f"{key}={value} must be a positive integer"
        )

    def _validate_bool(self, key: str, default: bool) -> bool:
        """Validate that a value is a boolean."""
        value = os.getenv(key, str(default))
        return self._parse_bool(value)

    def migration_config(
        self,
        tables: Optional[List[str]] = None,
        batch_size: Optional[int] = None,
        create_indexes: Optional[bool] = None,
        create_foreign_keys: Optional[bool] = None,
        drop_existing_tables: Optional[bool] = None,
    ) -> MigrationConfig:
        """Build a MigrationConfig, letting explicit arguments override the environment."""
        return MigrationConfig(
            tables_to_migrate=list(tables) if tables else list(self.tables_to_migrate),
            batch_size=batch_size or self.batch_size,
            create_indexes=self.create_indexes if create_indexes is None else create_indexes,
            create_foreign_keys=(
                self.create_foreign_keys if create_foreign_keys is None else create_foreign_keys
            ),
            drop_existing_tables=(
                self.drop_existing_tables
                if drop_existing_tables is None
                else drop_existing_tables
            ),
        )
