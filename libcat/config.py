import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Storage
    data_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    transaction_log_file: str = os.getenv("LIBRARY_LOG_FILE", "transactions.txt")

    # Application
    app_name: str = os.getenv("APP_NAME", "Library Management System")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    currency: str = os.getenv("CURRENCY", "rupees")
    log_level: str = os.getenv("LIBCAT_LOG_LEVEL", "WARNING")

    # CLI output: plain | json | rich
    default_output: str = os.getenv("LIB_CLI_OUTPUT", "plain")


settings = Settings()
