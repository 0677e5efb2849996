from typing import List

from .config import Config


def check_default_credentials(config: Config) -> List[str]:
    """
    Check if the configuration uses default example values.
    Returns a list of error messages.
    """
    errors = []

    # Default values from .env.example
    DEFAULT_DATABASE_URL = "https://your-project-default-rtdb.firebaseio.com"
    DEFAULT_CREDENTIALS = "path/to/service-account.json"

    if config.store.database_url == DEFAULT_DATABASE_URL:
        errors.append(f"FIREBASE_DATABASE_URL uses the example value: {DEFAULT_DATABASE_URL}")

    if config.store.firebase_credentials == DEFAULT_CREDENTIALS:
        errors.append("FIREBASE_CREDENTIALS uses the example path")

    return errors
