import dotenv
import os

from .models import ClientConfig
from .util import read_env


def load_config(env_file: str = ".env") -> ClientConfig:
    dotenv.load_dotenv(env_file)

    attempts = os.getenv("VCLOUD_RETRY_ATTEMPTS", "20")
    return ClientConfig(
        token=read_env("VCLOUD_TOKEN"),
        api_version=os.getenv("VCLOUD_API_VERSION", "5.6"),
        # only the literal "true" turns on XML dumps
        debug=os.getenv("VCLOUD_DEBUG") == "true",
        retry_attempts=None if attempts.lower() == "none" else int(attempts),
        retry_delay=float(os.getenv("VCLOUD_RETRY_DELAY", "3")),
        verify_tls=os.getenv("VCLOUD_VERIFY_TLS", "true") != "false",
    )
