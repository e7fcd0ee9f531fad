"""Docker secrets with environment fallback."""

import os

SECRETS_DIR = "/run/secrets"


def read_secret(name: str, env_var: str, default: str | None = None) -> str | None:
    """
    Read value from Docker secret or environment.

    Args:
        name: Secret file name under /run/secrets
        env_var: Environment variable used when the secret is absent
        default: Value when neither is set

    Returns:
        Secret value (stripped) or the fallback
    """
    secret_path = os.path.join(os.getenv("SECRETS_DIR", SECRETS_DIR), name)
    try:
        with open(secret_path) as f:
            return f.read().strip()
    except FileNotFoundError:
        return os.getenv(env_var, default)
