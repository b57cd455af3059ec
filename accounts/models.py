from accounts.infrastructure.models import Owner  # noqa: F401
