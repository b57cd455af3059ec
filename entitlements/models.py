from entitlements.infrastructure.models import Entitlement  # noqa: F401
