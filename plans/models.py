from plans.infrastructure.models import PlanPrice  # noqa: F401
