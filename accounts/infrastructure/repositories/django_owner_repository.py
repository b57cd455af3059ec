"""
Django implementation of OwnerRepository port.

This adapter converts between domain entities and Django ORM models.
"""
import uuid
from typing import Any, Dict, Optional

from asgiref.sync import sync_to_async
from django.utils import timezone

from accounts.domain.owner import Owner, validate_owner_patch
from accounts.infrastructure.models import Owner as OwnerModel
from accounts.ports.owner_repository import OwnerRepository
from core.domain.exceptions import OwnerNotFoundError
from core.domain.value_objects import Email, Plan, SubscriptionStatus
from core.infrastructure.database import store_call


class DjangoOwnerRepository(OwnerRepository):
    """Django ORM implementation of OwnerRepository."""

    def _to_domain(self, model: OwnerModel) -> Owner:
        """
        Convert Django model to domain entity.

        Args:
            model: Django Owner model

        Returns:
            Owner domain entity
        """
        return Owner(
            id=model.id,
            email=Email(model.email),
            name=model.name,
            external_customer_ref=model.external_customer_ref,
            external_subscription_ref=model.external_subscription_ref,
            plan=Plan(model.plan) if model.plan else None,
            subscription_status=(
                SubscriptionStatus.from_provider(model.subscription_status)
                if model.subscription_status
                else None
            ),
            current_period_end=model.current_period_end,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _first(self, **filters) -> Optional[Owner]:
        model = OwnerModel.objects.filter(**filters).first()
        return self._to_domain(model) if model else None

    @sync_to_async
    @store_call
    def save(self, owner: Owner) -> Owner:
        """
        Save a new owner entity.

        Args:
            owner: Owner entity to save

        Returns:
            Saved owner entity
        """
        model = OwnerModel.objects.create(
            id=owner.id,
            email=str(owner.email),
            name=owner.name,
            external_customer_ref=owner.external_customer_ref,
            external_subscription_ref=owner.external_subscription_ref,
            plan=owner.plan.value if owner.plan else None,
            subscription_status=owner.subscription_status.value if owner.subscription_status else None,
            current_period_end=owner.current_period_end,
            is_active=owner.is_active,
        )
        return self._to_domain(model)

    @sync_to_async
    @store_call
    def find_by_id(self, owner_id: uuid.UUID) -> Optional[Owner]:
        return self._first(id=owner_id)

    @sync_to_async
    @store_call
    def find_by_email(self, email: str) -> Optional[Owner]:
        return self._first(email=email.strip().lower())

    @sync_to_async
    @store_call
    def find_by_customer_ref(self, customer_ref: str) -> Optional[Owner]:
        return self._first(external_customer_ref=customer_ref)

    @sync_to_async
    @store_call
    def find_by_subscription_ref(self, subscription_ref: str) -> Optional[Owner]:
        return self._first(external_subscription_ref=subscription_ref)

    @sync_to_async
    @store_call
    def mutate(self, owner_id: uuid.UUID, patch: Dict[str, Any]) -> Owner:
        """
        Apply a targeted field update.

        Args:
            owner_id: Owner UUID
            patch: Mapping of mutable field names to new values

        Returns:
            Refreshed owner
        """
        validate_owner_patch(patch)
        fields = {name: getattr(value, "value", value) for name, value in patch.items()}
        fields["updated_at"] = timezone.now()

        updated = OwnerModel.objects.filter(id=owner_id).update(**fields)
        if not updated:
            raise OwnerNotFoundError(f"Owner {owner_id} not found")
        return self._to_domain(OwnerModel.objects.get(id=owner_id))
