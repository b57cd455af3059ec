"""
Django implementation of EntitlementRepository port.

This adapter converts between domain entities and Django ORM models.
Writes after creation are targeted `UPDATE` statements; device binding
is a conditional update so that only the first device wins.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from asgiref.sync import sync_to_async
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from core.domain.exceptions import DuplicateActivationCodeError, EntitlementNotFoundError
from core.domain.value_objects import Email, EntitlementStatus, Plan, SubscriptionStatus
from core.infrastructure.database import store_call
from entitlements.domain.activation_code import hash_activation_code, normalize_activation_code
from entitlements.domain.entitlement import Entitlement, validate_patch
from entitlements.infrastructure.models import Entitlement as EntitlementModel
from entitlements.ports.entitlement_repository import EntitlementRepository

logger = logging.getLogger(__name__)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class DjangoEntitlementRepository(EntitlementRepository):
    """
    Django ORM implementation of EntitlementRepository.

    This adapter:
    1. Converts Django models to domain entities
    2. Converts domain entities to Django model fields
    3. Implements repository interface
    """

    def _to_domain(self, model: EntitlementModel) -> Entitlement:
        """
        Convert Django model to domain entity.

        Args:
            model: Django Entitlement model

        Returns:
            Entitlement domain entity
        """
        subscription_status = (
            SubscriptionStatus.from_provider(model.external_subscription_status)
            if model.external_subscription_status
            else None
        )
        return Entitlement(
            id=model.id,
            email=Email(model.email),
            plan=Plan(model.plan),
            code_hash=model.code_hash,
            status=EntitlementStatus(model.status),
            expires_at=model.expires_at,
            payment_event_ref=model.payment_event_ref,
            external_session_ref=model.external_session_ref,
            external_customer_ref=model.external_customer_ref,
            external_subscription_ref=model.external_subscription_ref,
            external_subscription_status=subscription_status,
            external_period_end=model.external_period_end,
            redeemed_device_id=model.redeemed_device_id,
            redeemed_at=model.redeemed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            legacy_code=model.legacy_code,
        )

    def _to_fields(self, entitlement: Entitlement) -> Dict[str, Any]:
        """
        Convert domain entity to Django model field values.

        Args:
            entitlement: Entitlement domain entity

        Returns:
            Mapping of model field names to values
        """
        return {
            "id": entitlement.id,
            "email": str(entitlement.email),
            "plan": entitlement.plan.value,
            "code_hash": entitlement.code_hash,
            "legacy_code": entitlement.legacy_code,
            "status": entitlement.status.value,
            "expires_at": entitlement.expires_at,
            "payment_event_ref": entitlement.payment_event_ref,
            "external_session_ref": entitlement.external_session_ref,
            "external_customer_ref": entitlement.external_customer_ref,
            "external_subscription_ref": entitlement.external_subscription_ref,
            "external_subscription_status": _enum_value(entitlement.external_subscription_status),
            "external_period_end": entitlement.external_period_end,
        }

    def _find_existing(self, entitlement: Entitlement) -> Optional[EntitlementModel]:
        query = Q(payment_event_ref=entitlement.payment_event_ref)
        if entitlement.external_session_ref:
            query |= Q(external_session_ref=entitlement.external_session_ref)
        return EntitlementModel.objects.filter(query).first()

    @sync_to_async
    @store_call
    def create_if_absent(self, entitlement: Entitlement) -> Tuple[Entitlement, bool]:
        """
        Create an entitlement unless one exists for its payment event.

        Args:
            entitlement: Entitlement to create

        Returns:
            Tuple of (stored entitlement, created flag)
        """
        existing = self._find_existing(entitlement)
        if existing:
            return self._to_domain(existing), False

        try:
            with transaction.atomic():
                model = EntitlementModel.objects.create(**self._to_fields(entitlement))
        except IntegrityError:
            # Lost the race to a concurrent creator, or the code hash collided
            existing = self._find_existing(entitlement)
            if existing:
                return self._to_domain(existing), False
            raise DuplicateActivationCodeError()

        return self._to_domain(model), True

    @sync_to_async
    @store_call
    def find_by_id(self, entitlement_id: uuid.UUID) -> Optional[Entitlement]:
        """
        Find an entitlement by ID.

        Args:
            entitlement_id: Entitlement UUID

        Returns:
            Entitlement entity or None if not found
        """
        try:
            return self._to_domain(EntitlementModel.objects.get(id=entitlement_id))
        except EntitlementModel.DoesNotExist:
            return None

    @sync_to_async
    @store_call
    def find_by_hash(self, code_hash: str) -> Optional[Entitlement]:
        """Find an entitlement by activation code hash."""
        model = EntitlementModel.objects.filter(code_hash=code_hash.lower()).first()
        return self._to_domain(model) if model else None

    @sync_to_async
    @store_call
    def find_by_plain_code_fallback(self, code: str) -> Optional[Entitlement]:
        """
        Find a legacy record by plaintext code and migrate it to hash storage.

        Args:
            code: Plaintext activation code

        Returns:
            Migrated entitlement, the record already holding the code's
            hash, or None if not found
        """
        normalized = normalize_activation_code(code)
        model = EntitlementModel.objects.filter(legacy_code=normalized).first()
        if not model:
            return None

        code_hash = hash_activation_code(normalized)
        try:
            with transaction.atomic():
                EntitlementModel.objects.filter(id=model.id, legacy_code=normalized).update(
                    code_hash=code_hash, legacy_code=None, updated_at=timezone.now()
                )
        except IntegrityError:
            # Another record already holds the hash; the legacy row is left as is
            logger.warning(
                "Legacy entitlement %s not migrated: code hash already stored on another record",
                model.id,
            )
            existing = EntitlementModel.objects.filter(code_hash=code_hash).first()
            return self._to_domain(existing) if existing else None

        logger.info("Migrated legacy entitlement %s to hashed code storage", model.id)
        return self._to_domain(EntitlementModel.objects.get(id=model.id))

    @sync_to_async
    @store_call
    def find_by_payment_event_ref(self, payment_event_ref: str) -> Optional[Entitlement]:
        """Find the entitlement created for a payment event."""
        model = EntitlementModel.objects.filter(payment_event_ref=payment_event_ref).first()
        return self._to_domain(model) if model else None

    @sync_to_async
    @store_call
    def find_all_for_customer_or_subscription(
        self,
        customer_ref: Optional[str],
        subscription_ref: Optional[str],
        email: Optional[str],
    ) -> List[Entitlement]:
        """
        Find entitlements by subscription, or by customer and email together.

        Args:
            customer_ref: Billing customer reference
            subscription_ref: Billing subscription reference
            email: Owner email

        Returns:
            List of Entitlement entities
        """
        query = Q()
        if subscription_ref:
            query |= Q(external_subscription_ref=subscription_ref)
        if customer_ref and email:
            query |= Q(external_customer_ref=customer_ref, email=email.strip().lower())
        if not query:
            return []
        return [self._to_domain(model) for model in EntitlementModel.objects.filter(query)]

    @sync_to_async
    @store_call
    def find_active_subscription_lapsed(self, current_time: datetime) -> List[Entitlement]:
        """Find active monthly subscription entitlements past their stored expiry."""
        models = EntitlementModel.objects.filter(
            status=EntitlementStatus.ACTIVE.value,
            plan=Plan.MONTHLY.value,
            external_subscription_ref__isnull=False,
            expires_at__lt=current_time,
        )
        return [self._to_domain(model) for model in models]

    @sync_to_async
    @store_call
    def mutate(self, entitlement_id: uuid.UUID, patch: Dict[str, Any]) -> Entitlement:
        """
        Apply a targeted field update.

        Args:
            entitlement_id: Entitlement UUID
            patch: Mapping of mutable field names to new values

        Returns:
            Refreshed entitlement
        """
        validate_patch(patch)
        fields = {name: _enum_value(value) for name, value in patch.items()}
        fields["updated_at"] = timezone.now()

        updated = EntitlementModel.objects.filter(id=entitlement_id).update(**fields)
        if not updated:
            raise EntitlementNotFoundError(f"Entitlement {entitlement_id} not found")
        return self._to_domain(EntitlementModel.objects.get(id=entitlement_id))

    @sync_to_async
    @store_call
    def bind_device(
        self, entitlement_id: uuid.UUID, device_id: str, redeemed_at: datetime
    ) -> bool:
        """
        Bind a device iff no device is bound yet.

        Args:
            entitlement_id: Entitlement UUID
            device_id: Device identifier
            redeemed_at: Redemption timestamp

        Returns:
            True if this call bound the device
        """
        updated = EntitlementModel.objects.filter(
            id=entitlement_id, redeemed_device_id__isnull=True
        ).update(
            redeemed_device_id=device_id,
            redeemed_at=redeemed_at,
            updated_at=timezone.now(),
        )
        return updated == 1

    @sync_to_async
    @store_call
    def delete(self, entitlement_id: uuid.UUID) -> bool:
        """Delete an entitlement."""
        deleted, _ = EntitlementModel.objects.filter(id=entitlement_id).delete()
        return deleted > 0
