from django.db import models
from django.core.validators import MinValueValidator
import uuid
from decimal import Decimal

from common.mixins import TokenOwnedMixin
from apps.patients.resolver import PatientSearch
from .calculator import compute_totals, derive_status
from .choices import BillStatus, ItemType, PaymentMode
from .selection import TestOption, TestSelection


class BillDraft(TokenOwnedMixin):
    """
    Bill being composed in the billing wizard.

    Holds the wizard state (patient search, doctor, items, payment) until the
    bill is submitted to the lab backend. Totals are never stored; they are
    derived from the items, discount and amount received on every read.
    """

    # Unique Identifiers
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Patient step
    patient_search = models.JSONField(default=dict, blank=True)
    patient_search_generation = models.PositiveIntegerField(default=0)

    # Doctor step (optional)
    doctor = models.JSONField(null=True, blank=True)

    # Payment step
    discount_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    amount_received = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    payment_mode = models.CharField(
        max_length=10,
        choices=PaymentMode.choices,
        default=PaymentMode.CASH,
        null=True,
        blank=True
    )
    notes = models.TextField(blank=True, null=True)

    # Submission
    status = models.CharField(
        max_length=10,
        choices=BillStatus.choices,
        default=BillStatus.INITIAL
    )
    bill_id = models.PositiveIntegerField(null=True, blank=True, help_text="Bill id on the lab backend")
    bill_number = models.CharField(max_length=50, blank=True, default='')
    submitted_at = models.DateTimeField(null=True, blank=True)
    submitting = models.BooleanField(
        default=False,
        help_text="Set while the bill is being created on the lab backend"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bill_drafts'
        verbose_name = 'Bill Draft'
        verbose_name_plural = 'Bill Drafts'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner_key', 'status'], name='bill_draft_owner_status_idx'),
        ]

    def __str__(self):
        return f"Draft {self.bill_number or str(self.id)[:8]} - {self.get_status_display()}"

    @property
    def is_finalized(self):
        return self.status == BillStatus.DONE

    @property
    def is_submitted(self):
        return self.bill_id is not None

    # ----- patient search -----
    def get_patient_search(self) -> PatientSearch:
        search = PatientSearch.from_dict(self.patient_search)
        search.generation = self.patient_search_generation
        return search

    def set_patient_search(self, search: PatientSearch):
        self.patient_search = search.as_dict()
        self.patient_search_generation = search.generation

    @property
    def patient(self):
        return self.get_patient_search().selected

    # ----- items & totals -----
    def get_selection(self) -> TestSelection:
        return TestSelection(item.as_option() for item in self.items.all())

    def get_totals(self):
        """
        Calculate subtotal, grand total and amount due from current state
        """
        return compute_totals(
            self.get_selection().line_items(),
            discount_amount=self.discount_amount,
            amount_received=self.amount_received,
        )

    def get_expected_status(self):
        """
        Status the bill has, or will get from the lab backend once submitted
        with the current items and payment.
        """
        if self.is_submitted:
            return self.status
        if not self.items.all():
            return BillStatus.INITIAL
        return derive_status(self.get_totals())


class BillDraftItem(models.Model):
    """
    A test or package added to a draft. Rows are never edited, only added or
    removed; ``position`` keeps the insertion order.
    """
    draft = models.ForeignKey(
        BillDraft,
        on_delete=models.CASCADE,
        related_name='items'
    )
    display_id = models.CharField(max_length=40)
    backend_id = models.PositiveIntegerField()
    item_type = models.CharField(max_length=10, choices=ItemType.choices)
    name = models.CharField(max_length=255)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    position = models.PositiveIntegerField()
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'bill_draft_items'
        verbose_name = 'Bill Draft Item'
        verbose_name_plural = 'Bill Draft Items'
        ordering = ['position']
        constraints = [
            models.UniqueConstraint(fields=['draft', 'display_id'], name='unique_draft_item'),
        ]

    def __str__(self):
        return f"{self.name} ({self.item_type}) - {self.unit_price}"

    def as_option(self) -> TestOption:
        return TestOption(
            display_id=self.display_id,
            backend_id=self.backend_id,
            name=self.name,
            price=self.unit_price,
            item_type=self.item_type,
        )
