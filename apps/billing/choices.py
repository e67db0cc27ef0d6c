from django.db import models


class ItemType(models.TextChoices):
    TEST = 'Test', 'Test'
    PACKAGE = 'Package', 'Package'


class PaymentMode(models.TextChoices):
    CASH = 'Cash', 'Cash'
    CARD = 'Card', 'Card'
    UPI = 'UPI', 'UPI'
    ONLINE = 'Online', 'Online Payment'
    CHEQUE = 'Cheque', 'Cheque'


class BillStatus(models.TextChoices):
    """Draft status before submission, then the backend's bill status"""
    INITIAL = 'Initial', 'Initial'
    PENDING = 'Pending', 'Pending'
    PARTIAL = 'Partial', 'Partially Paid'
    DONE = 'Done', 'Done'
    CANCELLED = 'Cancelled', 'Cancelled'


class PackageStatus(models.TextChoices):
    ACTIVE = 'Active', 'Active'
    ARCHIVED = 'Archived', 'Archived'
