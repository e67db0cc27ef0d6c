from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='BillDraft',
            fields=[
                ('owner_key', models.CharField(db_index=True, editable=False, help_text='SHA-256 of the bearer token that owns this row', max_length=64)),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('patient_search', models.JSONField(blank=True, default=dict)),
                ('patient_search_generation', models.PositiveIntegerField(default=0)),
                ('doctor', models.JSONField(blank=True, null=True)),
                ('discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('amount_received', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('payment_mode', models.CharField(blank=True, choices=[('Cash', 'Cash'), ('Card', 'Card'), ('UPI', 'UPI'), ('Online', 'Online Payment'), ('Cheque', 'Cheque')], default='Cash', max_length=10, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('status', models.CharField(choices=[('Initial', 'Initial'), ('Pending', 'Pending'), ('Partial', 'Partially Paid'), ('Done', 'Done'), ('Cancelled', 'Cancelled')], default='Initial', max_length=10)),
                ('bill_id', models.PositiveIntegerField(blank=True, help_text='Bill id on the lab backend', null=True)),
                ('bill_number', models.CharField(blank=True, default='', max_length=50)),
                ('submitted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Bill Draft',
                'verbose_name_plural': 'Bill Drafts',
                'db_table': 'bill_drafts',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['owner_key', 'status'], name='bill_draft_owner_status_idx')],
            },
        ),
        migrations.CreateModel(
            name='BillDraftItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('display_id', models.CharField(max_length=40)),
                ('backend_id', models.PositiveIntegerField()),
                ('item_type', models.CharField(choices=[('Test', 'Test'), ('Package', 'Package')], max_length=10)),
                ('name', models.CharField(max_length=255)),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('position', models.PositiveIntegerField()),
                ('added_at', models.DateTimeField(auto_now_add=True)),
                ('draft', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='billing.billdraft')),
            ],
            options={
                'verbose_name': 'Bill Draft Item',
                'verbose_name_plural': 'Bill Draft Items',
                'db_table': 'bill_draft_items',
                'ordering': ['position'],
                'constraints': [models.UniqueConstraint(fields=('draft', 'display_id'), name='unique_draft_item')],
            },
        ),
    ]
