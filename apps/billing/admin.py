from django.contrib import admin
from django.utils.html import format_html
from .models import BillDraft, BillDraftItem


class BillDraftItemInline(admin.TabularInline):
    """Inline admin for draft line items"""
    model = BillDraftItem
    extra = 0
    readonly_fields = ['position', 'display_id', 'backend_id', 'item_type', 'name', 'unit_price', 'added_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        """Items are added through the wizard only"""
        return False


@admin.register(BillDraft)
class BillDraftAdmin(admin.ModelAdmin):
    """Bill wizard drafts (read-mostly)"""
    list_display = [
        'id',
        'bill_number',
        'patient_display',
        'status_badge',
        'sub_total_display',
        'amount_due_display',
        'payment_mode',
        'created_at'
    ]

    list_filter = [
        'status',
        'payment_mode',
        'created_at'
    ]

    search_fields = [
        'bill_number',
        'notes'
    ]

    inlines = [BillDraftItemInline]

    readonly_fields = [
        'owner_key',
        'patient_search',
        'patient_search_generation',
        'doctor',
        'bill_id',
        'bill_number',
        'status',
        'submitted_at',
        'created_at',
        'updated_at'
    ]

    fieldsets = (
        ('Wizard', {
            'fields': (
                'owner_key',
                'patient_search',
                'patient_search_generation',
                'doctor',
                'notes'
            )
        }),
        ('Payment', {
            'fields': (
                'discount_amount',
                'amount_received',
                'payment_mode'
            )
        }),
        ('Lab Server Bill', {
            'fields': (
                'bill_id',
                'bill_number',
                'status',
                'submitting',
                'submitted_at'
            )
        }),
        ('Timestamps', {
            'fields': (
                'created_at',
                'updated_at'
            )
        }),
    )

    def patient_display(self, obj):
        """Display selected patient"""
        patient = obj.patient
        if patient:
            return f"{patient.get('full_name')} ({patient.get('phone')})"
        return "No Patient"
    patient_display.short_description = "Patient"

    def sub_total_display(self, obj):
        return obj.get_totals().sub_total
    sub_total_display.short_description = "Subtotal"

    def amount_due_display(self, obj):
        """Overpayment shows as a negative amount in red"""
        totals = obj.get_totals()
        color = 'red' if totals.is_overpaid else 'inherit'
        return format_html('<span style="color:{};">{}</span>', color, totals.amount_due)
    amount_due_display.short_description = "Amount Due"

    def status_badge(self, obj):
        """Colorful status representation"""
        color_map = {
            'Initial': 'gray',
            'Pending': 'orange',
            'Partial': 'blue',
            'Done': 'green',
            'Cancelled': 'red',
        }
        if obj.is_submitted:
            return format_html(
                '<span style="color:{}; font-weight:bold;">{}</span>',
                color_map.get(obj.status, 'gray'),
                obj.get_status_display()
            )
        # not generated yet: show what the backend will derive
        expected = obj.get_expected_status()
        return format_html(
            '<span style="color:{};">{} (expected)</span>',
            color_map.get(expected, 'gray'),
            expected
        )
    status_badge.short_description = "Status"

    def get_queryset(self, request):
        """Optimize queryset with prefetch_related"""
        return super().get_queryset(request).prefetch_related('items')
