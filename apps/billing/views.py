from rest_framework import viewsets, mixins, status, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from drf_spectacular.utils import (
    extend_schema, extend_schema_view,
    OpenApiParameter, OpenApiExample, OpenApiResponse
)

from common.mixins import LabClientMixin, TokenOwnedViewSetMixin
from apps.patients.serializers import PatientPickSerializer, PatientSearchRequestSerializer
from . import services
from .models import BillDraft
from .serializers import (
    BillDraftSerializer,
    BillSerializer,
    DoctorSelectRequestSerializer,
    DraftItemRequestSerializer,
    PaymentSerializer,
    TestOptionSerializer,
)


@extend_schema_view(
    list=extend_schema(
        summary="List bill drafts",
        description="Bill drafts started with the current token, newest first.",
        parameters=[OpenApiParameter(name='status', type=str, description='Filter by status')],
        tags=['Bill Wizard']
    ),
    retrieve=extend_schema(
        summary="Get bill draft",
        description="Wizard state of a draft with totals computed from its current items and payment.",
        tags=['Bill Wizard']
    ),
    create=extend_schema(
        summary="Start bill wizard",
        description="Create an empty bill draft.",
        request=None,
        tags=['Bill Wizard']
    ),
    destroy=extend_schema(
        summary="Discard bill draft",
        description="Delete a draft. Bills already generated on the lab server are not affected.",
        tags=['Bill Wizard']
    ),
)
class BillDraftViewSet(TokenOwnedViewSetMixin, LabClientMixin,
                       mixins.CreateModelMixin,
                       mixins.RetrieveModelMixin,
                       mixins.ListModelMixin,
                       mixins.DestroyModelMixin,
                       viewsets.GenericViewSet):
    """
    Bill creation wizard: patient, doctor, tests/packages, payment, submit.
    """
    queryset = BillDraft.objects.prefetch_related('items')
    serializer_class = BillDraftSerializer

    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['status']
    ordering_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']

    def _draft_response(self, draft, message=None, status_code=status.HTTP_200_OK, **extra):
        draft = BillDraft.objects.prefetch_related('items').get(pk=draft.pk)
        body = {'success': True, 'data': BillDraftSerializer(draft).data}
        if message:
            body['message'] = message
        body.update(extra)
        return Response(body, status=status_code)

    def list(self, request, *args, **kwargs):
        qs = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(qs)
        if page is not None:
            s = self.get_serializer(page, many=True)
            return self.get_paginated_response(s.data)
        s = self.get_serializer(qs, many=True)
        return Response({'success': True, 'data': s.data})

    def retrieve(self, request, *args, **kwargs):
        return self._draft_response(self.get_object())

    def create(self, request, *args, **kwargs):
        s = self.get_serializer(data={})
        s.is_valid(raise_exception=True)
        self.perform_create(s)
        return self._draft_response(s.instance, 'Bill draft started', status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        self.get_object().delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # =========================
    # Patient step
    # =========================
    @extend_schema(
        summary="Search patient",
        description=(
            "Search the patient directory by name, phone number or patient ID. "
            "A single match for a specific query (longer than 5 characters) is selected directly; "
            "otherwise the matches are listed for an explicit pick. An empty query resets the step."
        ),
        request=PatientSearchRequestSerializer,
        examples=[OpenApiExample('Phone search', value={'query': '9876543210'}, request_only=True)],
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post'])
    def search_patient(self, request, pk=None):
        s = PatientSearchRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft = services.search_patient(self.get_lab_client(), self.get_object(), s.validated_data['query'])
        search = draft.get_patient_search()
        return self._draft_response(draft, search.error or search.message)

    @extend_schema(
        summary="Pick patient",
        description="Select one of the patients listed by the last search.",
        request=PatientPickSerializer,
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post'])
    def pick_patient(self, request, pk=None):
        s = PatientPickSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft = services.pick_patient(self.get_lab_client(), self.get_object(), s.validated_data['patient_id'])
        return self._draft_response(draft)

    @extend_schema(summary="Clear patient", request=None, tags=['Bill Wizard'])
    @action(detail=True, methods=['post'])
    def clear_patient(self, request, pk=None):
        draft = services.clear_patient(self.get_lab_client(), self.get_object())
        return self._draft_response(draft)

    # =========================
    # Doctor step
    # =========================
    @extend_schema(
        summary="Select doctor",
        description="Attach the first doctor matching a name or doctor ID. Optional; an empty query removes the doctor.",
        request=DoctorSelectRequestSerializer,
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post'])
    def select_doctor(self, request, pk=None):
        s = DoctorSelectRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft, message = services.select_doctor(self.get_lab_client(), self.get_object(), s.validated_data['query'])
        return self._draft_response(draft, message)

    # =========================
    # Tests & packages step
    # =========================
    @extend_schema(
        summary="Available tests and packages",
        description="Catalog entries that are not on the draft yet.",
        responses={200: TestOptionSerializer(many=True)},
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['get'])
    def catalog(self, request, pk=None):
        options = services.available_options(self.get_lab_client(), self.get_object())
        return Response({'success': True, 'data': TestOptionSerializer(options, many=True).data})

    @extend_schema(
        summary="Add test or package",
        request=DraftItemRequestSerializer,
        examples=[OpenApiExample('Add CBC', value={'display_id': 'test_1'}, request_only=True)],
        responses={200: BillDraftSerializer, 400: OpenApiResponse(description="Unknown test or package")},
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post'])
    def add_item(self, request, pk=None):
        s = DraftItemRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft, added = services.add_item(self.get_lab_client(), self.get_object(), s.validated_data['display_id'])
        message = None if added else 'This item is already on the bill.'
        return self._draft_response(draft, message, added=added)

    @extend_schema(summary="Remove test or package", request=DraftItemRequestSerializer, tags=['Bill Wizard'])
    @action(detail=True, methods=['post'])
    def remove_item(self, request, pk=None):
        s = DraftItemRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft, removed = services.remove_item(self.get_object(), s.validated_data['display_id'])
        return self._draft_response(draft, removed=removed)

    # =========================
    # Payment & submit
    # =========================
    @extend_schema(
        summary="Update payment",
        description="Discount, amount received, payment mode and notes. Refused once the bill is finalized.",
        request=PaymentSerializer,
        examples=[OpenApiExample('Payment', value={
            'discount_amount': '50.00',
            'amount_received': '500.00',
            'payment_mode': 'Cash',
            'notes': 'Paid at counter'
        }, request_only=True)],
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post', 'patch'])
    def payment(self, request, pk=None):
        s = PaymentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        draft = services.update_payment(self.get_lab_client(), self.get_object(), s.validated_data)
        return self._draft_response(draft)

    @extend_schema(
        summary="Generate bill",
        description="Create the bill on the lab server. Requires a selected patient and at least one item.",
        request=None,
        tags=['Bill Wizard']
    )
    @action(detail=True, methods=['post'])
    def submit(self, request, pk=None):
        draft = services.submit_draft(self.get_lab_client(), self.get_object())
        return self._draft_response(draft, f'Bill {draft.bill_number} generated', status.HTTP_201_CREATED)


@extend_schema_view(
    retrieve=extend_schema(
        summary="Get bill",
        description="Bill from the lab server with totals recomputed from its items.",
        responses={200: BillSerializer},
        tags=['Bills']
    ),
    update=extend_schema(
        summary="Edit bill",
        description="Update discount, amount received, payment mode and notes. Finalized (Done) bills are refused.",
        request=PaymentSerializer,
        responses={200: BillSerializer, 403: OpenApiResponse(description="Bill is finalized")},
        tags=['Bills']
    ),
    partial_update=extend_schema(
        summary="Partially edit bill",
        request=PaymentSerializer,
        responses={200: BillSerializer, 403: OpenApiResponse(description="Bill is finalized")},
        tags=['Bills']
    ),
)
class BillViewSet(LabClientMixin, viewsets.ViewSet):
    """
    Edit flow for bills that already exist on the lab server.
    """
    lookup_value_regex = r'\d+'

    def retrieve(self, request, pk=None):
        bill = services.get_bill(self.get_lab_client(), int(pk))
        return Response({'success': True, 'data': BillSerializer(bill).data})

    def update(self, request, pk=None):
        s = PaymentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        bill = services.update_bill(self.get_lab_client(), int(pk), s.validated_data)
        return Response({
            'success': True,
            'message': f"Bill {bill['bill_number']} has been successfully updated.",
            'data': BillSerializer(bill).data
        })

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)
