"""Views for the recurring bookings API."""

from django.shortcuts import get_object_or_404

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .engine import get_engine
from .errors import DuplicateError, NotFoundError, StateError, ValidationError
from .models import RecurringSeries
from .serializers import (
    InstanceQuerySerializer,
    LinkBookingSerializer,
    PreviewSerializer,
    ReasonSerializer,
    RecurringSeriesReadSerializer,
    RescheduleSerializer,
    SeriesCreateSerializer,
    SeriesExclusionCreateSerializer,
    SeriesExclusionReadSerializer,
    SeriesInstanceReadSerializer,
    SeriesQuerySerializer,
    SeriesUpdateSerializer,
    UpcomingInstanceSerializer,
    UpcomingQuerySerializer,
)
from .types import SeriesUpdateData

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StateError: status.HTTP_409_CONFLICT,
    DuplicateError: status.HTTP_409_CONFLICT,
}


def error_response(error):
    """Translate an engine error into an API response."""
    http_status = ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return Response(error.to_dict(), status=http_status)


class SeriesListCreateView(APIView):
    """
    List recurring series or create one from a master booking.

    GET /api/recurring/series/?status=active - List series
    POST /api/recurring/series/ - Create a series and its first instances
    """

    def get(self, request):
        """List series."""
        query_serializer = SeriesQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        series_list = get_engine().series.list_series(**query_serializer.validated_data)
        serializer = RecurringSeriesReadSerializer(series_list, many=True)
        return Response(serializer.data)

    def post(self, request):
        """Create a series; its first instances are generated unless disabled."""
        serializer = SeriesCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        engine = get_engine()
        data = serializer.validated_data
        if data['generate_instances']:
            result = engine.start_series(
                data['master_booking_id'], data['pattern'], serializer.series_options()
            )
        else:
            result = engine.series.create_series(
                data['master_booking_id'], data['pattern'], serializer.series_options()
            )
        if not result.ok:
            return error_response(result.error)

        series = result.value
        return Response({
            'series': RecurringSeriesReadSerializer(series).data,
            'instances_created': series.total_occurrences,
        }, status=status.HTTP_201_CREATED)


class SeriesDetailView(APIView):
    """
    Retrieve or update a series.

    GET /api/recurring/series/{id}/ - Retrieve series
    PATCH /api/recurring/series/{id}/ - Update series
    """

    def get(self, request, pk):
        """Retrieve a series."""
        series = get_object_or_404(RecurringSeries, pk=pk)
        serializer = RecurringSeriesReadSerializer(series)
        return Response(serializer.data)

    def patch(self, request, pk):
        """Update a series."""
        serializer = SeriesUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        result = get_engine().series.update_series(
            pk, SeriesUpdateData(**serializer.validated_data)
        )
        if not result.ok:
            return error_response(result.error)

        return Response(RecurringSeriesReadSerializer(result.value).data)


class SeriesCancelView(APIView):
    """
    Cancel a series.

    POST /api/recurring/series/{id}/cancel/
    """

    def post(self, request, pk):
        """Cancel a series; cancelling twice is harmless."""
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().series.cancel_series(pk, serializer.validated_data['reason'])
        if not result.ok:
            return error_response(result.error)

        return Response({
            'message': f'Series {pk} has been cancelled.'
        }, status=status.HTTP_200_OK)


class SeriesExclusionListCreateView(APIView):
    """
    List or add exclusions of a series.

    GET /api/recurring/series/{id}/exclusions/
    POST /api/recurring/series/{id}/exclusions/
    """

    def get(self, request, pk):
        """List the exclusions of a series."""
        get_object_or_404(RecurringSeries, pk=pk)
        exclusions = get_engine().series.get_exclusions(pk)
        serializer = SeriesExclusionReadSerializer(exclusions, many=True)
        return Response(serializer.data)

    def post(self, request, pk):
        """Add an exclusion."""
        serializer = SeriesExclusionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        exclusion_type = data.pop('exclusion_type')
        result = get_engine().series.add_exclusion(pk, exclusion_type, data)
        if not result.ok:
            return error_response(result.error)

        response_serializer = SeriesExclusionReadSerializer(result.value)
        return Response(response_serializer.data, status=status.HTTP_201_CREATED)


class SeriesInstanceListView(APIView):
    """
    List the instances of a series.

    GET /api/recurring/series/{id}/instances/?status=scheduled&from_date=X&to_date=Y
    """

    def get(self, request, pk):
        """List instances of a series."""
        get_object_or_404(RecurringSeries, pk=pk)
        query_serializer = InstanceQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        instances = get_engine().generator.get_instances(pk, **query_serializer.validated_data)
        serializer = SeriesInstanceReadSerializer(instances, many=True)
        return Response(serializer.data)


class SeriesStatsView(APIView):
    """
    Instance counts per status.

    GET /api/recurring/series/{id}/stats/
    """

    def get(self, request, pk):
        """Return instance counts for a series."""
        result = get_engine().generator.get_series_stats(pk)
        if not result.ok:
            return error_response(result.error)
        return Response(result.value)


class SeriesGenerateView(APIView):
    """
    Generate the next instances of a series on demand.

    POST /api/recurring/series/{id}/generate/
    """

    def post(self, request, pk):
        """Run generation for one series."""
        get_object_or_404(RecurringSeries, pk=pk)
        instance_ids = get_engine().generator.generate_instances_for_series(pk)
        return Response({
            'instance_ids': instance_ids,
            'instances_created': len(instance_ids),
        }, status=status.HTTP_200_OK)


class InstanceSkipView(APIView):
    """
    Skip a scheduled instance.

    POST /api/recurring/instances/{id}/skip/
    """

    def post(self, request, pk):
        """Skip an instance."""
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().generator.skip_instance(pk, serializer.validated_data['reason'])
        if not result.ok:
            return error_response(result.error)

        return Response(SeriesInstanceReadSerializer(result.value).data)


class InstanceRescheduleView(APIView):
    """
    Move a scheduled instance to another date.

    POST /api/recurring/instances/{id}/reschedule/
    """

    def post(self, request, pk):
        """Reschedule an instance."""
        serializer = RescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().generator.reschedule_instance(
            pk,
            serializer.validated_data['new_date'],
            serializer.validated_data.get('new_time'),
        )
        if not result.ok:
            return error_response(result.error)

        return Response(SeriesInstanceReadSerializer(result.value).data)


class InstanceLinkBookingView(APIView):
    """
    Attach a booking to a scheduled instance.

    POST /api/recurring/instances/{id}/link/
    """

    def post(self, request, pk):
        """Link a booking."""
        serializer = LinkBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = get_engine().generator.link_booking(pk, serializer.validated_data['booking_id'])
        if not result.ok:
            return error_response(result.error)

        return Response(SeriesInstanceReadSerializer(result.value).data)


class InstanceCompleteView(APIView):
    """
    Mark an instance as completed.

    POST /api/recurring/instances/{id}/complete/
    """

    def post(self, request, pk):
        """Complete an instance."""
        result = get_engine().generator.complete_instance(pk)
        if not result.ok:
            return error_response(result.error)

        return Response(SeriesInstanceReadSerializer(result.value).data)


class CustomerUpcomingView(APIView):
    """
    Upcoming scheduled instances of a customer.

    GET /api/recurring/customers/{customer_id}/upcoming/?limit=10
    """

    def get(self, request, customer_id):
        """List upcoming instances."""
        query_serializer = UpcomingQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)

        instances = get_engine().generator.get_upcoming_for_customer(
            customer_id, query_serializer.validated_data['limit']
        )
        serializer = UpcomingInstanceSerializer(instances, many=True)
        return Response(serializer.data)


class PreviewView(APIView):
    """
    Preview the dates a pattern produces.

    POST /api/recurring/preview/
    """

    def post(self, request):
        """Return a preview of upcoming dates."""
        serializer = PreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        result = get_engine().series.get_preview(data['pattern'], data['start_date'], data['options'])
        if not result.ok:
            return error_response(result.error)

        return Response(result.value)
