"""
Serializers for the recurring bookings API.
"""

from rest_framework import serializers

from .models import RecurringSeries, SeriesExclusion, SeriesInstance
from .types import EXCLUSION_DATE, EXCLUSION_DAY_OF_WEEK, EXCLUSION_TYPES, INSTANCE_STATUSES, SERIES_STATUSES


class RecurringSeriesReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying RecurringSeries (output)."""

    remaining_occurrences = serializers.ReadOnlyField()

    class Meta:
        model = RecurringSeries
        fields = [
            'id',
            'master_booking_id',
            'customer_id',
            'staff_id',
            'service_id',
            'pattern',
            'pattern_options',
            'start_date',
            'end_date',
            'start_time',
            'end_time',
            'timezone',
            'max_occurrences',
            'total_occurrences',
            'completed_occurrences',
            'remaining_occurrences',
            'recurring_discount',
            'status',
            'metadata',
            'last_generated_at',
            'created_at',
            'updated_at',
        ]


class SeriesCreateSerializer(serializers.Serializer):
    """Serializer for creating a series from a master booking."""

    master_booking_id = serializers.IntegerField(min_value=1)
    pattern = serializers.CharField(max_length=50)
    pattern_options = serializers.DictField(required=False, default=dict)
    end_date = serializers.DateField(required=False, allow_null=True)
    occurrences = serializers.IntegerField(min_value=1, required=False)
    end_after = serializers.IntegerField(min_value=1, required=False)
    apply_discount = serializers.BooleanField(default=False)
    metadata = serializers.DictField(required=False, default=dict)
    generate_instances = serializers.BooleanField(default=True)

    def series_options(self):
        """Options payload for SeriesService.create_series."""
        data = dict(self.validated_data)
        for key in ('master_booking_id', 'pattern', 'generate_instances'):
            data.pop(key, None)
        return data


class SeriesUpdateSerializer(serializers.Serializer):
    """Serializer for updating a series (input)."""

    end_date = serializers.DateField(required=False)
    max_occurrences = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=SERIES_STATUSES, required=False)
    pattern_options = serializers.DictField(required=False)
    metadata = serializers.DictField(required=False)


class ReasonSerializer(serializers.Serializer):
    """Serializer for operations taking an optional reason."""

    reason = serializers.CharField(required=False, allow_blank=True, default='')


class SeriesExclusionReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying SeriesExclusion (output)."""

    class Meta:
        model = SeriesExclusion
        fields = [
            'id',
            'series',
            'exclusion_type',
            'exclusion_date',
            'day_of_week',
            'start_date',
            'end_date',
            'reason',
            'created_at',
        ]


class SeriesExclusionCreateSerializer(serializers.Serializer):
    """Serializer for adding an exclusion to a series."""

    exclusion_type = serializers.ChoiceField(choices=EXCLUSION_TYPES)
    date = serializers.DateField(required=False)
    day = serializers.IntegerField(min_value=0, max_value=6, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, data):
        """Ensure the payload matches the exclusion type."""
        exclusion_type = data['exclusion_type']

        if exclusion_type == EXCLUSION_DATE:
            required = ['date']
        elif exclusion_type == EXCLUSION_DAY_OF_WEEK:
            required = ['day']
        else:
            required = ['start_date', 'end_date']

        missing = {name: 'This field is required.' for name in required if data.get(name) is None}
        if missing:
            raise serializers.ValidationError(missing)

        if 'start_date' in required and data['end_date'] < data['start_date']:
            raise serializers.ValidationError({
                'end_date': 'End date cannot be before the start date.'
            })

        return data


class SeriesInstanceReadSerializer(serializers.ModelSerializer):
    """Serializer for reading/displaying SeriesInstance (output)."""

    is_rescheduled = serializers.BooleanField(read_only=True)

    class Meta:
        model = SeriesInstance
        fields = [
            'id',
            'series',
            'instance_number',
            'scheduled_date',
            'scheduled_time',
            'original_date',
            'original_time',
            'is_rescheduled',
            'status',
            'skip_reason',
            'reschedule_reason',
            'booking_id',
            'created_at',
            'updated_at',
        ]


class UpcomingInstanceSerializer(SeriesInstanceReadSerializer):
    """Instance with the series fields a customer view needs."""

    pattern = serializers.CharField(source='series.pattern', read_only=True)
    staff_id = serializers.IntegerField(source='series.staff_id', read_only=True)
    service_id = serializers.IntegerField(source='series.service_id', read_only=True)

    class Meta(SeriesInstanceReadSerializer.Meta):
        fields = SeriesInstanceReadSerializer.Meta.fields + ['pattern', 'staff_id', 'service_id']


class InstanceQuerySerializer(serializers.Serializer):
    """Serializer for instance list query parameters."""

    status = serializers.ChoiceField(choices=INSTANCE_STATUSES, required=False)
    from_date = serializers.DateField(required=False)
    to_date = serializers.DateField(required=False)
    limit = serializers.IntegerField(min_value=1, max_value=500, default=50)
    offset = serializers.IntegerField(min_value=0, default=0)
    order = serializers.ChoiceField(choices=['ASC', 'DESC', 'asc', 'desc'], default='ASC')


class SeriesQuerySerializer(serializers.Serializer):
    """Serializer for series list query parameters."""

    status = serializers.ChoiceField(choices=SERIES_STATUSES + [''], required=False, default='active')
    customer_id = serializers.IntegerField(required=False)
    staff_id = serializers.IntegerField(required=False)
    limit = serializers.IntegerField(min_value=1, max_value=500, default=20)
    offset = serializers.IntegerField(min_value=0, default=0)


class UpcomingQuerySerializer(serializers.Serializer):
    """Serializer for customer upcoming query parameters."""

    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)


class RescheduleSerializer(serializers.Serializer):
    """Serializer for rescheduling an instance."""

    new_date = serializers.DateField()
    new_time = serializers.TimeField(required=False, allow_null=True)


class LinkBookingSerializer(serializers.Serializer):
    """Serializer for linking a booking to an instance."""

    booking_id = serializers.IntegerField(min_value=1)


class PreviewSerializer(serializers.Serializer):
    """Serializer for pattern preview requests."""

    pattern = serializers.CharField(max_length=50)
    start_date = serializers.DateField()
    options = serializers.DictField(required=False, default=dict)
