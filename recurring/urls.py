"""
URL routing for the recurring bookings API.
"""

from django.urls import path
from .views import (
    CustomerUpcomingView,
    InstanceCompleteView,
    InstanceLinkBookingView,
    InstanceRescheduleView,
    InstanceSkipView,
    PreviewView,
    SeriesCancelView,
    SeriesDetailView,
    SeriesExclusionListCreateView,
    SeriesGenerateView,
    SeriesInstanceListView,
    SeriesListCreateView,
    SeriesStatsView,
)

urlpatterns = [
    path('series/', SeriesListCreateView.as_view(), name='series-list-create'),
    path('series/<int:pk>/', SeriesDetailView.as_view(), name='series-detail'),
    path('series/<int:pk>/cancel/', SeriesCancelView.as_view(), name='series-cancel'),
    path('series/<int:pk>/exclusions/', SeriesExclusionListCreateView.as_view(), name='series-exclusions'),
    path('series/<int:pk>/instances/', SeriesInstanceListView.as_view(), name='series-instances'),
    path('series/<int:pk>/stats/', SeriesStatsView.as_view(), name='series-stats'),
    path('series/<int:pk>/generate/', SeriesGenerateView.as_view(), name='series-generate'),
    path('instances/<int:pk>/skip/', InstanceSkipView.as_view(), name='instance-skip'),
    path('instances/<int:pk>/reschedule/', InstanceRescheduleView.as_view(), name='instance-reschedule'),
    path('instances/<int:pk>/link/', InstanceLinkBookingView.as_view(), name='instance-link'),
    path('instances/<int:pk>/complete/', InstanceCompleteView.as_view(), name='instance-complete'),
    path('customers/<int:customer_id>/upcoming/', CustomerUpcomingView.as_view(), name='customer-upcoming'),
    path('preview/', PreviewView.as_view(), name='pattern-preview'),
]
