"""
URL configuration for the videos app.

Routes:
- 'stream/<str:video_id>/' -> stream_video: Redirect to or proxy a video's bytes
  with Range and conditional request support (query params w, h, q).
- 'videos/<str:video_id>/source/' -> source_info: JSON description of the
  resolved source, used by players to preload.
"""
from django.urls import path
from . import views

urlpatterns = [
    path('stream/<str:video_id>/', views.stream_video, name='stream_video'),
    path('videos/<str:video_id>/source/', views.source_info, name='source_info'),
]
