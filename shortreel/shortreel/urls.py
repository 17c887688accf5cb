"""
URL configuration for the shortreel project.

- 'admin/' -> Django admin.
- ''       -> videos app: streaming endpoint and source lookup.
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('videos.urls')),
]
