"""
Models for the videos app.

Each Video keeps the addressing data of every storage backend that ever held
a copy of it. The fields are grouped per backend kind; ``descriptor()`` turns
the populated groups into explicit ``BackendRef`` variants and the
``backend_kind`` column stores the authoritative kind decided at write time.
"""

import uuid

from django.db import models


def _new_video_id() -> str:
    return uuid.uuid4().hex


class BackendKind(models.TextChoices):
    """Storage backends a video can be served from, highest priority first."""
    MANAGED_CDN = "managed-cdn", "Managed video CDN"
    CLOUD_TRANSFORM = "cloud-transform", "Cloud media transform"
    FILE_SHARE = "file-share", "File sharing service"
    LOCAL_FILE = "local-file", "Local file"


class Video(models.Model):
    """A short video and the backend references that locate its bytes."""
    objects = models.Manager()
    id = models.CharField(max_length=64, primary_key=True, default=_new_video_id, editable=False)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    duration = models.PositiveIntegerField(null=True, blank=True, help_text="Duration in seconds")
    thumbnail = models.CharField(max_length=500, blank=True)
    backend_kind = models.CharField(max_length=32, choices=BackendKind.choices, blank=True)

    # managed-cdn
    cdn_asset_id = models.CharField(max_length=128, blank=True)
    cdn_playback_url = models.URLField(max_length=500, blank=True)
    cdn_thumbnail_url = models.URLField(max_length=500, blank=True)

    # cloud-transform
    cloud_public_id = models.CharField(max_length=255, blank=True)
    cloud_url = models.URLField(max_length=500, blank=True)
    cloud_thumbnail_url = models.URLField(max_length=500, blank=True)
    cloud_private = models.BooleanField(default=False)

    # file-share
    share_file_id = models.CharField(max_length=128, blank=True)
    share_url = models.URLField(max_length=500, blank=True)
    share_thumbnail_url = models.URLField(max_length=500, blank=True)

    # local-file, relative to MEDIA_ROOT
    file_path = models.CharField(max_length=500, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return str(self.title or self.id)

    def descriptor(self):
        """Return the BackendDescriptor built from the populated backend fields."""
        from .services import BackendDescriptor, BackendRef

        refs = []
        if self.cdn_asset_id or self.cdn_playback_url:
            refs.append(BackendRef(
                kind=BackendKind.MANAGED_CDN,
                locator=self.cdn_asset_id,
                playback_url=self.cdn_playback_url,
                thumbnail_url=self.cdn_thumbnail_url,
            ))
        if self.cloud_public_id or self.cloud_url:
            refs.append(BackendRef(
                kind=BackendKind.CLOUD_TRANSFORM,
                locator=self.cloud_public_id,
                playback_url=self.cloud_url,
                thumbnail_url=self.cloud_thumbnail_url,
                private=self.cloud_private or "/private/" in self.cloud_url,
            ))
        if self.share_file_id or self.share_url:
            refs.append(BackendRef(
                kind=BackendKind.FILE_SHARE,
                locator=self.share_file_id,
                playback_url=self.share_url,
                thumbnail_url=self.share_thumbnail_url,
            ))
        if self.file_path:
            refs.append(BackendRef(
                kind=BackendKind.LOCAL_FILE,
                locator=self.file_path,
                thumbnail_url=self.thumbnail,
            ))
        return BackendDescriptor(refs=tuple(refs))

    def duration_display(self) -> str:
        if self.duration in (None, ""):
            return None
        minutes, seconds = divmod(self.duration, 60)
        hours, minutes = divmod(minutes, 60)
        if hours:
            return f"{hours:d}:{minutes:02d}:{seconds:02d}"
        return f"{minutes:d}:{seconds:02d}"
