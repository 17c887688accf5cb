from django.conf import settings
from django.db.models.signals import pre_save
from django.dispatch import receiver
from .models import Video
import logging

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Video)
def store_backend_kind(sender, instance, **kwargs):
    """Decide the authoritative backend kind once, when the Video is written."""
    descriptor = instance.descriptor()
    ref = descriptor.usable(settings.STREAM_CDN_PULL_ZONE) or descriptor.primary
    kind = ref.kind if ref is not None else ""
    if instance.backend_kind != kind:
        if instance.backend_kind:
            logger.info("Video %s backend kind changed from %s to %s",
                        instance.pk, instance.backend_kind, kind or "none")
        instance.backend_kind = kind
