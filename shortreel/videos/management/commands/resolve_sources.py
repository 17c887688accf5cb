"""
Report how each video resolves to a playable source.

Usage:
    python manage.py resolve_sources [video_id ...] [--probe]

For every video the stored backend kind, the resolved kind, the delivery mode
and the URL are printed. With ``--probe`` file-share videos are probed the
same way the stream endpoint does it.
"""

from django.conf import settings
from django.core.management.base import BaseCommand

from videos.exceptions import StreamError
from videos.models import BackendKind, Video
from videos.probing import FallbackProber, PlayableUrl, file_share_candidates
from videos.services import resolve_source


class Command(BaseCommand):
    help = "Resolve the storage backend of videos and optionally probe file-share candidates."

    def add_arguments(self, parser):
        parser.add_argument("video_ids", nargs="*", help="Videos to check (default: all)")
        parser.add_argument("--probe", action="store_true",
                            help="Probe file-share candidates for a playable URL")

    def handle(self, *args, **options):
        videos = Video.objects.all()
        if options["video_ids"]:
            videos = videos.filter(pk__in=options["video_ids"])

        results = {"checked": 0, "unavailable": 0, "errors": []}
        for video in videos:
            results["checked"] += 1
            try:
                source = resolve_source(video.descriptor(), pull_zone=settings.STREAM_CDN_PULL_ZONE)
            except StreamError as exc:
                results["errors"].append(f"{video.pk}: {exc}")
                self.stdout.write(self.style.ERROR(f"{video.pk} [{video.backend_kind or '-'}] {exc}"))
                continue
            if not source.available:
                results["unavailable"] += 1
                self.stdout.write(self.style.WARNING(f"{video.pk} [{video.backend_kind or '-'}] no source"))
                continue
            self.stdout.write(
                f"{video.pk} [{video.backend_kind or '-'}] -> {source.storage_kind.value} "
                f"{source.content_kind} {source.primary_url or source.locator}"
            )
            if options["probe"] and source.storage_kind == BackendKind.FILE_SHARE:
                self._probe(video, source, results)

        summary = (f"Checked {results['checked']} video(s), "
                   f"{results['unavailable']} without source, {len(results['errors'])} error(s)")
        self.stdout.write(self.style.SUCCESS(summary))

    def _probe(self, video, source, results):
        candidates = file_share_candidates(source.locator, source.primary_url or "")
        result = FallbackProber().probe(candidates, "bytes=0-0")
        if isinstance(result, PlayableUrl):
            result.response.close()
            self.stdout.write(f"  playable after {result.attempts} attempt(s): {result.url}")
        else:
            message = f"{video.pk}: {result.attempts} candidate(s) failed, last error: {result.last_error}"
            results["errors"].append(message)
            self.stdout.write(self.style.ERROR(f"  {message}"))
