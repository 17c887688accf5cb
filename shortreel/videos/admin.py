from django.contrib import admin
from django.contrib import messages
from .models import Video


@admin.register(Video)
class VideoAdmin(admin.ModelAdmin):
    list_display = ("title", "id", "backend_kind", "created_at")
    list_filter = ("backend_kind",)
    search_fields = ("title", "id", "cdn_asset_id", "cloud_public_id", "share_file_id")
    readonly_fields = ("backend_kind",)
    ordering = ("-created_at",)
    actions = ["recompute_backend_kind"]

    def recompute_backend_kind(self, request, queryset):
        count = 0
        for vid in queryset:
            previous = vid.backend_kind
            # pre_save stores the kind from the current backend fields
            vid.save(update_fields=["backend_kind", "updated_at"])
            if vid.backend_kind != previous:
                count += 1
        self.message_user(request, f"Storage kind updated for {count} video(s)", level=messages.INFO)
    recompute_backend_kind.short_description = "Recompute storage kind for selected videos"
