from django.db import migrations, models

import videos.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Video',
            fields=[
                ('id', models.CharField(default=videos.models._new_video_id, editable=False, max_length=64, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('duration', models.PositiveIntegerField(blank=True, help_text='Duration in seconds', null=True)),
                ('thumbnail', models.CharField(blank=True, max_length=500)),
                ('backend_kind', models.CharField(blank=True, choices=[('managed-cdn', 'Managed video CDN'), ('cloud-transform', 'Cloud media transform'), ('file-share', 'File sharing service'), ('local-file', 'Local file')], max_length=32)),
                ('cdn_asset_id', models.CharField(blank=True, max_length=128)),
                ('cdn_playback_url', models.URLField(blank=True, max_length=500)),
                ('cdn_thumbnail_url', models.URLField(blank=True, max_length=500)),
                ('cloud_public_id', models.CharField(blank=True, max_length=255)),
                ('cloud_url', models.URLField(blank=True, max_length=500)),
                ('cloud_thumbnail_url', models.URLField(blank=True, max_length=500)),
                ('cloud_private', models.BooleanField(default=False)),
                ('share_file_id', models.CharField(blank=True, max_length=128)),
                ('share_url', models.URLField(blank=True, max_length=500)),
                ('share_thumbnail_url', models.URLField(blank=True, max_length=500)),
                ('file_path', models.CharField(blank=True, max_length=500)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ('-created_at',),
            },
        ),
    ]
