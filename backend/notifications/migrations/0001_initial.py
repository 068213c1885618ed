# Generated migration for initial notifications app setup

import datetime
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


KIND_CHOICES = [
    ('morning', 'Morning briefing'),
    ('evening', 'Evening recap'),
    ('last_day', 'Last day warning'),
    ('segment_transition', 'Segment transition'),
    ('proximity', 'Nearby place'),
    ('meal', 'Meal suggestion'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('trips', '0001_initial'),
        ('locations', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(
                    choices=KIND_CHOICES,
                    help_text='morning, evening, last_day, segment_transition, proximity, meal',
                    max_length=20,
                )),
                ('title', models.CharField(max_length=200)),
                ('body', models.TextField()),
                ('data', models.JSONField(blank=True, default=dict)),
                ('is_read', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('recipient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='notifications',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('trip', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='notifications',
                    to='trips.trip',
                )),
            ],
            options={
                'db_table': 'notifications_notification',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['recipient', 'created_at'], name='notif_recipient_created_idx'),
                    models.Index(fields=['recipient', 'is_read'], name='notif_recipient_read_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DeviceToken',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('token', models.CharField(max_length=500, unique=True)),
                ('platform', models.CharField(
                    choices=[('iOS', 'iOS'), ('ANDROID', 'Android'), ('WEB', 'Web')],
                    default='ANDROID',
                    max_length=20,
                )),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='device_tokens',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'db_table': 'notifications_device_token',
                'indexes': [
                    models.Index(fields=['user', 'is_active'], name='device_user_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='NotificationPreference',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('morning_briefing', models.BooleanField(default=True)),
                ('evening_recap', models.BooleanField(default=True)),
                ('nearby_alerts', models.BooleanField(default=True)),
                ('segment_alerts', models.BooleanField(default=True)),
                ('meal_suggestions', models.BooleanField(default=True)),
                ('quiet_start', models.TimeField(default=datetime.time(22, 0))),
                ('quiet_end', models.TimeField(default=datetime.time(7, 0))),
                ('max_daily_notifications', models.PositiveIntegerField(default=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('trip', models.ForeignKey(
                    blank=True,
                    help_text="Empty for the user's default preferences",
                    null=True,
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='notification_preferences',
                    to='trips.trip',
                )),
                ('user', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='notification_preferences',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('trip__isnull', True)),
                        fields=('user',),
                        name='pref_user_default_uniq',
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(('trip__isnull', False)),
                        fields=('user', 'trip'),
                        name='pref_user_trip_uniq',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProximityAlertRecord',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('distance_m', models.FloatField()),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('place', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='proximity_alerts',
                    to='locations.savedplace',
                )),
                ('trip', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='proximity_alerts',
                    to='trips.trip',
                )),
                ('user', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='proximity_alerts',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', '-created_at'], name='alert_user_created_idx'),
                ],
            },
        ),
    ]
