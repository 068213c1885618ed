# Generated migration for initial locations app setup

import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('trips', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='SavedPlace',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='The name of the place', max_length=255)),
                ('category', models.CharField(
                    choices=[
                        ('food', 'Food'),
                        ('place', 'Place'),
                        ('shopping', 'Shopping'),
                        ('activity', 'Activity'),
                        ('accommodation', 'Accommodation'),
                        ('tip', 'Tip'),
                    ],
                    default='place',
                    help_text='food, place, shopping, activity, accommodation, tip',
                    max_length=20,
                )),
                ('description', models.TextField(blank=True, default='')),
                ('cuisine_type', models.CharField(blank=True, default='', max_length=100)),
                ('tags', models.JSONField(blank=True, default=list, help_text='Free keywords used by the keyword filters of the ranking pipeline')),
                ('latitude', models.FloatField(blank=True, null=True)),
                ('longitude', models.FloatField(blank=True, null=True)),
                ('location_name', models.CharField(blank=True, default='', help_text='Formatted address returned by the geocoder', max_length=512)),
                ('area_name', models.CharField(blank=True, default='', help_text='City or neighborhood the place was mentioned with', max_length=255)),
                ('location_confidence', models.CharField(
                    blank=True,
                    choices=[('high', 'High'), ('medium', 'Medium'), ('low', 'Low')],
                    max_length=10,
                    null=True,
                )),
                ('location_confidence_score', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('rating', models.FloatField(blank=True, null=True)),
                ('rating_count', models.PositiveIntegerField(blank=True, null=True)),
                ('status', models.CharField(choices=[('saved', 'Saved'), ('visited', 'Visited')], default='saved', max_length=10)),
                ('is_must_visit', models.BooleanField(default=False)),
                ('visited_at', models.DateTimeField(blank=True, null=True)),
                ('source_title', models.CharField(blank=True, default='', max_length=500)),
                ('source_url', models.URLField(blank=True, default='', max_length=1000)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('added_by', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='saved_places',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('segment', models.ForeignKey(
                    blank=True,
                    help_text='City segment this place belongs to, if known',
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='saved_places',
                    to='trips.tripsegment',
                )),
                ('trip', models.ForeignKey(
                    help_text='Trip the place was saved to',
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='saved_places',
                    to='trips.trip',
                )),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.AddIndex(
            model_name='savedplace',
            index=models.Index(fields=['trip', 'status'], name='place_trip_status_idx'),
        ),
        migrations.AddIndex(
            model_name='savedplace',
            index=models.Index(fields=['trip', 'category'], name='place_trip_category_idx'),
        ),
        migrations.AddIndex(
            model_name='savedplace',
            index=models.Index(fields=['latitude', 'longitude'], name='place_coords_idx'),
        ),
    ]
