# Generated migration for initial trips app setup

import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Trip',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(help_text='User defined name for the trip', max_length=255)),
                ('destination', models.CharField(blank=True, default='', help_text="Free text destination, e.g. 'Japan'", max_length=255)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(
                    choices=[
                        ('PLANNING', 'Planning'),
                        ('ACTIVE', 'Active'),
                        ('COMPLETED', 'Completed'),
                    ],
                    default='PLANNING',
                    help_text='PLANNING, ACTIVE, COMPLETED',
                    max_length=20,
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(
                    help_text='Reference to the owner of the trip',
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='owned_trips',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('members', models.ManyToManyField(
                    blank=True,
                    help_text="Travel companions who share the trip's saved places",
                    related_name='joined_trips',
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='TripSegment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('city', models.CharField(max_length=255)),
                ('area', models.CharField(blank=True, default='', max_length=255)),
                ('country', models.CharField(blank=True, default='', max_length=100)),
                ('timezone', models.CharField(default='UTC', help_text="IANA timezone name, e.g. 'Asia/Tokyo'", max_length=64)),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('accommodation_name', models.CharField(blank=True, default='', max_length=255)),
                ('accommodation_address', models.TextField(blank=True, default='')),
                ('accommodation_lat', models.FloatField(blank=True, null=True)),
                ('accommodation_lng', models.FloatField(blank=True, null=True)),
                ('order_index', models.IntegerField(default=0)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('trip', models.ForeignKey(
                    help_text='Reference to the parent trip',
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='segments',
                    to='trips.trip',
                )),
            ],
            options={
                'ordering': ['trip', 'start_date', 'order_index'],
            },
        ),
        migrations.AddIndex(
            model_name='trip',
            index=models.Index(fields=['user', '-created_at'], name='trip_user_created_idx'),
        ),
        migrations.AddIndex(
            model_name='trip',
            index=models.Index(fields=['status'], name='trip_status_idx'),
        ),
        migrations.AddIndex(
            model_name='tripsegment',
            index=models.Index(fields=['trip', 'order_index'], name='segment_trip_order_idx'),
        ),
        migrations.AddIndex(
            model_name='tripsegment',
            index=models.Index(fields=['start_date', 'end_date'], name='segment_dates_idx'),
        ),
        migrations.AddIndex(
            model_name='tripsegment',
            index=models.Index(fields=['city'], name='segment_city_idx'),
        ),
    ]
