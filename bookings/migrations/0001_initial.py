from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import bookings.models


def _timestamps():
    return [
        ('created_at', models.DateTimeField(auto_now_add=True)),
        ('updated_at', models.DateTimeField(auto_now=True)),
    ]


def _named(model_name, options=None):
    return migrations.CreateModel(
        name=model_name,
        fields=[
            ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
            *_timestamps(),
            ('name', models.CharField(max_length=200)),
        ],
        options={'ordering': ['name'], 'abstract': False, **(options or {})},
    )


STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('confirmed', 'Confirmed'),
    ('paid', 'Paid'),
    ('cancelled', 'Cancelled'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        _named('Ship'),
        _named('Location'),
        _named('Agent'),
        _named('BookingAgent', {
            'verbose_name': 'Booking Agent',
            'verbose_name_plural': 'Booking Agents',
        }),
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('name', models.CharField(max_length=200)),
                ('email', models.EmailField(blank=True, default='', max_length=254)),
                ('phone', models.CharField(blank=True, default='', max_length=50)),
            ],
            options={
                'ordering': ['-created_at'],
                'abstract': False,
                'indexes': [models.Index(fields=['email'], name='bookings_customer_email_idx')],
            },
        ),
        migrations.CreateModel(
            name='Tour',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('name', models.CharField(max_length=200)),
                ('price', models.DecimalField(
                    decimal_places=2, default=Decimal('0.00'), max_digits=12,
                    validators=[django.core.validators.MinValueValidator(Decimal('0.00'))],
                )),
                ('capacity', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(default='active', max_length=20)),
                ('description', models.TextField(blank=True, default='')),
                ('location', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='tours', to='bookings.location',
                )),
                ('ship', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='tours', to='bookings.ship',
                )),
            ],
            options={'ordering': ['name'], 'abstract': False},
        ),
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('booking_reference', models.CharField(
                    default=bookings.models.generate_booking_reference, max_length=50, unique=True,
                )),
                ('status', models.CharField(choices=STATUS_CHOICES, default='pending', max_length=20)),
                ('deposit', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('remaining_balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_payment', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('commission', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_net', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('adults', models.PositiveIntegerField(default=0)),
                ('children', models.PositiveIntegerField(default=0)),
                ('total_pax', models.PositiveIntegerField(default=0)),
                ('tour_date', models.DateField(blank=True, null=True)),
                ('payment_id', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('payment_location', models.CharField(blank=True, default='', max_length=100)),
                ('tour_guide', models.CharField(blank=True, default='', max_length=200)),
                ('other', models.TextField(blank=True, default='')),
                ('notes', models.TextField(blank=True, default='')),
                ('agent', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='bookings', to='bookings.agent',
                )),
                ('customer', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='bookings', to='bookings.customer',
                )),
                ('tour', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='bookings', to='bookings.tour',
                )),
            ],
            options={
                'verbose_name': 'Booking',
                'verbose_name_plural': 'Bookings',
                'ordering': ['-created_at'],
                'abstract': False,
                'indexes': [
                    models.Index(fields=['status'], name='bookings_booking_status_idx'),
                    models.Index(fields=['tour_date'], name='bookings_booking_date_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BookingTour',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('tour_date', models.DateField(blank=True, null=True)),
                ('adults', models.PositiveIntegerField(default=0)),
                ('children', models.PositiveIntegerField(default=0)),
                ('total_pax', models.PositiveIntegerField(default=0)),
                ('price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('tour_guide', models.CharField(blank=True, default='', max_length=200)),
                ('notes', models.TextField(blank=True, default='')),
                ('booking', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='tours', to='bookings.booking',
                )),
                ('booking_agent', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='booking_tours', to='bookings.bookingagent',
                )),
                ('ship', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='booking_tours', to='bookings.ship',
                )),
                ('tour', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='booking_tours', to='bookings.tour',
                )),
            ],
            options={
                'verbose_name': 'Booking Tour',
                'verbose_name_plural': 'Booking Tours',
                'ordering': ['tour_date', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('link', models.CharField(blank=True, default='', max_length=300)),
                ('type', models.CharField(default='info', max_length=30)),
                ('read', models.BooleanField(default=False)),
                ('user', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.CASCADE,
                    related_name='booking_notifications', to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                'ordering': ['-created_at'],
                'abstract': False,
                'indexes': [models.Index(fields=['user', 'read'], name='bookings_notif_user_read_idx')],
            },
        ),
        migrations.CreateModel(
            name='SystemSetting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('key', models.CharField(max_length=100, unique=True)),
                ('content', models.TextField(blank=True, default='')),
            ],
            options={'ordering': ['key'], 'abstract': False},
        ),
        migrations.CreateModel(
            name='EmailDispatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                *_timestamps(),
                ('kind', models.CharField(
                    choices=[
                        ('confirmation', 'Booking confirmation'),
                        ('admin_notification', 'Admin notification'),
                    ],
                    max_length=30,
                )),
                ('target_status', models.CharField(choices=STATUS_CHOICES, max_length=20)),
                ('recipient', models.EmailField(max_length=254)),
                ('status', models.CharField(
                    choices=[('pending', 'Pending'), ('sent', 'Sent'), ('failed', 'Failed')],
                    default='pending', max_length=20,
                )),
                ('attempts', models.PositiveIntegerField(default=0)),
                ('provider_message_id', models.CharField(blank=True, default='', max_length=100)),
                ('last_error', models.TextField(blank=True, default='')),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('booking', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='email_dispatches', to='bookings.booking',
                )),
            ],
            options={
                'verbose_name': 'Email Dispatch',
                'verbose_name_plural': 'Email Dispatches',
                'ordering': ['-created_at'],
                'abstract': False,
            },
        ),
        migrations.AddConstraint(
            model_name='emaildispatch',
            constraint=models.UniqueConstraint(
                fields=('booking', 'kind', 'target_status'),
                name='unique_email_dispatch_per_transition',
            ),
        ),
    ]
